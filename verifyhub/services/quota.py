"""Admission check: a user's prospective usage against their credit limit."""

from verifyhub.core.exceptions import QuotaExceededError
from verifyhub.models.user import User


def check_quota(user: User, requested_count: int) -> None:
    """Raise QuotaExceededError unless the user is an admin or the job fits the limit."""
    if user.is_admin:
        return
    if user.used_credits + requested_count > user.credit_limit:
        raise QuotaExceededError(user.credit_limit, user.used_credits, requested_count)


def remaining_credits(user: User) -> int:
    return max(0, user.credit_limit - user.used_credits)
