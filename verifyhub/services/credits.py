"""Per-user credit summary for the dashboard."""

from verifyhub.models.user import User
from verifyhub.services.quota import remaining_credits


def credit_health(percent_used: float) -> str:
    if percent_used > 90:
        return "Exhausted"
    if percent_used > 70:
        return "Low Credits"
    return "Healthy"


def user_credit_summary(user: User) -> dict:
    if user.is_admin:
        percent = 0.0
    elif user.credit_limit > 0:
        percent = user.used_credits * 100 / user.credit_limit
    else:
        percent = 100.0
    return {
        "limit": user.credit_limit,
        "used": user.used_credits,
        "remaining": remaining_credits(user),
        "percent_used": round(percent, 2),
        "status": credit_health(percent),
        "unlimited": user.is_admin,
    }
