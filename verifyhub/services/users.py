"""Users: login, signup, and admin provisioning."""

import uuid
from typing import Any

from verifyhub.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from verifyhub.core.logging import get_logger
from verifyhub.core.security import hash_password, verify_password
from verifyhub.db.store import Store
from verifyhub.models.user import MASTER_ADMIN_ID, User

log = get_logger(__name__)

EDITABLE_FIELDS = ("role", "credit_limit", "status", "assigned_api_id")


def _new_user_id() -> str:
    return f"u_{uuid.uuid4().hex[:12]}"


async def authenticate(store: Store, username: str, password: str) -> User:
    user = store.state.find_user_by_username(username)
    if not user or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid credentials. Please check your username and password.")
    if user.status != "active":
        raise ForbiddenError(f"Account {user.status}")
    log.info("user_login", user_id=user.id)
    return user


async def signup(store: Store, username: str, password: str) -> User:
    """Self-service signup: pending, zero limit until an admin approves."""
    username = username.strip()
    if not username or not password:
        raise BadRequestError("Username and password are required")
    async with store.transaction() as state:
        if state.find_user_by_username(username):
            raise ConflictError("Identity already registered in the system.")
        user = User(
            id=_new_user_id(),
            username=username,
            password_hash=hash_password(password),
            role="user",
            credit_limit=0,
            status="pending",
        )
        state.users.append(user)
    log.info("user_signup", user_id=user.id)
    return user


async def create_user(
    store: Store,
    username: str,
    password: str,
    role: str = "user",
    credit_limit: int = 0,
    assigned_api_id: str | None = None,
) -> User:
    username = username.strip()
    if not username or not password:
        raise BadRequestError("Username and password are required")
    async with store.transaction() as state:
        if state.find_user_by_username(username):
            raise ConflictError("User ID already exists.")
        if assigned_api_id and not state.get_api_key(assigned_api_id):
            raise BadRequestError("Assigned API key not found")
        user = User(
            id=_new_user_id(),
            username=username,
            password_hash=hash_password(password),
            role=role,
            credit_limit=max(0, credit_limit),
            assigned_api_id=assigned_api_id,
            status="active",
        )
        state.users.append(user)
    log.info("user_created", user_id=user.id, role=role)
    return user


async def update_user(store: Store, user_id: str, updates: dict[str, Any]) -> User:
    password = updates.get("password")
    password_hash = hash_password(password) if password else None
    # None clears the pinned key; for other fields it means "unchanged".
    changes = {
        k: v for k, v in updates.items()
        if k in EDITABLE_FIELDS and (v is not None or k == "assigned_api_id")
    }
    async with store.transaction() as state:
        user = state.get_user(user_id)
        if not user:
            raise NotFoundError("Target user not found.")
        api_id = changes.get("assigned_api_id")
        if api_id and not state.get_api_key(api_id):
            raise BadRequestError("Assigned API key not found")
        if user_id == MASTER_ADMIN_ID and (changes.get("role", "admin") != "admin" or changes.get("status", "active") != "active"):
            raise ForbiddenError("The master administrator cannot be demoted or disabled.")
        data = user.model_dump()
        data.update(changes)
        if password_hash:
            data["password_hash"] = password_hash
        updated = User.model_validate(data)
        state.users = [updated if u.id == user_id else u for u in state.users]
    log.info("user_updated", user_id=user_id, fields=sorted(changes))
    return updated


async def delete_user(store: Store, user_id: str) -> None:
    if user_id == MASTER_ADMIN_ID:
        raise ForbiddenError("The master administrator account cannot be deleted.")
    async with store.transaction() as state:
        if not state.get_user(user_id):
            raise NotFoundError("Target user not found.")
        state.users = [u for u in state.users if u.id != user_id]
    log.info("user_deleted", user_id=user_id)


def session_payload_for_user(user: User) -> dict:
    return {"user_id": user.id}
