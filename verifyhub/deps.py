"""Shared FastAPI dependencies."""

from fastapi import Depends, Request

from verifyhub.core.exceptions import ForbiddenError, UnauthorizedError
from verifyhub.core.security import load_session_token
from verifyhub.db.store import Store
from verifyhub.models.user import User
from verifyhub.worker.executor import JobExecutor

SESSION_COOKIE_NAME = "verifyhub_session"


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_executor(request: Request) -> JobExecutor:
    return request.app.state.executor


def _session_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE_NAME)


async def get_current_user(request: Request, store: Store = Depends(get_store)) -> User:
    """Dependency: resolve the session (Bearer header or cookie) to an active User."""
    token = _session_token(request)
    if not token:
        raise UnauthorizedError("Authentication required.")
    payload = load_session_token(token)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    user = store.state.get_user(user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if user.status != "active":
        raise ForbiddenError(f"Account {user.status}")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency: require current user to have role admin."""
    if not user.is_admin:
        raise ForbiddenError("Administrative access required.")
    return user
