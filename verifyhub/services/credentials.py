"""Credential pool: selection, usage metering, and admin operations."""

import uuid
from datetime import timedelta

from verifyhub.core.clock import utcnow
from verifyhub.core.config import get_settings
from verifyhub.core.exceptions import BadRequestError, NotFoundError
from verifyhub.core.logging import get_logger
from verifyhub.db.store import Store, StoreState
from verifyhub.models.api_key import ApiKey

log = get_logger(__name__)


def select_credential(state: StoreState, preferred_id: str | None = None) -> ApiKey | None:
    """
    Pinned credential first (only while active), then the first active key
    with capacity in pool order. None when nothing qualifies.
    """
    if preferred_id:
        pinned = state.get_api_key(preferred_id)
        if pinned and pinned.status == "active":
            return pinned
    for key in state.api_keys:
        if key.status == "active" and key.has_capacity:
            return key
    return None


def record_usage(key: ApiKey, count: int) -> None:
    key.used_credits += count
    if key.used_credits >= key.total_limit and key.status != "exhausted":
        key.status = "exhausted"
        log.info("credential_exhausted", key_id=key.id, used=key.used_credits, limit=key.total_limit)


def _new_reset_date():
    return utcnow() + timedelta(days=get_settings().key_reset_days)


async def add_key(store: Store, name: str, key: str, total_limit: int | None = None) -> ApiKey:
    name = name.strip()
    key = key.strip()
    if not name or not key:
        raise BadRequestError("Name and key are required")
    limit = total_limit if total_limit is not None else get_settings().default_key_limit
    if limit <= 0:
        raise BadRequestError("total_limit must be positive")
    api_key = ApiKey(
        id=f"k_{uuid.uuid4().hex[:12]}",
        name=name,
        key=key,
        total_limit=limit,
        reset_date=_new_reset_date(),
    )
    async with store.transaction() as state:
        state.api_keys.append(api_key)
    log.info("credential_added", key_id=api_key.id, name=name, limit=limit)
    return api_key


async def delete_key(store: Store, key_id: str) -> None:
    async with store.transaction() as state:
        if not state.get_api_key(key_id):
            raise NotFoundError("API key not found")
        state.api_keys = [k for k in state.api_keys if k.id != key_id]
        for user in state.users:
            if user.assigned_api_id == key_id:
                user.assigned_api_id = None
    log.info("credential_deleted", key_id=key_id)


async def toggle_key(store: Store, key_id: str) -> ApiKey:
    """active -> disabled; disabled or exhausted -> active/disabled by capacity."""
    async with store.transaction() as state:
        api_key = state.get_api_key(key_id)
        if not api_key:
            raise NotFoundError("API key not found")
        if api_key.status == "disabled":
            api_key.status = "active" if api_key.has_capacity else "exhausted"
        else:
            api_key.status = "disabled"
    log.info("credential_toggled", key_id=key_id, status=api_key.status)
    return api_key


async def reset_key(store: Store, key_id: str) -> ApiKey:
    async with store.transaction() as state:
        api_key = state.get_api_key(key_id)
        if not api_key:
            raise NotFoundError("API key not found")
        api_key.used_credits = 0
        api_key.status = "active"
        api_key.reset_date = _new_reset_date()
    log.info("credential_reset", key_id=key_id)
    return api_key


def pool_summary(state: StoreState) -> dict:
    total = sum(k.total_limit for k in state.api_keys if k.status != "disabled")
    used = sum(k.used_credits for k in state.api_keys if k.status != "disabled")
    now = utcnow()
    upcoming = [k.reset_date for k in state.api_keys if k.reset_date and k.reset_date > now]
    days = (min(upcoming) - now).days if upcoming else None
    return {
        "total_available": total,
        "total_used": used,
        "remaining": max(0, total - used),
        "active_keys": sum(1 for k in state.api_keys if k.status == "active"),
        "days_until_next_reset": days,
    }


def list_keys(state: StoreState) -> list[ApiKey]:
    return list(state.api_keys)
