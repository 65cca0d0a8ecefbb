from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from verifyhub.db.store import Store
from verifyhub.deps import get_current_user, get_store, require_admin
from verifyhub.models.user import User
from verifyhub.services import credentials as credentials_service

router = APIRouter()


class ApiKeyCreate(BaseModel):
    name: str
    key: str
    total_limit: int | None = Field(default=None, gt=0)


@router.get("")
async def keys_list(user: User = Depends(get_current_user), store: Store = Depends(get_store)):
    """Credential pool with secrets masked."""
    return {"keys": [k.masked() for k in credentials_service.list_keys(store.state)]}


@router.get("/summary")
async def keys_summary(user: User = Depends(get_current_user), store: Store = Depends(get_store)):
    """Pool capacity, usage, and days until the next reset."""
    return credentials_service.pool_summary(store.state)


@router.post("")
async def key_create(body: ApiKeyCreate, user: User = Depends(require_admin), store: Store = Depends(get_store)):
    api_key = await credentials_service.add_key(store, body.name, body.key, total_limit=body.total_limit)
    return api_key.masked()


@router.delete("/{key_id}")
async def key_delete(key_id: str, user: User = Depends(require_admin), store: Store = Depends(get_store)):
    await credentials_service.delete_key(store, key_id)
    return {"success": True}


@router.post("/{key_id}/toggle")
async def key_toggle(key_id: str, user: User = Depends(require_admin), store: Store = Depends(get_store)):
    api_key = await credentials_service.toggle_key(store, key_id)
    return {"success": True, "status": api_key.status}


@router.post("/{key_id}/reset")
async def key_reset(key_id: str, user: User = Depends(require_admin), store: Store = Depends(get_store)):
    """Zero the usage counter and reactivate (after the provider's monthly reset)."""
    api_key = await credentials_service.reset_key(store, key_id)
    return api_key.masked()
