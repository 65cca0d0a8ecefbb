from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from verifyhub.db.store import Store
from verifyhub.deps import get_store, require_admin
from verifyhub.models.user import User
from verifyhub.services import users as user_service

router = APIRouter()


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=254)
    password: str = Field(default="1234", min_length=4, max_length=72)
    role: Literal["admin", "user"] = "user"
    credit_limit: int = Field(default=0, ge=0)
    assigned_api_id: str | None = None


class UserUpdate(BaseModel):
    role: Literal["admin", "user"] | None = None
    credit_limit: int | None = Field(default=None, ge=0)
    status: Literal["active", "disabled", "pending"] | None = None
    assigned_api_id: str | None = None
    password: str | None = Field(default=None, min_length=4, max_length=72)


@router.get("/users")
async def admin_users_list(user: User = Depends(require_admin), store: Store = Depends(get_store)):
    return {"users": [u.public() for u in store.state.users]}


@router.post("/users")
async def admin_user_create(body: UserCreate, user: User = Depends(require_admin), store: Store = Depends(get_store)):
    """Admin: provision an active user."""
    created = await user_service.create_user(
        store,
        body.username,
        body.password,
        role=body.role,
        credit_limit=body.credit_limit,
        assigned_api_id=body.assigned_api_id,
    )
    return created.public()


@router.put("/users/{user_id}")
async def admin_user_update(
    user_id: str,
    body: UserUpdate,
    user: User = Depends(require_admin),
    store: Store = Depends(get_store),
):
    """Admin: change role, limit, status (approve/disable), pinned key or password."""
    updated = await user_service.update_user(store, user_id, body.model_dump(exclude_unset=True))
    return updated.public()


@router.delete("/users/{user_id}")
async def admin_user_delete(user_id: str, user: User = Depends(require_admin), store: Store = Depends(get_store)):
    await user_service.delete_user(store, user_id)
    return {"success": True}
