from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from verifyhub.core.clock import utcnow

MASTER_ADMIN_ID = "admin_master"


class User(BaseModel):
    id: str
    username: str
    password_hash: str = ""
    role: Literal["admin", "user"] = "user"
    credit_limit: int = 0
    used_credits: int = 0
    status: Literal["active", "disabled", "pending"] = "pending"
    assigned_api_id: str | None = None  # pinned credential, preferred over the pool
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def public(self) -> dict:
        return self.model_dump(mode="json", exclude={"password_hash"})
