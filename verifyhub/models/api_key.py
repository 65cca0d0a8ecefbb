from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from verifyhub.core.clock import utcnow


class ApiKey(BaseModel):
    """Upstream verifier credential in the rotation pool."""

    id: str
    name: str
    key: str
    used_credits: int = 0
    total_limit: int = 3000
    status: Literal["active", "exhausted", "disabled"] = "active"
    created_at: datetime = Field(default_factory=utcnow)
    reset_date: datetime | None = None

    @property
    def has_capacity(self) -> bool:
        return self.used_credits < self.total_limit

    def masked(self) -> dict:
        out = self.model_dump(mode="json")
        out["key"] = f"...{self.key[-4:]}" if len(self.key) > 4 else "****"
        return out
