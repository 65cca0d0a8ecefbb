from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from verifyhub.core.clock import utcnow

ResultStatus = Literal["valid", "invalid", "risky"]


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class EmailResult(BaseModel):
    id: str
    email: str
    status: ResultStatus
    quality: str = "unknown"
    result: str = "unknown"
    result_code: str | int = "-"
    sub_result: str = "-"
    free: bool = False
    role: bool = False
    did_you_mean: str | None = None
    error: str | None = None
    checked_at: datetime = Field(default_factory=utcnow)


class FinderRow(BaseModel):
    first_name: str
    last_name: str
    domain: str
    permutations: list[str] = Field(default_factory=list)


class Job(BaseModel):
    """One verification request, tracked from submission to a terminal state."""

    id: str
    creator_id: str
    kind: Literal["plain", "bulk"] = "plain"
    emails: list[str] = Field(default_factory=list)  # work queue, consumed front-first
    results: list[EmailResult] = Field(default_factory=list)
    rows: list[FinderRow] = Field(default_factory=list)  # bulk finder input, empty for plain jobs
    total_emails: int = 0
    processed_count: int = 0
    remaining_count: int = 0
    valid_count: int = 0
    invalid_count: int = 0
    risky_count: int = 0
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def progress_percent(self) -> int:
        if not self.total_emails:
            return 0
        return round(self.processed_count * 100 / self.total_emails)

    def touch(self) -> None:
        self.updated_at = utcnow()

    def summary(self) -> dict:
        out = self.model_dump(mode="json", exclude={"emails", "results", "rows"})
        out["progress_percent"] = self.progress_percent
        return out

    def detail(self) -> dict:
        out = self.model_dump(mode="json", exclude={"emails"})
        out["progress_percent"] = self.progress_percent
        return out
