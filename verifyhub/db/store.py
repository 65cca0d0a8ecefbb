"""JSON-file store: whole-state snapshot, atomic replace on every flush."""

import asyncio
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import orjson
from pydantic import BaseModel, Field, ValidationError

from verifyhub.core.logging import get_logger
from verifyhub.models.api_key import ApiKey
from verifyhub.models.job import Job
from verifyhub.models.user import User

log = get_logger(__name__)


class StoreState(BaseModel):
    users: list[User] = Field(default_factory=list)
    api_keys: list[ApiKey] = Field(default_factory=list)
    jobs: list[Job] = Field(default_factory=list)

    def get_user(self, user_id: str) -> User | None:
        return next((u for u in self.users if u.id == user_id), None)

    def find_user_by_username(self, username: str) -> User | None:
        needle = username.strip().lower()
        return next((u for u in self.users if u.username.lower() == needle), None)

    def get_api_key(self, key_id: str) -> ApiKey | None:
        return next((k for k in self.api_keys if k.id == key_id), None)

    def get_job(self, job_id: str) -> Job | None:
        return next((j for j in self.jobs if j.id == job_id), None)


class Store:
    """
    Single-writer store. Mutations go through transaction(), which holds the
    lock for mutate + flush so readers only ever see committed snapshots.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.state = StoreState()
        self._lock = asyncio.Lock()

    def load(self) -> StoreState:
        if not self.path.exists():
            self.state = StoreState()
            return self.state
        try:
            self.state = StoreState.model_validate_json(self.path.read_bytes())
        except (OSError, ValueError, ValidationError) as e:
            log.warning("store_corrupt", path=str(self.path), reason=str(e)[:500])
            self.state = StoreState()
        else:
            log.info(
                "store_loaded",
                path=str(self.path),
                users=len(self.state.users),
                api_keys=len(self.state.api_keys),
                jobs=len(self.state.jobs),
            )
        return self.state

    def flush(self) -> None:
        payload = orjson.dumps(self.state.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreState]:
        """Hold the write lock; flush if the block exits cleanly."""
        async with self._lock:
            yield self.state
            self.flush()
