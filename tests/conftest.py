import asyncio
import os
import tempfile
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Use a throwaway store file
os.environ.setdefault("DATA_PATH", os.path.join(tempfile.mkdtemp(prefix="verifyhub-test-"), "db.json"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("MASTER_ADMIN_USERNAME", "master@test.local")
os.environ.setdefault("MASTER_ADMIN_PASSWORD", "master-pass")

from verifyhub.core.config import Settings  # noqa: E402
from verifyhub.core.exceptions import UpstreamError  # noqa: E402
from verifyhub.core.security import create_session_token  # noqa: E402
from verifyhub.db.init import init_store  # noqa: E402
from verifyhub.db.store import Store  # noqa: E402
from verifyhub.models.api_key import ApiKey  # noqa: E402
from verifyhub.models.user import User  # noqa: E402
from verifyhub.services.verifier import VerifiedItem  # noqa: E402
from verifyhub.worker.executor import JobExecutor  # noqa: E402


class FakeVerifier:
    """
    In-memory verifier. `results` maps email -> upstream result code (default OK).
    `fail_on_call` makes the n-th call (1-based) raise `error`.
    With `hold=True` every call blocks until `release()`; `in_flight` is set meanwhile.
    """

    def __init__(self, results=None, fail_on_call=None, error=None, hold=False, on_call=None):
        self.results = results or {}
        self.fail_on_call = fail_on_call
        self.error = error or UpstreamError("Upstream connection failed: ConnectError")
        self.calls: list[tuple[list[str], str]] = []
        self.in_flight = asyncio.Event()
        self._gate = asyncio.Event()
        if not hold:
            self._gate.set()
        self.on_call = on_call

    def release(self) -> None:
        self._gate.set()

    async def verify(self, batch, api_key):
        self.calls.append((list(batch), api_key))
        if self.on_call:
            self.on_call(batch, api_key)
        self.in_flight.set()
        await self._gate.wait()
        if self.fail_on_call == len(self.calls):
            raise self.error
        return [VerifiedItem(email=e, result=self.results.get(e, "OK"), quality="good") for e in batch]


def emails(n: int, prefix: str = "user") -> list[str]:
    return [f"{prefix}{i}@example.com" for i in range(n)]


def add_user(store: Store, user_id: str, role: str = "user", credit_limit: int = 1000, **kw) -> User:
    user = User(id=user_id, username=f"{user_id}@example.com", role=role, credit_limit=credit_limit, status="active", **kw)
    store.state.users.append(user)
    return user


def add_key(store: Store, key_id: str, total_limit: int = 3000, status: str = "active", used: int = 0) -> ApiKey:
    key = ApiKey(id=key_id, name=key_id, key=f"secret-{key_id}", total_limit=total_limit, status=status, used_credits=used)
    store.state.api_keys.append(key)
    return key


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token({'user_id': user.id})}"}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_path=str(tmp_path / "db.json"), master_admin_password="master-pass")


@pytest.fixture
def store(settings) -> Store:
    return init_store(settings)


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest_asyncio.fixture
async def executor(store, verifier) -> AsyncGenerator[JobExecutor, None]:
    ex = JobExecutor(store, verifier, batch_size=25, batch_delay=0)
    yield ex
    await ex.shutdown()


@pytest_asyncio.fixture
async def client(store, executor) -> AsyncGenerator[AsyncClient, None]:
    from verifyhub.main import app
    app.state.store = store
    app.state.executor = executor
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.state.store = None
        app.state.executor = None
