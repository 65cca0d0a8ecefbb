"""Upstream verification capability: verify(batch, api_key) -> items."""

from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from verifyhub.core.config import get_settings
from verifyhub.core.exceptions import UpstreamError, UpstreamTimeoutError
from verifyhub.core.logging import get_logger

log = get_logger(__name__)


class VerifiedItem(BaseModel):
    email: str
    quality: str = "unknown"
    result: str = "unknown"
    result_code: str | int = "-"
    sub_result: str = "-"
    free: bool = False
    role: bool = False
    did_you_mean: str | None = None
    error: str | None = None


class Verifier(Protocol):
    async def verify(self, batch: list[str], api_key: str) -> list[VerifiedItem]:
        """All-or-nothing: return one item per email or raise UpstreamError."""
        ...


def parse_item(raw: dict[str, Any]) -> VerifiedItem:
    result_code = raw.get("resultcode")
    return VerifiedItem(
        email=str(raw.get("email") or "unknown"),
        quality=str(raw.get("quality") or "unknown"),
        result=str(raw.get("result") or "unknown"),
        result_code=result_code if isinstance(result_code, (str, int)) and result_code != "" else "-",
        sub_result=str(raw.get("subresult") or "-"),
        free=bool(raw.get("free")),
        role=bool(raw.get("role")),
        did_you_mean=raw.get("didyoumean") or None,
        error=raw.get("error") or None,
    )


class ApifyVerifier:
    """Calls the Apify email-verifier actor synchronously and reads its dataset items."""

    def __init__(
        self,
        base_url: str | None = None,
        actor: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.apify_base_url).rstrip("/")
        self.actor = actor or settings.apify_actor
        self.timeout = timeout if timeout is not None else settings.verify_timeout_seconds
        self._transport = transport

    def _endpoint(self) -> str:
        return f"{self.base_url}/v2/acts/{self.actor}/run-sync-get-dataset-items"

    async def verify(self, batch: list[str], api_key: str) -> list[VerifiedItem]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self._endpoint(), params={"token": api_key}, json={"emails": batch})
        except httpx.TimeoutException as e:
            log.warning("verifier_timeout", batch_size=len(batch), timeout=self.timeout)
            raise UpstreamTimeoutError() from e
        except httpx.HTTPError as e:
            log.warning("verifier_transport_error", batch_size=len(batch), reason=str(e)[:300])
            raise UpstreamError(f"Upstream connection failed: {type(e).__name__}") from e

        if r.status_code >= 400:
            raise UpstreamError(f"Upstream API error: {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError("Upstream returned a non-JSON response") from e
        if not isinstance(data, list):
            raise UpstreamError("Invalid upstream response format")
        return [parse_item(item) for item in data if isinstance(item, dict)]
