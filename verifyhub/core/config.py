from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    if v is None or v == "":
        return _DEFAULT_CORS.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()]
    s = str(v).strip()
    if not s:
        return _DEFAULT_CORS.copy()
    if s.startswith("["):
        import orjson
        try:
            out = orjson.loads(s)
        except orjson.JSONDecodeError:
            return _DEFAULT_CORS.copy()
        return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # Store
    data_path: str = Field(default="./data/db.json", alias="DATA_PATH")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Upstream verifier (Apify actor)
    apify_base_url: str = Field(default="https://api.apify.com", alias="APIFY_BASE_URL")
    apify_actor: str = Field(default="account56~email-verifier", alias="APIFY_ACTOR")

    # Job execution
    verify_batch_size: int = Field(default=25, alias="VERIFY_BATCH_SIZE")
    verify_batch_delay_seconds: float = Field(default=1.0, alias="VERIFY_BATCH_DELAY_SECONDS")
    verify_timeout_seconds: float = Field(default=60.0, alias="VERIFY_TIMEOUT_SECONDS")
    job_list_limit: int = Field(default=50, alias="JOB_LIST_LIMIT")

    # Master administrator, (re)inserted on every start
    master_admin_username: str = Field(default="admin@verifyhub.local", alias="MASTER_ADMIN_USERNAME")
    master_admin_password: str = Field(default="change-me", alias="MASTER_ADMIN_PASSWORD")

    # Credential pool
    default_key_limit: int = Field(default=3000, alias="DEFAULT_KEY_LIMIT")
    key_reset_days: int = Field(default=30, alias="KEY_RESET_DAYS")

    # Sessions
    session_max_age_seconds: int = Field(default=30 * 24 * 3600, alias="SESSION_MAX_AGE_SECONDS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
