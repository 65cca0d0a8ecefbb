import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from verifyhub.core.config import get_settings
from verifyhub.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from verifyhub.core.logging import bind_request_id, configure_logging, get_logger
from verifyhub.db.init import init_store
from verifyhub.routers import admin, auth, credits, jobs, keys
from verifyhub.services.verifier import ApifyVerifier
from verifyhub.worker.executor import JobExecutor

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="verifyhub API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(auth.router, prefix="/v1/auth", tags=["auth"])
app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(keys.router, prefix="/v1/keys", tags=["keys"])
app.include_router(credits.router, prefix="/v1/credits", tags=["credits"])
app.include_router(admin.router, prefix="/v1/admin", tags=["admin"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    # Tests may pre-wire their own store and executor.
    if getattr(app.state, "store", None) is None:
        app.state.store = init_store(settings)
        app.state.executor = JobExecutor(app.state.store, ApifyVerifier())
    log.info("startup", msg="Store loaded", path=str(app.state.store.path))


@app.on_event("shutdown")
async def shutdown():
    executor = getattr(app.state, "executor", None)
    if executor is not None:
        await executor.shutdown()
    log.info("shutdown")


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
