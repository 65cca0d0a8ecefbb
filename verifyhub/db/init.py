from verifyhub.core.config import Settings, get_settings
from verifyhub.core.logging import get_logger
from verifyhub.core.security import hash_password
from verifyhub.db.store import Store, StoreState
from verifyhub.models.job import JobStatus
from verifyhub.models.user import MASTER_ADMIN_ID, User

log = get_logger(__name__)

INTERRUPTED_MESSAGE = "Interrupted by server restart."


def ensure_master_admin(state: StoreState, settings: Settings) -> bool:
    """Insert the master administrator if missing. Returns True when inserted."""
    if state.get_user(MASTER_ADMIN_ID):
        return False
    taken = state.find_user_by_username(settings.master_admin_username)
    if taken is not None:
        log.warning("master_admin_username_taken", username=settings.master_admin_username, user_id=taken.id)
        return False
    state.users.insert(
        0,
        User(
            id=MASTER_ADMIN_ID,
            username=settings.master_admin_username,
            password_hash=hash_password(settings.master_admin_password),
            role="admin",
            credit_limit=999_999_999,
            status="active",
        ),
    )
    return True


def fail_interrupted_jobs(state: StoreState) -> list[str]:
    """Jobs left mid-flight by a previous process are failed, never resumed."""
    interrupted = []
    for job in state.jobs:
        if job.status in (JobStatus.PROCESSING, JobStatus.PENDING):
            job.status = JobStatus.FAILED
            job.error = INTERRUPTED_MESSAGE
            job.emails = []
            job.touch()
            interrupted.append(job.id)
    return interrupted


def init_store(settings: Settings | None = None) -> Store:
    settings = settings or get_settings()
    store = Store(settings.data_path)
    state = store.load()
    if ensure_master_admin(state, settings):
        log.info("master_admin_created", username=settings.master_admin_username)
    interrupted = fail_interrupted_jobs(state)
    if interrupted:
        log.warning("jobs_interrupted", job_ids=interrupted)
    store.flush()
    return store
