from verifyhub.models.api_key import ApiKey
from verifyhub.models.job import EmailResult, FinderRow, Job, JobStatus
from verifyhub.models.user import User

__all__ = [
    "ApiKey",
    "EmailResult",
    "FinderRow",
    "Job",
    "JobStatus",
    "User",
]
