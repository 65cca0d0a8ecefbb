"""Map the upstream `result` field onto valid / invalid / risky."""

from verifyhub.models.job import ResultStatus


def classify_result(result: str | None) -> ResultStatus:
    if result == "OK":
        return "valid"
    if result == "INVALID":
        return "invalid"
    return "risky"
