"""Bulk finder permutations and per-row views."""

from verifyhub.models.job import EmailResult, FinderRow, Job, JobStatus
from verifyhub.services.finder import build_rows, generate_permutations, row_views


def test_eight_patterns_in_priority_order():
    assert generate_permutations(" John ", "Doe", "Example.COM") == [
        "john@example.com",
        "john.doe@example.com",
        "johnd@example.com",
        "jdoe@example.com",
        "john-doe@example.com",
        "johndoe@example.com",
        "j.doe@example.com",
        "jo@example.com",
    ]


def test_duplicates_collapse_keeping_first_position():
    assert generate_permutations("Al", "X", "x.io") == [
        "al@x.io",
        "al.x@x.io",
        "alx@x.io",
        "ax@x.io",
        "al-x@x.io",
        "a.x@x.io",
    ]


def test_blank_part_gives_no_candidates():
    assert generate_permutations("John", "  ", "example.com") == []
    assert generate_permutations("", "Doe", "example.com") == []
    assert generate_permutations("John", "Doe", "") == []


def test_build_rows_drops_blank_rows():
    rows = build_rows([
        {"first_name": "Jane", "last_name": "Roe", "domain": " Example.org"},
        {"first_name": "", "last_name": "Roe", "domain": "example.org"},
    ])
    assert len(rows) == 1
    assert rows[0].domain == "example.org"
    assert rows[0].permutations[0] == "jane@example.org"


def _result(email: str, status: str) -> EmailResult:
    return EmailResult(id=email, email=email, status=status, result={"valid": "OK", "invalid": "INVALID"}.get(status, "UNKNOWN"))


def test_row_views_report_first_valid_permutation():
    perms = generate_permutations("John", "Doe", "example.com")
    job = Job(
        id="j1",
        creator_id="u1",
        kind="bulk",
        rows=[FinderRow(first_name="John", last_name="Doe", domain="example.com", permutations=perms)],
        status=JobStatus.PROCESSING,
        results=[_result(perms[0], "invalid"), _result(perms[1], "risky"), _result(perms[2], "valid")],
    )
    (view,) = row_views(job)
    assert view["found_email"] == "johnd@example.com"
    assert view["status"] == "processing"
    assert [p["status"] for p in view["permutations"]][:4] == ["invalid", "risky", "valid", "processing"]

    job.status = JobStatus.FAILED
    (view,) = row_views(job)
    assert view["status"] == "complete"
    assert view["permutations"][3]["status"] == "pending"


def test_row_without_valid_permutation_is_not_found():
    perms = generate_permutations("Jane", "Roe", "example.org")
    job = Job(
        id="j1",
        creator_id="u1",
        kind="bulk",
        rows=[FinderRow(first_name="Jane", last_name="Roe", domain="example.org", permutations=perms)],
        status=JobStatus.COMPLETED,
        results=[_result(p, "invalid") for p in perms],
    )
    (view,) = row_views(job)
    assert view["found_email"] is None
    assert view["status"] == "complete"
