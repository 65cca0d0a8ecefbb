"""
Bulk email finder: turn (first name, last name, domain) rows into candidate
addresses, and read a bulk job's results back per row.
"""

from verifyhub.models.job import FinderRow, Job, JobStatus


def generate_permutations(first_name: str, last_name: str, domain: str) -> list[str]:
    """Candidate addresses in priority order. Empty when any part is blank."""
    fn = (first_name or "").lower().strip()
    ln = (last_name or "").lower().strip()
    d = (domain or "").lower().strip()
    if not fn or not ln or not d:
        return []
    candidates = [
        f"{fn}@{d}",
        f"{fn}.{ln}@{d}",
        f"{fn}{ln[0]}@{d}",
        f"{fn[0]}{ln}@{d}",
        f"{fn}-{ln}@{d}",
        f"{fn}{ln}@{d}",
        f"{fn[0]}.{ln}@{d}",
        f"{fn[:2]}@{d}",
    ]
    # "al" + "x" gives al@ twice (patterns 1 and 8)
    return list(dict.fromkeys(candidates))


def build_rows(rows: list[dict]) -> list[FinderRow]:
    """Rows with at least one candidate; blank rows are dropped."""
    out = []
    for row in rows:
        permutations = generate_permutations(row.get("first_name", ""), row.get("last_name", ""), row.get("domain", ""))
        if not permutations:
            continue
        out.append(
            FinderRow(
                first_name=row["first_name"].strip(),
                last_name=row["last_name"].strip(),
                domain=row["domain"].lower().strip(),
                permutations=permutations,
            )
        )
    return out


def row_views(job: Job) -> list[dict]:
    """
    Per-row state of a bulk job. The found email is the first permutation, in
    priority order, whose result is valid. A row is complete once every
    permutation has a result or the job has reached a terminal state.
    """
    by_email = {r.email.lower(): r for r in job.results}
    waiting = "processing" if job.status == JobStatus.PROCESSING else "pending"
    views = []
    for row in job.rows:
        permutations = []
        for email in row.permutations:
            result = by_email.get(email)
            permutations.append({
                "email": email,
                "status": result.status if result else waiting,
                "quality": result.quality if result else "",
                "result": result.result if result else "",
            })
        found = next((p["email"] for p in permutations if p["status"] == "valid"), None)
        checked = all(p["email"] in by_email for p in permutations)
        views.append({
            "first_name": row.first_name,
            "last_name": row.last_name,
            "domain": row.domain,
            "found_email": found,
            "status": "complete" if checked or job.is_terminal else waiting,
            "permutations": permutations,
        })
    return views
