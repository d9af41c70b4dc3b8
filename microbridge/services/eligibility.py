from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from microbridge.services.errors import NotFoundError
from microbridge.services.repository import (
    REVIEWABLE_JOB_STATUSES,
    JobRecord,
    JobStore,
    RepositoryNotFoundError,
    ReviewRecord,
    ReviewStore,
)

REASON_JOB_NOT_COMPLETED = "job not completed"
REASON_NOT_A_PARTY = "not a party to this job"
REASON_ALREADY_REVIEWED = "already reviewed"


@dataclass(slots=True)
class Eligibility:
    eligible: bool
    reason: str | None = None


def evaluate_eligibility(job: JobRecord, reviews: Iterable[ReviewRecord], user_id: str) -> Eligibility:
    if job.status not in REVIEWABLE_JOB_STATUSES:
        return Eligibility(eligible=False, reason=REASON_JOB_NOT_COMPLETED)
    if not job.is_party(user_id):
        return Eligibility(eligible=False, reason=REASON_NOT_A_PARTY)
    if any(review.reviewer_id == user_id for review in reviews):
        return Eligibility(eligible=False, reason=REASON_ALREADY_REVIEWED)
    return Eligibility(eligible=True)


class EligibilityChecker:
    """Read-side eligibility answers for clients.

    ``ReviewWriter`` repeats the same evaluation under the job lock; an answer
    from here is advisory only.
    """

    def __init__(self, jobs: JobStore, reviews: ReviewStore) -> None:
        self.jobs = jobs
        self.reviews = reviews

    async def check_eligibility(self, job_id: str, user_id: str) -> Eligibility:
        try:
            job = await self.jobs.get_job(job_id)
        except RepositoryNotFoundError as exc:
            raise NotFoundError("job not found") from exc
        reviews = await self.reviews.list_job_reviews(job_id)
        return evaluate_eligibility(job, reviews, user_id)

    async def list_pending_reviews(self, user_id: str) -> list[JobRecord]:
        return await self.jobs.list_jobs_awaiting_review(user_id)
