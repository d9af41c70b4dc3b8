from __future__ import annotations

import logging
from datetime import timedelta

from microbridge.services.clock import Clock, utc_now
from microbridge.services.errors import AuthorizationError, InvalidStateError, NotFoundError
from microbridge.services.repository import JobRecord, JobStore, RepositoryNotFoundError

logger = logging.getLogger(__name__)

ALLOWED_JOB_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"posted"},
    "posted": {"hired", "archived"},
    "hired": {"in_progress"},
    "in_progress": {"submitted", "review_pending", "disputed"},
    "submitted": {"in_progress", "review_pending", "disputed"},
    "review_pending": {"completed", "disputed"},
    "completed": {"archived"},
    "archived": set(),
    "disputed": set(),
}
COMPLETABLE_JOB_STATUSES = {"in_progress", "submitted"}


def validate_job_transition(*, from_status: str, to_status: str) -> None:
    allowed = ALLOWED_JOB_TRANSITIONS.get(from_status)
    if not allowed or to_status not in allowed:
        raise InvalidStateError(f"invalid job status transition: {from_status} -> {to_status}")


class JobLifecycleManager:
    def __init__(self, jobs: JobStore, *, clock: Clock = utc_now, review_window_days: int = 14) -> None:
        if review_window_days < 1:
            raise ValueError("review_window_days must be at least 1")
        self.jobs = jobs
        self.clock = clock
        self.review_window = timedelta(days=review_window_days)

    async def complete_job(self, job_id: str, actor_id: str) -> JobRecord:
        """Close out a job and open its review window.

        Completing twice is rejected so that ``completed_at`` and
        ``review_due_date`` are never reset.
        """
        try:
            async with self.jobs.transaction(job_id) as tx:
                job = tx.job
                if not job.is_party(actor_id):
                    raise AuthorizationError("not authorized to complete this job")
                if job.status not in COMPLETABLE_JOB_STATUSES:
                    raise InvalidStateError(f"job is not in a completable state: {job.status}")
                validate_job_transition(from_status=job.status, to_status="review_pending")

                now = self.clock()
                updated = await tx.update_job(
                    status="review_pending",
                    updated_at=now,
                    completed_at=now,
                    review_due_date=now + self.review_window,
                )
        except RepositoryNotFoundError as exc:
            raise NotFoundError("job not found") from exc

        logger.info(
            "job completed job_id=%s actor_id=%s review_due_date=%s",
            updated.id,
            actor_id,
            updated.review_due_date.isoformat() if updated.review_due_date else None,
        )
        return updated

    async def dispute_job(self, job_id: str, actor_id: str) -> JobRecord:
        return await self._transition(job_id, actor_id, to_status="disputed", employer_only=False)

    async def archive_job(self, job_id: str, actor_id: str) -> JobRecord:
        return await self._transition(job_id, actor_id, to_status="archived", employer_only=True)

    async def _transition(self, job_id: str, actor_id: str, *, to_status: str, employer_only: bool) -> JobRecord:
        try:
            async with self.jobs.transaction(job_id) as tx:
                job = tx.job
                permitted = actor_id == job.employer_id if employer_only else job.is_party(actor_id)
                if not permitted:
                    raise AuthorizationError(f"not authorized to move this job to {to_status}")
                validate_job_transition(from_status=job.status, to_status=to_status)
                from_status = job.status
                updated = await tx.update_job(status=to_status, updated_at=self.clock())
        except RepositoryNotFoundError as exc:
            raise NotFoundError("job not found") from exc

        logger.info(
            "job status changed job_id=%s from=%s to=%s actor_id=%s",
            updated.id,
            from_status,
            to_status,
            actor_id,
        )
        return updated
