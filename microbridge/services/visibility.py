from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from opentelemetry import trace

from microbridge.services.clock import Clock, utc_now
from microbridge.services.errors import NotFoundError, ReviewWorkflowError
from microbridge.services.notifications import NotificationDispatcher
from microbridge.services.repository import (
    JobRecord,
    JobStore,
    JobTransaction,
    RepositoryError,
    RepositoryNotFoundError,
    ReviewRecord,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class VisibilityDecision:
    reveal_review_ids: list[str] = field(default_factory=list)
    stamp_all: bool = False
    complete_job: bool = False


@dataclass(slots=True)
class SweepResult:
    jobs_scanned: int = 0
    reviews_revealed: int = 0
    jobs_completed: int = 0
    jobs_failed: int = 0


def review_window_elapsed(job: JobRecord, now: datetime) -> bool:
    if job.completed_at is None or job.review_due_date is None:
        return False
    return now > job.review_due_date


def decide_visibility(job: JobRecord, reviews: Sequence[ReviewRecord], now: datetime) -> VisibilityDecision:
    """Decide which of a job's reviews become visible at ``now``.

    Both parties reviewed and one of them is still hidden: every review of the
    job is stamped with the same ``visible_at``, including one that an earlier
    timeout already revealed. One review only: it is revealed once the review
    window has elapsed. Once nothing is hidden the decision is empty, so
    applying it twice is a no-op.
    """
    hidden_ids = [review.id for review in reviews if not review.is_visible]
    window_elapsed = review_window_elapsed(job, now)
    both_reviewed = len(reviews) >= 2

    decision = VisibilityDecision()
    if both_reviewed and hidden_ids:
        decision.reveal_review_ids = hidden_ids
        decision.stamp_all = True
    elif len(reviews) == 1 and window_elapsed:
        decision.reveal_review_ids = hidden_ids
    decision.complete_job = job.status == "review_pending" and (both_reviewed or window_elapsed)
    return decision


class VisibilityGate:
    def __init__(
        self,
        jobs: JobStore,
        *,
        notifier: NotificationDispatcher | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.jobs = jobs
        self.notifier = notifier
        self.clock = clock

    async def evaluate(self, job_id: str) -> list[ReviewRecord]:
        with tracer.start_as_current_span("visibility_gate.evaluate") as span:
            span.set_attribute("job.id", job_id)
            try:
                async with self.jobs.transaction(job_id) as tx:
                    revealed = await self.apply(tx)
            except RepositoryNotFoundError as exc:
                raise NotFoundError("job not found") from exc
            span.set_attribute("reviews.revealed", len(revealed))

        self.notify_revealed(revealed)
        return revealed

    async def apply(self, tx: JobTransaction) -> list[ReviewRecord]:
        """Apply the visibility decision inside an already-open job transaction.

        Notifications are left to the caller so they only go out after commit.
        """
        now = self.clock()
        reviews = await tx.list_reviews()
        decision = decide_visibility(tx.job, reviews, now)

        if decision.stamp_all:
            stamped = await tx.stamp_all_reviews(now)
        else:
            stamped = await tx.reveal_reviews(decision.reveal_review_ids, now)
        newly_visible = set(decision.reveal_review_ids)
        revealed = [review for review in stamped if review.id in newly_visible]
        if decision.complete_job:
            await tx.update_job(status="completed", updated_at=now)
            logger.info("review window resolved job_id=%s status=completed", tx.job.id)
        if revealed:
            logger.info(
                "reviews revealed job_id=%s review_ids=%s",
                tx.job.id,
                ",".join(review.id for review in revealed),
            )
        return revealed

    async def sweep(self, *, limit: int) -> SweepResult:
        now = self.clock()
        result = SweepResult()
        with tracer.start_as_current_span("visibility_gate.sweep") as span:
            job_ids = await self.jobs.list_jobs_due_for_reveal(now=now, limit=limit)
            for job_id in job_ids:
                result.jobs_scanned += 1
                try:
                    async with self.jobs.transaction(job_id) as tx:
                        was_pending = tx.job.status == "review_pending"
                        revealed = await self.apply(tx)
                        completed = was_pending and tx.job.status == "completed"
                except RepositoryNotFoundError:
                    logger.info("job disappeared before sweep job_id=%s", job_id)
                    continue
                except (RepositoryError, ReviewWorkflowError):
                    result.jobs_failed += 1
                    logger.exception("visibility sweep failed for job_id=%s", job_id)
                    continue

                result.reviews_revealed += len(revealed)
                result.jobs_completed += int(completed)
                self.notify_revealed(revealed)

            span.set_attribute("sweep.jobs_scanned", result.jobs_scanned)
            span.set_attribute("sweep.reviews_revealed", result.reviews_revealed)

        if result.jobs_scanned:
            logger.info(
                "visibility sweep jobs_scanned=%s reviews_revealed=%s jobs_completed=%s jobs_failed=%s",
                result.jobs_scanned,
                result.reviews_revealed,
                result.jobs_completed,
                result.jobs_failed,
            )
        return result

    def notify_revealed(self, reviews: Sequence[ReviewRecord]) -> None:
        if self.notifier is None:
            return
        for review in reviews:
            self.notifier.review_visible(review)
