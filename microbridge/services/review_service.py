from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

from fastapi import Depends

from microbridge.core.config import Settings, get_settings
from microbridge.services.clock import Clock, utc_now
from microbridge.services.eligibility import Eligibility, EligibilityChecker
from microbridge.services.errors import NotFoundError
from microbridge.services.lifecycle import JobLifecycleManager
from microbridge.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    WebhookNotificationDispatcher,
)
from microbridge.services.repository import (
    JobRecord,
    RepositoryNotFoundError,
    ReviewRecord,
    ReviewRepository,
    get_repository,
)
from microbridge.services.review_writer import ReviewChanges, ReviewDraft, ReviewWriter
from microbridge.services.stats import ReviewStats, StatsAggregator
from microbridge.services.visibility import SweepResult, VisibilityGate


@dataclass(slots=True)
class UserReviewsPage:
    reviews: list[ReviewRecord] = field(default_factory=list)
    total: int = 0
    average_rating: float = 0.0
    total_reviews: int = 0


class ReviewService:
    """Entry point for the job-completion and double-blind review workflow."""

    def __init__(
        self,
        repository: ReviewRepository,
        *,
        notifier: NotificationDispatcher | None = None,
        clock: Clock = utc_now,
        review_window_days: int = 14,
        edit_window_hours: int = 24,
        comment_min_length: int = 10,
        comment_max_length: int = 1000,
    ) -> None:
        self.repository = repository
        self.lifecycle = JobLifecycleManager(repository, clock=clock, review_window_days=review_window_days)
        self.eligibility = EligibilityChecker(repository, repository)
        self.gate = VisibilityGate(repository, notifier=notifier, clock=clock)
        self.writer = ReviewWriter(
            repository,
            repository,
            self.gate,
            clock=clock,
            edit_window_hours=edit_window_hours,
            comment_min_length=comment_min_length,
            comment_max_length=comment_max_length,
        )
        self.stats = StatsAggregator(repository)

    async def complete_job(self, job_id: str, actor_id: str) -> JobRecord:
        return await self.lifecycle.complete_job(job_id, actor_id)

    async def dispute_job(self, job_id: str, actor_id: str) -> JobRecord:
        return await self.lifecycle.dispute_job(job_id, actor_id)

    async def archive_job(self, job_id: str, actor_id: str) -> JobRecord:
        return await self.lifecycle.archive_job(job_id, actor_id)

    async def check_eligibility(self, job_id: str, user_id: str) -> Eligibility:
        return await self.eligibility.check_eligibility(job_id, user_id)

    async def list_pending_reviews(self, user_id: str) -> list[JobRecord]:
        return await self.eligibility.list_pending_reviews(user_id)

    async def create_review(self, draft: ReviewDraft) -> ReviewRecord:
        return await self.writer.create_review(draft)

    async def update_review(self, review_id: str, changes: ReviewChanges, actor_id: str) -> ReviewRecord:
        return await self.writer.update_review(review_id, changes, actor_id)

    async def delete_review(self, review_id: str, actor_id: str) -> None:
        await self.writer.delete_review(review_id, actor_id)

    async def evaluate_visibility(self, job_id: str) -> list[ReviewRecord]:
        return await self.gate.evaluate(job_id)

    async def process_expired_reviews(self, *, limit: int) -> SweepResult:
        return await self.gate.sweep(limit=limit)

    async def get_user_review_stats(self, user_id: str) -> ReviewStats:
        return await self.stats.get_user_review_stats(user_id)

    async def get_user_reviews(self, user_id: str, *, limit: int, offset: int) -> UserReviewsPage:
        page, total = await self.repository.list_visible_reviews_for_reviewee(user_id, limit=limit, offset=offset)
        stats = await self.stats.get_user_review_stats(user_id)
        return UserReviewsPage(
            reviews=page,
            total=total,
            average_rating=stats.average_rating,
            total_reviews=stats.total_reviews,
        )

    async def get_job_reviews(self, job_id: str, *, viewer_id: str | None = None) -> list[ReviewRecord]:
        """Visible reviews for a job, plus the viewer's own pending review."""
        try:
            job = await self.repository.get_job(job_id)
        except RepositoryNotFoundError as exc:
            raise NotFoundError("job not found") from exc

        viewer_is_party = viewer_id is not None and job.is_party(viewer_id)
        return [
            review
            for review in await self.repository.list_job_reviews(job_id)
            if review.is_visible or (viewer_is_party and review.reviewer_id == viewer_id)
        ]


@lru_cache
def get_notifier() -> NotificationDispatcher:
    settings = get_settings()
    if settings.notification_webhook_url:
        return WebhookNotificationDispatcher(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return LoggingNotificationDispatcher()


def get_review_service(
    settings: Settings = Depends(get_settings),
    repository: ReviewRepository = Depends(get_repository),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> ReviewService:
    return ReviewService(
        repository,
        notifier=notifier,
        review_window_days=settings.review_window_days,
        edit_window_hours=settings.edit_window_hours,
        comment_min_length=settings.comment_min_length,
        comment_max_length=settings.comment_max_length,
    )
