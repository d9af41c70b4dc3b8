from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any
from uuid import uuid4

from microbridge.services.categories import build_category_ratings, validate_rating
from microbridge.services.clock import Clock, utc_now
from microbridge.services.eligibility import (
    REASON_ALREADY_REVIEWED,
    REASON_JOB_NOT_COMPLETED,
    REASON_NOT_A_PARTY,
    evaluate_eligibility,
)
from microbridge.services.errors import (
    AuthorizationError,
    DuplicateReviewError,
    EditWindowExpiredError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    VisibilityViolationError,
)
from microbridge.services.repository import (
    JobStore,
    JobTransaction,
    RepositoryConflictError,
    RepositoryNotFoundError,
    ReviewRecord,
    ReviewStore,
)
from microbridge.services.visibility import VisibilityGate

logger = logging.getLogger(__name__)

INELIGIBLE_ERRORS: dict[str, type[Exception]] = {
    REASON_JOB_NOT_COMPLETED: InvalidStateError,
    REASON_NOT_A_PARTY: AuthorizationError,
    REASON_ALREADY_REVIEWED: DuplicateReviewError,
}


@dataclass(slots=True)
class ReviewDraft:
    job_id: str
    reviewer_id: str
    rating: int
    category_ratings: Mapping[str, Any] | None
    reviewee_id: str | None = None
    comment: str | None = None
    anonymous: bool = False


@dataclass(slots=True)
class ReviewChanges:
    rating: int
    category_ratings: Mapping[str, Any] | None
    comment: str | None = None
    anonymous: bool = False


class ReviewWriter:
    def __init__(
        self,
        jobs: JobStore,
        reviews: ReviewStore,
        gate: VisibilityGate,
        *,
        clock: Clock = utc_now,
        edit_window_hours: int = 24,
        comment_min_length: int = 10,
        comment_max_length: int = 1000,
    ) -> None:
        self.jobs = jobs
        self.reviews = reviews
        self.gate = gate
        self.clock = clock
        self.edit_window = timedelta(hours=edit_window_hours)
        self.comment_min_length = comment_min_length
        self.comment_max_length = comment_max_length

    async def create_review(self, draft: ReviewDraft) -> ReviewRecord:
        rating = validate_rating(draft.rating)
        comment = self._normalize_comment(draft.comment)

        try:
            async with self.jobs.transaction(draft.job_id) as tx:
                job = tx.job
                eligibility = evaluate_eligibility(job, await tx.list_reviews(), draft.reviewer_id)
                if not eligibility.eligible:
                    error_type = INELIGIBLE_ERRORS.get(eligibility.reason or "", InvalidStateError)
                    raise error_type(eligibility.reason)

                reviewee_id = job.counterpart_of(draft.reviewer_id)
                if reviewee_id is None:
                    raise InvalidStateError("job has no hired student")
                if draft.reviewee_id is not None and draft.reviewee_id != reviewee_id:
                    raise AuthorizationError("reviewee must be the other party to this job")

                role = job.role_of(draft.reviewer_id)
                if role is None:
                    raise AuthorizationError(REASON_NOT_A_PARTY)
                now = self.clock()
                review = ReviewRecord(
                    id=str(uuid4()),
                    job_id=job.id,
                    reviewer_id=draft.reviewer_id,
                    reviewee_id=reviewee_id,
                    rating=rating,
                    comment=comment,
                    category_ratings=build_category_ratings(role, draft.category_ratings),
                    anonymous=bool(draft.anonymous),
                    created_at=now,
                    updated_at=now,
                )
                try:
                    stored = await tx.insert_review(review)
                except RepositoryConflictError as exc:
                    raise DuplicateReviewError(REASON_ALREADY_REVIEWED) from exc

                revealed = await self.gate.apply(tx)
        except RepositoryNotFoundError as exc:
            raise NotFoundError("job not found") from exc

        self.gate.notify_revealed(revealed)
        logger.info(
            "review created review_id=%s job_id=%s reviewer_role=%s visible=%s",
            stored.id,
            stored.job_id,
            role.value,
            any(item.id == stored.id for item in revealed),
        )
        return next((item for item in revealed if item.id == stored.id), stored)

    async def update_review(self, review_id: str, changes: ReviewChanges, actor_id: str) -> ReviewRecord:
        rating = validate_rating(changes.rating)
        comment = self._normalize_comment(changes.comment)
        existing = await self._get_review(review_id)

        try:
            async with self.jobs.transaction(existing.job_id) as tx:
                current = await self._locked_review(tx, review_id)
                self._ensure_mutable(current, actor_id)

                role = tx.job.role_of(actor_id)
                if role is None:
                    raise AuthorizationError("not authorized to update this review")
                updated = replace(
                    current,
                    rating=rating,
                    comment=comment,
                    category_ratings=build_category_ratings(role, changes.category_ratings),
                    anonymous=bool(changes.anonymous),
                    updated_at=self.clock(),
                )
                stored = await tx.update_hidden_review(updated)
                if stored is None:
                    raise VisibilityViolationError("cannot update visible review")
        except RepositoryNotFoundError as exc:
            raise NotFoundError("review not found") from exc

        logger.info("review updated review_id=%s job_id=%s", stored.id, stored.job_id)
        return stored

    async def delete_review(self, review_id: str, actor_id: str) -> None:
        existing = await self._get_review(review_id)

        try:
            async with self.jobs.transaction(existing.job_id) as tx:
                current = await self._locked_review(tx, review_id)
                self._ensure_mutable(current, actor_id)
                if not await tx.delete_hidden_review(review_id):
                    raise VisibilityViolationError("cannot delete visible review")
        except RepositoryNotFoundError as exc:
            raise NotFoundError("review not found") from exc

        logger.info("review deleted review_id=%s job_id=%s", review_id, existing.job_id)

    async def _get_review(self, review_id: str) -> ReviewRecord:
        try:
            return await self.reviews.get_review(review_id)
        except RepositoryNotFoundError as exc:
            raise NotFoundError("review not found") from exc

    @staticmethod
    async def _locked_review(tx: JobTransaction, review_id: str) -> ReviewRecord:
        for review in await tx.list_reviews():
            if review.id == review_id:
                return review
        raise NotFoundError("review not found")

    def _ensure_mutable(self, review: ReviewRecord, actor_id: str) -> None:
        if review.reviewer_id != actor_id:
            raise AuthorizationError("only the author may change this review")
        if review.is_visible:
            raise VisibilityViolationError("review is already visible")
        if self.clock() - review.created_at > self.edit_window:
            raise EditWindowExpiredError("edit window has expired")

    def _normalize_comment(self, comment: str | None) -> str | None:
        if comment is None:
            return None
        if not isinstance(comment, str):
            raise ValidationError("comment must be text")
        stripped = comment.strip()
        if not stripped:
            return None
        if len(stripped) < self.comment_min_length or len(stripped) > self.comment_max_length:
            raise ValidationError(
                f"comment must be between {self.comment_min_length} and {self.comment_max_length} characters"
            )
        return stripped
