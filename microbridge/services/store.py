from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any

from microbridge.services.repository import (
    UNSET,
    JobRecord,
    RepositoryConflictError,
    RepositoryNotFoundError,
    ReviewRecord,
)


class InMemoryJobTransaction:
    def __init__(self, store: InMemoryRepository, job: JobRecord) -> None:
        self._store = store
        self.job = replace(job)

    async def list_reviews(self) -> list[ReviewRecord]:
        rows = [row for row in self._store.reviews.values() if row.job_id == self.job.id]
        rows.sort(key=lambda row: row.created_at)
        return [replace(row) for row in rows]

    async def insert_review(self, review: ReviewRecord) -> ReviewRecord:
        key = (review.job_id, review.reviewer_id)
        if key in self._store.review_keys:
            raise RepositoryConflictError("review already exists for reviewer on this job")
        stored = replace(review, is_visible=False, visible_at=None)
        self._store.reviews[stored.id] = stored
        self._store.review_keys[key] = stored.id
        return replace(stored)

    async def update_hidden_review(self, review: ReviewRecord) -> ReviewRecord | None:
        existing = self._store.reviews.get(review.id)
        if existing is None or existing.job_id != self.job.id or existing.is_visible:
            return None
        existing.rating = review.rating
        existing.comment = review.comment
        existing.category_ratings = review.category_ratings
        existing.anonymous = review.anonymous
        existing.updated_at = review.updated_at
        return replace(existing)

    async def delete_hidden_review(self, review_id: str) -> bool:
        existing = self._store.reviews.get(review_id)
        if existing is None or existing.job_id != self.job.id or existing.is_visible:
            return False
        del self._store.reviews[review_id]
        self._store.review_keys.pop((existing.job_id, existing.reviewer_id), None)
        return True

    async def reveal_reviews(self, review_ids: Sequence[str], visible_at: datetime) -> list[ReviewRecord]:
        revealed: list[ReviewRecord] = []
        for review_id in review_ids:
            existing = self._store.reviews.get(review_id)
            if existing is None or existing.job_id != self.job.id or existing.is_visible:
                continue
            existing.is_visible = True
            existing.visible_at = visible_at
            revealed.append(replace(existing))
        return revealed

    async def stamp_all_reviews(self, visible_at: datetime) -> list[ReviewRecord]:
        rows = [row for row in self._store.reviews.values() if row.job_id == self.job.id]
        if all(row.is_visible for row in rows):
            return []
        for row in rows:
            row.is_visible = True
            row.visible_at = visible_at
        rows.sort(key=lambda row: row.created_at)
        return [replace(row) for row in rows]

    async def update_job(
        self,
        *,
        status: str,
        updated_at: datetime,
        completed_at: datetime | None = UNSET,
        review_due_date: datetime | None = UNSET,
    ) -> JobRecord:
        stored = self._store.jobs[self.job.id]
        stored.status = status
        stored.updated_at = updated_at
        if completed_at is not UNSET:
            stored.completed_at = completed_at
        if review_due_date is not UNSET:
            stored.review_due_date = review_due_date
        self.job = replace(stored)
        return replace(stored)


class InMemoryRepository:
    """Process-local repository for development and tests.

    Each job transaction holds that job's lock and restores the job and its
    reviews if the block raises, so callers see the same all-or-nothing
    behaviour as the Postgres repository.
    """

    def __init__(self, jobs: Sequence[JobRecord] = ()) -> None:
        self.jobs: dict[str, JobRecord] = {}
        self.reviews: dict[str, ReviewRecord] = {}
        self.review_keys: dict[tuple[str, str], str] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        for job in jobs:
            self.add_job(job)

    def add_job(self, job: JobRecord) -> JobRecord:
        self.jobs[job.id] = replace(job)
        return replace(job)

    async def close(self) -> None:
        return None

    @asynccontextmanager
    async def transaction(self, job_id: str) -> AsyncIterator[InMemoryJobTransaction]:
        if job_id not in self.jobs:
            raise RepositoryNotFoundError("job not found")

        lock = self._locks.setdefault(job_id, asyncio.Lock())
        async with lock:
            snapshot = self._snapshot(job_id)
            try:
                yield InMemoryJobTransaction(self, self.jobs[job_id])
            except BaseException:
                self._restore(job_id, snapshot)
                raise

    async def get_job(self, job_id: str) -> JobRecord:
        job = self.jobs.get(job_id)
        if job is None:
            raise RepositoryNotFoundError("job not found")
        return replace(job)

    async def get_review(self, review_id: str) -> ReviewRecord:
        review = self.reviews.get(review_id)
        if review is None:
            raise RepositoryNotFoundError("review not found")
        return replace(review)

    async def list_job_reviews(self, job_id: str) -> list[ReviewRecord]:
        rows = sorted(
            (row for row in self.reviews.values() if row.job_id == job_id),
            key=lambda row: row.created_at,
        )
        return [replace(row) for row in rows]

    async def list_visible_reviews_for_reviewee(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[ReviewRecord], int]:
        rows = [row for row in self.reviews.values() if row.reviewee_id == user_id and row.is_visible]
        rows.sort(key=lambda row: row.id)
        rows.sort(key=lambda row: row.created_at, reverse=True)
        start = max(0, offset)
        page = rows[start:] if limit is None else rows[start : start + limit]
        return [replace(row) for row in page], len(rows)

    async def list_jobs_awaiting_review(self, user_id: str) -> list[JobRecord]:
        rows = [
            job
            for job in self.jobs.values()
            if job.status == "review_pending"
            and job.is_party(user_id)
            and (job.id, user_id) not in self.review_keys
        ]
        rows.sort(key=lambda job: (job.review_due_date is None, job.review_due_date or job.created_at, job.id))
        return [replace(job) for job in rows]

    async def list_jobs_due_for_reveal(self, *, now: datetime, limit: int) -> list[str]:
        bounded_limit = max(1, min(limit, 1000))
        hidden_job_ids = {row.job_id for row in self.reviews.values() if not row.is_visible}
        due = [
            job
            for job in self.jobs.values()
            if job.review_due_date is not None
            and job.review_due_date < now
            and (job.status == "review_pending" or job.id in hidden_job_ids)
        ]
        due.sort(key=lambda job: (job.review_due_date, job.id))
        return [job.id for job in due[:bounded_limit]]

    def _snapshot(self, job_id: str) -> dict[str, Any]:
        return {
            "job": replace(self.jobs[job_id]),
            "reviews": {
                review_id: replace(row) for review_id, row in self.reviews.items() if row.job_id == job_id
            },
        }

    def _restore(self, job_id: str, snapshot: dict[str, Any]) -> None:
        self.jobs[job_id] = snapshot["job"]
        for review_id in [review_id for review_id, row in self.reviews.items() if row.job_id == job_id]:
            row = self.reviews.pop(review_id)
            self.review_keys.pop((row.job_id, row.reviewer_id), None)
        for review_id, row in snapshot["reviews"].items():
            self.reviews[review_id] = row
            self.review_keys[(row.job_id, row.reviewer_id)] = review_id
