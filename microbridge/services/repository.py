from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from microbridge.core.config import get_settings
from microbridge.services.categories import (
    CategoryRatings,
    ReviewerRole,
    category_ratings_from_json,
    category_ratings_to_json,
)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates a uniqueness constraint."""


class RepositoryDataError(RepositoryError):
    """Raised when a stored row cannot be decoded."""


JOB_STATUSES = {
    "draft",
    "posted",
    "hired",
    "in_progress",
    "submitted",
    "review_pending",
    "completed",
    "archived",
    "disputed",
}
REVIEWABLE_JOB_STATUSES = {"review_pending", "completed"}

UNSET: Any = object()


@dataclass(slots=True)
class JobRecord:
    id: str
    employer_id: str
    hired_student_id: str | None
    status: str
    created_at: datetime
    updated_at: datetime
    title: str = ""
    completed_at: datetime | None = None
    review_due_date: datetime | None = None

    def is_party(self, user_id: str) -> bool:
        return user_id in {self.employer_id, self.hired_student_id}

    def role_of(self, user_id: str) -> ReviewerRole | None:
        if user_id == self.employer_id:
            return ReviewerRole.EMPLOYER
        if self.hired_student_id is not None and user_id == self.hired_student_id:
            return ReviewerRole.STUDENT
        return None

    def counterpart_of(self, user_id: str) -> str | None:
        if user_id == self.employer_id:
            return self.hired_student_id
        if user_id == self.hired_student_id:
            return self.employer_id
        return None


@dataclass(slots=True)
class ReviewRecord:
    id: str
    job_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int
    category_ratings: CategoryRatings
    created_at: datetime
    updated_at: datetime
    comment: str | None = None
    anonymous: bool = False
    is_visible: bool = False
    visible_at: datetime | None = None


class JobTransaction(Protocol):
    """Exclusive, all-or-nothing access to one job and its reviews."""

    job: JobRecord

    async def list_reviews(self) -> list[ReviewRecord]: ...

    async def insert_review(self, review: ReviewRecord) -> ReviewRecord: ...

    async def update_hidden_review(self, review: ReviewRecord) -> ReviewRecord | None: ...

    async def delete_hidden_review(self, review_id: str) -> bool: ...

    async def reveal_reviews(self, review_ids: Sequence[str], visible_at: datetime) -> list[ReviewRecord]: ...

    async def stamp_all_reviews(self, visible_at: datetime) -> list[ReviewRecord]: ...

    async def update_job(
        self,
        *,
        status: str,
        updated_at: datetime,
        completed_at: datetime | None = UNSET,
        review_due_date: datetime | None = UNSET,
    ) -> JobRecord: ...


class JobStore(Protocol):
    def transaction(self, job_id: str) -> AbstractAsyncContextManager[JobTransaction]: ...

    async def get_job(self, job_id: str) -> JobRecord: ...

    async def list_jobs_awaiting_review(self, user_id: str) -> list[JobRecord]: ...

    async def list_jobs_due_for_reveal(self, *, now: datetime, limit: int) -> list[str]: ...


class ReviewStore(Protocol):
    async def get_review(self, review_id: str) -> ReviewRecord: ...

    async def list_job_reviews(self, job_id: str) -> list[ReviewRecord]: ...

    async def list_visible_reviews_for_reviewee(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[ReviewRecord], int]: ...


class ReviewRepository(JobStore, ReviewStore, Protocol):
    async def close(self) -> None: ...


JOB_COLUMNS = """
  id::text as id,
  title,
  employer_id::text as employer_id,
  hired_student_id::text as hired_student_id,
  status::text as status,
  completed_at,
  review_due_date,
  created_at,
  updated_at
"""

REVIEW_COLUMNS = """
  id::text as id,
  job_id::text as job_id,
  reviewer_id::text as reviewer_id,
  reviewee_id::text as reviewee_id,
  rating,
  comment,
  category_ratings,
  anonymous,
  is_visible,
  visible_at,
  created_at,
  updated_at
"""


class PostgresJobTransaction:
    def __init__(self, conn: asyncpg.Connection, job: JobRecord) -> None:
        self.conn = conn
        self.job = job

    async def list_reviews(self) -> list[ReviewRecord]:
        rows = await self.conn.fetch(
            f"""
            select {REVIEW_COLUMNS}
            from reviews
            where job_id = $1::uuid
            order by created_at asc
            """,
            self.job.id,
        )
        return [_review_row_to_record(row) for row in rows]

    async def insert_review(self, review: ReviewRecord) -> ReviewRecord:
        row = await self.conn.fetchrow(
            f"""
            insert into reviews (
              id,
              job_id,
              reviewer_id,
              reviewee_id,
              rating,
              comment,
              category_ratings,
              anonymous,
              is_visible,
              created_at,
              updated_at
            )
            values ($1::uuid, $2::uuid, $3::uuid, $4::uuid, $5, $6, $7::jsonb, $8, false, $9, $10)
            on conflict (job_id, reviewer_id) do nothing
            returning {REVIEW_COLUMNS}
            """,
            review.id,
            review.job_id,
            review.reviewer_id,
            review.reviewee_id,
            review.rating,
            review.comment,
            json.dumps(category_ratings_to_json(review.category_ratings)),
            review.anonymous,
            review.created_at,
            review.updated_at,
        )
        if not row:
            raise RepositoryConflictError("review already exists for reviewer on this job")
        return _review_row_to_record(row)

    async def update_hidden_review(self, review: ReviewRecord) -> ReviewRecord | None:
        row = await self.conn.fetchrow(
            f"""
            update reviews
            set
              rating = $3,
              comment = $4,
              category_ratings = $5::jsonb,
              anonymous = $6,
              updated_at = $7
            where id = $1::uuid and job_id = $2::uuid and is_visible = false
            returning {REVIEW_COLUMNS}
            """,
            review.id,
            self.job.id,
            review.rating,
            review.comment,
            json.dumps(category_ratings_to_json(review.category_ratings)),
            review.anonymous,
            review.updated_at,
        )
        return _review_row_to_record(row) if row else None

    async def delete_hidden_review(self, review_id: str) -> bool:
        deleted = await self.conn.fetchval(
            """
            delete from reviews
            where id = $1::uuid and job_id = $2::uuid and is_visible = false
            returning 1
            """,
            review_id,
            self.job.id,
        )
        return bool(deleted)

    async def reveal_reviews(self, review_ids: Sequence[str], visible_at: datetime) -> list[ReviewRecord]:
        if not review_ids:
            return []
        rows = await self.conn.fetch(
            f"""
            update reviews
            set is_visible = true, visible_at = $3
            where job_id = $1::uuid
              and id = any($2::uuid[])
              and is_visible = false
            returning {REVIEW_COLUMNS}
            """,
            self.job.id,
            list(review_ids),
            visible_at,
        )
        return [_review_row_to_record(row) for row in rows]

    async def stamp_all_reviews(self, visible_at: datetime) -> list[ReviewRecord]:
        rows = await self.conn.fetch(
            f"""
            update reviews
            set is_visible = true, visible_at = $2
            where job_id = $1::uuid
              and exists (
                select 1
                from reviews hidden
                where hidden.job_id = $1::uuid and hidden.is_visible = false
              )
            returning {REVIEW_COLUMNS}
            """,
            self.job.id,
            visible_at,
        )
        return [_review_row_to_record(row) for row in rows]

    async def update_job(
        self,
        *,
        status: str,
        updated_at: datetime,
        completed_at: datetime | None = UNSET,
        review_due_date: datetime | None = UNSET,
    ) -> JobRecord:
        next_completed_at = self.job.completed_at if completed_at is UNSET else completed_at
        next_review_due_date = self.job.review_due_date if review_due_date is UNSET else review_due_date
        row = await self.conn.fetchrow(
            f"""
            update jobs
            set
              status = $2::job_status,
              completed_at = $3,
              review_due_date = $4,
              updated_at = $5
            where id = $1::uuid
            returning {JOB_COLUMNS}
            """,
            self.job.id,
            status,
            next_completed_at,
            next_review_due_date,
            updated_at,
        )
        if not row:
            raise RepositoryNotFoundError("job not found")
        self.job = _job_row_to_record(row)
        return self.job


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def transaction(self, job_id: str) -> AsyncIterator[PostgresJobTransaction]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                try:
                    row = await conn.fetchrow(
                        f"""
                        select {JOB_COLUMNS}
                        from jobs
                        where id = $1::uuid
                        for update
                        """,
                        job_id,
                    )
                except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
                    raise RepositoryNotFoundError("job not found") from exc
                if not row:
                    raise RepositoryNotFoundError("job not found")
                try:
                    yield PostgresJobTransaction(conn, _job_row_to_record(row))
                except asyncpg.PostgresError as exc:
                    raise RepositoryError(f"job transaction failed: {exc}") from exc

    async def get_job(self, job_id: str) -> JobRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(f"select {JOB_COLUMNS} from jobs where id = $1::uuid", job_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("job not found") from exc
        if not row:
            raise RepositoryNotFoundError("job not found")
        return _job_row_to_record(row)

    async def get_review(self, review_id: str) -> ReviewRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(f"select {REVIEW_COLUMNS} from reviews where id = $1::uuid", review_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("review not found") from exc
        if not row:
            raise RepositoryNotFoundError("review not found")
        return _review_row_to_record(row)

    async def list_job_reviews(self, job_id: str) -> list[ReviewRecord]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {REVIEW_COLUMNS}
                from reviews
                where job_id = $1::uuid
                order by created_at asc
                """,
                job_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("job not found") from exc
        return [_review_row_to_record(row) for row in rows]

    async def list_visible_reviews_for_reviewee(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[ReviewRecord], int]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                total = await conn.fetchval(
                    """
                    select count(*)
                    from reviews
                    where reviewee_id = $1::uuid and is_visible = true
                    """,
                    user_id,
                )
                rows = await conn.fetch(
                    f"""
                    select {REVIEW_COLUMNS}
                    from reviews
                    where reviewee_id = $1::uuid and is_visible = true
                    order by created_at desc, id asc
                    limit $2
                    offset $3
                    """,
                    user_id,
                    limit,
                    max(0, offset),
                )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return [], 0
        return [_review_row_to_record(row) for row in rows], int(total or 0)

    async def list_jobs_awaiting_review(self, user_id: str) -> list[JobRecord]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {JOB_COLUMNS}
                from jobs j
                where j.status = 'review_pending'
                  and (j.employer_id = $1::uuid or j.hired_student_id = $1::uuid)
                  and not exists (
                    select 1
                    from reviews r
                    where r.job_id = j.id and r.reviewer_id = $1::uuid
                  )
                order by j.review_due_date asc nulls last, j.id asc
                """,
                user_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return []
        return [_job_row_to_record(row) for row in rows]

    async def list_jobs_due_for_reveal(self, *, now: datetime, limit: int) -> list[str]:
        pool = await self._get_pool()
        bounded_limit = max(1, min(limit, 1000))
        rows = await pool.fetch(
            """
            select j.id::text as id
            from jobs j
            where j.review_due_date is not null
              and j.review_due_date < $1
              and (
                j.status = 'review_pending'
                or exists (
                  select 1
                  from reviews r
                  where r.job_id = j.id and r.is_visible = false
                )
              )
            order by j.review_due_date asc, j.id asc
            limit $2
            """,
            now,
            bounded_limit,
        )
        return [row["id"] for row in rows]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("MB_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc


def _job_row_to_record(row: asyncpg.Record) -> JobRecord:
    return JobRecord(
        id=row["id"],
        title=row["title"] or "",
        employer_id=row["employer_id"],
        hired_student_id=row["hired_student_id"],
        status=row["status"],
        completed_at=row["completed_at"],
        review_due_date=row["review_due_date"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _review_row_to_record(row: asyncpg.Record) -> ReviewRecord:
    category_ratings = row["category_ratings"]
    try:
        if isinstance(category_ratings, str):
            category_ratings = json.loads(category_ratings)
        ratings = category_ratings_from_json(category_ratings)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise RepositoryDataError(f"review {row['id']} has malformed category_ratings") from exc
    return ReviewRecord(
        id=row["id"],
        job_id=row["job_id"],
        reviewer_id=row["reviewer_id"],
        reviewee_id=row["reviewee_id"],
        rating=int(row["rating"]),
        comment=row["comment"],
        category_ratings=ratings,
        anonymous=bool(row["anonymous"]),
        is_visible=bool(row["is_visible"]),
        visible_at=row["visible_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
