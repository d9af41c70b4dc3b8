from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import asyncpg  # type: ignore[import-untyped]
import pytest

from microbridge.services.repository import (
    PostgresRepository,
    RepositoryDataError,
    RepositoryError,
    _review_row_to_record,
)
from support import EMPLOYER_ID, JOB_ID, STUDENT_ID, T0


class FakeConnection:
    def __init__(self, job_row: dict[str, Any]) -> None:
        self.job_row = job_row
        self.rolled_back = False

    @asynccontextmanager
    async def transaction(self):
        try:
            yield
        except BaseException:
            self.rolled_back = True
            raise

    async def fetchrow(self, query: str, *args: Any) -> dict[str, Any]:
        return self.job_row


class FakePool:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn

    async def close(self) -> None:
        return None


def _job_row() -> dict[str, Any]:
    return {
        "id": JOB_ID,
        "title": "Survey data cleanup",
        "employer_id": EMPLOYER_ID,
        "hired_student_id": STUDENT_ID,
        "status": "review_pending",
        "completed_at": T0,
        "review_due_date": T0,
        "created_at": T0,
        "updated_at": T0,
    }


def _review_row(category_ratings: Any) -> dict[str, Any]:
    return {
        "id": "13131313-1313-1313-1313-131313131313",
        "job_id": JOB_ID,
        "reviewer_id": EMPLOYER_ID,
        "reviewee_id": STUDENT_ID,
        "rating": 4,
        "comment": None,
        "category_ratings": category_ratings,
        "anonymous": False,
        "is_visible": False,
        "visible_at": None,
        "created_at": T0,
        "updated_at": T0,
    }


def test_postgres_errors_inside_job_transaction_become_repository_errors() -> None:
    conn = FakeConnection(_job_row())
    repository = PostgresRepository("postgresql://unused", min_pool_size=1, max_pool_size=1)
    repository._pool = FakePool(conn)

    async def scenario() -> None:
        async with repository.transaction(JOB_ID) as tx:
            assert tx.job.status == "review_pending"
            raise asyncpg.PostgresError("could not serialize access")

    with pytest.raises(RepositoryError):
        asyncio.run(scenario())
    assert conn.rolled_back


def test_review_row_decodes_json_category_ratings() -> None:
    review = _review_row_to_record(
        _review_row('{"kind": "employer_rated_student", "quality_of_work": 4, "communication": 5, "timeliness": 3}')
    )

    assert review.category_ratings.quality_of_work == 4


@pytest.mark.parametrize(
    "category_ratings",
    [
        '{"kind": "peer_review"}',
        '{"kind": "employer_rated_student", "quality_of_work": 4}',
        "not json",
        "[1, 2, 3]",
    ],
)
def test_malformed_review_row_is_a_data_error(category_ratings: str) -> None:
    with pytest.raises(RepositoryDataError):
        _review_row_to_record(_review_row(category_ratings))
