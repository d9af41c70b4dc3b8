from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from microbridge.services.repository import JobRecord, ReviewRecord
from microbridge.services.review_writer import ReviewDraft

EMPLOYER_ID = "11111111-1111-1111-1111-111111111111"
STUDENT_ID = "22222222-2222-2222-2222-222222222222"
OUTSIDER_ID = "33333333-3333-3333-3333-333333333333"
JOB_ID = "44444444-4444-4444-4444-444444444444"
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

EMPLOYER_CATEGORIES = {"quality_of_work": 5, "communication": 4, "timeliness": 5}
STUDENT_CATEGORIES = {"clear_requirements": 4, "professionalism": 5, "payment_reliability": 5}


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[ReviewRecord] = []

    def review_visible(self, review: ReviewRecord) -> None:
        self.events.append(replace(review))


def make_job(
    job_id: str = JOB_ID,
    *,
    status: str = "in_progress",
    employer_id: str = EMPLOYER_ID,
    hired_student_id: str | None = STUDENT_ID,
    completed_at: datetime | None = None,
    review_due_date: datetime | None = None,
) -> JobRecord:
    return JobRecord(
        id=job_id,
        title="Data cleaning for a research survey",
        employer_id=employer_id,
        hired_student_id=hired_student_id,
        status=status,
        created_at=T0 - timedelta(days=30),
        updated_at=T0 - timedelta(days=1),
        completed_at=completed_at,
        review_due_date=review_due_date,
    )


def employer_draft(job_id: str = JOB_ID, **overrides: Any) -> ReviewDraft:
    values: dict[str, Any] = {
        "job_id": job_id,
        "reviewer_id": EMPLOYER_ID,
        "rating": 5,
        "comment": "Delivered a clean dataset ahead of schedule.",
        "category_ratings": dict(EMPLOYER_CATEGORIES),
    }
    values.update(overrides)
    return ReviewDraft(**values)


def student_draft(job_id: str = JOB_ID, **overrides: Any) -> ReviewDraft:
    values: dict[str, Any] = {
        "job_id": job_id,
        "reviewer_id": STUDENT_ID,
        "rating": 4,
        "comment": "Clear brief and paid on time.",
        "category_ratings": dict(STUDENT_CATEGORIES),
    }
    values.update(overrides)
    return ReviewDraft(**values)
