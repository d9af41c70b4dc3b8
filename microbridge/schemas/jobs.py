from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from microbridge.services.repository import JobRecord

JobStatus = Literal[
    "draft",
    "posted",
    "hired",
    "in_progress",
    "submitted",
    "review_pending",
    "completed",
    "archived",
    "disputed",
]


class JobOut(BaseModel):
    id: str
    title: str = ""
    employer_id: str
    hired_student_id: str | None = None
    status: JobStatus
    completed_at: datetime | None = None
    review_due_date: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, job: JobRecord) -> "JobOut":
        return cls(
            id=job.id,
            title=job.title,
            employer_id=job.employer_id,
            hired_student_id=job.hired_student_id,
            status=job.status,
            completed_at=job.completed_at,
            review_due_date=job.review_due_date,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class JobCompletionOut(BaseModel):
    job: JobOut
    requires_review: bool
    message: str


class EligibilityOut(BaseModel):
    job_id: str
    user_id: str
    eligible: bool
    reason: str | None = None
