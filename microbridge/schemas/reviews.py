from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, StrictInt

from microbridge.services.categories import category_ratings_to_json, overall_rating
from microbridge.services.repository import ReviewRecord


class ReviewCreateRequest(BaseModel):
    job_id: str
    reviewee_id: str | None = None
    rating: StrictInt
    comment: str | None = None
    category_ratings: dict[str, Any] = Field(default_factory=dict)
    anonymous: bool = False


class ReviewUpdateRequest(BaseModel):
    rating: StrictInt
    comment: str | None = None
    category_ratings: dict[str, Any] = Field(default_factory=dict)
    anonymous: bool = False


class StudentRatedEmployerOut(BaseModel):
    kind: Literal["student_rated_employer"]
    clear_requirements: int
    professionalism: int
    payment_reliability: int


class EmployerRatedStudentOut(BaseModel):
    kind: Literal["employer_rated_student"]
    quality_of_work: int
    communication: int
    timeliness: int


CategoryRatingsOut = Annotated[
    Union[StudentRatedEmployerOut, EmployerRatedStudentOut],
    Field(discriminator="kind"),
]


class ReviewOut(BaseModel):
    id: str
    job_id: str
    reviewer_id: str | None = None
    reviewee_id: str
    rating: int
    overall_rating: float
    comment: str | None = None
    category_ratings: CategoryRatingsOut
    anonymous: bool
    is_visible: bool
    visible_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, review: ReviewRecord, *, viewer_id: str | None = None) -> "ReviewOut":
        """Serialize a review for ``viewer_id``.

        The reviewer's identity of an anonymous review is only shown back to
        its author.
        """
        show_reviewer = not review.anonymous or (viewer_id is not None and viewer_id == review.reviewer_id)
        return cls(
            id=review.id,
            job_id=review.job_id,
            reviewer_id=review.reviewer_id if show_reviewer else None,
            reviewee_id=review.reviewee_id,
            rating=review.rating,
            overall_rating=round(overall_rating(review.rating, review.category_ratings), 2),
            comment=review.comment,
            category_ratings=category_ratings_to_json(review.category_ratings),
            anonymous=review.anonymous,
            is_visible=review.is_visible,
            visible_at=review.visible_at,
            created_at=review.created_at,
            updated_at=review.updated_at,
        )


class UserReviewsOut(BaseModel):
    user_id: str
    reviews: list[ReviewOut] = Field(default_factory=list)
    total: int
    average_rating: float
    total_reviews: int


class ReviewStatsOut(BaseModel):
    user_id: str
    average_rating: float
    total_reviews: int
    rating_breakdown: dict[int, int]
    badges: list[str] = Field(default_factory=list)


class SweepOut(BaseModel):
    jobs_scanned: int
    reviews_revealed: int
    jobs_completed: int
    jobs_failed: int
