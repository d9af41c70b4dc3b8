from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, ClassVar, Union

from microbridge.services.errors import ValidationError

MIN_RATING = 1
MAX_RATING = 5


class ReviewerRole(str, Enum):
    EMPLOYER = "employer"
    STUDENT = "student"


@dataclass(frozen=True, slots=True)
class StudentRatedEmployer:
    """Sub-ratings a student gives the employer they worked for."""

    KIND: ClassVar[str] = "student_rated_employer"

    clear_requirements: int
    professionalism: int
    payment_reliability: int


@dataclass(frozen=True, slots=True)
class EmployerRatedStudent:
    """Sub-ratings an employer gives the student they hired."""

    KIND: ClassVar[str] = "employer_rated_student"

    quality_of_work: int
    communication: int
    timeliness: int


CategoryRatings = Union[StudentRatedEmployer, EmployerRatedStudent]

VARIANT_BY_ROLE: dict[ReviewerRole, type[StudentRatedEmployer] | type[EmployerRatedStudent]] = {
    ReviewerRole.STUDENT: StudentRatedEmployer,
    ReviewerRole.EMPLOYER: EmployerRatedStudent,
}
VARIANT_BY_KIND = {variant.KIND: variant for variant in VARIANT_BY_ROLE.values()}


def validate_rating(value: Any, *, field_name: str = "rating") -> int:
    # bool is an int subclass; True must not pass as a one-star rating
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer between {MIN_RATING} and {MAX_RATING}")
    if value < MIN_RATING or value > MAX_RATING:
        raise ValidationError(f"{field_name} must be between {MIN_RATING} and {MAX_RATING}")
    return value


def build_category_ratings(role: ReviewerRole, raw: Mapping[str, Any] | None) -> CategoryRatings:
    """Build the variant for ``role`` from a plain key/value mapping.

    The variant is picked by the reviewer's role on the job. The supplied keys
    must match that variant exactly; keys belonging to the other role are
    rejected rather than silently dropped.
    """
    variant = VARIANT_BY_ROLE[role]
    expected = [field.name for field in fields(variant)]
    supplied = dict(raw or {})

    missing = [name for name in expected if name not in supplied]
    unexpected = sorted(set(supplied) - set(expected))
    if missing or unexpected:
        details = []
        if missing:
            details.append(f"missing: {', '.join(missing)}")
        if unexpected:
            details.append(f"unexpected: {', '.join(unexpected)}")
        raise ValidationError(f"category_ratings for a {role.value} reviewer are invalid ({'; '.join(details)})")

    values = {name: validate_rating(supplied[name], field_name=f"category_ratings.{name}") for name in expected}
    return variant(**values)


def category_ratings_to_json(ratings: CategoryRatings) -> dict[str, Any]:
    return {"kind": ratings.KIND, **asdict(ratings)}


def category_ratings_from_json(payload: Mapping[str, Any]) -> CategoryRatings:
    kind = payload.get("kind")
    variant = VARIANT_BY_KIND.get(kind) if isinstance(kind, str) else None
    if variant is None:
        raise ValueError(f"unknown category ratings kind: {kind!r}")
    return variant(**{field.name: int(payload[field.name]) for field in fields(variant)})


def category_values(ratings: CategoryRatings) -> dict[str, int]:
    return asdict(ratings)


def overall_rating(rating: int, ratings: CategoryRatings | None) -> float:
    if ratings is None:
        return float(rating)
    values = list(category_values(ratings).values())
    if not values:
        return float(rating)
    return sum(values) / len(values)
