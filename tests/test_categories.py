from __future__ import annotations

import pytest

from microbridge.services.categories import (
    EmployerRatedStudent,
    ReviewerRole,
    StudentRatedEmployer,
    build_category_ratings,
    category_ratings_from_json,
    category_ratings_to_json,
    overall_rating,
)
from microbridge.services.errors import ValidationError


def test_student_rates_employer_categories() -> None:
    ratings = build_category_ratings(
        ReviewerRole.STUDENT,
        {"clear_requirements": 3, "professionalism": 4, "payment_reliability": 5},
    )

    assert ratings == StudentRatedEmployer(clear_requirements=3, professionalism=4, payment_reliability=5)


def test_missing_and_unexpected_keys_are_reported() -> None:
    with pytest.raises(ValidationError) as exc_info:
        build_category_ratings(
            ReviewerRole.EMPLOYER,
            {"quality_of_work": 4, "communication": 4, "professionalism": 5},
        )

    message = str(exc_info.value)
    assert "missing: timeliness" in message
    assert "unexpected: professionalism" in message


def test_empty_category_ratings_are_rejected() -> None:
    with pytest.raises(ValidationError):
        build_category_ratings(ReviewerRole.EMPLOYER, None)


@pytest.mark.parametrize("value", [0, 6, False, "4", None])
def test_sub_rating_must_be_in_range(value: object) -> None:
    with pytest.raises(ValidationError):
        build_category_ratings(
            ReviewerRole.EMPLOYER,
            {"quality_of_work": value, "communication": 4, "timeliness": 4},
        )


def test_json_form_carries_kind() -> None:
    ratings = EmployerRatedStudent(quality_of_work=5, communication=3, timeliness=4)

    payload = category_ratings_to_json(ratings)

    assert payload == {"kind": "employer_rated_student", "quality_of_work": 5, "communication": 3, "timeliness": 4}
    assert category_ratings_from_json(payload) == ratings


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(ValueError):
        category_ratings_from_json({"kind": "peer_review", "quality_of_work": 5})


def test_overall_rating_is_mean_of_sub_ratings() -> None:
    ratings = StudentRatedEmployer(clear_requirements=4, professionalism=5, payment_reliability=3)

    assert overall_rating(2, ratings) == 4.0
    assert overall_rating(2, None) == 2.0
