from __future__ import annotations

import hashlib
from datetime import timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient

import microbridge.core.security as security
from microbridge.core.config import get_settings
from microbridge.main import app
from microbridge.services.review_service import ReviewService, get_review_service
from microbridge.services.store import InMemoryRepository
from support import (
    EMPLOYER_CATEGORIES,
    EMPLOYER_ID,
    JOB_ID,
    OUTSIDER_ID,
    STUDENT_CATEGORIES,
    STUDENT_ID,
    FakeClock,
    make_job,
)

SWEEPER_HEADERS = {
    "X-Module-Id": "review-sweeper",
    "X-API-Key": "sweeper-key",
}

USERS: dict[str, dict[str, Any]] = {
    "employer-token": {"id": EMPLOYER_ID, "app_metadata": {"role": "employer"}},
    "student-token": {"id": STUDENT_ID, "app_metadata": {}, "user_metadata": {"user_type": "student"}},
    "outsider-token": {"id": OUTSIDER_ID, "app_metadata": {"role": "student"}},
    "viewer-token": {"id": "abababab-abab-abab-abab-abababababab", "app_metadata": {}},
}


class ApiHarness:
    def __init__(self, client: TestClient, repository: InMemoryRepository, clock: FakeClock) -> None:
        self.client = client
        self.repository = repository
        self.clock = clock

    def complete_job(self) -> None:
        response = self.client.post(f"/jobs/{JOB_ID}/complete", headers=_auth("employer-token"))
        assert response.status_code == 200

    def post_employer_review(self, **overrides: Any):
        payload = {
            "job_id": JOB_ID,
            "rating": 5,
            "comment": "Delivered a clean dataset ahead of schedule.",
            "category_ratings": EMPLOYER_CATEGORIES,
        }
        payload.update(overrides)
        return self.client.post("/reviews", json=payload, headers=_auth("employer-token"))

    def post_student_review(self, **overrides: Any):
        payload = {
            "job_id": JOB_ID,
            "reviewee_id": EMPLOYER_ID,
            "rating": 4,
            "comment": "Clear brief and paid on time.",
            "category_ratings": STUDENT_CATEGORIES,
        }
        payload.update(overrides)
        return self.client.post("/reviews", json=payload, headers=_auth("student-token"))


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api(monkeypatch: pytest.MonkeyPatch) -> ApiHarness:
    monkeypatch.setenv("MB_SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("MB_SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("MB_SWEEP_API_KEY_SHA256", hashlib.sha256(b"sweeper-key").hexdigest())
    get_settings.cache_clear()

    async def _fake_fetch(*, token: str, **_: Any) -> dict[str, Any]:
        return USERS[token]

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)

    clock = FakeClock()
    repository = InMemoryRepository([make_job()])
    service = ReviewService(repository, clock=clock)
    app.dependency_overrides[get_review_service] = lambda: service

    with TestClient(app) as client:
        yield ApiHarness(client, repository, clock)

    app.dependency_overrides.clear()
    get_settings.cache_clear()


def test_complete_job_starts_review_period(api: ApiHarness) -> None:
    response = api.client.post(f"/jobs/{JOB_ID}/complete", headers=_auth("student-token"))

    assert response.status_code == 200
    body = response.json()
    assert body["requires_review"] is True
    assert body["job"]["status"] == "review_pending"
    assert body["job"]["review_due_date"] is not None


def test_requests_without_bearer_token_are_rejected(api: ApiHarness) -> None:
    response = api.client.post(f"/jobs/{JOB_ID}/complete")

    assert response.status_code == 401


def test_plain_user_cannot_write(api: ApiHarness) -> None:
    response = api.client.post(f"/jobs/{JOB_ID}/complete", headers=_auth("viewer-token"))

    assert response.status_code == 403


def test_outsider_cannot_complete_job(api: ApiHarness) -> None:
    response = api.client.post(f"/jobs/{JOB_ID}/complete", headers=_auth("outsider-token"))

    assert response.status_code == 403


def test_complete_twice_conflicts(api: ApiHarness) -> None:
    api.complete_job()

    response = api.client.post(f"/jobs/{JOB_ID}/complete", headers=_auth("employer-token"))

    assert response.status_code == 409


def test_double_blind_review_flow(api: ApiHarness) -> None:
    api.complete_job()

    first = api.post_employer_review()
    assert first.status_code == 201
    assert first.json()["is_visible"] is False
    assert first.json()["category_ratings"]["kind"] == "employer_rated_student"

    hidden_from_student = api.client.get(f"/jobs/{JOB_ID}/reviews", headers=_auth("student-token"))
    assert hidden_from_student.status_code == 200
    assert hidden_from_student.json() == []

    own = api.client.get(f"/jobs/{JOB_ID}/reviews", headers=_auth("employer-token"))
    assert [review["id"] for review in own.json()] == [first.json()["id"]]

    public_before = api.client.get(f"/users/{STUDENT_ID}/reviews")
    assert public_before.json()["total"] == 0

    second = api.post_student_review()
    assert second.status_code == 201
    assert second.json()["is_visible"] is True

    both = api.client.get(f"/jobs/{JOB_ID}/reviews", headers=_auth("viewer-token"))
    assert len(both.json()) == 2
    assert all(review["is_visible"] for review in both.json())

    public_after = api.client.get(f"/users/{STUDENT_ID}/reviews")
    assert public_after.status_code == 200
    body = public_after.json()
    assert body["total"] == 1
    assert body["average_rating"] == 5.0
    assert body["reviews"][0]["reviewer_id"] == EMPLOYER_ID
    assert body["reviews"][0]["overall_rating"] == 4.67


def test_duplicate_review_conflicts(api: ApiHarness) -> None:
    api.complete_job()
    api.post_employer_review()

    response = api.post_employer_review(rating=3)

    assert response.status_code == 409


def test_invalid_ratings_are_unprocessable(api: ApiHarness) -> None:
    api.complete_job()

    assert api.post_employer_review(rating=7).status_code == 422
    assert api.post_employer_review(category_ratings=STUDENT_CATEGORIES).status_code == 422
    assert api.post_employer_review(comment="short").status_code == 422
    assert api.repository.reviews == {}


def test_review_before_completion_conflicts(api: ApiHarness) -> None:
    assert api.post_employer_review().status_code == 409


def test_review_for_unknown_job_is_not_found(api: ApiHarness) -> None:
    response = api.post_employer_review(job_id="cdcdcdcd-cdcd-cdcd-cdcd-cdcdcdcdcdcd")

    assert response.status_code == 404


def test_anonymous_reviewer_hidden_from_public(api: ApiHarness) -> None:
    api.complete_job()
    api.post_employer_review(anonymous=True)
    api.post_student_review()

    public = api.client.get(f"/users/{STUDENT_ID}/reviews").json()
    assert public["reviews"][0]["reviewer_id"] is None
    assert public["reviews"][0]["anonymous"] is True

    own = api.client.get(f"/jobs/{JOB_ID}/reviews", headers=_auth("employer-token")).json()
    by_reviewee = {review["reviewee_id"]: review for review in own}
    assert by_reviewee[STUDENT_ID]["reviewer_id"] == EMPLOYER_ID


def test_eligibility_and_pending_endpoints(api: ApiHarness) -> None:
    before = api.client.get(f"/jobs/{JOB_ID}/review-eligibility", headers=_auth("student-token"))
    assert before.json() == {
        "job_id": JOB_ID,
        "user_id": STUDENT_ID,
        "eligible": False,
        "reason": "job not completed",
    }

    api.complete_job()
    after = api.client.get(f"/jobs/{JOB_ID}/review-eligibility", headers=_auth("student-token"))
    assert after.json()["eligible"] is True

    pending = api.client.get("/reviews/pending", headers=_auth("student-token"))
    assert pending.status_code == 200
    assert [job["id"] for job in pending.json()] == [JOB_ID]


def test_edit_and_withdraw_hidden_review(api: ApiHarness) -> None:
    api.complete_job()
    review_id = api.post_employer_review().json()["id"]

    updated = api.client.put(
        f"/reviews/{review_id}",
        json={"rating": 4, "comment": "Solid work with minor delays.", "category_ratings": EMPLOYER_CATEGORIES},
        headers=_auth("employer-token"),
    )
    assert updated.status_code == 200
    assert updated.json()["rating"] == 4

    forbidden = api.client.delete(f"/reviews/{review_id}", headers=_auth("student-token"))
    assert forbidden.status_code == 403

    deleted = api.client.delete(f"/reviews/{review_id}", headers=_auth("employer-token"))
    assert deleted.status_code == 204
    assert api.repository.reviews == {}


def test_edit_after_window_conflicts(api: ApiHarness) -> None:
    api.complete_job()
    review_id = api.post_employer_review().json()["id"]
    api.clock.advance(hours=25)

    response = api.client.put(
        f"/reviews/{review_id}",
        json={"rating": 4, "category_ratings": EMPLOYER_CATEGORIES},
        headers=_auth("employer-token"),
    )

    assert response.status_code == 409


def test_process_expired_requires_module_credentials(api: ApiHarness) -> None:
    assert api.client.post("/reviews/process-expired").status_code == 401

    wrong_key = {**SWEEPER_HEADERS, "X-API-Key": "not-the-key"}
    assert api.client.post("/reviews/process-expired", headers=wrong_key).status_code == 401


def test_process_expired_reveals_single_review(api: ApiHarness) -> None:
    api.complete_job()
    review_id = api.post_employer_review().json()["id"]
    api.clock.advance(days=14, minutes=1)

    response = api.client.post("/reviews/process-expired", params={"limit": 10}, headers=SWEEPER_HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "jobs_scanned": 1,
        "reviews_revealed": 1,
        "jobs_completed": 1,
        "jobs_failed": 0,
    }
    assert api.repository.reviews[review_id].is_visible

    stats = api.client.get(f"/users/{STUDENT_ID}/reviews/stats")
    assert stats.status_code == 200
    assert stats.json()["total_reviews"] == 1
    assert stats.json()["rating_breakdown"] == {"1": 0, "2": 0, "3": 0, "4": 0, "5": 1}


@pytest.mark.parametrize("rating", [True, "5", 4.0])
def test_rating_must_be_a_json_integer(api: ApiHarness, rating: object) -> None:
    api.complete_job()

    assert api.post_employer_review(rating=rating).status_code == 422
    assert api.repository.reviews == {}


def test_update_rating_must_be_a_json_integer(api: ApiHarness) -> None:
    api.complete_job()
    review_id = api.post_employer_review().json()["id"]

    response = api.client.put(
        f"/reviews/{review_id}",
        json={"rating": True, "category_ratings": EMPLOYER_CATEGORIES},
        headers=_auth("employer-token"),
    )

    assert response.status_code == 422
    assert next(iter(api.repository.reviews.values())).rating == 5
