from fastapi import APIRouter, Depends

from microbridge.api.errors import require_actor, to_http_exception
from microbridge.core.auth import JOBS_WRITE, REVIEWS_READ
from microbridge.core.security import get_human_principal
from microbridge.schemas.jobs import EligibilityOut, JobCompletionOut, JobOut
from microbridge.schemas.reviews import ReviewOut
from microbridge.services.errors import ReviewWorkflowError
from microbridge.services.repository import RepositoryUnavailableError
from microbridge.services.review_service import get_review_service

router = APIRouter()


@router.post("/{job_id}/complete", response_model=JobCompletionOut)
async def complete_job(
    job_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> JobCompletionOut:
    actor_id = require_actor(principal, {JOBS_WRITE})

    try:
        job = await service.complete_job(job_id, actor_id)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return JobCompletionOut(
        job=JobOut.from_record(job),
        requires_review=True,
        message="Job completed. Both parties can now leave a review.",
    )


@router.post("/{job_id}/dispute", response_model=JobOut)
async def dispute_job(
    job_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> JobOut:
    actor_id = require_actor(principal, {JOBS_WRITE})

    try:
        job = await service.dispute_job(job_id, actor_id)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return JobOut.from_record(job)


@router.post("/{job_id}/archive", response_model=JobOut)
async def archive_job(
    job_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> JobOut:
    actor_id = require_actor(principal, {JOBS_WRITE})

    try:
        job = await service.archive_job(job_id, actor_id)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return JobOut.from_record(job)


@router.get("/{job_id}/review-eligibility", response_model=EligibilityOut)
async def get_review_eligibility(
    job_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> EligibilityOut:
    actor_id = require_actor(principal, {REVIEWS_READ})

    try:
        eligibility = await service.check_eligibility(job_id, actor_id)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return EligibilityOut(
        job_id=job_id,
        user_id=actor_id,
        eligible=eligibility.eligible,
        reason=eligibility.reason,
    )


@router.get("/{job_id}/reviews", response_model=list[ReviewOut])
async def list_job_reviews(
    job_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> list[ReviewOut]:
    actor_id = require_actor(principal, {REVIEWS_READ})

    try:
        reviews = await service.get_job_reviews(job_id, viewer_id=actor_id)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return [ReviewOut.from_record(review, viewer_id=actor_id) for review in reviews]
