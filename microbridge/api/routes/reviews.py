from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from microbridge.api.errors import require_actor, to_http_exception
from microbridge.core.auth import REVIEWS_READ, REVIEWS_SWEEP, REVIEWS_WRITE
from microbridge.core.config import get_settings
from microbridge.core.security import get_human_principal, get_machine_principal
from microbridge.schemas.jobs import JobOut
from microbridge.schemas.reviews import ReviewCreateRequest, ReviewOut, ReviewUpdateRequest, SweepOut
from microbridge.services.errors import ReviewWorkflowError
from microbridge.services.repository import RepositoryUnavailableError
from microbridge.services.review_service import get_review_service
from microbridge.services.review_writer import ReviewChanges, ReviewDraft

router = APIRouter()


@router.post("", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: ReviewCreateRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> ReviewOut:
    actor_id = require_actor(principal, {REVIEWS_WRITE})

    draft = ReviewDraft(
        job_id=payload.job_id,
        reviewer_id=actor_id,
        reviewee_id=payload.reviewee_id,
        rating=payload.rating,
        comment=payload.comment,
        category_ratings=payload.category_ratings,
        anonymous=payload.anonymous,
    )
    try:
        review = await service.create_review(draft)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return ReviewOut.from_record(review, viewer_id=actor_id)


@router.get("/pending", response_model=list[JobOut])
async def list_pending_reviews(
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> list[JobOut]:
    actor_id = require_actor(principal, {REVIEWS_READ})

    try:
        jobs = await service.list_pending_reviews(actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [JobOut.from_record(job) for job in jobs]


@router.post("/process-expired", response_model=SweepOut)
async def process_expired_reviews(
    principal=Depends(get_machine_principal),
    settings=Depends(get_settings),
    service=Depends(get_review_service),
    limit: int | None = Query(default=None, ge=1, le=1000),
) -> SweepOut:
    try:
        principal.require_scopes({REVIEWS_SWEEP})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    batch_size = limit or settings.sweep_batch_size
    try:
        result = await service.process_expired_reviews(limit=batch_size)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return SweepOut(
        jobs_scanned=result.jobs_scanned,
        reviews_revealed=result.reviews_revealed,
        jobs_completed=result.jobs_completed,
        jobs_failed=result.jobs_failed,
    )


@router.put("/{review_id}", response_model=ReviewOut)
async def update_review(
    review_id: str,
    payload: ReviewUpdateRequest,
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> ReviewOut:
    actor_id = require_actor(principal, {REVIEWS_WRITE})

    changes = ReviewChanges(
        rating=payload.rating,
        comment=payload.comment,
        category_ratings=payload.category_ratings,
        anonymous=payload.anonymous,
    )
    try:
        review = await service.update_review(review_id, changes, actor_id)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return ReviewOut.from_record(review, viewer_id=actor_id)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_review(
    review_id: str,
    principal=Depends(get_human_principal),
    service=Depends(get_review_service),
) -> Response:
    actor_id = require_actor(principal, {REVIEWS_WRITE})

    try:
        await service.delete_review(review_id, actor_id)
    except (ReviewWorkflowError, RepositoryUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)
