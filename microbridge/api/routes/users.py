from fastapi import APIRouter, Depends, HTTPException, Query, status

from microbridge.schemas.reviews import ReviewOut, ReviewStatsOut, UserReviewsOut
from microbridge.services.repository import RepositoryUnavailableError
from microbridge.services.review_service import get_review_service

router = APIRouter()


@router.get("/{user_id}/reviews", response_model=UserReviewsOut)
async def list_user_reviews(
    user_id: str,
    service=Depends(get_review_service),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> UserReviewsOut:
    try:
        page = await service.get_user_reviews(user_id, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return UserReviewsOut(
        user_id=user_id,
        reviews=[ReviewOut.from_record(review) for review in page.reviews],
        total=page.total,
        average_rating=page.average_rating,
        total_reviews=page.total_reviews,
    )


@router.get("/{user_id}/reviews/stats", response_model=ReviewStatsOut)
async def get_user_review_stats(
    user_id: str,
    service=Depends(get_review_service),
) -> ReviewStatsOut:
    try:
        stats = await service.get_user_review_stats(user_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return ReviewStatsOut(
        user_id=user_id,
        average_rating=stats.average_rating,
        total_reviews=stats.total_reviews,
        rating_breakdown=stats.rating_breakdown,
        badges=stats.badges,
    )
