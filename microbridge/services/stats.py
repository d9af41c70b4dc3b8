from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from microbridge.services.repository import ReviewRecord, ReviewStore

BADGE_TOP_RATED = "Top Rated"
BADGE_HIGHLY_RECOMMENDED = "Highly Recommended"
BADGE_EXCELLENCE_AWARD = "Excellence Award"

STAR_VALUES = (1, 2, 3, 4, 5)


@dataclass(slots=True)
class ReviewStats:
    average_rating: float = 0.0
    total_reviews: int = 0
    rating_breakdown: dict[int, int] = field(default_factory=lambda: {star: 0 for star in STAR_VALUES})
    badges: list[str] = field(default_factory=list)


def round_half_up(value: Decimal, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(value.quantize(quantum, rounding=ROUND_HALF_UP))


def compute_badges(average_rating: float, total_reviews: int, rating_breakdown: dict[int, int]) -> list[str]:
    # Excellence Award has no minimum review count, unlike the other two.
    badges: list[str] = []
    if average_rating >= 4.5 and total_reviews >= 2:
        badges.append(BADGE_TOP_RATED)
    if average_rating >= 4.0 and total_reviews >= 3:
        badges.append(BADGE_HIGHLY_RECOMMENDED)
    if rating_breakdown.get(5, 0) >= 2:
        badges.append(BADGE_EXCELLENCE_AWARD)
    return badges


def compute_review_stats(reviews: Iterable[ReviewRecord]) -> ReviewStats:
    """Aggregate visible reviews; hidden ones are ignored even if passed in."""
    stats = ReviewStats()
    total_rating = 0
    for review in reviews:
        if not review.is_visible:
            continue
        stats.total_reviews += 1
        total_rating += review.rating
        stats.rating_breakdown[review.rating] = stats.rating_breakdown.get(review.rating, 0) + 1

    if stats.total_reviews:
        stats.average_rating = round_half_up(Decimal(total_rating) / Decimal(stats.total_reviews))
    stats.badges = compute_badges(stats.average_rating, stats.total_reviews, stats.rating_breakdown)
    return stats


class StatsAggregator:
    def __init__(self, reviews: ReviewStore) -> None:
        self.reviews = reviews

    async def get_user_review_stats(self, user_id: str) -> ReviewStats:
        rows, _ = await self.reviews.list_visible_reviews_for_reviewee(user_id)
        return compute_review_stats(rows)
