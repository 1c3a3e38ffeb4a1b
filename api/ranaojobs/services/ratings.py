from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

RATING_VALUES = (1, 2, 3, 4, 5)
REVIEW_STATUSES = ("active", "flagged", "removed")


def empty_distribution() -> dict[int, int]:
    return {value: 0 for value in RATING_VALUES}


@dataclass(slots=True, frozen=True)
class RatingSummary:
    average_rating: float = 0.0
    review_count: int = 0
    rating_distribution: dict[int, int] = field(default_factory=empty_distribution)

    def as_fields(self) -> dict[str, Any]:
        return {
            "average_rating": self.average_rating,
            "review_count": self.review_count,
            "rating_distribution": dict(self.rating_distribution),
        }


def is_valid_rating(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in RATING_VALUES


def summarize_ratings(ratings: Iterable[Any]) -> RatingSummary:
    distribution = empty_distribution()
    total = 0
    count = 0
    for rating in ratings:
        if not is_valid_rating(rating):
            continue
        distribution[rating] += 1
        total += rating
        count += 1

    if count == 0:
        return RatingSummary()
    return RatingSummary(average_rating=total / count, review_count=count, rating_distribution=distribution)


def summarize_active_reviews(reviews: Iterable[dict[str, Any]]) -> RatingSummary:
    return summarize_ratings(review["rating"] for review in reviews if review.get("status") == "active")


def coerce_distribution(value: Any) -> dict[int, int]:
    """Read a stored histogram whose keys may have round-tripped through JSON as strings."""
    distribution = empty_distribution()
    if not isinstance(value, dict):
        return distribution
    for key, count in value.items():
        try:
            bucket = int(key)
            amount = int(count)
        except (TypeError, ValueError):
            continue
        if bucket in distribution:
            distribution[bucket] = amount
    return distribution
