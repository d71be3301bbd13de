from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..errors import NotFoundError
from ..store.base import SERVER_TIMESTAMP, DocumentReference, Transaction
from .models import NewReview

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingAggregate:
    """A restaurant's ``(numRatings, sumRating, avgRating)`` triple."""

    num_ratings: int = 0
    sum_rating: float = 0.0
    avg_rating: float | None = None

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> RatingAggregate:
        # Missing or null counters count as zero
        return cls(
            num_ratings=int(data.get("numRatings") or 0),
            sum_rating=float(data.get("sumRating") or 0),
            avg_rating=data.get("avgRating"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "numRatings": self.num_ratings,
            "sumRating": self.sum_rating,
            "avgRating": self.avg_rating,
        }


def fold_rating(current: RatingAggregate, rating: int | float) -> RatingAggregate:
    """Return the aggregate after adding one more rating."""
    num_ratings = current.num_ratings + 1
    sum_rating = current.sum_rating + float(rating)
    return RatingAggregate(
        num_ratings=num_ratings,
        sum_rating=sum_rating,
        avg_rating=sum_rating / num_ratings,
    )


async def apply_review(
    transaction: Transaction,
    restaurant_ref: DocumentReference,
    review_ref: DocumentReference,
    review: NewReview,
) -> RatingAggregate:
    """Fold ``review`` into the restaurant and write it, inside ``transaction``.

    Must run through ``DocumentStore.run_transaction`` so that the read, the
    aggregate update and the new review document commit together, and the
    whole function is replayed when another writer got there first.
    """
    snapshot = await transaction.get(restaurant_ref)
    if not snapshot.exists:
        raise NotFoundError(restaurant_ref.path)

    aggregate = fold_rating(RatingAggregate.from_document(snapshot.data), review.rating)

    transaction.update(restaurant_ref, aggregate.to_document())
    transaction.set(review_ref, {**review.to_document(), "timestamp": SERVER_TIMESTAMP})

    logger.debug(
        "Folded rating %s into %s: %d ratings, avg %.3f",
        review.rating, restaurant_ref.id, aggregate.num_ratings, aggregate.avg_rating,
    )
    return aggregate
