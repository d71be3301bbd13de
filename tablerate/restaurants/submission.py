from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as ModelValidationError

from ..errors import TableRateError, ValidationError
from ..store.base import DocumentStore, Transaction
from .models import RATINGS, RESTAURANTS, NewReview
from .ratings import RatingAggregate, apply_review

logger = logging.getLogger(__name__)


def _validate(restaurant_id: str | None, review: NewReview | dict[str, Any] | None) -> NewReview:
    if not restaurant_id or not str(restaurant_id).strip():
        raise ValidationError("No restaurant ID has been provided.")
    if "/" in restaurant_id:
        raise ValidationError(f"Invalid restaurant ID: {restaurant_id!r}")
    if not review:
        raise ValidationError("A valid review has not been provided.")
    if isinstance(review, NewReview):
        return review
    try:
        return NewReview.model_validate(review)
    except ModelValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ValidationError(f"Invalid review: {fields}") from exc


async def submit_review(
    store: DocumentStore,
    restaurant_id: str,
    review: NewReview | dict[str, Any] | None,
) -> str:
    """Validate a review and fold it into its restaurant.

    Returns the id of the new review document. Validation happens before the
    store is touched; failures from the transaction are logged and re-raised.
    """
    payload = _validate(restaurant_id, review)

    restaurant_ref = store.collection(RESTAURANTS).document(restaurant_id)
    review_ref = restaurant_ref.collection(RATINGS).document()

    async def _fold(transaction: Transaction) -> RatingAggregate:
        return await apply_review(transaction, restaurant_ref, review_ref, payload)

    try:
        aggregate = await store.run_transaction(_fold)
    except TableRateError as exc:
        logger.error("Could not add rating to restaurant %s: %s", restaurant_id, exc)
        raise
    except Exception:
        logger.exception("Could not add rating to restaurant %s", restaurant_id)
        raise

    logger.info(
        "Review %s added to restaurant %s (%d ratings, avg %.2f)",
        review_ref.id, restaurant_id, aggregate.num_ratings, aggregate.avg_rating,
    )
    return review_ref.id
