from __future__ import annotations

from ..store.base import Direction, Query
from .models import RestaurantFilters, SortOption, price_tier_to_int


def build_query(base: Query, filters: RestaurantFilters | None = None) -> Query:
    """Compose ``base`` with the listing filters and exactly one sort order.

    Category, city and price each add an equality predicate when set. The
    result orders by ``numRatings`` for ``sort="Review"`` and by
    ``avgRating`` otherwise, both descending. ``base`` is left untouched.
    """
    filters = filters or RestaurantFilters()
    query = base

    if filters.category:
        query = query.where("category", "==", filters.category)
    if filters.city:
        query = query.where("city", "==", filters.city)
    if filters.price is not None:
        query = query.where("price", "==", price_tier_to_int(filters.price))

    if filters.sort == SortOption.review:
        return query.order_by("numRatings", Direction.descending)
    return query.order_by("avgRating", Direction.descending)
