from __future__ import annotations

import pytest
from pydantic import ValidationError as ModelValidationError

from tablerate.restaurants.filters import build_query
from tablerate.restaurants.models import RestaurantFilters, price_tier_to_int
from tablerate.store.base import Direction, FieldFilter, OrderBy, Query

BASE = Query("restaurants")

BY_AVERAGE = (OrderBy("avgRating", Direction.descending),)
BY_COUNT = (OrderBy("numRatings", Direction.descending),)


# ── Sorting ──────────────────────────────────────────────────────────────


def test_no_filters_sorts_by_average_rating():
    query = build_query(BASE)
    assert query.filters == frozenset()
    assert query.orders == BY_AVERAGE


def test_review_sort_orders_by_rating_count():
    query = build_query(BASE, RestaurantFilters(sort="Review"))
    assert query.orders == BY_COUNT


@pytest.mark.parametrize("sort", [None, "", "Rating", "Distance"])
def test_any_other_sort_orders_by_average_rating(sort):
    query = build_query(BASE, RestaurantFilters(sort=sort))
    assert query.orders == BY_AVERAGE


def test_exactly_one_sort_clause_with_all_filters():
    filters = RestaurantFilters(category="Sushi", city="Seattle", price="$$", sort="Review")
    query = build_query(BASE, filters)
    assert len(query.orders) == 1


# ── Predicates ───────────────────────────────────────────────────────────


def test_each_filter_adds_an_equality_predicate():
    filters = RestaurantFilters(category="Sushi", city="Seattle", price="$$")
    query = build_query(BASE, filters)
    assert query.filters == {
        FieldFilter("category", "==", "Sushi"),
        FieldFilter("city", "==", "Seattle"),
        FieldFilter("price", "==", 2),
    }


def test_blank_filters_are_ignored():
    filters = RestaurantFilters(category="", city="  ", price=None)
    assert build_query(BASE, filters).filters == frozenset()


def test_filter_order_does_not_change_the_query():
    category_first = BASE.where("category", "==", "Sushi").where("city", "==", "Seattle")
    city_first = BASE.where("city", "==", "Seattle").where("category", "==", "Sushi")
    assert category_first == city_first

    built_a = build_query(BASE.where("city", "==", "Seattle"), RestaurantFilters(category="Sushi"))
    built_b = build_query(BASE.where("category", "==", "Sushi"), RestaurantFilters(city="Seattle"))
    assert built_a == built_b


def test_base_query_is_not_mutated():
    build_query(BASE, RestaurantFilters(city="Seattle", sort="Review"))
    assert BASE.filters == frozenset()
    assert BASE.orders == ()


# ── Price tiers ──────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "price, expected",
    [("$", 1), ("$$", 2), ("$$$", 3), ("€€", 2), (" $$ ", 2), (3, 3), ("2", 2)],
)
def test_price_tier_to_int(price, expected):
    assert price_tier_to_int(price) == expected


@pytest.mark.parametrize("price", ["", "$€", "cheap", 0, -1, True])
def test_price_tier_rejects_bad_values(price):
    with pytest.raises(ValueError):
        price_tier_to_int(price)


def test_filters_reject_bad_price():
    with pytest.raises(ModelValidationError):
        RestaurantFilters(price="$x")
