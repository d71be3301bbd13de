from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from tablerate.errors import DecodeError, NotFoundError
from tablerate.restaurants.models import NewReview, RestaurantFilters
from tablerate.restaurants.query_service import RestaurantQueryService
from tablerate.restaurants.submission import submit_review
from tablerate.store.base import Timestamp
from tablerate.store.memory import InMemoryDocumentStore

# id, category, city, price, numRatings, sumRating
ROWS = [
    ("a", "Sushi", "Seattle", 2, 10, 40.0),
    ("b", "Pizza", "Seattle", 1, 25, 75.0),
    ("c", "Ramen", "Portland", 2, 50, 225.0),
    ("d", "Sushi", "Seattle", 3, 3, 15.0),
]


def _seeded_store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()

    async def seed():
        for restaurant_id, category, city, price, count, total in ROWS:
            await store.set(store.collection("restaurants").document(restaurant_id), {
                "name": f"Place {restaurant_id}",
                "category": category,
                "city": city,
                "price": price,
                "numRatings": count,
                "sumRating": total,
                "avgRating": total / count,
                "timestamp": Timestamp.now(),
            })

    asyncio.run(seed())
    return store


def _ids(restaurants) -> list[str]:
    return [r.id for r in restaurants]


# ── One-shot listings ────────────────────────────────────────────────────


def test_city_sorted_by_review_count():
    service = RestaurantQueryService(_seeded_store())
    results = asyncio.run(service.fetch_once(RestaurantFilters(city="Seattle", sort="Review")))
    assert _ids(results) == ["b", "a", "d"]
    assert all(r.city == "Seattle" for r in results)


def test_default_sort_is_average_rating():
    service = RestaurantQueryService(_seeded_store())
    results = asyncio.run(service.fetch_once())
    assert _ids(results) == ["d", "c", "a", "b"]


def test_price_filter_uses_integer_tier():
    service = RestaurantQueryService(_seeded_store())
    results = asyncio.run(service.fetch_once(RestaurantFilters(price="$$")))
    assert _ids(results) == ["c", "a"]


def test_combined_filters():
    service = RestaurantQueryService(_seeded_store())
    filters = RestaurantFilters(category="Sushi", city="Seattle", price=3)
    assert _ids(asyncio.run(service.fetch_once(filters))) == ["d"]


def test_unrated_restaurants_sort_last():
    store = _seeded_store()
    asyncio.run(store.set(store.collection("restaurants").document("e"), {
        "name": "New Place", "city": "Seattle", "numRatings": 0, "sumRating": 0,
        "avgRating": None, "timestamp": Timestamp.now(),
    }))
    results = asyncio.run(RestaurantQueryService(store).fetch_once(RestaurantFilters(city="Seattle")))
    assert _ids(results) == ["d", "a", "b", "e"]


def test_malformed_document_raises_by_default():
    store = _seeded_store()
    asyncio.run(store.set(store.collection("restaurants").document("bad"), {
        "name": "No Time", "city": "Seattle", "numRatings": 1, "sumRating": 5, "avgRating": 5.0,
    }))
    with pytest.raises(DecodeError) as info:
        asyncio.run(RestaurantQueryService(store).fetch_once(RestaurantFilters(city="Seattle")))
    assert info.value.path == "restaurants/bad"


def test_malformed_document_can_be_skipped(caplog):
    store = _seeded_store()
    asyncio.run(store.set(store.collection("restaurants").document("bad"), {
        "name": "No Time", "city": "Seattle", "numRatings": 1, "sumRating": 5, "avgRating": 5.0,
    }))
    service = RestaurantQueryService(store, skip_malformed=True)
    with caplog.at_level(logging.WARNING):
        results = asyncio.run(service.fetch_once(RestaurantFilters(city="Seattle")))
    assert "bad" not in _ids(results)
    assert "restaurants/bad" in caplog.text


def test_get_restaurant():
    service = RestaurantQueryService(_seeded_store())
    restaurant = asyncio.run(service.get_restaurant("c"))
    assert restaurant.name == "Place c"
    with pytest.raises(NotFoundError):
        asyncio.run(service.get_restaurant("zzz"))


def test_reviews_newest_first():
    store = _seeded_store()
    ratings = store.collection("restaurants").document("a").collection("ratings")

    async def seed():
        for day, text in [(1, "first"), (3, "third"), (2, "second")]:
            moment = datetime(2024, 1, day, tzinfo=timezone.utc)
            await store.set(ratings.document(text), {
                "text": text, "rating": 4, "userId": "u1", "timestamp": Timestamp.from_datetime(moment),
            })

    asyncio.run(seed())
    reviews = asyncio.run(RestaurantQueryService(store).get_reviews("a"))
    assert [r.text for r in reviews] == ["third", "second", "first"]


# ── Live listings ────────────────────────────────────────────────────────


def test_subscribe_delivers_full_results_on_every_change():
    store = _seeded_store()
    service = RestaurantQueryService(store)
    updates = []

    handle = service.subscribe(RestaurantFilters(city="Seattle", sort="Review"), updates.append)
    assert len(updates) == 1
    assert _ids(updates[0]) == ["b", "a", "d"]

    asyncio.run(submit_review(store, "d", NewReview(rating=5, user_id="u1")))
    assert len(updates) == 2
    assert _ids(updates[1]) == ["b", "a", "d"]
    assert updates[1][2].num_ratings == 4

    handle()
    handle()
    assert not handle.active

    asyncio.run(submit_review(store, "a", NewReview(rating=5, user_id="u2")))
    assert len(updates) == 2


def test_unrelated_changes_do_not_notify():
    store = _seeded_store()
    updates = []
    handle = RestaurantQueryService(store).subscribe(RestaurantFilters(city="Seattle"), updates.append)

    asyncio.run(submit_review(store, "c", NewReview(rating=1, user_id="u1")))
    assert len(updates) == 1
    handle.cancel()


def test_subscribe_reviews():
    store = _seeded_store()
    updates = []
    handle = RestaurantQueryService(store).subscribe_reviews("a", updates.append)
    assert updates == [[]]

    asyncio.run(submit_review(store, "a", NewReview(text="Yum", rating=5, user_id="u1")))
    assert [r.text for r in updates[-1]] == ["Yum"]
    handle()


def test_non_callable_listener_gets_inert_handle(caplog):
    service = RestaurantQueryService(_seeded_store())
    with caplog.at_level(logging.ERROR):
        handle = service.subscribe(RestaurantFilters(), "not a function")
    assert not handle.active
    assert "not callable" in caplog.text
    handle()


def test_stream_yields_until_cancelled():
    store = _seeded_store()
    service = RestaurantQueryService(store)

    async def scenario():
        stream = service.stream(RestaurantFilters(city="Portland"))
        first = await stream.__anext__()
        await submit_review(store, "c", NewReview(rating=1, user_id="u9"))
        second = await stream.__anext__()
        stream.cancel()
        stream.cancel()
        rest = [batch async for batch in stream]
        return first, second, rest

    first, second, rest = asyncio.run(scenario())
    assert _ids(first) == ["c"]
    assert second[0].num_ratings == 51
    assert rest == []


def test_stream_as_context_manager_detaches_listener():
    store = _seeded_store()
    service = RestaurantQueryService(store)

    async def scenario():
        async with service.stream() as stream:
            first = await stream.__anext__()
        return stream, first

    stream, first = asyncio.run(scenario())
    assert stream.cancelled
    assert len(first) == len(ROWS)
    assert store._listeners == {}


def test_stream_surfaces_decode_errors():
    store = _seeded_store()
    asyncio.run(store.set(store.collection("restaurants").document("bad"), {
        "name": "No Time", "city": "Portland", "numRatings": 1, "sumRating": 5, "avgRating": 5.0,
    }))
    service = RestaurantQueryService(store)

    async def scenario():
        async with service.stream(RestaurantFilters(city="Portland")) as stream:
            await stream.__anext__()

    with pytest.raises(DecodeError):
        asyncio.run(scenario())


def _add_untimed_restaurant(store, restaurant_id="bad"):
    asyncio.run(store.set(store.collection("restaurants").document(restaurant_id), {
        "name": "No Time", "city": "Seattle", "numRatings": 1, "sumRating": 5, "avgRating": 5.0,
    }))


def test_subscribe_reports_decode_errors_to_on_error():
    store = _seeded_store()
    updates, errors = [], []
    handle = RestaurantQueryService(store).subscribe(
        RestaurantFilters(city="Seattle"), updates.append, on_error=errors.append,
    )
    assert len(updates) == 1

    _add_untimed_restaurant(store)

    assert len(updates) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], DecodeError)
    assert errors[0].path == "restaurants/bad"
    handle()


def test_subscribe_without_on_error_logs_and_skips_update(caplog):
    store = _seeded_store()
    updates = []
    handle = RestaurantQueryService(store).subscribe(RestaurantFilters(city="Seattle"), updates.append)

    with caplog.at_level(logging.ERROR):
        _add_untimed_restaurant(store)

    assert len(updates) == 1
    assert "restaurants/bad" in caplog.text
    handle()
