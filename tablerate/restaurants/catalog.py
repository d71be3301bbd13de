from __future__ import annotations

import logging
import random
from datetime import datetime

from ..store.base import SERVER_TIMESTAMP, DocumentStore, Timestamp
from .models import RESTAURANTS, NewReview, RestaurantCreate, price_tier_to_int
from .ratings import RatingAggregate
from .submission import submit_review

logger = logging.getLogger(__name__)

CITIES = [
    "Albuquerque", "Arlington", "Atlanta", "Austin", "Baltimore", "Boston",
    "Chicago", "Denver", "Los Angeles", "New York", "Portland",
    "San Francisco", "Seattle",
]

CATEGORIES = [
    "Brunch", "Burgers", "Coffee", "Deli", "Dim Sum", "Indian", "Italian",
    "Mediterranean", "Mexican", "Pizza", "Ramen", "Sushi",
]

_NAME_FIRST = ["Savory", "Gourmet", "Wild", "Golden", "Rusty", "Little", "Blue", "Hungry"]
_NAME_SECOND = ["Bistro", "Eatery", "Kitchen", "Grill", "Table", "Diner", "Spoon", "Fork"]

REVIEW_TEXTS: dict[int, list[str]] = {
    1: ["Would never eat here again!", "Such an awful place!", "Not sure if they had a chef."],
    2: ["Not my cup of tea.", "Unlikely that we'll ever come back.", "Service was slow and cold."],
    3: ["Exceptionally okay.", "Nothing special, nothing wrong.", "Fine for a quick bite."],
    4: ["Tasty and friendly.", "Good value for the price.", "Would happily come back."],
    5: ["This was the best meal of the trip!", "Incredible food, go now.", "Worth every penny."],
}

_PHOTO_URL = "https://storage.googleapis.com/firestorequickstarts.appspot.com/food_{}.png"


async def create_restaurant(
    store: DocumentStore,
    data: RestaurantCreate,
    created_at: datetime | None = None,
) -> str:
    """Write a new restaurant with an empty rating aggregate and return its id.

    The price tier is stored as an integer (``"$$"`` becomes ``2``). Without
    ``created_at`` the store stamps the document at write time.
    """
    ref = store.collection(RESTAURANTS).document()
    document = {
        "name": data.name,
        "category": data.category,
        "city": data.city,
        "price": price_tier_to_int(data.price),
        "photo": data.photo,
        **RatingAggregate().to_document(),
        "timestamp": Timestamp.from_datetime(created_at) if created_at else SERVER_TIMESTAMP,
    }
    await store.set(ref, document)
    logger.info("Created restaurant %s (%s, %s)", ref.id, data.name, data.city)
    return ref.id


def generate_fake_restaurants(
    count: int = 20,
    rng: random.Random | None = None,
) -> list[tuple[RestaurantCreate, list[NewReview]]]:
    """Build ``count`` demo restaurants, each with a handful of reviews."""
    rng = rng or random.Random()
    restaurants: list[tuple[RestaurantCreate, list[NewReview]]] = []
    for _ in range(count):
        restaurant = RestaurantCreate(
            name=f"{rng.choice(_NAME_FIRST)} {rng.choice(_NAME_SECOND)}",
            category=rng.choice(CATEGORIES),
            city=rng.choice(CITIES),
            price="$" * rng.randint(1, 3),
            photo=_PHOTO_URL.format(rng.randint(1, 22)),
        )
        reviews = []
        for _ in range(rng.randint(0, 5)):
            rating = rng.randint(1, 5)
            reviews.append(NewReview(
                text=rng.choice(REVIEW_TEXTS[rating]),
                rating=rating,
                user_id=f"demo-user-{rng.randint(1, 50)}",
            ))
        restaurants.append((restaurant, reviews))
    return restaurants


async def add_fake_restaurants_and_reviews(
    store: DocumentStore,
    count: int = 20,
    rng: random.Random | None = None,
) -> list[str]:
    """Populate ``store`` with demo data and return the new restaurant ids.

    Reviews go through ``submit_review`` so the stored aggregates always
    match the review documents.
    """
    ids: list[str] = []
    for restaurant, reviews in generate_fake_restaurants(count, rng):
        restaurant_id = await create_restaurant(store, restaurant)
        for review in reviews:
            await submit_review(store, restaurant_id, review)
        ids.append(restaurant_id)
    logger.info("Added %d demo restaurants", len(ids))
    return ids
