from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

RESTAURANTS = "restaurants"
RATINGS = "ratings"


class SortOption(str, Enum):
    rating = "Rating"
    review = "Review"


def price_tier_to_int(price: str | int) -> int:
    """Return the integer tier for ``"$$"``-style symbols, digit strings or ints."""
    if isinstance(price, bool):
        raise ValueError("price tier must be a symbol string or an integer")
    if isinstance(price, int):
        if price < 1:
            raise ValueError("price tier must be at least 1")
        return price
    token = price.strip()
    if token.isdigit():
        return price_tier_to_int(int(token))
    if not token or token != token[0] * len(token):
        raise ValueError(f"price tier must repeat a single symbol, got {price!r}")
    return len(token)


# ── Stored records ───────────────────────────────────────────────────────


class Restaurant(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    category: str = ""
    city: str = ""
    price: int | None = None
    photo: str | None = None
    num_ratings: int = Field(default=0, ge=0, alias="numRatings")
    sum_rating: float = Field(default=0.0, ge=0.0, alias="sumRating")
    avg_rating: float | None = Field(default=None, alias="avgRating")
    timestamp: datetime


class Review(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    text: str = ""
    rating: int
    user_id: str = Field(default="", alias="userId")
    timestamp: datetime


# ── Requests ─────────────────────────────────────────────────────────────


def _whole_rating(value: Any) -> Any:
    # Lax int parsing would otherwise take True as 1 and 4.0 as 4
    if isinstance(value, (bool, float)):
        raise ValueError("rating must be a whole number from 1 to 5")
    return value


Rating = Annotated[int, BeforeValidator(_whole_rating), Field(ge=1, le=5)]


class RestaurantFilters(BaseModel):
    """The listing options: equality filters plus one sort order.

    ``sort="Review"`` orders by review count; any other value, or none,
    orders by average rating.
    """

    model_config = ConfigDict(frozen=True)

    category: str | None = None
    city: str | None = None
    price: str | int | None = None
    sort: str | None = None

    @field_validator("category", "city", "price", "sort", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("price")
    @classmethod
    def _check_price(cls, value: str | int | None) -> str | int | None:
        if value is not None:
            price_tier_to_int(value)
        return value


class NewReview(BaseModel):
    """A review as submitted, before the store assigns its timestamp."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    rating: Rating
    user_id: str = Field(..., min_length=1, alias="userId")

    def to_document(self) -> dict[str, Any]:
        return {"text": self.text, "rating": self.rating, "userId": self.user_id}


class ReviewForm(BaseModel):
    text: str = Field(default="", max_length=5000)
    rating: Rating


class RestaurantCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    price: str | int = Field(..., description='Symbolic tier such as "$$", or an integer')
    photo: str | None = None

    @field_validator("price")
    @classmethod
    def _check_price(cls, value: str | int) -> str | int:
        price_tier_to_int(value)
        return value


class SummaryResponse(BaseModel):
    restaurant_id: str
    summary: str
