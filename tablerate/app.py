from __future__ import annotations

import asyncio
import logging
import os

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket
from pydantic import ValidationError as ModelValidationError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import HTTPConnection

from .auth.dependencies import require_admin, require_user
from .auth.models import LoginRequest
from .auth.users import authenticate
from .errors import (
    DecodeError,
    NotFoundError,
    TableRateError,
    TransactionError,
    ValidationError,
)
from .llm.groq_client import SUMMARY_ERROR_MESSAGE, summarize_reviews
from .restaurants.catalog import add_fake_restaurants_and_reviews, create_restaurant
from .restaurants.models import (
    NewReview,
    Restaurant,
    RestaurantCreate,
    RestaurantFilters,
    Review,
    ReviewForm,
    SummaryResponse,
)
from .restaurants.query_service import RestaurantQueryService
from .restaurants.submission import submit_review
from .store import DocumentStore, create_store

logger = logging.getLogger(__name__)

NO_REVIEWS_MESSAGE = "There are no reviews yet."

app = FastAPI(title="TableRate API", version="1.0.0")
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "tablerate-secret-change-in-production"),
)
app.state.store = create_store()

_STATUS_BY_ERROR: list[tuple[type[TableRateError], int]] = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (TransactionError, 503),
    (DecodeError, 500),
]


def _http_error(exc: TableRateError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


# ── Dependencies ─────────────────────────────────────────────────────────


def get_store(connection: HTTPConnection) -> DocumentStore:
    return connection.app.state.store


def get_query_service(store: DocumentStore = Depends(get_store)) -> RestaurantQueryService:
    # Listings leave out malformed documents instead of failing the page
    return RestaurantQueryService(store, skip_malformed=True)


def _parse_filters(
    category: str | None,
    city: str | None,
    price: str | None,
    sort: str | None,
) -> RestaurantFilters:
    return RestaurantFilters(category=category, city=city, price=price, sort=sort)


def listing_filters(
    category: str | None = None,
    city: str | None = None,
    price: str | None = Query(default=None, description='Tier as "$", "$$", "$$$" or a number'),
    sort: str | None = Query(default=None, description='"Rating" (default) or "Review"'),
) -> RestaurantFilters:
    try:
        return _parse_filters(category, city, price, sort)
    except ModelValidationError as exc:
        raise HTTPException(status_code=422, detail=[e["msg"] for e in exc.errors()]) from exc


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/restaurants", response_model=list[Restaurant])
async def list_restaurants(
    filters: RestaurantFilters = Depends(listing_filters),
    service: RestaurantQueryService = Depends(get_query_service),
) -> list[Restaurant]:
    return await service.fetch_once(filters)


@app.get("/restaurants/{restaurant_id}", response_model=Restaurant)
async def get_restaurant(
    restaurant_id: str,
    service: RestaurantQueryService = Depends(get_query_service),
) -> Restaurant:
    try:
        return await service.get_restaurant(restaurant_id)
    except TableRateError as exc:
        raise _http_error(exc) from exc


@app.get("/restaurants/{restaurant_id}/reviews", response_model=list[Review])
async def list_reviews(
    restaurant_id: str,
    service: RestaurantQueryService = Depends(get_query_service),
) -> list[Review]:
    try:
        await service.get_restaurant(restaurant_id)
        return await service.get_reviews(restaurant_id)
    except TableRateError as exc:
        raise _http_error(exc) from exc


@app.get("/restaurants/{restaurant_id}/summary", response_model=SummaryResponse)
async def review_summary(
    restaurant_id: str,
    service: RestaurantQueryService = Depends(get_query_service),
) -> SummaryResponse:
    try:
        await service.get_restaurant(restaurant_id)
        reviews = await service.get_reviews(restaurant_id)
    except TableRateError as exc:
        raise _http_error(exc) from exc

    if not reviews:
        return SummaryResponse(restaurant_id=restaurant_id, summary=NO_REVIEWS_MESSAGE)

    summary = await run_in_threadpool(summarize_reviews, [r.text for r in reviews])
    return SummaryResponse(
        restaurant_id=restaurant_id,
        summary=summary if summary is not None else SUMMARY_ERROR_MESSAGE,
    )


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    user = authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session["user"] = user
    return {"status": "ok", "user": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── User endpoints ───────────────────────────────────────────────────────


@app.post("/restaurants/{restaurant_id}/reviews", status_code=201)
async def add_review(
    restaurant_id: str,
    body: ReviewForm,
    user: dict = Depends(require_user),
    store: DocumentStore = Depends(get_store),
) -> dict:
    review = NewReview(text=body.text, rating=body.rating, user_id=user["uid"])
    try:
        review_id = await submit_review(store, restaurant_id, review)
    except TableRateError as exc:
        raise _http_error(exc) from exc
    return {"status": "created", "id": review_id, "restaurant_id": restaurant_id}


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.post("/restaurants", status_code=201)
async def add_restaurant(
    body: RestaurantCreate,
    user: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
) -> dict:
    restaurant_id = await create_restaurant(store, body)
    return {"status": "created", "id": restaurant_id}


@app.post("/admin/seed", status_code=201)
async def seed_demo_data(
    count: int = Query(default=20, ge=1, le=100),
    user: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
) -> dict:
    ids = await add_fake_restaurants_and_reviews(store, count=count)
    return {"status": "seeded", "count": len(ids), "restaurant_ids": ids}


# ── Live listing ─────────────────────────────────────────────────────────


@app.websocket("/ws/restaurants")
async def live_restaurants(websocket: WebSocket) -> None:
    """Push the full filtered listing on connect and after every change."""
    params = websocket.query_params
    try:
        filters = _parse_filters(
            params.get("category"), params.get("city"), params.get("price"), params.get("sort"),
        )
    except ModelValidationError:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    service = RestaurantQueryService(get_store(websocket), skip_malformed=True)
    stream = service.stream(filters)

    async def forward() -> None:
        async for restaurants in stream:
            await websocket.send_json(
                [r.model_dump(mode="json", by_alias=True) for r in restaurants]
            )

    sender = asyncio.create_task(forward())
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        stream.cancel()
        await asyncio.wait({sender})
        if not sender.cancelled() and sender.exception() is not None:
            logger.warning("Live listing stopped with an error", exc_info=sender.exception())
