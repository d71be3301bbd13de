from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Generic, TypeVar

from ..errors import DecodeError, NotFoundError
from ..store.base import (
    Direction,
    DocumentSnapshot,
    DocumentStore,
    Query,
    Unsubscribe,
)
from .decoder import decode_restaurant, decode_review
from .filters import build_query
from .models import RATINGS, RESTAURANTS, Restaurant, RestaurantFilters, Review

logger = logging.getLogger(__name__)

R = TypeVar("R")

_CLOSED = object()


class Subscription:
    """Handle for a live listener. Calling it detaches the listener; repeat calls do nothing."""

    def __init__(self, unsubscribe: Unsubscribe | None = None) -> None:
        self._unsubscribe = unsubscribe

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def __call__(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def cancel(self) -> None:
        self()


class ResultStream(Generic[R]):
    """Async iterator yielding the full, decoded result set after every change.

    Must be opened from a running event loop. Store listeners may fire on
    another thread; results are handed to this loop before decoding, so a
    ``DecodeError`` surfaces from ``__anext__``. ``cancel()`` detaches the
    listener and ends iteration, and is safe to call more than once.
    """

    def __init__(
        self,
        store: DocumentStore,
        query: Query,
        decode: Callable[[list[DocumentSnapshot]], list[R]],
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._decode = decode
        self._cancelled = False
        self._unsubscribe: Unsubscribe | None = store.listen(query, self._push)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _push(self, snapshots: list[DocumentSnapshot]) -> None:
        if not self._cancelled:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, snapshots)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        # Wake a consumer blocked on the queue
        self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)

    def __aiter__(self) -> ResultStream[R]:
        return self

    async def __anext__(self) -> list[R]:
        if self._cancelled:
            raise StopAsyncIteration
        item = await self._queue.get()
        if self._cancelled or item is _CLOSED:
            raise StopAsyncIteration
        return self._decode(item)

    async def __aenter__(self) -> ResultStream[R]:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.cancel()


class RestaurantQueryService:
    """Read side of the restaurant collection: filtered listings, one-shot or live.

    Malformed documents raise ``DecodeError`` by default; with
    ``skip_malformed=True`` they are logged and left out of the results.
    """

    def __init__(self, store: DocumentStore, skip_malformed: bool = False) -> None:
        self._store = store
        self.skip_malformed = skip_malformed

    def _decode_all(
        self,
        snapshots: list[DocumentSnapshot],
        decoder: Callable[[DocumentSnapshot], R],
    ) -> list[R]:
        results: list[R] = []
        for snapshot in snapshots:
            try:
                results.append(decoder(snapshot))
            except DecodeError as exc:
                if not self.skip_malformed:
                    logger.error("Malformed document %s: %s", exc.path, exc.reason)
                    raise
                logger.warning("Skipping malformed document %s: %s", exc.path, exc.reason)
        return results

    def _listen(
        self,
        query: Query,
        decoder: Callable[[DocumentSnapshot], R],
        on_update: Callable[[list[R]], Any],
        on_error: Callable[[DecodeError], Any] | None,
    ) -> Subscription:
        if not callable(on_update):
            logger.error("Listener callback is not callable: %r", on_update)
            return Subscription()

        def deliver(snapshots: list[DocumentSnapshot]) -> None:
            try:
                results = self._decode_all(snapshots, decoder)
            except DecodeError as exc:
                if on_error is None:
                    raise
                on_error(exc)
                return
            on_update(results)

        return Subscription(self._store.listen(query, deliver))

    # ── Restaurants ──────────────────────────────────────────────────────

    def restaurants_query(self, filters: RestaurantFilters | None = None) -> Query:
        return build_query(self._store.collection(RESTAURANTS).query(), filters)

    async def fetch_once(self, filters: RestaurantFilters | None = None) -> list[Restaurant]:
        query = self.restaurants_query(filters)
        try:
            snapshots = await self._store.run_query(query)
        except Exception:
            logger.exception("Restaurant query failed (filters=%s)", filters)
            raise
        return self._decode_all(snapshots, decode_restaurant)

    def subscribe(
        self,
        filters: RestaurantFilters | None,
        on_update: Callable[[list[Restaurant]], Any],
        on_error: Callable[[DecodeError], Any] | None = None,
    ) -> Subscription:
        """Call ``on_update`` with the full decoded listing now and after every change.

        Listener callbacks run inside the store, which logs and drops anything
        they raise. A ``DecodeError`` therefore only reaches the caller through
        ``on_error``; without one it is logged and that update is not delivered.
        With ``skip_malformed=True`` bad documents are left out instead.
        """
        return self._listen(
            self.restaurants_query(filters), decode_restaurant, on_update, on_error,
        )

    def stream(self, filters: RestaurantFilters | None = None) -> ResultStream[Restaurant]:
        decode = functools.partial(self._decode_all, decoder=decode_restaurant)
        return ResultStream(self._store, self.restaurants_query(filters), decode)

    async def get_restaurant(self, restaurant_id: str) -> Restaurant:
        ref = self._store.collection(RESTAURANTS).document(restaurant_id)
        snapshot = await self._store.get(ref)
        if not snapshot.exists:
            raise NotFoundError(ref.path)
        return decode_restaurant(snapshot)

    # ── Reviews ──────────────────────────────────────────────────────────

    def reviews_query(self, restaurant_id: str) -> Query:
        ref = self._store.collection(RESTAURANTS).document(restaurant_id)
        return ref.collection(RATINGS).query().order_by("timestamp", Direction.descending)

    async def get_reviews(self, restaurant_id: str) -> list[Review]:
        """Return a restaurant's reviews, newest first."""
        snapshots = await self._store.run_query(self.reviews_query(restaurant_id))
        return self._decode_all(snapshots, decode_review)

    def subscribe_reviews(
        self,
        restaurant_id: str,
        on_update: Callable[[list[Review]], Any],
        on_error: Callable[[DecodeError], Any] | None = None,
    ) -> Subscription:
        return self._listen(
            self.reviews_query(restaurant_id), decode_review, on_update, on_error,
        )
