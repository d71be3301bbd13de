from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..errors import TransactionError
from .base import (
    SERVER_TIMESTAMP,
    Direction,
    DocumentReference,
    DocumentSnapshot,
    DocumentStore,
    Query,
    SnapshotCallback,
    T,
    Timestamp,
    Transaction,
    Unsubscribe,
)
from .config import StoreConfig

logger = logging.getLogger(__name__)

_DIRECTIONS = {
    Direction.ascending: firestore.Query.ASCENDING,
    Direction.descending: firestore.Query.DESCENDING,
}


def _to_native(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, Timestamp):
        return value.to_datetime()
    return value


def _to_native_data(data: dict[str, Any]) -> dict[str, Any]:
    return {key: _to_native(value) for key, value in data.items()}


def _wrap(native_snapshot: Any) -> DocumentSnapshot:
    data = native_snapshot.to_dict() if native_snapshot.exists else None
    return DocumentSnapshot(DocumentReference(native_snapshot.reference.path), data)


def to_native_query(client: Any, query: Query) -> Any:
    """Translate a store ``Query`` into a Firestore query on ``client``."""
    native = client.collection(query.collection)
    for f in sorted(query.filters, key=lambda f: (f.field, f.op)):
        native = native.where(filter=FieldFilter(f.field, f.op, _to_native(f.value)))
    for order in query.orders:
        native = native.order_by(order.field, direction=_DIRECTIONS[order.direction])
    return native


class _FirestoreTransaction(Transaction):
    def __init__(self, client: firestore.AsyncClient, transaction: Any) -> None:
        self._client = client
        self._transaction = transaction

    async def get(self, ref: DocumentReference) -> DocumentSnapshot:
        snapshot = await self._client.document(ref.path).get(transaction=self._transaction)
        return _wrap(snapshot)

    def set(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        self._transaction.set(self._client.document(ref.path), _to_native_data(data))

    def update(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        self._transaction.update(self._client.document(ref.path), _to_native_data(data))


class FirestoreDocumentStore(DocumentStore):
    """Cloud Firestore backend.

    Transactions use Firestore's own retrying transaction. Live listeners go
    through the synchronous client because only it supports ``on_snapshot``;
    their callbacks run on Firestore's watch thread.
    """

    def __init__(
        self,
        client: firestore.AsyncClient,
        listen_client: firestore.Client,
        max_attempts: int = 5,
    ) -> None:
        self._client = client
        self._listen_client = listen_client
        self.max_attempts = max_attempts

    @classmethod
    def from_config(cls, config: StoreConfig) -> FirestoreDocumentStore:
        kwargs: dict[str, Any] = {}
        if config.firestore_project:
            kwargs["project"] = config.firestore_project
        if config.firestore_database:
            kwargs["database"] = config.firestore_database
        return cls(
            firestore.AsyncClient(**kwargs),
            firestore.Client(**kwargs),
            max_attempts=config.max_attempts,
        )

    async def get(self, ref: DocumentReference) -> DocumentSnapshot:
        return _wrap(await self._client.document(ref.path).get())

    async def set(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        await self._client.document(ref.path).set(_to_native_data(data))

    async def run_query(self, query: Query) -> list[DocumentSnapshot]:
        native = to_native_query(self._client, query)
        return [_wrap(doc) async for doc in native.stream()]

    def listen(self, query: Query, callback: SnapshotCallback) -> Unsubscribe:
        native = to_native_query(self._listen_client, query)

        def on_snapshot(docs: list[Any], changes: Any, read_time: Any) -> None:
            callback([_wrap(doc) for doc in docs])

        watch = native.on_snapshot(on_snapshot)
        return watch.unsubscribe

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        @firestore.async_transactional
        async def _run(transaction: Any) -> T:
            return await fn(_FirestoreTransaction(self._client, transaction))

        try:
            return await _run(self._client.transaction(max_attempts=self.max_attempts))
        except ValueError as exc:
            # async_transactional raises ValueError once max_attempts is spent
            raise TransactionError(str(exc)) from exc
        except GoogleAPICallError as exc:
            logger.error("Firestore rejected the transaction: %s", exc)
            raise TransactionError(str(exc)) from exc
