from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import random
from typing import Any, Awaitable, Callable, NamedTuple

from ..errors import NotFoundError, TransactionError
from .base import (
    SERVER_TIMESTAMP,
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

logger = logging.getLogger(__name__)


class _StoredDocument(NamedTuple):
    data: dict[str, Any]
    version: int


class _WriteConflict(Exception):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(path)


def _resolve_server_timestamps(data: dict[str, Any], now: Timestamp) -> dict[str, Any]:
    return {key: now if value is SERVER_TIMESTAMP else value for key, value in data.items()}


class _Listener:
    def __init__(self, query: Query, callback: SnapshotCallback) -> None:
        self.query = query
        self.callback = callback
        self._last: list[tuple[str, dict[str, Any] | None]] | None = None

    def deliver(self, results: list[DocumentSnapshot]) -> None:
        signature = [(s.id, s.data) for s in results]
        if signature == self._last:
            return
        self._last = signature
        try:
            self.callback(results)
        except Exception:
            # The write that triggered delivery has already committed
            logger.exception("Snapshot listener on %s failed", self.query.collection)


class _MemoryTransaction(Transaction):
    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self.read_versions: dict[str, int] = {}
        self.writes: list[tuple[str, DocumentReference, dict[str, Any]]] = []

    async def get(self, ref: DocumentReference) -> DocumentSnapshot:
        if self.writes:
            raise ValueError("All transaction reads must happen before any write")
        snapshot = self._store._snapshot(ref.path)
        self.read_versions.setdefault(ref.path, self._store._version(ref.path))
        # Yield so concurrent transactions interleave as they would over the network
        await asyncio.sleep(0)
        return snapshot

    def set(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        self.writes.append(("set", ref, dict(data)))

    def update(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        self.writes.append(("update", ref, dict(data)))


class InMemoryDocumentStore(DocumentStore):
    """Process-local document store.

    Transactions use optimistic concurrency: every read records the document
    version, and the commit is rejected (and the whole transaction function
    re-run) when any of those versions has moved. The check and the apply
    happen without suspending, so a commit is atomic for every reader and
    listener in the process.
    """

    def __init__(self, max_attempts: int = 5, retry_delay: float = 0.01) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._documents: dict[str, _StoredDocument] = {}
        self._versions = itertools.count(1)
        self._listeners: dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)

    # ── Reads ────────────────────────────────────────────────────────────

    def _version(self, path: str) -> int:
        stored = self._documents.get(path)
        return stored.version if stored else 0

    def _snapshot(self, path: str) -> DocumentSnapshot:
        stored = self._documents.get(path)
        data = copy.deepcopy(stored.data) if stored else None
        return DocumentSnapshot(DocumentReference(path), data)

    def _evaluate(self, query: Query) -> list[DocumentSnapshot]:
        prefix = query.collection + "/"
        matching = [
            DocumentSnapshot(DocumentReference(path), copy.deepcopy(stored.data))
            for path, stored in self._documents.items()
            if path.startswith(prefix)
            and "/" not in path[len(prefix):]
            and query.matches(stored.data)
        ]
        return query.sort(matching)

    async def get(self, ref: DocumentReference) -> DocumentSnapshot:
        await asyncio.sleep(0)
        return self._snapshot(ref.path)

    async def run_query(self, query: Query) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        return self._evaluate(query)

    # ── Writes ───────────────────────────────────────────────────────────

    def _apply(self, pending: dict[str, dict[str, Any]]) -> None:
        for path, data in pending.items():
            self._documents[path] = _StoredDocument(copy.deepcopy(data), next(self._versions))
        changed = {path.rsplit("/", 1)[0] for path in pending}
        for listener in list(self._listeners.values()):
            if listener.query.collection in changed:
                listener.deliver(self._evaluate(listener.query))

    async def set(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        self._apply({ref.path: _resolve_server_timestamps(data, Timestamp.now())})

    def _commit(self, transaction: _MemoryTransaction) -> None:
        for path, version in transaction.read_versions.items():
            if self._version(path) != version:
                raise _WriteConflict(path)

        now = Timestamp.now()
        pending: dict[str, dict[str, Any]] = {}
        for op, ref, data in transaction.writes:
            data = _resolve_server_timestamps(data, now)
            if op == "update":
                current = pending.get(ref.path)
                if current is None and ref.path in self._documents:
                    current = self._documents[ref.path].data
                if current is None:
                    raise NotFoundError(ref.path)
                data = {**current, **data}
            pending[ref.path] = data
        self._apply(pending)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            transaction = _MemoryTransaction(self)
            result = await fn(transaction)
            try:
                self._commit(transaction)
            except _WriteConflict as exc:
                logger.debug(
                    "Write conflict on %s (attempt %d of %d)",
                    exc.path, attempt, self.max_attempts,
                )
                if attempt < self.max_attempts:
                    # Randomized exponential backoff before the next attempt
                    await asyncio.sleep(random.uniform(0, self.retry_delay * 2 ** attempt))
                continue
            return result
        raise TransactionError(
            f"Transaction could not be committed after {self.max_attempts} attempts"
        )

    # ── Listeners ────────────────────────────────────────────────────────

    def listen(self, query: Query, callback: SnapshotCallback) -> Unsubscribe:
        listener_id = next(self._listener_ids)
        listener = _Listener(query, callback)
        self._listeners[listener_id] = listener
        listener.deliver(self._evaluate(query))

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe
