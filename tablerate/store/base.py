from __future__ import annotations

import operator
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_AUTO_ID_LENGTH = 20

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def auto_id() -> str:
    """Return a new opaque document id."""
    return uuid.uuid4().hex[:_AUTO_ID_LENGTH]


# ── Storage-native values ────────────────────────────────────────────────


@dataclass(frozen=True, order=True)
class Timestamp:
    """Point in time as stored: seconds and nanoseconds since the UTC epoch."""

    seconds: int
    nanos: int = 0

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - _EPOCH
        return cls(
            seconds=delta.days * 86400 + delta.seconds,
            nanos=delta.microseconds * 1000,
        )

    @classmethod
    def now(cls) -> Timestamp:
        return cls.from_datetime(datetime.now(timezone.utc))

    def to_datetime(self) -> datetime:
        # datetime only carries microseconds
        return _EPOCH + timedelta(seconds=self.seconds, microseconds=self.nanos // 1000)


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder replaced by the store with the commit time.
SERVER_TIMESTAMP = _ServerTimestamp()


def sort_key(value: Any) -> tuple[int, Any]:
    """Order values the way a document store does: by type first, then by value."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, Timestamp):
        return (3, (value.seconds, value.nanos))
    if isinstance(value, datetime):
        ts = Timestamp.from_datetime(value)
        return (3, (ts.seconds, ts.nanos))
    if isinstance(value, str):
        return (4, value)
    return (5, repr(value))


# ── Queries ──────────────────────────────────────────────────────────────


class Direction(str, Enum):
    ascending = "asc"
    descending = "desc"


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op!r}")

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual, expected = sort_key(data[self.field]), sort_key(self.value)
        # Range and equality filters never match across value types
        if actual[0] != expected[0]:
            return False
        return _OPERATORS[self.op](actual[1], expected[1])


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: Direction = Direction.ascending


@dataclass(frozen=True)
class Query:
    """An immutable query over one collection.

    Filters are held as a set, so the order in which predicates are added
    does not change the query. ``where`` and ``order_by`` return new values.
    """

    collection: str
    filters: frozenset[FieldFilter] = frozenset()
    orders: tuple[OrderBy, ...] = ()

    def where(self, field: str, op: str, value: Any) -> Query:
        return replace(self, filters=self.filters | {FieldFilter(field, op, value)})

    def order_by(self, field: str, direction: Direction | str = Direction.ascending) -> Query:
        return replace(self, orders=self.orders + (OrderBy(field, Direction(direction)),))

    def matches(self, data: dict[str, Any]) -> bool:
        # Documents without an ordered field are excluded from ordered results
        if any(order.field not in data for order in self.orders):
            return False
        return all(f.matches(data) for f in self.filters)

    def sort(self, snapshots: Iterable[DocumentSnapshot]) -> list[DocumentSnapshot]:
        ordered = sorted(snapshots, key=lambda s: s.id)
        for order in reversed(self.orders):
            ordered.sort(
                key=lambda s, f=order.field: sort_key(s.data[f]),
                reverse=order.direction is Direction.descending,
            )
        return ordered


# ── References and snapshots ─────────────────────────────────────────────


@dataclass(frozen=True)
class CollectionReference:
    path: str

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def document(self, document_id: str | None = None) -> DocumentReference:
        """Reference a document; a new opaque id is generated when none is given."""
        if document_id is None:
            document_id = auto_id()
        if not document_id or "/" in document_id:
            raise ValueError(f"Invalid document id: {document_id!r}")
        return DocumentReference(f"{self.path}/{document_id}")

    def query(self) -> Query:
        return Query(self.path)


@dataclass(frozen=True)
class DocumentReference:
    path: str

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def parent(self) -> CollectionReference:
        return CollectionReference(self.path.rsplit("/", 1)[0])

    def collection(self, name: str) -> CollectionReference:
        return CollectionReference(f"{self.path}/{name}")


@dataclass(frozen=True)
class DocumentSnapshot:
    reference: DocumentReference
    data: dict[str, Any] | None

    @property
    def id(self) -> str:
        return self.reference.id

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any] | None:
        return dict(self.data) if self.data is not None else None


SnapshotCallback = Callable[[list[DocumentSnapshot]], None]
Unsubscribe = Callable[[], None]


# ── Store interface ──────────────────────────────────────────────────────


class Transaction(ABC):
    """Reads and buffered writes committed together by ``run_transaction``.

    All reads must happen before the first write.
    """

    @abstractmethod
    async def get(self, ref: DocumentReference) -> DocumentSnapshot:
        ...

    @abstractmethod
    def set(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def update(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        """Merge fields into an existing document; the commit fails if it is missing."""


class DocumentStore(ABC):
    def collection(self, path: str) -> CollectionReference:
        return CollectionReference(path)

    @abstractmethod
    async def get(self, ref: DocumentReference) -> DocumentSnapshot:
        ...

    @abstractmethod
    async def set(self, ref: DocumentReference, data: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def run_query(self, query: Query) -> list[DocumentSnapshot]:
        ...

    @abstractmethod
    def listen(self, query: Query, callback: SnapshotCallback) -> Unsubscribe:
        """Deliver the full result set now and again after every change.

        The callback may run on a store thread. The returned function detaches
        the listener.
        """

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``fn`` atomically, retrying the whole function on write conflicts.

        Raises ``TransactionError`` once the attempts are exhausted.
        """

    async def close(self) -> None:
        return None
