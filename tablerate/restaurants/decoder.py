from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from ..errors import DecodeError
from ..store.base import DocumentSnapshot, Timestamp
from .models import Restaurant, Review

M = TypeVar("M", bound=BaseModel)


def to_datetime(value: Any) -> datetime:
    """Materialize a stored time value as a timezone-aware ``datetime``."""
    if isinstance(value, Timestamp):
        return value.to_datetime()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    raise TypeError(f"unsupported timestamp type {type(value).__name__}")


def _decode(snapshot: DocumentSnapshot, model: type[M]) -> M:
    path = snapshot.reference.path
    data = snapshot.to_dict()
    if data is None:
        raise DecodeError(path, "document does not exist")
    if "timestamp" not in data:
        raise DecodeError(path, "missing timestamp")
    try:
        data["timestamp"] = to_datetime(data["timestamp"])
    except TypeError as exc:
        raise DecodeError(path, str(exc)) from exc

    data["id"] = snapshot.id
    try:
        return model.model_validate(data)
    except ModelValidationError as exc:
        raise DecodeError(path, f"{exc.error_count()} invalid field(s)") from exc


def decode_restaurant(snapshot: DocumentSnapshot) -> Restaurant:
    return _decode(snapshot, Restaurant)


def decode_review(snapshot: DocumentSnapshot) -> Review:
    return _decode(snapshot, Review)
