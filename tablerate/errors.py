from __future__ import annotations


class TableRateError(Exception):
    """Base class for errors raised by the restaurant core."""


class ValidationError(TableRateError):
    """A review submission is missing required fields or carries a bad rating."""


class NotFoundError(TableRateError):
    """A referenced restaurant (or other document) does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Document {path!r} does not exist")


class TransactionError(TableRateError):
    """The store could not commit a transaction within its attempt limit."""


class DecodeError(TableRateError):
    """A stored document cannot be mapped to a Restaurant or Review record."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot decode {path!r}: {reason}")
