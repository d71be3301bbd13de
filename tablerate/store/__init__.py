"""
Document store layer.

Responsibilities:
- Model collections, document references and immutable filtered queries.
- Run atomic read-modify-write transactions with retry on write conflicts.
- Deliver live query results to listeners until they detach.
- Provide an in-process store and a Cloud Firestore backend.
"""
from __future__ import annotations

from .base import (
    SERVER_TIMESTAMP,
    CollectionReference,
    Direction,
    DocumentReference,
    DocumentSnapshot,
    DocumentStore,
    Query,
    Timestamp,
    Transaction,
)
from .config import DEFAULT_STORE_CONFIG, StoreConfig
from .memory import InMemoryDocumentStore


def create_store(config: StoreConfig = DEFAULT_STORE_CONFIG) -> DocumentStore:
    """Build the store named by ``config.backend``."""
    if config.backend == "memory":
        return InMemoryDocumentStore(
            max_attempts=config.max_attempts, retry_delay=config.retry_delay,
        )
    if config.backend == "firestore":
        from .firestore import FirestoreDocumentStore

        return FirestoreDocumentStore.from_config(config)
    raise ValueError(f"Unknown store backend: {config.backend!r}")


__all__ = [
    "SERVER_TIMESTAMP",
    "CollectionReference",
    "Direction",
    "DocumentReference",
    "DocumentSnapshot",
    "DocumentStore",
    "InMemoryDocumentStore",
    "Query",
    "StoreConfig",
    "Timestamp",
    "Transaction",
    "create_store",
]
