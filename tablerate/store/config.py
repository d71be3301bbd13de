from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class StoreConfig:
    backend: str = os.getenv("STORE_BACKEND", "memory")
    firestore_project: str = os.getenv("FIRESTORE_PROJECT", "")
    firestore_database: str = os.getenv("FIRESTORE_DATABASE", "")
    max_attempts: int = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "5"))
    retry_delay: float = float(os.getenv("TRANSACTION_RETRY_DELAY", "0.01"))


DEFAULT_STORE_CONFIG = StoreConfig()
