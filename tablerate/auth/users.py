from __future__ import annotations

import uuid
from typing import Any

import bcrypt

# Stable opaque user ids: uuid5 of the username in this namespace
_UID_NAMESPACE = uuid.UUID("6f1c1d1e-3b7a-4c55-9a3e-2f4d8b7c9e10")

_users: dict[str, dict[str, Any]] = {}


def _hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def _verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def register_user(username: str, password: str, role: str = "user") -> dict[str, Any]:
    """Add a user to the in-memory directory and return its public record."""
    _users[username] = {
        "uid": uuid.uuid5(_UID_NAMESPACE, username).hex,
        "password_hash": _hash_password(password),
        "role": role,
    }
    return _public(username)


def _public(username: str) -> dict[str, Any]:
    record = _users[username]
    return {"uid": record["uid"], "username": username, "role": record["role"]}


def authenticate(username: str, password: str) -> dict[str, Any] | None:
    """Verify credentials. Returns ``{uid, username, role}`` or ``None``."""
    record = _users.get(username)
    if record and _verify_password(password, record["password_hash"]):
        return _public(username)
    return None


def _seed_users() -> None:
    """Pre-seed demo accounts on import."""
    register_user("diner", "diner123")
    register_user("critic", "critic123")
    register_user("admin", "admin123", role="admin")


_seed_users()
