"""JSON payloads of fixed shape used by benchmark handlers."""

from __future__ import annotations

from typing import Any


def user_payload(count: int) -> dict[str, Any]:
    """Build an object holding ``count`` user records under ``"users"``."""
    if count < 0:
        raise ValueError("count must not be negative")
    return {
        "users": [
            {
                "active": i % 2 == 0,
                "email": f"user{i}@example.com",
                "id": i,
                "name": f"User {i}",
                "score": i * 17 + 42,
                "tags": ["bench", "test", "user"],
            }
            for i in range(count)
        ]
    }


def json_1kb() -> dict[str, Any]:
    """About 1 KB of JSON: ten user records."""
    return user_payload(10)


def json_10kb() -> dict[str, Any]:
    """About 10 KB of JSON: one hundred user records."""
    return user_payload(100)