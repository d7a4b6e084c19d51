"""Input cleaning helpers for untrusted JSON payloads."""

from __future__ import annotations

from typing import Any


def clean_text(value: Any) -> str:
    """Trim a string field; anything that is not a string is treated as absent."""
    if not isinstance(value, str):
        return ""
    return value.strip()


def clean_optional(value: Any) -> str | None:
    """Like ``clean_text`` but maps empty-after-trim to ``None``."""
    return clean_text(value) or None


def clean_str_list(value: Any) -> list[str]:
    """Keep the non-empty string entries of a list, trimmed."""
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def positive_number(value: Any) -> float | None:
    """Return a finite positive number, rejecting bools and strings."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if value != value or value in (float("inf"), float("-inf")) or value <= 0:
        return None
    return value
