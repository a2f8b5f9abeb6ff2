"""Identifier and timestamp helpers shared by the models."""

from __future__ import annotations

from datetime import UTC, datetime

from ulid import ULID


def generate_id() -> str:
    """Generate a unique, time-sortable identifier (ULID)."""
    return str(ULID())


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp as stored by the sqlite backends."""
    if value is None or isinstance(value, datetime):
        return value
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat(timespec="microseconds") if value is not None else None
