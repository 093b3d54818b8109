"""Time helpers shared by rules, scheduler and repository.

All internal timestamps are naive UTC datetimes. ISO 8601 strings are only
used at the edges (request bodies and JSON responses).
"""
from datetime import UTC, datetime
from typing import Callable, Optional, Union

Clock = Callable[[], datetime]

Timestamp = Union[str, datetime, None]


def now_utc() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _normalize(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """Parse an ISO 8601 string (or datetime) into naive UTC.

    Returns None for a missing value. Raises ValueError when the value is
    present but cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        value = datetime.fromisoformat(raw)
    elif not isinstance(value, datetime):
        raise ValueError(f"Unsupported timestamp type: {type(value).__name__}")
    try:
        return _normalize(value)
    except OverflowError:
        # the offset pushes the instant outside the representable range
        raise ValueError(f"Timestamp out of range: {value.isoformat()}") from None


def try_parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """Like parse_timestamp, but unparsable input yields None instead of raising."""
    try:
        return parse_timestamp(value)
    except (ValueError, OverflowError):
        return None


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return _normalize(value).isoformat(timespec="milliseconds") + "Z"
