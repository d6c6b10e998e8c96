"""Expiry policy: has a listing's pickup window elapsed?"""
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes (e.g. read back from SQLite) are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_expiry(value: Any) -> datetime | None:
    """datetime or ISO-8601 string -> aware UTC datetime; None for anything unparseable."""
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(raw))
        except ValueError:
            return None
    return None


def is_expired(expiry_date: Any, now: datetime | None = None) -> bool:
    """True iff expiry_date is before now. Absent or malformed dates count as not expired."""
    if expiry_date is None or expiry_date == "":
        return False
    parsed = parse_expiry(expiry_date)
    if parsed is None:
        logger.warning("Ignoring malformed expiry date %r", expiry_date)
        return False
    return parsed < as_utc(now or utcnow())
