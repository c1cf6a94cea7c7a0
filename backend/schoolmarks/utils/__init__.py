"""Utility functions for the SchoolMarks backend."""

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[Union[datetime, str]]) -> Optional[datetime]:
    """
    Normalise a stored datetime to aware UTC.

    Mongo hands back naive UTC datetimes; older documents may hold ISO strings.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def combine_publication_datetime(
    publication_date: Union[date, str],
    publication_time: Union[time, str],
) -> datetime:
    """Build the publication moment from separate date and ``HH:MM`` time inputs."""
    if isinstance(publication_date, str):
        publication_date = date.fromisoformat(publication_date)
    if isinstance(publication_time, str):
        publication_time = time.fromisoformat(publication_time)
    return datetime.combine(publication_date, publication_time, tzinfo=timezone.utc)


def new_id(prefix: str) -> str:
    """Business id in the ``<prefix>_<hex>`` form used across collections."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def format_score(value: Optional[float]) -> Optional[float]:
    """Round a score for display with 2 decimals."""
    if value is None:
        return None
    return round(float(value), 2)
