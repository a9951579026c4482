"""Single source of truth for "now" and timezone resolution"""

import logging
from datetime import datetime, timezone
from typing import Optional

from dateutil import tz

from .config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_zone(name: Optional[str]):
    """Return a tzinfo for an IANA name, falling back to DEFAULT_TIMEZONE"""
    if name:
        zone = tz.gettz(name)
        if zone is not None:
            return zone
        logger.warning(f"⚠️ Unknown timezone '{name}', using {DEFAULT_TIMEZONE}")
    return tz.gettz(DEFAULT_TIMEZONE)


def is_valid_zone(name: str) -> bool:
    return bool(name) and tz.gettz(name) is not None


def now_in_zone(name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """
    Wall-clock time in the given zone as a naive datetime.

    Stored play times are naive local values, so comparisons happen between
    naive datetimes expressed in the same zone.
    """
    now = now or utc_now()
    return now.astimezone(resolve_zone(name)).replace(tzinfo=None)
