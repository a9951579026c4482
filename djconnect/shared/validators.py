"""Shared validation utilities"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from dateutil import parser as date_parser

from ..clock import now_in_zone

TIME_OF_DAY_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
MAX_PRICE = Decimal("999999.99")


def parse_price(value) -> Decimal:
    """
    Parse a price typed by a DJ in the chat ("500", "450.50", "450,50").

    Raises:
        ValueError: If the value is not a non-negative amount with at most 2 decimals
    """
    text = str(value).strip().replace(",", ".").replace(" ", "")
    try:
        price = Decimal(text)
    except InvalidOperation:
        raise ValueError("Price must be a number")

    if not price.is_finite() or price < 0:
        raise ValueError("Price must be a non-negative number")
    if price > MAX_PRICE:
        raise ValueError("Price is too large")
    if price != price.quantize(Decimal("0.01")):
        raise ValueError("Price can have at most 2 decimal places")
    return price.quantize(Decimal("0.01"))


def parse_time_slot(value: str, timezone_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """
    Turn user input into a naive local play time.

    "HH:MM" is combined with today's date in the order's timezone; anything else
    must be an ISO-8601 local datetime. An offset, if given, is dropped: the wall
    clock value is what gets stored.

    Raises:
        ValueError: If the input is neither form
    """
    text = (value or "").strip()
    if not text:
        raise ValueError("Time slot is required")

    match = TIME_OF_DAY_RE.match(text)
    if match:
        today = now_in_zone(timezone_name, now)
        return today.replace(
            hour=int(match.group(1)), minute=int(match.group(2)), second=0, microsecond=0
        )

    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, OverflowError):
        raise ValueError("Time slot must be HH:MM or an ISO-8601 date and time")
    return parsed.replace(tzinfo=None, microsecond=0)
