"""
Domain validators for auction scheduling (pure).

Rules implemented here:
- Start/end times use 24-hour HH:MM; a single-digit hour is accepted ("9:30").
- An auction date must be strictly in the future when the auction is created.
- A registration deadline, when present, must not fall after the auction date.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from domain.errors import ValidationError

TIME_OF_DAY_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def is_valid_time_of_day(value: object) -> bool:
    return isinstance(value, str) and TIME_OF_DAY_PATTERN.match(value) is not None


def require_time_of_day(name: str, value: object) -> str:
    if not is_valid_time_of_day(value):
        raise ValidationError(f"{name} must be in HH:MM format")
    return value  # type: ignore[return-value]


def require_future_date(auction_date: datetime, now: datetime) -> None:
    if auction_date <= now:
        raise ValidationError("Auction date must be in the future")


def require_deadline_not_after(deadline: Optional[datetime], auction_date: datetime) -> None:
    if deadline is not None and deadline > auction_date:
        raise ValidationError("Registration deadline must be before auction date")


__all__ = [
    "TIME_OF_DAY_PATTERN",
    "is_valid_time_of_day",
    "require_time_of_day",
    "require_future_date",
    "require_deadline_not_after",
]
