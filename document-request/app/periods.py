"""Reporting period labels ("2024-2025") and the clock they are computed from."""

from __future__ import annotations

import re
from datetime import date
from typing import Protocol

PERIOD_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{4}$")
PERIOD_FORMAT_MESSAGE = "Period must be in format YYYY-YYYY (e.g., 2024-2025)"


class Clock(Protocol):
    def today(self) -> date: ...


class SystemClock:
    def today(self) -> date:
        return date.today()


class FixedClock:
    """Clock pinned to one date, for tests and previews."""

    def __init__(self, today: date) -> None:
        self._today = today

    def today(self) -> date:
        return self._today


def default_period(clock: Clock, style: str = "upcoming") -> str:
    """Two-year period label for the clock's current year.

    ``upcoming`` gives ``{Y}-{Y+1}``; ``current`` gives ``{Y-1}-{Y}``.
    """
    year = clock.today().year
    if style == "current":
        return f"{year - 1}-{year}"
    return f"{year}-{year + 1}"


def is_valid_period(value: str | None, strict: bool = True) -> bool:
    if not value or not value.strip():
        return False
    if strict:
        return bool(PERIOD_PATTERN.match(value))
    return True
