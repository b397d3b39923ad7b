# src/therasched/temporal/holidays.py
"""
@brief
US federal holiday calendar.

@details
Backed by the `holidays` package. Only the actual calendar dates count;
weekend-observed shifts are not closures for a therapy practice.
"""

from __future__ import annotations

from datetime import date
from functools import lru_cache

import holidays


@lru_cache(maxsize=16)
def federal_holidays(year: int) -> dict[date, str]:
    """US federal holidays for `year`, keyed by their calendar date."""
    return dict(holidays.US(years=year, observed=False))


def federal_holiday_name(d: date) -> str | None:
    return federal_holidays(d.year).get(d)


def is_federal_holiday(d: date) -> bool:
    return federal_holiday_name(d) is not None


__all__ = ["federal_holidays", "federal_holiday_name", "is_federal_holiday"]
