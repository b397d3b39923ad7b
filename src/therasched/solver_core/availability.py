# src/therasched/solver_core/availability.py
"""
@brief
Effective availability windows of practitioners.

@details
For a practitioner and a local date the effective windows are:
    (1) closed entirely on organization holidays and on dates excluded by
        availability rules (including federal holidays when a rule asks);
    (2) the default weekday hours, replaced by approved custom-hours
        overrides and reduced by approved time-off overrides;
    (3) intersected with organization business hours when configured;
    (4) intersected with rule time windows and weekday restrictions.
Windows are half-open minute-of-day intervals [start, end).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from therasched.schemas.models import AvailabilityOverride, Holiday, Organization, Practitioner
from therasched.schemas.rules import AvailabilityPayload
from therasched.store.rule_store import RuleSet
from therasched.temporal.holidays import federal_holiday_name
from therasched.temporal.timezone import MINUTES_PER_DAY, Weekday, minutes_to_time

logger = logging.getLogger(__name__)

Window = tuple[int, int]


# ------------------------------
# Interval helpers
# ------------------------------
def merge_windows(windows: Iterable[Window]) -> list[Window]:
    """Sort and merge overlapping or touching windows."""
    merged: list[Window] = []
    for start, end in sorted(w for w in windows if w[0] < w[1]):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract_window(windows: Iterable[Window], blocked: Window) -> list[Window]:
    out: list[Window] = []
    b_start, b_end = blocked
    for start, end in windows:
        if b_end <= start or b_start >= end:
            out.append((start, end))
            continue
        if start < b_start:
            out.append((start, b_start))
        if b_end < end:
            out.append((b_end, end))
    return out


def intersect_windows(windows: Iterable[Window], bound: Window) -> list[Window]:
    lo, hi = bound
    return [(max(s, lo), min(e, hi)) for s, e in windows if max(s, lo) < min(e, hi)]


def format_windows(windows: Iterable[Window]) -> str:
    parts = [
        f"{minutes_to_time(s)}-{'24:00' if e == MINUTES_PER_DAY else minutes_to_time(e)}"
        for s, e in windows
    ]
    return ", ".join(parts) if parts else "none"


class AvailabilityCalendar:
    """
    @brief
    Per-organization availability oracle for one working set.

    @details
    Built from the organization, its approved overrides, holidays and the
    availability rules of its RuleSet. Results are memoized per
    (practitioner, date) since the engine asks repeatedly.
    """

    def __init__(
        self,
        organization: Organization,
        overrides: Iterable[AvailabilityOverride] = (),
        holidays: Iterable[Holiday] = (),
        rules: RuleSet | None = None,
    ) -> None:
        self.organization = organization
        rules = rules or RuleSet.empty()

        # (1) Approved overrides indexed by practitioner and date
        self._overrides: dict[tuple[str, date], list[AvailabilityOverride]] = defaultdict(list)
        for o in overrides:
            if o.is_approved:
                self._overrides[(o.practitioner_id, o.date)].append(o)

        # (2) Closed dates from organization holidays and exclude_dates rules
        self._closed: dict[date, str] = {h.date: h.name or "holiday" for h in holidays}
        self._exclude_federal = False
        self._windows: list[AvailabilityPayload] = []
        self._day_restrictions: list[AvailabilityPayload] = []
        for rule in rules.availability:
            payload = rule.payload
            if not isinstance(payload, AvailabilityPayload):
                continue
            if payload.kind == "exclude_dates":
                self._exclude_federal = self._exclude_federal or payload.exclude_federal_holidays
                for d in payload.dates:
                    self._closed.setdefault(d, f"excluded by rule {rule.id}")
            elif payload.kind == "time_window":
                self._windows.append(payload)
            elif payload.kind == "day_restriction":
                self._day_restrictions.append(payload)

        self._memo: dict[tuple[str, date], list[Window]] = {}

    def closure_reason(self, d: date) -> str | None:
        """Name of the closure on `d`, or None when the organization is open."""
        if d in self._closed:
            return self._closed[d]
        if self._exclude_federal:
            name = federal_holiday_name(d)
            if name is not None:
                return name
        if self.organization.business_hours is not None:
            weekday = Weekday.from_date(d)
            if self.organization.business_hours.get(weekday.value) is None:
                return f"organization closed on {weekday.value}"
        return None

    def windows_for(self, practitioner: Practitioner, d: date) -> list[Window]:
        key = (practitioner.id, d)
        if key not in self._memo:
            self._memo[key] = self._compute(practitioner, d)
        return self._memo[key]

    def covers(self, practitioner: Practitioner, d: date, start: int, end: int) -> bool:
        return any(ws <= start and end <= we for ws, we in self.windows_for(practitioner, d))

    def explain(self, practitioner: Practitioner, d: date, start: int, end: int) -> str:
        """Human-readable reason why [start, end) is not available."""
        closure = self.closure_reason(d)
        span = f"{minutes_to_time(start)}-{minutes_to_time(end)}"
        if closure is not None:
            return f"{d.isoformat()} is closed ({closure})"
        windows = self.windows_for(practitioner, d)
        if not windows:
            return f"practitioner {practitioner.id} is not available on {d.isoformat()}"
        return (
            f"{span} on {d.isoformat()} is outside practitioner {practitioner.id} "
            f"availability ({format_windows(windows)})"
        )

    def capacity_minutes(self, practitioner: Practitioner, dates: Iterable[date]) -> int:
        return sum(e - s for d in dates for s, e in self.windows_for(practitioner, d))

    # ------------------------------
    # Internal
    # ------------------------------
    def _compute(self, practitioner: Practitioner, d: date) -> list[Window]:
        # (1) Closures win over everything
        if self.closure_reason(d) is not None:
            return []

        weekday = Weekday.from_date(d)

        # (2) Default hours for the weekday
        hours = practitioner.hours_on(weekday)
        windows: list[Window] = [] if hours is None else [(hours.start_minutes, hours.end_minutes)]

        # (3) Approved overrides: custom hours replace, time off subtracts
        overrides = self._overrides.get((practitioner.id, d), [])
        custom = [o.window for o in overrides if o.available and o.window is not None]
        if custom:
            windows = merge_windows((w.start_minutes, w.end_minutes) for w in custom)
        for o in overrides:
            if o.available:
                continue
            if o.window is None:
                logger.debug("Practitioner %s off on %s", practitioner.id, d)
                return []
            windows = subtract_window(windows, (o.window.start_minutes, o.window.end_minutes))

        # (4) Organization business hours
        if self.organization.business_hours is not None:
            bh = self.organization.business_hours.get(weekday.value)
            if bh is None:
                return []
            windows = intersect_windows(windows, (bh.start_minutes, bh.end_minutes))

        # (5) Rule-defined windows and weekday restrictions
        for payload in self._windows:
            windows = intersect_windows(windows, payload.window_minutes())
        for payload in self._day_restrictions:
            if payload.day_of_week != weekday.value:
                continue
            if payload.start_time is None and payload.end_time is None:
                return []
            windows = intersect_windows(windows, payload.window_minutes())

        return merge_windows(windows)


__all__ = [
    "AvailabilityCalendar",
    "Window",
    "merge_windows",
    "subtract_window",
    "intersect_windows",
    "format_windows",
]
