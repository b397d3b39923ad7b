# src/therasched/metrics/metrics.py
from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

import pandas as pd

from therasched.errors import DataError, ValidationError
from therasched.schemas.models import Practitioner, Schedule
from therasched.solver_core.types import UnmetRequirement

_COLUMNS = ["session_id", "date", "start", "end", "practitioner_id", "client_id", "room_id"]


def collect_metrics(
    schedule: Schedule,
    practitioners: Iterable[Practitioner] = (),
    warnings: Iterable[UnmetRequirement | str] | None = None,
    capacity_minutes: Mapping[str, int] | None = None,
) -> dict[str, Any]:
    """
    @brief
    Builds a JSON-serializable summary of one weekly schedule.

    @details
    Counts sessions, clients, practitioners and rooms, sums booked hours,
    and reports per-practitioner load. When `capacity_minutes` (available
    minutes per practitioner for the week) is given, utilization is
    booked / available; otherwise it is 0.0.
    Raises DataError or ValidationError on inconsistent sessions.
    """
    names = {p.id: p.name for p in practitioners}
    capacity = dict(capacity_minutes or {})
    unmet = list(warnings or [])

    # (1) Schedule as a DataFrame
    df = _schedule_dataframe(schedule)

    # (2) Aggregate counts
    if df.empty:
        per_practitioner: list[dict[str, Any]] = []
        sessions_per_day: dict[str, int] = {}
        booked_minutes = 0.0
    else:
        per_practitioner = _per_practitioner(df, names, capacity)
        sessions_per_day = {
            str(day): int(count) for day, count in df.groupby("date").size().sort_index().items()
        }
        booked_minutes = float(df["minutes"].sum())

    # (3) Utilization against available minutes
    total_capacity = float(sum(capacity.values()))
    utilization = booked_minutes / total_capacity if total_capacity > 0 else 0.0
    if not math.isfinite(utilization):
        raise DataError(
            "Utilization computed as non-finite value.",
            source="metrics.collect_metrics",
            suggested_action="Inspect availability capacity and session times.",
        )

    metrics = {
        "timestamp": _utc_now_iso(),
        "schedule_id": schedule.id,
        "organization_id": schedule.organization_id,
        "week_start": schedule.week_start_date.isoformat(),
        "status": str(schedule.status),
        "version": int(schedule.version),
        "num_sessions": int(len(df)),
        "num_clients": int(df["client_id"].nunique()) if not df.empty else 0,
        "num_practitioners": int(df["practitioner_id"].nunique()) if not df.empty else 0,
        "num_rooms_used": int(df["room_id"].dropna().nunique()) if not df.empty else 0,
        "roomless_sessions": int(df["room_id"].isna().sum()) if not df.empty else 0,
        "booked_hours": _f(booked_minutes / 60.0),
        "utilization": _f(utilization),
        "unmet_requirements": len(unmet),
        "sessions_per_day": sessions_per_day,
        "per_practitioner": per_practitioner,
    }

    # (4) Numerical integrity and serializability
    _assert_no_nans(metrics)
    json.dumps(metrics, ensure_ascii=False)
    return metrics


# ----------------- internal -----------------


def _schedule_dataframe(schedule: Schedule) -> pd.DataFrame:
    """
    @brief
    One row per session with minute-of-day bounds.

    @details
    Raises DataError on duplicate session ids and ValidationError on
    non-positive durations.
    """
    rows = [
        {
            "session_id": s.id,
            "date": s.date.isoformat(),
            "start": s.start_minutes,
            "end": s.end_minutes,
            "practitioner_id": s.practitioner_id,
            "client_id": s.client_id,
            "room_id": s.room_id,
        }
        for s in schedule.sessions
    ]
    df = pd.DataFrame(rows, columns=_COLUMNS)
    if df.empty:
        df["minutes"] = pd.Series(dtype="float64")
        return df

    # (1) Unique ids
    dupes = df.loc[df["session_id"].duplicated(), "session_id"].tolist()
    if dupes:
        raise DataError(
            f"Duplicate session ids: {dupes[:5]}",
            source="metrics.collect_metrics",
            suggested_action="Each session in a schedule needs its own id.",
        )

    # (2) Positive durations
    df["minutes"] = (df["end"] - df["start"]).astype("float64")
    bad = df.loc[df["minutes"] <= 0, "session_id"].tolist()
    if bad:
        raise ValidationError(
            f"Non-positive durations for sessions: {bad}",
            source="metrics.collect_metrics",
            suggested_action="Fix start_time/end_time values.",
        )
    return df


def _per_practitioner(
    df: pd.DataFrame, names: Mapping[str, str], capacity: Mapping[str, int]
) -> list[dict[str, Any]]:
    grouped = (
        df.groupby("practitioner_id", as_index=False)
        .agg(
            sessions=("session_id", "count"),
            minutes=("minutes", "sum"),
            days=("date", "nunique"),
        )
        .sort_values("practitioner_id")
    )
    out: list[dict[str, Any]] = []
    for row in grouped.itertuples(index=False):
        available = float(capacity.get(row.practitioner_id, 0))
        out.append(
            {
                "practitioner_id": str(row.practitioner_id),
                "name": names.get(row.practitioner_id, ""),
                "sessions": int(row.sessions),
                "days_worked": int(row.days),
                "booked_hours": _f(float(row.minutes) / 60.0),
                "utilization": _f(float(row.minutes) / available) if available > 0 else 0.0,
            }
        )
    return out


def _assert_no_nans(obj: Any) -> None:
    """
    @brief
    Validates that object contains no NaN or infinite values.

    @details
    Recursively traverses dicts, lists, and tuples; None is rejected too.
    """
    if obj is None:
        raise DataError("None encountered in metrics", source="metrics.collect_metrics")
    if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
        raise DataError("NaN/Inf encountered in metrics", source="metrics.collect_metrics")
    if isinstance(obj, dict):
        for v in obj.values():
            _assert_no_nans(v)
    elif isinstance(obj, (list | tuple)):
        for v in obj:
            _assert_no_nans(v)


def _utc_now_iso() -> str:
    """Current UTC time, ISO-8601 with a Z suffix and no microseconds."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _f(x: float) -> float:
    """Rounds to 4 decimals and flushes tiny values to zero."""
    return 0.0 if abs(x) < 1e-15 else round(float(x), 4)


__all__ = ["collect_metrics"]
