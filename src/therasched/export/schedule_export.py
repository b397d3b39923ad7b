# src/therasched/export/schedule_export.py
from __future__ import annotations

import csv
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from therasched.errors import DataError
from therasched.schemas.models import Session

COLUMNS = (
    "session_id",
    "date",
    "start_time",
    "end_time",
    "practitioner_id",
    "client_id",
    "room_id",
)


def _validate_no_duplicate_session_ids(sessions: list[Session]) -> None:
    """
    @brief
    Ensures that each session id appears once in the export.

    @raises
        DataError if a duplicate id is found.
    """
    seen: set[str] = set()
    for s in sessions:
        if s.id in seen:
            raise DataError(
                f"Duplicate session_id detected: {s.id}",
                source="export.write_schedule_csv",
                suggested_action="Ensure unique session ids in the exported schedule.",
            )
        seen.add(s.id)


def _row(session: Session) -> dict[str, str]:
    return {
        "session_id": session.id,
        "date": session.date.isoformat(),
        "start_time": session.start_time,
        "end_time": session.end_time,
        "practitioner_id": session.practitioner_id,
        "client_id": session.client_id,
        "room_id": session.room_id or "",
    }


def write_schedule_csv(sessions: Iterable[Session], out_path: Path) -> Path:
    """
    @brief
    Exports a schedule's sessions to CSV.

    @details
    Columns: session_id,date,start_time,end_time,practitioner_id,client_id,room_id.
    Dates and times are local wall-clock values exactly as stored; a
    session without a room has an empty room_id. Rows are ordered by date,
    start time and practitioner. The file is UTF-8 and written atomically.

    @params
        sessions : Iterable[Session]
            Sessions to export.
        out_path : Path
            Destination CSV path.

    @returns
        Path to the written file.

    @raises
        DataError for non-Session items or duplicate ids.
    """
    # (1) Materialize and type-check
    items = list(sessions)
    for s in items:
        if not isinstance(s, Session):
            raise DataError(
                f"Cannot export {type(s).__name__}; expected Session",
                source="export.write_schedule_csv",
                suggested_action="Pass schedule.sessions.",
            )
    _validate_no_duplicate_session_ids(items)

    # (2) Stable order
    items.sort(key=lambda s: (s.date, s.start_minutes, s.practitioner_id, s.id))

    # (3) Atomic write via temporary file replacement
    out_path = Path(out_path)
    out_dir = out_path.parent
    out_dir.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(out_dir), suffix=".tmp", text=True)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=COLUMNS)
            writer.writeheader()
            for s in items:
                writer.writerow(_row(s))
        os.replace(tmp_name, out_path)
    except OSError:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise

    return out_path


__all__ = ["write_schedule_csv", "COLUMNS"]
