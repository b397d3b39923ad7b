# src/therasched/validator/validator.py
from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from therasched.errors import ValidationError
from therasched.schemas.models import Client, Config, Practitioner, Room, Schedule, Session
from therasched.solver_core.types import requirement_for_session

logger = logging.getLogger(__name__)


# ----------------------------
# AUXILIARY STRUCTURES / FUNCTIONS
# ----------------------------
@dataclass(frozen=True)
class Interval:
    """
    @brief
    One session's [start, end) minutes on its local date.
    """

    start: int
    end: int
    session_id: str


def _sorted_intervals(sessions: Iterable[Session]) -> list[Interval]:
    intervals = [Interval(s.start_minutes, s.end_minutes, s.id) for s in sessions]
    intervals.sort(key=lambda it: (it.start, it.end, it.session_id))
    return intervals


def _overlapping_pairs(sessions: Iterable[Session]) -> list[tuple[str, str]]:
    """Pairs of session ids whose intervals overlap; sessions share one date."""
    pairs: list[tuple[str, str]] = []
    intervals = _sorted_intervals(sessions)
    for i, cur in enumerate(intervals):
        for nxt in intervals[i + 1 :]:
            if nxt.start >= cur.end:
                break
            pairs.append((cur.session_id, nxt.session_id))
    return pairs


# ----------------------------
# VALIDATOR CLASS (instance core)
# ----------------------------
class Validator:
    """
    @brief
    Post-hoc schedule validator.

    @details
    Re-checks a finished schedule against the invariants every creation path
    is meant to uphold, and reports violations instead of raising:
        DataIntegrity       unique ids, known references, ordered times
        PractitionerOverlap no overlapping sessions per practitioner and date
        RoomOverlap         no overlapping sessions per assigned room and date
        ClientOverlap       no overlapping sessions per client (warning only)
        Certification       practitioner certifications cover the client's
        RoomCapability      room capabilities cover the requirement
        WeekBounds          every session falls inside the schedule's week
    """

    # ---------- Constructor ----------
    def __init__(
        self,
        schedule: Schedule,
        practitioners: Iterable[Practitioner],
        clients: Iterable[Client],
        rooms: Iterable[Room],
        cfg: Config,
    ) -> None:
        """
        @brief
        Initialize validation context.

        @params
            schedule : Schedule
                Schedule under validation.
            practitioners, clients, rooms : Iterable
                Entities of the schedule's organization.
            cfg : Config
                Runtime configuration (default session duration).
        """
        self.schedule = schedule
        self.cfg = cfg

        # (1) Lookups by id
        self.practitioners: dict[str, Practitioner] = {p.id: p for p in practitioners}
        self.clients: dict[str, Client] = {c.id: c for c in clients}
        self.rooms: dict[str, Room] = {r.id: r for r in rooms}

        # (2) Accumulators
        self.errors: list[dict[str, Any]] = []
        self.warnings: list[dict[str, Any]] = []
        self.checks: dict[str, bool] = {}
        self.metrics: dict[str, Any] = {}

    # ---------- Public lifecycle API ----------
    def run_all_checks(self) -> None:
        """
        @brief
        Execute the full validation sequence.

        @details
        Integrity runs first; when it fails the reference-dependent checks
        are skipped and marked as failed.
        """
        # (1) Integrity first
        self._check_data_integrity()

        # (2) Overlaps do not depend on references
        self._check_practitioner_overlaps()
        self._check_room_overlaps()
        self._check_client_overlaps()
        self._check_week_bounds()

        # (3) Reference-dependent checks
        if not self.checks.get("DataIntegrity", True):
            self.checks.update({"Certification": False, "RoomCapability": False})
        else:
            self._check_certifications()
            self._check_room_capabilities()

        self._compute_metrics()

    def build_report(self) -> dict[str, Any]:
        """
        @brief
        Assemble validation results into a serializable dictionary.

        @returns
            Report with timestamp, valid, errors, warnings, metrics and checks.
        """
        critical_checks = [
            "DataIntegrity",
            "PractitionerOverlap",
            "RoomOverlap",
            "Certification",
            "RoomCapability",
            "WeekBounds",
        ]
        critical_ok = all(self.checks.get(name, True) for name in critical_checks)
        is_valid = critical_ok and not self.errors
        if self.cfg.validation.fail_on_warnings and self.warnings:
            is_valid = False

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "schedule_id": self.schedule.id,
            "valid": bool(is_valid),
            "errors": self.errors,
            "warnings": self.warnings,
            "metrics": self.metrics,
            "checks": self.checks,
        }

    def save_report(
        self,
        report: dict[str, Any],
        out_dir: Path | None = None,
        filename: str = "validation_report.json",
    ) -> Path:
        """
        Writes the report atomically to disk.

        Args:
            report: Validation report dictionary.
            out_dir: Target directory (defaults to cfg.output_dir).
            filename: Target filename (default 'validation_report.json').

        Returns:
            Path to the written JSON file.
        """
        target_dir = Path(out_dir or self.cfg.output_dir or "data/output")
        target_dir.mkdir(parents=True, exist_ok=True)
        final_path = target_dir / filename
        tmp_path = final_path.with_suffix(".tmp")

        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(report, f, indent=2, ensure_ascii=False)
            tmp_path.replace(final_path)
        except OSError as e:
            raise ValidationError(
                f"Failed to write validation report: {e}",
                source="Validator.save_report",
                suggested_action="Check disk permissions and free space.",
            ) from e

        logger.info("Validation report saved: %s", final_path)
        return final_path

    # ---------- Checks ----------
    def _check_data_integrity(self) -> None:
        """
        @brief
        Unique session ids and references known to the organization.
        """
        ok = True
        seen: set[str] = set()

        # (1) Unique ids
        for s in self.schedule.sessions:
            if s.id in seen:
                ok = False
                self._add_error(
                    check="DataIntegrity",
                    message=f"Duplicate session id: {s.id}",
                    entities={"session_id": s.id},
                    suggested_action="Each session needs its own id",
                )
            seen.add(s.id)

        # (2) Known references
        for s in self.schedule.sessions:
            unknown = {}
            if s.practitioner_id not in self.practitioners:
                unknown["practitioner_id"] = s.practitioner_id
            if s.client_id not in self.clients:
                unknown["client_id"] = s.client_id
            if s.room_id is not None and s.room_id not in self.rooms:
                unknown["room_id"] = s.room_id
            if unknown:
                ok = False
                self._add_error(
                    check="DataIntegrity",
                    message=f"Session {s.id} references unknown entities",
                    entities={"session_id": s.id, **unknown},
                    suggested_action="Remove the session or restore the referenced entity",
                )

        self.checks["DataIntegrity"] = ok

    def _check_practitioner_overlaps(self) -> None:
        self.checks["PractitionerOverlap"] = self._check_overlaps(
            "PractitionerOverlap", "practitioner_id", lambda s: s.practitioner_id, as_error=True
        )

    def _check_room_overlaps(self) -> None:
        self.checks["RoomOverlap"] = self._check_overlaps(
            "RoomOverlap", "room_id", lambda s: s.room_id, as_error=True
        )

    def _check_client_overlaps(self) -> None:
        self.checks["ClientOverlap"] = self._check_overlaps(
            "ClientOverlap", "client_id", lambda s: s.client_id, as_error=False
        )

    def _check_overlaps(self, check: str, field: str, key, as_error: bool) -> bool:
        """
        @brief
        Group sessions by (key, date) and report overlapping pairs.

        @details
        Sessions whose key is None (no room) are not grouped.
        """
        ok = True
        grouped: dict[tuple[str, Any], list[Session]] = defaultdict(list)
        for s in self.schedule.sessions:
            k = key(s)
            if k is not None:
                grouped[(k, s.date)].append(s)

        for (k, day), sessions in sorted(grouped.items(), key=lambda kv: (kv[0][0], kv[0][1])):
            for first, second in _overlapping_pairs(sessions):
                ok = False
                report = self._add_error if as_error else self._add_warning
                report(
                    check=check,
                    message=f"Overlapping sessions for {field} {k} on {day.isoformat()}",
                    entities={field: k, "session_ids": [first, second]},
                    suggested_action="Move one of the sessions",
                )
        return ok

    def _check_certifications(self) -> None:
        ok = True
        for s in self.schedule.sessions:
            client = self.clients[s.client_id]
            practitioner = self.practitioners[s.practitioner_id]
            req = requirement_for_session(
                client, s.session_spec_id, self.cfg.default_session_duration
            )
            missing = sorted(req.required_certifications - set(practitioner.certifications))
            if missing:
                ok = False
                self._add_error(
                    check="Certification",
                    message=(
                        f"Practitioner {practitioner.id} lacks {', '.join(missing)} "
                        f"for session {s.id}"
                    ),
                    entities={"session_id": s.id, "missing": missing},
                    suggested_action="Assign a certified practitioner",
                )
        self.checks["Certification"] = ok

    def _check_room_capabilities(self) -> None:
        ok = True
        for s in self.schedule.sessions:
            client = self.clients[s.client_id]
            req = requirement_for_session(
                client, s.session_spec_id, self.cfg.default_session_duration
            )
            if not req.required_room_capabilities:
                continue
            room = self.rooms.get(s.room_id) if s.room_id else None
            have = set(room.capabilities) if room is not None else set()
            missing = sorted(req.required_room_capabilities - have)
            if missing:
                ok = False
                self._add_error(
                    check="RoomCapability",
                    message=f"Session {s.id} room lacks {', '.join(missing)}",
                    entities={"session_id": s.id, "room_id": s.room_id, "missing": missing},
                    suggested_action="Assign a room with the required capabilities",
                )
        self.checks["RoomCapability"] = ok

    def _check_week_bounds(self) -> None:
        ok = True
        start, end = self.schedule.week_start_date, self.schedule.week_end_date
        for s in self.schedule.sessions:
            if not start <= s.date <= end:
                ok = False
                self._add_error(
                    check="WeekBounds",
                    message=f"Session {s.id} on {s.date.isoformat()} is outside the week",
                    entities={"session_id": s.id, "date": s.date.isoformat()},
                    suggested_action="Move the session into the schedule's week",
                )
        self.checks["WeekBounds"] = ok

    def _compute_metrics(self) -> None:
        sessions = self.schedule.sessions
        minutes = sum(s.duration_minutes for s in sessions)
        self.metrics = {
            "num_sessions": len(sessions),
            "num_practitioners": len({s.practitioner_id for s in sessions}),
            "num_clients": len({s.client_id for s in sessions}),
            "roomless_sessions": sum(1 for s in sessions if s.room_id is None),
            "booked_hours": round(minutes / 60.0, 4),
        }

    # ---------- Report helpers ----------
    def _add_error(
        self,
        check: str,
        message: str,
        entities: dict[str, Any] | None = None,
        suggested_action: str | None = None,
    ) -> None:
        """
        @brief
        Append a structured error entry to the validation report.

        @details
        Errors are violations that make the schedule invalid.
        """
        payload: dict[str, Any] = {"check": check, "message": message}
        if entities:
            payload["entities"] = entities
        if suggested_action:
            payload["suggested_action"] = suggested_action
        self.errors.append(payload)

    def _add_warning(
        self,
        check: str,
        message: str,
        entities: dict[str, Any] | None = None,
        suggested_action: str | None = None,
    ) -> None:
        """
        @brief
        Append a structured warning entry to the validation report.

        @details
        Warnings flag issues worth a review that do not invalidate the
        schedule on their own.
        """
        payload: dict[str, Any] = {"check": check, "message": message}
        if entities:
            payload["entities"] = entities
        if suggested_action:
            payload["suggested_action"] = suggested_action
        self.warnings.append(payload)


# ----------------------------
# THIN FACADE (static script call)
# ----------------------------
def validate_schedule(
    schedule: Schedule,
    practitioners: Iterable[Practitioner],
    clients: Iterable[Client],
    rooms: Iterable[Room],
    cfg: Config,
    *,
    write_report: bool = True,
    out_dir: Path | None = None,
    filename: str = "validation_report.json",
) -> dict[str, Any]:
    """
    @brief
    High-level wrapper: run every check, build the report, optionally save it.

    @returns
        The report dictionary, whether or not it was written.
    """
    validator = Validator(schedule, practitioners, clients, rooms, cfg)
    validator.run_all_checks()
    report = validator.build_report()
    if write_report:
        validator.save_report(report, out_dir=out_dir, filename=filename)
    return report


__all__ = ["Validator", "validate_schedule"]
