# src/therasched/solver_core/types.py
"""
@brief
Value types shared by the evaluator, engine, regenerator and applier.

@details
All types are immutable dataclasses. Times are minute-of-day integers;
conversion to "HH:MM" strings happens only when a Session is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from therasched.schemas.models import Client, Schedule, Session
from therasched.temporal.timezone import minutes_to_time


# ------------------------------
# Requirements
# ------------------------------
@dataclass(frozen=True, slots=True)
class SessionRequirement:
    """
    One recurring need of a client, resolved from a SessionSpec or from the
    client's own fields when it has no active specs (`spec_id` is None).
    """

    client_id: str
    spec_id: str | None
    name: str
    sessions_per_week: int
    duration_minutes: int
    required_certifications: frozenset[str]
    required_room_capabilities: frozenset[str]
    preferred_room_id: str | None = None
    preferred_times: frozenset[str] = frozenset()


def _implicit_requirement(client: Client, default_duration: int) -> SessionRequirement:
    return SessionRequirement(
        client_id=client.id,
        spec_id=None,
        name=client.name or client.id,
        sessions_per_week=client.sessions_per_week,
        duration_minutes=client.duration_minutes or default_duration,
        required_certifications=frozenset(client.required_certifications),
        required_room_capabilities=frozenset(client.required_room_capabilities),
        preferred_room_id=client.preferred_room_id,
        preferred_times=frozenset(client.preferred_times),
    )


def requirements_for(client: Client, default_duration: int) -> list[SessionRequirement]:
    """
    @brief
    Weekly requirements of a client, ordered by spec id.

    @details
    Active specs are used when present. Spec-level certification and room
    capability requirements are unioned with the client's; preferred room
    and preferred times fall back to the client's when the session spec leaves
    them empty. Without active specs the client's own fields form one
    implicit requirement (omitted when its weekly count is zero).
    """
    specs = sorted((s for s in client.session_specs if s.is_active), key=lambda s: s.id)
    if not specs:
        implicit = _implicit_requirement(client, default_duration)
        return [implicit] if implicit.sessions_per_week > 0 else []

    out: list[SessionRequirement] = []
    for spec in specs:
        out.append(
            SessionRequirement(
                client_id=client.id,
                spec_id=spec.id,
                name=spec.name or spec.id,
                sessions_per_week=spec.sessions_per_week,
                duration_minutes=spec.duration_minutes
                or client.duration_minutes
                or default_duration,
                required_certifications=frozenset(client.required_certifications)
                | frozenset(spec.required_certifications),
                required_room_capabilities=frozenset(client.required_room_capabilities)
                | frozenset(spec.required_room_capabilities),
                preferred_room_id=spec.preferred_room_id or client.preferred_room_id,
                preferred_times=frozenset(spec.preferred_times or client.preferred_times),
            )
        )
    return out


def requirement_for_session(
    client: Client, spec_id: str | None, default_duration: int
) -> SessionRequirement:
    """Requirement governing an existing session; unknown specs fall back to the client's own."""
    for req in requirements_for(client, default_duration):
        if req.spec_id == spec_id:
            return req
    return _implicit_requirement(client, default_duration)


# ------------------------------
# Candidates and verdicts
# ------------------------------
@dataclass(frozen=True, slots=True)
class Candidate:
    """A (client, practitioner, room, date, [start, end)) tuple under evaluation."""

    client_id: str
    practitioner_id: str
    room_id: str | None
    date: date
    start: int
    end: int
    spec_id: str | None = None

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return "24:00" if self.end == 24 * 60 else minutes_to_time(self.end)

    def to_session(
        self, session_id: str, schedule_id: str | None, notes: str | None = None
    ) -> Session:
        return Session(
            id=session_id,
            schedule_id=schedule_id,
            practitioner_id=self.practitioner_id,
            client_id=self.client_id,
            room_id=self.room_id,
            session_spec_id=self.spec_id,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            notes=notes,
        )

    @classmethod
    def from_session(cls, session: Session) -> Candidate:
        return cls(
            client_id=session.client_id,
            practitioner_id=session.practitioner_id,
            room_id=session.room_id,
            date=session.date,
            start=session.start_minutes,
            end=session.end_minutes,
            spec_id=session.session_spec_id,
        )

    def describe(self) -> str:
        room = self.room_id or "no room"
        return (
            f"{self.practitioner_id}/{self.client_id}/{room} "
            f"{self.date.isoformat()} {self.start_time}-{self.end_time}"
        )


@dataclass(frozen=True, slots=True)
class Rejection:
    """
    One failed check. `category` is one of: status, certification,
    room_capability, availability, practitioner_conflict, room_conflict,
    client_conflict, session_rule, rule.
    """

    category: str
    message: str


@dataclass(frozen=True, slots=True)
class Verdict:
    ok: bool
    rejections: tuple[Rejection, ...] = ()

    @property
    def reasons(self) -> list[str]:
        return [r.message for r in self.rejections]

    @classmethod
    def accept(cls) -> Verdict:
        return cls(ok=True)


# ------------------------------
# Results
# ------------------------------
@dataclass(frozen=True, slots=True)
class UnmetRequirement:
    """One required occurrence that could not be placed."""

    client_id: str
    spec_id: str | None
    occurrence: int
    required: int
    requirement: str  # certification | room_capability | availability
    reasons: tuple[str, ...]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "spec_id": self.spec_id,
            "occurrence": self.occurrence,
            "required": self.required,
            "requirement": self.requirement,
            "reasons": list(self.reasons),
            "message": self.message,
        }


@dataclass(slots=True)
class GenerationStats:
    sessions_requested: int = 0
    sessions_created: int = 0
    clients_scheduled: int = 0
    practitioners_used: int = 0
    unmet_occurrences: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "sessions_requested": self.sessions_requested,
            "sessions_created": self.sessions_created,
            "clients_scheduled": self.clients_scheduled,
            "practitioners_used": self.practitioners_used,
            "unmet_occurrences": self.unmet_occurrences,
        }


@dataclass(slots=True)
class EngineResult:
    sessions: list[Session] = field(default_factory=list)
    stats: GenerationStats = field(default_factory=GenerationStats)
    warnings: list[UnmetRequirement] = field(default_factory=list)


@dataclass(slots=True)
class GenerationOutcome:
    schedule: Schedule
    stats: GenerationStats
    warnings: list[UnmetRequirement] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class KeptSession:
    original: Session
    session: Session


@dataclass(frozen=True, slots=True)
class RegeneratedSession:
    original: Session
    session: Session
    reasons: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RemovedSession:
    original: Session
    reasons: tuple[str, ...]


@dataclass(slots=True)
class RegenerationResult:
    sessions: list[Session] = field(default_factory=list)
    kept: list[KeptSession] = field(default_factory=list)
    regenerated: list[RegeneratedSession] = field(default_factory=list)
    removed: list[RemovedSession] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DraftCopyOutcome:
    schedule: Schedule
    kept: list[KeptSession] = field(default_factory=list)
    regenerated: list[RegeneratedSession] = field(default_factory=list)
    removed: list[RemovedSession] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ModificationResult:
    """
    Outcome of one applied edit. `before` is None for create, `after` is
    None for cancel. `schedule` is the next state (committed by the service).
    """

    action: str
    before: Session | None
    after: Session | None
    message: str
    schedule: Schedule
    warnings: list[str] = field(default_factory=list)


__all__ = [
    "SessionRequirement",
    "requirements_for",
    "requirement_for_session",
    "Candidate",
    "Rejection",
    "Verdict",
    "UnmetRequirement",
    "GenerationStats",
    "EngineResult",
    "GenerationOutcome",
    "KeptSession",
    "RegeneratedSession",
    "RemovedSession",
    "RegenerationResult",
    "DraftCopyOutcome",
    "ModificationResult",
]
