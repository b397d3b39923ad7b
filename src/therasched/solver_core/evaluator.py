# src/therasched/solver_core/evaluator.py
"""
@brief
Constraint evaluation for candidate session placements.

@details
`ConstraintEvaluator.feasible` checks, unconditionally:
    (1) no overlap for the same practitioner or room (and client) in the plan;
    (2) the slot lies inside the practitioner's effective availability;
    (3) practitioner certifications cover the requirement's certifications;
    (4) the room covers required capabilities;
    (5) client and practitioner are active;
then the rule-derived filters: session-shape limits, required gender
pairing, avoided pairings and certification rules.

`ConstraintEvaluator.score` ranks feasible candidates by entity preferences
and priority-weighted soft rules. Ties are broken by `rank_key`.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta

from therasched.schemas.models import Client, Config, Organization, Practitioner, Room, Session
from therasched.schemas.rules import (
    AvailabilityPayload,
    CertificationPayload,
    GenderPairingPayload,
    SpecificPairingPayload,
)
from therasched.solver_core.availability import AvailabilityCalendar
from therasched.solver_core.types import (
    Candidate,
    Rejection,
    SessionRequirement,
    Verdict,
    requirement_for_session,
)
from therasched.store.rule_store import RuleSet
from therasched.temporal.timezone import TimeOfDay, week_dates

logger = logging.getLogger(__name__)


# ------------------------------
# Working set
# ------------------------------
class SchedulePlan:
    """
    @brief
    Sessions committed so far in one generation, regeneration or edit.

    @details
    Indexed by (practitioner, date), (room, date) and (client, date) so
    overlap and day-shape checks only look at one day's sessions.
    """

    def __init__(self, sessions: Iterable[Session] = ()) -> None:
        self._sessions: dict[str, Session] = {}
        self._by_practitioner: dict[tuple[str, date], list[Session]] = defaultdict(list)
        self._by_room: dict[tuple[str, date], list[Session]] = defaultdict(list)
        self._by_client: dict[tuple[str, date], list[Session]] = defaultdict(list)
        for s in sessions:
            self.add(s)

    def add(self, session: Session) -> None:
        self._sessions[session.id] = session
        self._by_practitioner[(session.practitioner_id, session.date)].append(session)
        self._by_client[(session.client_id, session.date)].append(session)
        if session.room_id is not None:
            self._by_room[(session.room_id, session.date)].append(session)

    def remove(self, session_id: str) -> Session | None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        self._by_practitioner[(session.practitioner_id, session.date)].remove(session)
        self._by_client[(session.client_id, session.date)].remove(session)
        if session.room_id is not None:
            self._by_room[(session.room_id, session.date)].remove(session)
        return session

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def practitioner_day(self, practitioner_id: str, d: date) -> list[Session]:
        return self._by_practitioner.get((practitioner_id, d), [])

    def room_day(self, room_id: str, d: date) -> list[Session]:
        return self._by_room.get((room_id, d), [])

    def client_day(self, client_id: str, d: date) -> list[Session]:
        return self._by_client.get((client_id, d), [])

    def client_dates(self, client_id: str) -> set[date]:
        return {d for (cid, d), items in self._by_client.items() if cid == client_id and items}

    def __len__(self) -> int:
        return len(self._sessions)


def _overlaps(start: int, end: int, other: Session) -> bool:
    return start < other.end_minutes and other.start_minutes < end


# ------------------------------
# Context
# ------------------------------
class EvaluationContext:
    """
    @brief
    In-memory working set for one request against one organization.

    @details
    Assembled by the service from the entity store; nothing here is
    long-lived. `history` holds published sessions from earlier weeks, used
    by consistency rules.
    """

    def __init__(
        self,
        organization: Organization,
        week_start: date,
        practitioners: Iterable[Practitioner],
        clients: Iterable[Client],
        rooms: Iterable[Room],
        rules: RuleSet,
        calendar: AvailabilityCalendar,
        cfg: Config,
        history: Iterable[Session] = (),
        timezone: str | None = None,
    ) -> None:
        self.organization = organization
        self.week_start = week_start
        self.timezone = timezone or organization.timezone or cfg.default_timezone
        self.practitioners = {p.id: p for p in sorted(practitioners, key=lambda p: p.id)}
        self.clients = {c.id: c for c in sorted(clients, key=lambda c: c.id)}
        self.rooms = {r.id: r for r in sorted(rooms, key=lambda r: r.id)}
        self.rules = rules
        self.calendar = calendar
        self.cfg = cfg
        self.history = list(history)

    @property
    def dates(self) -> list[date]:
        return week_dates(self.week_start)

    def requirement(self, client_id: str, spec_id: str | None) -> SessionRequirement | None:
        client = self.clients.get(client_id)
        if client is None:
            return None
        return requirement_for_session(client, spec_id, self.cfg.default_session_duration)

    def history_count(self, client_id: str, practitioner_id: str, lookback_weeks: int) -> int:
        since = self.week_start - timedelta(weeks=lookback_weeks)
        return sum(
            1
            for s in self.history
            if s.client_id == client_id
            and s.practitioner_id == practitioner_id
            and since <= s.date < self.week_start
        )

    def label(self, key: str) -> str:
        return self.organization.label(key)


# ------------------------------
# Evaluator
# ------------------------------
class ConstraintEvaluator:
    """Hard feasibility and soft desirability of candidates within one context."""

    def __init__(self, context: EvaluationContext) -> None:
        self.ctx = context

    # ---------- Date-independent checks ----------
    def practitioner_rejections(
        self, client: Client, practitioner: Practitioner, req: SessionRequirement
    ) -> list[Rejection]:
        """Status, certification and rule filters that hold for every slot."""
        out: list[Rejection] = []

        # (1) Status
        if not client.is_active:
            out.append(Rejection("status", f"client {client.id} is not active"))
        if not practitioner.is_active:
            out.append(Rejection("status", f"practitioner {practitioner.id} is not active"))

        # (2) Certification superset
        missing = sorted(req.required_certifications - set(practitioner.certifications))
        if missing:
            out.append(
                Rejection(
                    "certification",
                    f"practitioner {practitioner.id} lacks certification(s): {', '.join(missing)}",
                )
            )

        # (3) Rule filters
        out.extend(self._rule_filter_rejections(client, practitioner, req))
        return out

    def _rule_filter_rejections(
        self, client: Client, practitioner: Practitioner, req: SessionRequirement
    ) -> list[Rejection]:
        out: list[Rejection] = []
        for rule in self.ctx.rules.gender:
            payload = rule.payload
            if not isinstance(payload, GenderPairingPayload) or not payload.is_required:
                continue
            target = _gender_target(payload, client)
            if target is not None and practitioner.gender != target:
                out.append(
                    Rejection(
                        "rule",
                        f"rule {rule.id} requires a {target} practitioner for client {client.id}",
                    )
                )

        for rule in self.ctx.rules.pairing:
            payload = rule.payload
            if (
                isinstance(payload, SpecificPairingPayload)
                and payload.kind == "pair"
                and payload.mode == "avoid"
                and payload.client_id == client.id
                and payload.practitioner_id == practitioner.id
            ):
                out.append(
                    Rejection(
                        "rule",
                        f"rule {rule.id} forbids pairing {practitioner.id} with {client.id}",
                    )
                )

        held = set(practitioner.certifications)
        for rule in self.ctx.rules.certification:
            payload = rule.payload
            if not isinstance(payload, CertificationPayload):
                continue
            if not payload.enforce_required or not payload.practitioner_must_have:
                continue
            if payload.client_requires and not (
                set(payload.client_requires) & req.required_certifications
            ):
                continue
            must = set(payload.practitioner_must_have)
            ok = must <= held if payload.enforce_exact else bool(must & held)
            if not ok:
                out.append(
                    Rejection(
                        "certification",
                        f"rule {rule.id} requires practitioner {practitioner.id} to hold "
                        f"{'all' if payload.enforce_exact else 'one'} of {', '.join(sorted(must))}",
                    )
                )
        return out

    def room_rejections(self, req: SessionRequirement, room_id: str | None) -> list[Rejection]:
        if room_id is None:
            if req.required_room_capabilities:
                return [
                    Rejection(
                        "room_capability",
                        "room capabilities "
                        f"{', '.join(sorted(req.required_room_capabilities))} required "
                        "but no room assigned",
                    )
                ]
            return []
        room = self.ctx.rooms.get(room_id)
        if room is None:
            return [Rejection("room_capability", f"room {room_id} is not known")]
        out: list[Rejection] = []
        if not room.is_active:
            out.append(Rejection("status", f"room {room_id} is not active"))
        missing = sorted(req.required_room_capabilities - set(room.capabilities))
        if missing:
            out.append(
                Rejection(
                    "room_capability",
                    f"room {room_id} lacks capability(ies): {', '.join(missing)}",
                )
            )
        return out

    def eligible_rooms(self, req: SessionRequirement) -> list[Room]:
        """Active rooms meeting capabilities; preferred room first, then by id."""
        rooms = [r for r in self.ctx.rooms.values() if not self.room_rejections(req, r.id)]
        rooms.sort(key=lambda r: (r.id != req.preferred_room_id, r.id))
        return rooms

    # ---------- Full check ----------
    def feasible(
        self,
        candidate: Candidate,
        plan: SchedulePlan,
        requirement: SessionRequirement | None = None,
    ) -> Verdict:
        """
        @brief
        Decide hard feasibility of a candidate against the plan.

        @details
        All failing checks are reported, not only the first.

        @returns
            Verdict(ok=True) or Verdict(ok=False, rejections=...).
        """
        client = self.ctx.clients.get(candidate.client_id)
        practitioner = self.ctx.practitioners.get(candidate.practitioner_id)

        # (1) Unknown entities cannot be checked further
        missing: list[Rejection] = []
        if client is None:
            missing.append(Rejection("status", f"client {candidate.client_id} is not known"))
        if practitioner is None:
            missing.append(
                Rejection("status", f"practitioner {candidate.practitioner_id} is not known")
            )
        if missing:
            return Verdict(ok=False, rejections=tuple(missing))

        req = requirement or self.ctx.requirement(candidate.client_id, candidate.spec_id)
        rejections: list[Rejection] = []

        # (2) Status, certification and rule filters
        rejections.extend(self.practitioner_rejections(client, practitioner, req))

        # (3) Room status and capabilities
        rejections.extend(self.room_rejections(req, candidate.room_id))

        # (4) Availability
        if candidate.start < 0 or candidate.end > 24 * 60 or candidate.start >= candidate.end:
            rejections.append(
                Rejection("availability", f"{candidate.describe()} does not fit in one day")
            )
        elif not self.ctx.calendar.covers(
            practitioner, candidate.date, candidate.start, candidate.end
        ):
            rejections.append(
                Rejection(
                    "availability",
                    self.ctx.calendar.explain(
                        practitioner, candidate.date, candidate.start, candidate.end
                    ),
                )
            )

        # (5) Overlaps
        rejections.extend(self._overlap_rejections(candidate, plan))

        # (6) Session-shape rules
        rejections.extend(self._session_limit_rejections(candidate, plan))

        if rejections:
            return Verdict(ok=False, rejections=tuple(rejections))
        return Verdict.accept()

    def _overlap_rejections(self, c: Candidate, plan: SchedulePlan) -> list[Rejection]:
        out: list[Rejection] = []
        for s in plan.practitioner_day(c.practitioner_id, c.date):
            if _overlaps(c.start, c.end, s):
                out.append(
                    Rejection(
                        "practitioner_conflict",
                        f"practitioner {c.practitioner_id} already booked "
                        f"{s.start_time}-{s.end_time} on {c.date.isoformat()}",
                    )
                )
        if c.room_id is not None:
            for s in plan.room_day(c.room_id, c.date):
                if _overlaps(c.start, c.end, s):
                    out.append(
                        Rejection(
                            "room_conflict",
                            f"room {c.room_id} already booked "
                            f"{s.start_time}-{s.end_time} on {c.date.isoformat()}",
                        )
                    )
        for s in plan.client_day(c.client_id, c.date):
            if _overlaps(c.start, c.end, s):
                out.append(
                    Rejection(
                        "client_conflict",
                        f"client {c.client_id} already booked "
                        f"{s.start_time}-{s.end_time} on {c.date.isoformat()}",
                    )
                )
        return out

    def _session_limit_rejections(self, c: Candidate, plan: SchedulePlan) -> list[Rejection]:
        limits = self.ctx.rules.limits
        day = plan.practitioner_day(c.practitioner_id, c.date)
        out: list[Rejection] = []

        # (1) Allowed start minutes past the hour
        if limits.start_time_intervals and (c.start % 60) not in limits.start_time_intervals:
            out.append(
                Rejection(
                    "session_rule",
                    f"start {c.start_time} not on allowed minutes {list(limits.start_time_intervals)}",
                )
            )

        # (2) Daily session cap
        if limits.max_sessions_per_day is not None and len(day) >= limits.max_sessions_per_day:
            out.append(
                Rejection(
                    "session_rule",
                    f"practitioner {c.practitioner_id} already has {len(day)} session(s) "
                    f"on {c.date.isoformat()} (max {limits.max_sessions_per_day})",
                )
            )

        # (3) Minimum gap between a practitioner's sessions
        if limits.min_gap_minutes:
            for s in day:
                gap = c.start - s.end_minutes if c.start >= s.end_minutes else s.start_minutes - c.end
                if 0 <= gap < limits.min_gap_minutes:
                    out.append(
                        Rejection(
                            "session_rule",
                            f"only {gap} min between {c.start_time} and "
                            f"{s.start_time}-{s.end_time} (min {limits.min_gap_minutes})",
                        )
                    )
                    break

        # (4) Longest run of sessions without the required break
        if limits.max_consecutive_minutes is not None:
            breaker = max(limits.required_break_minutes or 0, 1)
            spans = sorted([(s.start_minutes, s.end_minutes) for s in day] + [(c.start, c.end)])
            run_start, run_end = spans[0]
            longest = run_end - run_start
            for start, end in spans[1:]:
                if start - run_end < breaker:
                    run_end = max(run_end, end)
                else:
                    run_start, run_end = start, end
                longest = max(longest, run_end - run_start)
            if longest > limits.max_consecutive_minutes:
                out.append(
                    Rejection(
                        "session_rule",
                        f"practitioner {c.practitioner_id} would work {longest} consecutive "
                        f"minutes (max {limits.max_consecutive_minutes})",
                    )
                )
        return out

    # ---------- Soft scoring ----------
    def score(self, candidate: Candidate, rules: RuleSet | None = None) -> float:
        """
        @brief
        Desirability of a hard-feasible candidate; higher is better.

        @details
        Entity preferences add their configured weight once. Soft rules add
        their category weight multiplied by the rule's priority weight.
        Inert rules never appear in the RuleSet category lists.
        """
        rules = rules or self.ctx.rules
        weights = self.ctx.cfg.scoring
        client = self.ctx.clients.get(candidate.client_id)
        practitioner = self.ctx.practitioners.get(candidate.practitioner_id)
        if client is None or practitioner is None:
            return 0.0
        req = self.ctx.requirement(candidate.client_id, candidate.spec_id)
        slot_period = TimeOfDay.of_minutes(candidate.start).value
        held = set(practitioner.certifications)
        total = 0.0

        # (1) Entity preferences
        if client.gender_preference and practitioner.gender == client.gender_preference:
            total += weights.gender_match
        if req.preferred_room_id and candidate.room_id == req.preferred_room_id:
            total += weights.preferred_room
        if req.preferred_times and slot_period in req.preferred_times:
            total += weights.preferred_time

        # (2) Gender pairing preferences
        for rule in rules.gender:
            payload = rule.payload
            if not isinstance(payload, GenderPairingPayload) or payload.is_required:
                continue
            target = _gender_target(payload, client)
            if target is not None and practitioner.gender == target:
                total += weights.gender_match * rule.weight

        # (3) Preferred time-of-day rules
        for rule in rules.availability:
            payload = rule.payload
            if not isinstance(payload, AvailabilityPayload) or payload.kind != "preferred_time":
                continue
            if slot_period != payload.preferred_time:
                continue
            if payload.end_time is not None and candidate.end > payload.window_minutes()[1]:
                continue
            total += weights.preferred_time * rule.weight

        # (4) Specific pairing affinity
        for rule in rules.pairing:
            payload = rule.payload
            if not isinstance(payload, SpecificPairingPayload):
                continue
            if payload.kind == "maintain_consistency":
                lookback = payload.lookback_weeks or self.ctx.cfg.consistency_lookback_weeks
                if lookback and self.ctx.history_count(client.id, practitioner.id, lookback):
                    total += weights.consistency * rule.weight
            elif payload.kind == "pair" and payload.mode == "prefer":
                if payload.client_id == client.id and payload.practitioner_id == practitioner.id:
                    total += weights.pairing * rule.weight
            elif payload.kind == "new_client":
                if _is_new_client(client, self.ctx.week_start, payload.new_client_weeks) and (
                    held & set(payload.prefer_certifications)
                ):
                    total += weights.preferred_certification * rule.weight

        # (5) Preferred certifications
        for rule in rules.certification:
            payload = rule.payload
            if isinstance(payload, CertificationPayload) and payload.prefer_certification in held:
                total += weights.preferred_certification * rule.weight

        return total

    @staticmethod
    def rank_key(candidate: Candidate, score: float) -> tuple:
        """Sort key: best score, then earliest slot, then lowest practitioner id, then room."""
        return (
            -score,
            candidate.date,
            candidate.start,
            candidate.practitioner_id,
            candidate.room_id is None,
            candidate.room_id or "",
        )


def _gender_target(payload: GenderPairingPayload, client: Client) -> str | None:
    if payload.client_gender is not None and payload.client_gender != client.gender:
        return None
    return payload.practitioner_gender or client.gender_preference


def _is_new_client(client: Client, week_start: date, weeks: int | None) -> bool:
    if client.created_at is None or weeks is None:
        return False
    return (week_start - client.created_at).days < weeks * 7


__all__ = ["SchedulePlan", "EvaluationContext", "ConstraintEvaluator"]
