# src/therasched/solver_core/engine.py
"""
@brief
Greedy weekly assignment engine.

@details
Clients are processed in ascending id order; each client's requirements in
spec id order; each requirement's occurrences one at a time. For every
occurrence the engine enumerates candidate (practitioner, date, start, room)
placements, keeps the hard-feasible ones, and commits the best by
`ConstraintEvaluator.rank_key`. All ordering is deterministic, so identical
inputs produce identical sessions (ids aside).

Occurrences that cannot be placed become `UnmetRequirement` warnings that
name the unmet requirement and the concrete reasons candidates failed.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from uuid import uuid4

from therasched.schemas.models import Practitioner
from therasched.solver_core.evaluator import ConstraintEvaluator, EvaluationContext, SchedulePlan
from therasched.solver_core.types import (
    Candidate,
    EngineResult,
    GenerationStats,
    SessionRequirement,
    UnmetRequirement,
    requirements_for,
)

logger = logging.getLogger(__name__)


def default_id_factory() -> str:
    return uuid4().hex


@dataclass(slots=True)
class SearchResult:
    """Best feasible candidate (or None) plus the rejection tally of the search."""

    best: Candidate | None
    rejections: Counter
    first_messages: dict[str, str]
    examined: int = 0


class AssignmentEngine:
    """
    @brief
    Produces the sessions of one week from an EvaluationContext.

    @details
    Public API:
        run(schedule_id)                     -> EngineResult
        place(req, plan, occurrence, dates)  -> Candidate | UnmetRequirement
    The regenerator reuses `place` to find replacements for sessions that
    no longer fit.
    """

    def __init__(
        self,
        context: EvaluationContext,
        evaluator: ConstraintEvaluator | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.ctx = context
        self.evaluator = evaluator or ConstraintEvaluator(context)
        self.id_factory = id_factory or default_id_factory

    # ------------------------------
    # Public
    # ------------------------------
    def run(self, schedule_id: str | None = None) -> EngineResult:
        """
        @brief
        Generate sessions for every active client of the context.

        @returns
            EngineResult with sessions in placement order, stats and warnings.
        """
        plan = SchedulePlan()
        warnings: list[UnmetRequirement] = []
        stats = GenerationStats()

        # (1) Clients in id order; inactive clients get nothing
        for client in self.ctx.clients.values():
            if not client.is_active:
                logger.debug("Skipping inactive client %s", client.id)
                continue

            # (2) Requirements in spec order, occurrences one by one
            for req in requirements_for(client, self.ctx.cfg.default_session_duration):
                stats.sessions_requested += req.sessions_per_week
                for occurrence in range(1, req.sessions_per_week + 1):
                    placed = self.place(req, plan, occurrence)
                    if isinstance(placed, UnmetRequirement):
                        warnings.append(placed)
                        logger.warning(placed.message)
                        continue
                    plan.add(placed.to_session(self.id_factory(), schedule_id))

        # (3) Stats
        sessions = plan.sessions
        stats.sessions_created = len(sessions)
        stats.clients_scheduled = len({s.client_id for s in sessions})
        stats.practitioners_used = len({s.practitioner_id for s in sessions})
        stats.unmet_occurrences = len(warnings)
        logger.info(
            "Generated %d/%d session(s) for organization %s week %s (%d unmet)",
            stats.sessions_created,
            stats.sessions_requested,
            self.ctx.organization.id,
            self.ctx.week_start.isoformat(),
            stats.unmet_occurrences,
        )
        return EngineResult(sessions=sessions, stats=stats, warnings=warnings)

    def place(
        self,
        req: SessionRequirement,
        plan: SchedulePlan,
        occurrence: int = 1,
        dates: Iterable[date] | None = None,
    ) -> Candidate | UnmetRequirement:
        """
        @brief
        Find the best placement for one occurrence of a requirement.

        @details
        High-frequency requirements (at or above the frequency threshold,
        or when a session rule asks to spread) first try only dates at
        least `min_day_gap` days from the client's already-booked dates;
        when that fails, every date is tried.
        """
        all_dates = list(dates) if dates is not None else self.ctx.dates

        # (1) Spread high-frequency clients across days when possible
        spread_dates = self._spread_dates(req, plan, all_dates)
        if spread_dates is not None and spread_dates != all_dates:
            result = self.search(req, plan, spread_dates)
            if result.best is not None:
                return result.best
            logger.debug(
                "No spread placement for client %s occurrence %d; trying all days",
                req.client_id,
                occurrence,
            )

        # (2) Every date of the week
        result = self.search(req, plan, all_dates)
        if result.best is not None:
            return result.best
        return self._unmet(req, occurrence, result)

    def search(
        self, req: SessionRequirement, plan: SchedulePlan, dates: Iterable[date]
    ) -> SearchResult:
        """Enumerate, filter and rank candidates for one requirement."""
        client = self.ctx.clients[req.client_id]
        dates = list(dates)
        tally: Counter = Counter()
        first: dict[str, str] = {}
        best: Candidate | None = None
        best_key: tuple | None = None
        examined = 0

        rooms = self._room_options(req)

        for practitioner in self.ctx.practitioners.values():
            # (1) Slot-independent checks prune whole practitioners
            static = self.evaluator.practitioner_rejections(client, practitioner, req)
            if static:
                for r in static:
                    tally[r.category] += 1
                    first.setdefault(r.category, r.message)
                logger.debug(
                    "Practitioner %s rejected for client %s: %s",
                    practitioner.id,
                    client.id,
                    "; ".join(r.message for r in static),
                )
                continue

            # (2) Slots inside availability windows
            for d in dates:
                windows = self.ctx.calendar.windows_for(practitioner, d)
                if not windows:
                    tally["availability"] += 1
                    first.setdefault(
                        "availability", self.ctx.calendar.explain(practitioner, d, 0, 1)
                    )
                    continue
                for start in self._starts(windows, req.duration_minutes):
                    # (3) First feasible room per slot
                    for room_id in rooms:
                        candidate = Candidate(
                            client_id=client.id,
                            practitioner_id=practitioner.id,
                            room_id=room_id,
                            date=d,
                            start=start,
                            end=start + req.duration_minutes,
                            spec_id=req.spec_id,
                        )
                        examined += 1
                        verdict = self.evaluator.feasible(candidate, plan, req)
                        if not verdict.ok:
                            for r in verdict.rejections:
                                tally[r.category] += 1
                                first.setdefault(r.category, r.message)
                            logger.debug(
                                "Rejected %s: %s", candidate.describe(), "; ".join(verdict.reasons)
                            )
                            continue
                        key = self.evaluator.rank_key(candidate, self.evaluator.score(candidate))
                        if best_key is None or key < best_key:
                            best, best_key = candidate, key
                        break

        return SearchResult(best=best, rejections=tally, first_messages=first, examined=examined)

    # ------------------------------
    # Internal
    # ------------------------------
    def _room_options(self, req: SessionRequirement) -> list[str | None]:
        options: list[str | None] = [r.id for r in self.evaluator.eligible_rooms(req)]
        if self.ctx.cfg.allow_roomless_sessions and not req.required_room_capabilities:
            options.append(None)
        return options

    def _starts(self, windows: list[tuple[int, int]], duration: int) -> list[int]:
        step = self.ctx.cfg.slot_interval
        out: list[int] = []
        for w_start, w_end in windows:
            start = w_start
            while start + duration <= w_end:
                out.append(start)
                start += step
        return out

    def _spread_dates(
        self, req: SessionRequirement, plan: SchedulePlan, dates: list[date]
    ) -> list[date] | None:
        limits = self.ctx.rules.limits
        threshold = limits.frequency_threshold or self.ctx.cfg.high_frequency_threshold
        if req.sessions_per_week < threshold and not limits.spread_across_days:
            return None
        gap = max(limits.min_day_gap or 1, 1)
        used = plan.client_dates(req.client_id)
        return [d for d in dates if all(abs((d - u).days) >= gap for u in used)]

    def _unmet(
        self, req: SessionRequirement, occurrence: int, result: SearchResult
    ) -> UnmetRequirement:
        # (1) Name the requirement that could not be met
        requirement = self._classify(req)

        # (2) Most frequent concrete reasons, capped
        limit = self.ctx.cfg.max_reasons_per_warning
        reasons = [result.first_messages[cat] for cat, _ in result.rejections.most_common(limit)]
        if not reasons:
            reasons = [self._fallback_reason(requirement, req)]

        client_label = self.ctx.label("client")
        requirement_text = {
            "certification": "practitioner certification "
            + ", ".join(sorted(req.required_certifications)),
            "room_capability": "room capability "
            + ", ".join(sorted(req.required_room_capabilities)),
            "availability": "practitioner availability",
        }[requirement]
        message = (
            f"Could not schedule {client_label} {req.client_id} "
            f"({req.name}) session {occurrence} of {req.sessions_per_week}: "
            f"unmet {requirement_text}; {'; '.join(reasons)}"
        )
        return UnmetRequirement(
            client_id=req.client_id,
            spec_id=req.spec_id,
            occurrence=occurrence,
            required=req.sessions_per_week,
            requirement=requirement,
            reasons=tuple(reasons),
            message=message,
        )

    def _classify(self, req: SessionRequirement) -> str:
        certified = [
            p for p in self.ctx.practitioners.values() if p.is_active and _holds(p, req)
        ]
        if not certified and req.required_certifications:
            return "certification"
        if req.required_room_capabilities and not self.evaluator.eligible_rooms(req):
            return "room_capability"
        return "availability"

    def _fallback_reason(self, requirement: str, req: SessionRequirement) -> str:
        practitioner_label = self.ctx.label("practitioner")
        if requirement == "certification":
            return f"no active {practitioner_label} holds the required certifications"
        if requirement == "room_capability":
            return "no active room provides the required capabilities"
        return f"no {practitioner_label} has {req.duration_minutes} free minutes this week"


def _holds(practitioner: Practitioner, req: SessionRequirement) -> bool:
    return req.required_certifications <= set(practitioner.certifications)


__all__ = ["AssignmentEngine", "SearchResult", "default_id_factory"]
