# src/therasched/solver_core/regenerator.py
"""
@brief
Copies a schedule onto another week, re-validating every inherited session.

@details
Each inherited session moves to the matching weekday of the target week.
Every inherited session lands in exactly one partition:
    kept        -> the same triple and time are still feasible on the new date;
    regenerated -> infeasible as inherited, replaced by a fresh engine search
                   for the same client and specification;
    removed     -> neither the original nor any replacement is feasible.

Kept sessions are committed first so replacements never displace a session
that could have stayed as it was.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date

from therasched.schemas.models import Schedule, Session
from therasched.solver_core.engine import AssignmentEngine
from therasched.solver_core.evaluator import SchedulePlan
from therasched.solver_core.types import (
    Candidate,
    KeptSession,
    RegeneratedSession,
    RegenerationResult,
    RemovedSession,
    UnmetRequirement,
)
from therasched.temporal.timezone import add_days

logger = logging.getLogger(__name__)


class DraftRegenerator:
    """Re-validates a source schedule's sessions against the engine's context."""

    def __init__(self, engine: AssignmentEngine) -> None:
        self.engine = engine
        self.ctx = engine.ctx
        self.evaluator = engine.evaluator

    def target_date(self, source_date: date, target_week_start: date) -> date:
        """Date in the target week falling on the same weekday as `source_date`."""
        offset = (source_date.weekday() - target_week_start.weekday()) % 7
        return add_days(target_week_start, offset, self.ctx.timezone)

    def regenerate(self, source: Schedule, schedule_id: str | None = None) -> RegenerationResult:
        """
        @brief
        Partition the source sessions into kept, regenerated and removed.

        @params
            source : Schedule
                Schedule being copied; the target week is the context's week.
            schedule_id : str | None
                Identifier of the new draft, stamped onto produced sessions.

        @returns
            RegenerationResult with the new sessions and the three partitions.
        """
        result = RegenerationResult()
        plan = SchedulePlan()
        pending: list[tuple[Session, tuple[str, ...]]] = []

        ordered = sorted(
            source.sessions,
            key=lambda s: (s.date, s.start_minutes, s.practitioner_id, s.id),
        )

        # (1) Keep what is still feasible as inherited
        for original in ordered:
            client = self.ctx.clients.get(original.client_id)
            if client is None or not client.is_active:
                reason = f"client {original.client_id} is no longer active"
                result.removed.append(RemovedSession(original=original, reasons=(reason,)))
                continue

            moved = replace(
                Candidate.from_session(original),
                date=self.target_date(original.date, self.ctx.week_start),
            )
            verdict = self.evaluator.feasible(moved, plan)
            if verdict.ok:
                session = moved.to_session(self.engine.id_factory(), schedule_id, original.notes)
                plan.add(session)
                result.kept.append(KeptSession(original=original, session=session))
            else:
                logger.debug(
                    "Inherited session %s infeasible on %s: %s",
                    original.id,
                    moved.date.isoformat(),
                    "; ".join(verdict.reasons),
                )
                pending.append((original, tuple(verdict.reasons)))

        # (2) Search replacements for the rest, same client, spec and length
        for original, reasons in pending:
            req = self.ctx.requirement(original.client_id, original.session_spec_id)
            req = replace(req, duration_minutes=original.duration_minutes)
            placed = self.engine.place(req, plan)
            if isinstance(placed, UnmetRequirement):
                removed = RemovedSession(original=original, reasons=reasons + placed.reasons)
                result.removed.append(removed)
                continue
            session = placed.to_session(self.engine.id_factory(), schedule_id, original.notes)
            plan.add(session)
            result.regenerated.append(
                RegeneratedSession(original=original, session=session, reasons=reasons)
            )

        # (3) Human-readable summary of what did not survive
        for removed in result.removed:
            message = (
                f"Removed session {removed.original.id} "
                f"({removed.original.client_id} with {removed.original.practitioner_id} "
                f"on {removed.original.date.isoformat()} {removed.original.start_time}): "
                f"{'; '.join(removed.reasons)}"
            )
            result.warnings.append(message)
            logger.warning(message)

        result.sessions = plan.sessions
        logger.info(
            "Regenerated schedule %s for week %s: kept=%d regenerated=%d removed=%d",
            source.id,
            self.ctx.week_start.isoformat(),
            len(result.kept),
            len(result.regenerated),
            len(result.removed),
        )
        return result


__all__ = ["DraftRegenerator"]
