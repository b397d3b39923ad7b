# src/therasched/solver_core/modifier.py
"""
@brief
Applies one parsed edit (move / cancel / create) to a draft schedule.

@details
The parsed command is untrusted input. Before anything changes:
    (1) the envelope and the action payload are validated;
    (2) confidence below the configured floor is refused outright;
    (3) every referenced id is checked against the caller's organization;
    (4) a moved or created session passes the same feasibility checks as
        generated ones.
The applier never commits. It returns the next schedule state and the
before/after sessions; the service commits under a version check.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from pydantic import ValidationError

from therasched.errors import (
    CommandError,
    ConfidenceRejectedError,
    InfeasibleModificationError,
    ScheduleStateError,
)
from therasched.schemas.commands import (
    PAYLOAD_BY_ACTION,
    CancelPayload,
    CommandAction,
    CreatePayload,
    MovePayload,
    ParsedCommand,
)
from therasched.schemas.models import Client, Practitioner, Schedule, Session
from therasched.solver_core.engine import default_id_factory
from therasched.solver_core.evaluator import ConstraintEvaluator, EvaluationContext, SchedulePlan
from therasched.solver_core.session_lookup import find_session, name_matches
from therasched.solver_core.types import Candidate, ModificationResult, Verdict
from therasched.temporal.timezone import (
    MINUTES_PER_DAY,
    Weekday,
    parse_local_date,
    time_to_minutes,
    week_dates,
)
from therasched.validator.tenant import EntityRefs, SessionValidator

logger = logging.getLogger(__name__)

# Command types some parsers emit for the supported actions
_ACTION_ALIASES = {
    "schedule_session": CommandAction.CREATE.value,
    "add": CommandAction.CREATE.value,
    "reschedule": CommandAction.MOVE.value,
    "delete": CommandAction.CANCEL.value,
}


class ModificationApplier:
    """
    Public API:
        apply(schedule, command) -> ModificationResult
    """

    def __init__(
        self,
        context: EvaluationContext,
        tenant: SessionValidator,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.ctx = context
        self.tenant = tenant
        self.evaluator = ConstraintEvaluator(context)
        self.id_factory = id_factory or default_id_factory

    def apply(
        self, schedule: Schedule, command: ParsedCommand | Mapping[str, Any]
    ) -> ModificationResult:
        """
        @brief
        Validate and apply a single structured edit.

        @raises
            CommandError                : malformed or unsupported command.
            ConfidenceRejectedError     : confidence below `confidence_floor`.
            ScheduleStateError          : schedule already published.
            TenantViolationError        : a referenced id is unknown or foreign.
            SessionNotFoundError        : the selector matches no session.
            TemporalInputError          : malformed date or time.
            InfeasibleModificationError : the new placement violates a hard constraint.
        """
        source = "ModificationApplier.apply"

        # (1) Envelope
        if not isinstance(command, ParsedCommand):
            try:
                command = ParsedCommand.model_validate(command)
            except ValidationError as e:
                raise CommandError(
                    message=f"Malformed command: {e.error_count()} validation error(s)",
                    source=source,
                    suggested_action="Re-run the parser or correct the command fields.",
                ) from e

        # (2) Confidence floor
        floor = self.ctx.cfg.confidence_floor
        if command.confidence < floor:
            logger.info(
                "Refusing %s command with confidence %.2f (floor %.2f)",
                command.command_type,
                command.confidence,
                floor,
            )
            raise ConfidenceRejectedError(
                message=(
                    f"Command confidence {command.confidence:.2f} is below the floor {floor:.2f}"
                ),
                confidence=command.confidence,
                floor=floor,
                source=source,
                suggested_action="Rephrase the request or confirm the intended change.",
            )

        # (3) Only drafts are mutable
        if schedule.is_published:
            raise ScheduleStateError(
                message=f"Schedule {schedule.id} is published and cannot be edited",
                source=source,
                suggested_action="Create a draft copy and edit that instead.",
            )

        # (4) Action and payload
        action = _ACTION_ALIASES.get(command.command_type, command.command_type)
        payload_type = PAYLOAD_BY_ACTION.get(action)
        if payload_type is None:
            raise CommandError(
                message=f"Unsupported command type {command.command_type!r}",
                source=source,
                suggested_action="Use one of: move, cancel, create.",
            )
        try:
            payload = payload_type.model_validate(command.data)
        except ValidationError as e:
            raise CommandError(
                message=f"Invalid {action} payload: {e.error_count()} validation error(s)",
                source=source,
                suggested_action="Provide the required fields for this action.",
            ) from e

        # (5) Dispatch
        if isinstance(payload, MovePayload):
            result = self._move(schedule, payload)
        elif isinstance(payload, CancelPayload):
            result = self._cancel(schedule, payload)
        else:
            result = self._create(schedule, payload)
        result.warnings.extend(command.warnings)
        logger.info(result.message)
        return result

    # ------------------------------
    # Actions
    # ------------------------------
    def _move(self, schedule: Schedule, payload: MovePayload) -> ModificationResult:
        org_id = schedule.organization_id
        selector_refs = EntityRefs(
            practitioner_id=payload.practitioner_id, client_id=payload.client_id
        )
        target_refs = EntityRefs(
            practitioner_id=payload.new_practitioner_id, room_id=payload.new_room_id
        )
        self.tenant.ensure_valid(org_id, selector_refs)
        self.tenant.ensure_valid(org_id, target_refs)
        before = find_session(schedule, payload, self.ctx.practitioners, self.ctx.clients)

        # (1) New date within the schedule's week; a named weekday wins over a date
        if payload.new_day_of_week:
            new_date = self._date_for_weekday(schedule, payload.new_day_of_week)
        elif payload.new_date:
            new_date = parse_local_date(payload.new_date)
        else:
            new_date = before.date
        self._ensure_in_week(schedule, new_date)

        # (2) Same start unless one is given, same length unless an end is given
        if payload.new_start_time:
            start = time_to_minutes(payload.new_start_time)
        else:
            start = before.start_minutes
        if payload.new_end_time:
            end = time_to_minutes(payload.new_end_time, allow_end_of_day=True)
        else:
            end = start + before.duration_minutes

        candidate = Candidate(
            client_id=before.client_id,
            practitioner_id=payload.new_practitioner_id or before.practitioner_id,
            room_id=payload.new_room_id or before.room_id,
            date=new_date,
            start=start,
            end=end,
            spec_id=before.session_spec_id,
        )

        # (3) The old slot is free while the new one is checked
        plan = SchedulePlan(schedule.sessions)
        plan.remove(before.id)
        self._ensure_feasible(candidate, plan, "move")

        after = candidate.to_session(before.id, schedule.id, before.notes)
        sessions = [after if s.id == before.id else s for s in schedule.sessions]
        message = (
            f"Moved {self._client_name(before.client_id)}'s session "
            f"from {_when(before)} to {_when(after)}"
        )
        return ModificationResult(
            action=CommandAction.MOVE.value,
            before=before,
            after=after,
            message=message,
            schedule=schedule.model_copy(update={"sessions": sessions}),
        )

    def _cancel(self, schedule: Schedule, payload: CancelPayload) -> ModificationResult:
        self.tenant.ensure_valid(
            schedule.organization_id,
            EntityRefs(practitioner_id=payload.practitioner_id, client_id=payload.client_id),
        )
        before = find_session(schedule, payload, self.ctx.practitioners, self.ctx.clients)
        sessions = [s for s in schedule.sessions if s.id != before.id]
        message = f"Cancelled {self._client_name(before.client_id)}'s session on {_when(before)}"
        if payload.reason:
            message += f" ({payload.reason})"
        return ModificationResult(
            action=CommandAction.CANCEL.value,
            before=before,
            after=None,
            message=message,
            schedule=schedule.model_copy(update={"sessions": sessions}),
        )

    def _create(self, schedule: Schedule, payload: CreatePayload) -> ModificationResult:
        source = "ModificationApplier._create"
        self.tenant.ensure_valid(
            schedule.organization_id,
            EntityRefs(
                practitioner_id=payload.practitioner_id,
                client_id=payload.client_id,
                room_id=payload.room_id,
            ),
        )

        # (1) People, by id or by name
        practitioner = _resolve(
            "practitioner",
            payload.practitioner_id,
            payload.practitioner_name,
            self.ctx.practitioners,
        )
        client = _resolve("client", payload.client_id, payload.client_name, self.ctx.clients)

        # (2) Specification must belong to the client
        if payload.session_spec_id and payload.session_spec_id not in {
            s.id for s in client.session_specs
        }:
            raise CommandError(
                message=(
                    f"Session specification {payload.session_spec_id} "
                    f"does not belong to client {client.id}"
                ),
                source=source,
                suggested_action="Pick one of the client's session specifications.",
            )
        req = self.ctx.requirement(client.id, payload.session_spec_id)

        # (3) When
        if payload.date:
            day = parse_local_date(payload.date)
        elif payload.day_of_week:
            day = self._date_for_weekday(schedule, payload.day_of_week)
        else:
            raise CommandError(
                message="Create command has no date or day of week",
                source=source,
                suggested_action="Say which day the new session is on.",
            )
        self._ensure_in_week(schedule, day)
        start = time_to_minutes(payload.start_time)
        if payload.end_time:
            end = time_to_minutes(payload.end_time, allow_end_of_day=True)
        else:
            end = start + req.duration_minutes

        # (4) Room: the given one, else the first eligible room that fits
        plan = SchedulePlan(schedule.sessions)
        if payload.room_id:
            room_options: list[str | None] = [payload.room_id]
        else:
            room_options = [r.id for r in self.evaluator.eligible_rooms(req)]
            if self.ctx.cfg.allow_roomless_sessions and not req.required_room_capabilities:
                room_options.append(None)
            if not room_options:
                needed = ", ".join(sorted(req.required_room_capabilities))
                reason = f"no eligible room with {needed}" if needed else "no eligible room"
                raise InfeasibleModificationError(
                    message=f"Cannot create session: {reason}",
                    reasons=[reason],
                    source=source,
                    suggested_action="Name a room, or add one with the required capabilities.",
                )

        first_failure: Verdict | None = None
        chosen: Candidate | None = None
        for room_id in room_options:
            candidate = Candidate(
                client_id=client.id,
                practitioner_id=practitioner.id,
                room_id=room_id,
                date=day,
                start=start,
                end=end,
                spec_id=req.spec_id,
            )
            verdict = self.evaluator.feasible(candidate, plan, req)
            if verdict.ok:
                chosen = candidate
                break
            first_failure = first_failure or verdict
        if chosen is None:
            raise InfeasibleModificationError(
                message=f"Cannot create session: {'; '.join(first_failure.reasons)}",
                reasons=first_failure.reasons,
                source=source,
                suggested_action="Choose another time, practitioner or room.",
            )

        after = chosen.to_session(self.id_factory(), schedule.id, payload.notes)
        message = (
            f"Created a session for {client.name or client.id} "
            f"with {practitioner.name or practitioner.id} on {_when(after)}"
        )
        return ModificationResult(
            action=CommandAction.CREATE.value,
            before=None,
            after=after,
            message=message,
            schedule=schedule.model_copy(update={"sessions": [*schedule.sessions, after]}),
        )

    # ------------------------------
    # Helpers
    # ------------------------------
    def _ensure_feasible(self, candidate: Candidate, plan: SchedulePlan, action: str) -> None:
        if candidate.end > MINUTES_PER_DAY or candidate.end <= candidate.start:
            raise InfeasibleModificationError(
                message=f"Cannot {action} session: it must start and end on the same day",
                reasons=["session would cross midnight or end before it starts"],
                source="ModificationApplier._ensure_feasible",
                suggested_action="Pick an earlier start time or a shorter session.",
            )
        verdict = self.evaluator.feasible(candidate, plan)
        if not verdict.ok:
            raise InfeasibleModificationError(
                message=f"Cannot {action} session: {'; '.join(verdict.reasons)}",
                reasons=verdict.reasons,
                source="ModificationApplier._ensure_feasible",
                suggested_action="Choose another time, practitioner or room.",
            )

    def _date_for_weekday(self, schedule: Schedule, day: str) -> date:
        weekday = Weekday.parse(day)
        return next(
            d for d in week_dates(schedule.week_start_date) if Weekday.from_date(d) == weekday
        )

    def _ensure_in_week(self, schedule: Schedule, day: date) -> None:
        if not schedule.week_start_date <= day <= schedule.week_end_date:
            raise CommandError(
                message=(
                    f"{day.isoformat()} is outside the week of schedule {schedule.id} "
                    f"({schedule.week_start_date.isoformat()} to {schedule.week_end_date.isoformat()})"
                ),
                source="ModificationApplier._ensure_in_week",
                suggested_action="Pick a day inside the schedule's week.",
            )

    def _client_name(self, client_id: str) -> str:
        client = self.ctx.clients.get(client_id)
        return client.name if client is not None and client.name else client_id


def _when(session: Session) -> str:
    day = Weekday.from_date(session.date).value.capitalize()
    return f"{day} {session.date.isoformat()} {session.start_time}-{session.end_time}"


def _resolve(
    kind: str,
    entity_id: str | None,
    name: str | None,
    pool: Mapping[str, Practitioner | Client],
) -> Any:
    source = "modifier._resolve"
    if entity_id:
        entity = pool.get(entity_id)
        if entity is None:
            raise CommandError(
                message=f"Unknown {kind} {entity_id}",
                source=source,
                suggested_action=f"Use an existing {kind} identifier.",
            )
        return entity
    if not name:
        raise CommandError(
            message=f"Create command does not name a {kind}",
            source=source,
            suggested_action=f"Include the {kind}'s name or identifier.",
        )
    matches = [e for e in pool.values() if name_matches(name, e.name)]
    if len(matches) != 1:
        found = "no" if not matches else f"{len(matches)}"
        raise CommandError(
            message=f"{found} {kind}(s) match the name {name!r}",
            source=source,
            suggested_action=f"Use the {kind}'s full name or identifier.",
        )
    return matches[0]


__all__ = ["ModificationApplier"]
