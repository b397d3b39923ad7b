# src/therasched/solver_core/service.py
from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any

from therasched.errors import ConcurrencyConflictError, ScheduleStateError
from therasched.schemas.commands import ParsedCommand
from therasched.schemas.models import Config, Schedule, ScheduleStatus
from therasched.schemas.rules import SpecificPairingPayload
from therasched.solver_core.availability import AvailabilityCalendar
from therasched.solver_core.engine import AssignmentEngine, default_id_factory
from therasched.solver_core.evaluator import EvaluationContext
from therasched.solver_core.modifier import ModificationApplier
from therasched.solver_core.regenerator import DraftRegenerator
from therasched.solver_core.result_store import ResultStore
from therasched.solver_core.types import (
    DraftCopyOutcome,
    GenerationOutcome,
    ModificationResult,
    UnmetRequirement,
)
from therasched.store.entity_store import EntityStore
from therasched.store.org_cache import OrganizationCache
from therasched.store.rule_store import RuleSet, RuleStore
from therasched.temporal.timezone import parse_local_date, resolve_timezone
from therasched.validator.tenant import SessionValidator

logger = logging.getLogger(__name__)


class SchedulingService:
    """
    @brief
    Facade exposing the four scheduling operations.

    @details
    Each call assembles a fresh EvaluationContext from the entity store,
    runs one computation and writes at most one schedule. Nothing survives
    between calls except the optional organization cache, which is owned
    by the caller and passed in.

    Public API:
        generate_schedule(organization_id, week_start)        -> GenerationOutcome
        create_draft_copy(source_schedule_id, target_week)    -> DraftCopyOutcome
        apply_modification(schedule_id, command, expected_version) -> ModificationResult
        publish_schedule(schedule_id, expected_version)       -> Schedule
    """

    def __init__(
        self,
        store: EntityStore,
        cfg: Config,
        cache: OrganizationCache | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        # (1) Collaborators
        self.store = store
        self.cfg = cfg
        self.cache = cache
        self.id_factory = id_factory or default_id_factory

        # (2) Derived components
        self.rule_store = RuleStore(store)
        self.tenant = SessionValidator(store)
        self.result_store = ResultStore(cfg)

    # ------------------------------
    # Context
    # ------------------------------
    def build_context(self, organization_id: str, week_start: str | date) -> EvaluationContext:
        """
        @brief
        Read the organization's current entities into a working set.

        @raises
            EntityNotFoundError : unknown organization.
            TemporalInputError  : malformed week start.
        """
        week = parse_local_date(week_start)
        if self.cache is not None:
            org = self.cache.get_or_load(organization_id, self.store.get_organization)
        else:
            org = self.store.get_organization(organization_id)
        tz = org.timezone or self.cfg.default_timezone
        resolve_timezone(tz)

        # (1) Rules, decoded once
        rules = RuleSet(self.rule_store.active_rules_for(org.id))
        if rules.inert:
            logger.warning(
                "Organization %s has %d inert rule(s): %s",
                org.id,
                len(rules.inert),
                ", ".join(r.id for r in rules.inert),
            )

        # (2) Availability inputs for the week
        week_end = week + timedelta(days=6)
        calendar = AvailabilityCalendar(
            org,
            overrides=self.store.overrides(org.id, week, week_end),
            holidays=self.store.holidays(org.id),
            rules=rules,
        )

        # (3) Published history for consistency rules
        lookback = self._lookback_weeks(rules)
        history = (
            self.store.published_sessions_between(
                org.id, week - timedelta(weeks=lookback), week - timedelta(days=1)
            )
            if lookback
            else []
        )

        return EvaluationContext(
            organization=org,
            week_start=week,
            practitioners=self.store.practitioners(org.id),
            clients=self.store.clients(org.id),
            rooms=self.store.rooms(org.id),
            rules=rules,
            calendar=calendar,
            cfg=self.cfg,
            history=history,
            timezone=tz,
        )

    # ------------------------------
    # Operations
    # ------------------------------
    def generate_schedule(self, organization_id: str, week_start: str | date) -> GenerationOutcome:
        """
        @brief
        Generate a new draft schedule for one organization and week.

        @details
        Unmet requirements never abort the run; they come back as warnings
        next to the (possibly partial) schedule.
        """
        ctx = self.build_context(organization_id, week_start)
        engine = AssignmentEngine(ctx, id_factory=self.id_factory)

        schedule_id = self.id_factory()
        result = engine.run(schedule_id)
        schedule = Schedule(
            id=schedule_id,
            organization_id=ctx.organization.id,
            week_start_date=ctx.week_start,
            status=ScheduleStatus.DRAFT,
            version=1,
            sessions=result.sessions,
        )
        stored = self.store.insert_schedule(schedule)
        self._persist(ctx, stored, result.warnings)
        return GenerationOutcome(schedule=stored, stats=result.stats, warnings=result.warnings)

    def create_draft_copy(
        self, source_schedule_id: str, target_week_start: str | date
    ) -> DraftCopyOutcome:
        """
        @brief
        Copy a schedule onto another week as a new draft.

        @details
        The copy carries `source.version + 1` and a link to its source.
        Every inherited session ends up kept, regenerated or removed.
        """
        source = self.store.get_schedule(source_schedule_id)
        ctx = self.build_context(source.organization_id, target_week_start)
        engine = AssignmentEngine(ctx, id_factory=self.id_factory)

        schedule_id = self.id_factory()
        result = DraftRegenerator(engine).regenerate(source, schedule_id)
        schedule = Schedule(
            id=schedule_id,
            organization_id=source.organization_id,
            week_start_date=ctx.week_start,
            status=ScheduleStatus.DRAFT,
            version=source.version + 1,
            sessions=result.sessions,
            source_schedule_id=source.id,
        )
        stored = self.store.insert_schedule(schedule)
        self._persist(ctx, stored, result.warnings)
        return DraftCopyOutcome(
            schedule=stored,
            kept=result.kept,
            regenerated=result.regenerated,
            removed=result.removed,
            warnings=result.warnings,
        )

    def apply_modification(
        self,
        schedule_id: str,
        command: ParsedCommand | Mapping[str, Any],
        expected_version: int | None = None,
    ) -> ModificationResult:
        """
        @brief
        Apply one parsed edit and commit it under a version check.

        @details
        The version read here is the one the commit expects; a concurrent
        writer in between turns into ConcurrencyConflictError and nothing
        is written.
        """
        schedule = self.store.get_schedule(schedule_id)
        self._check_version(schedule, expected_version, "SchedulingService.apply_modification")

        ctx = self.build_context(schedule.organization_id, schedule.week_start_date)
        applier = ModificationApplier(ctx, self.tenant, id_factory=self.id_factory)
        result = applier.apply(schedule, command)

        result.schedule = self.store.commit_schedule(result.schedule, schedule.version)
        return result

    def publish_schedule(self, schedule_id: str, expected_version: int | None = None) -> Schedule:
        """Draft -> published. Published schedules change only through a new draft copy."""
        schedule = self.store.get_schedule(schedule_id)
        self._check_version(schedule, expected_version, "SchedulingService.publish_schedule")
        if schedule.is_published:
            raise ScheduleStateError(
                message=f"Schedule {schedule.id} is already published",
                source="SchedulingService.publish_schedule",
                suggested_action="Create a draft copy to make further changes.",
            )
        published = schedule.model_copy(
            update={
                "status": ScheduleStatus.PUBLISHED.value,
                "published_at": datetime.now(timezone.utc),
            }
        )
        stored = self.store.commit_schedule(published, schedule.version)
        logger.info("Schedule %s published (version %d)", stored.id, stored.version)
        return stored

    # ------------------------------
    # Internal
    # ------------------------------
    def _lookback_weeks(self, rules: RuleSet) -> int:
        weeks = [
            r.payload.lookback_weeks or self.cfg.consistency_lookback_weeks
            for r in rules.pairing
            if isinstance(r.payload, SpecificPairingPayload)
            and r.payload.kind == "maintain_consistency"
        ]
        return max(weeks, default=0)

    def _check_version(self, schedule: Schedule, expected: int | None, source: str) -> None:
        if expected is not None and expected != schedule.version:
            raise ConcurrencyConflictError(
                message=(
                    f"Schedule {schedule.id} is at version {schedule.version}, "
                    f"caller expected {expected}"
                ),
                expected_version=expected,
                actual_version=schedule.version,
                source=source,
                suggested_action="Reload the schedule and retry the operation.",
            )

    def _persist(
        self,
        ctx: EvaluationContext,
        schedule: Schedule,
        warnings: list[UnmetRequirement] | list[str],
    ) -> None:
        if not self.result_store.write_artifacts:
            return
        capacity = {
            p.id: ctx.calendar.capacity_minutes(p, ctx.dates)
            for p in ctx.practitioners.values()
            if p.is_active
        }
        self.result_store.persist(schedule, ctx.practitioners.values(), warnings, capacity)


__all__ = ["SchedulingService"]
