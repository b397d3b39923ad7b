# src/therasched/store/entity_store.py
"""
@brief
Entity store boundary and an in-memory implementation.

@details
The scheduling core reads organization-scoped entities and writes whole
Schedule records. Writes are version-checked: a commit succeeds only if the
stored version still equals the version the caller read, and the store then
increments it. Reads return deep copies so callers never mutate stored state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import date, datetime, timezone
from typing import Protocol

from therasched.errors import ConcurrencyConflictError, DataError, EntityNotFoundError
from therasched.schemas.models import (
    AvailabilityOverride,
    Client,
    Holiday,
    Organization,
    Practitioner,
    Room,
    Rule,
    Schedule,
    Session,
)

logger = logging.getLogger(__name__)


class EntityStore(Protocol):
    """Read/write operations the scheduling core consumes."""

    def get_organization(self, organization_id: str) -> Organization: ...

    def practitioners(self, organization_id: str) -> list[Practitioner]: ...

    def clients(self, organization_id: str) -> list[Client]: ...

    def rooms(self, organization_id: str) -> list[Room]: ...

    def rules(self, organization_id: str) -> list[Rule]: ...

    def holidays(self, organization_id: str) -> list[Holiday]: ...

    def overrides(
        self, organization_id: str, start: date, end: date
    ) -> list[AvailabilityOverride]: ...

    def find_practitioner(self, practitioner_id: str) -> Practitioner | None: ...

    def find_client(self, client_id: str) -> Client | None: ...

    def find_room(self, room_id: str) -> Room | None: ...

    def get_schedule(self, schedule_id: str) -> Schedule: ...

    def published_sessions_between(
        self, organization_id: str, start: date, end: date
    ) -> list[Session]: ...

    def insert_schedule(self, schedule: Schedule) -> Schedule: ...

    def commit_schedule(self, schedule: Schedule, expected_version: int) -> Schedule: ...


class InMemoryEntityStore:
    """
    @brief
    Process-local EntityStore used by the CLI and tests.

    @details
    All writes go through one lock so version check and replacement are
    atomic with respect to concurrent commits.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._organizations: dict[str, Organization] = {}
        self._practitioners: dict[str, Practitioner] = {}
        self._clients: dict[str, Client] = {}
        self._rooms: dict[str, Room] = {}
        self._rules: dict[str, Rule] = {}
        self._holidays: dict[str, Holiday] = {}
        self._overrides: dict[str, AvailabilityOverride] = {}
        self._schedules: dict[str, Schedule] = {}

    # ------------------------------
    # Seeding
    # ------------------------------
    def add(
        self,
        *entities: Organization
        | Practitioner
        | Client
        | Room
        | Rule
        | Holiday
        | AvailabilityOverride
        | Schedule,
    ) -> InMemoryEntityStore:
        """Insert or replace entities by id; returns self for chaining."""
        with self._lock:
            for entity in entities:
                bucket = self._bucket_for(entity)
                bucket[entity.id] = entity.model_copy(deep=True)
        return self

    def _bucket_for(self, entity: object) -> dict:
        buckets: dict[type, dict] = {
            Organization: self._organizations,
            Practitioner: self._practitioners,
            Client: self._clients,
            Room: self._rooms,
            Rule: self._rules,
            Holiday: self._holidays,
            AvailabilityOverride: self._overrides,
            Schedule: self._schedules,
        }
        bucket = buckets.get(type(entity))
        if bucket is None:
            raise DataError(
                message=f"Unsupported entity type: {type(entity).__name__}",
                source="InMemoryEntityStore.add",
                suggested_action="Pass therasched.schemas.models entities only.",
            )
        return bucket

    def update(self, entity: Practitioner | Client | Room | Rule) -> None:
        """Replace an existing roster entity (e.g. deactivate a practitioner)."""
        with self._lock:
            bucket = self._bucket_for(entity)
            if entity.id not in bucket:
                raise EntityNotFoundError(
                    message=f"{type(entity).__name__} {entity.id} does not exist",
                    source="InMemoryEntityStore.update",
                )
            bucket[entity.id] = entity.model_copy(deep=True)

    # ------------------------------
    # Reads
    # ------------------------------
    def get_organization(self, organization_id: str) -> Organization:
        org = self._organizations.get(organization_id)
        if org is None:
            raise EntityNotFoundError(
                message=f"Organization {organization_id} not found",
                source="InMemoryEntityStore.get_organization",
                suggested_action="Check the organization id resolved for this request.",
            )
        return org.model_copy(deep=True)

    def practitioners(self, organization_id: str) -> list[Practitioner]:
        return _scoped(self._practitioners.values(), organization_id)

    def clients(self, organization_id: str) -> list[Client]:
        return _scoped(self._clients.values(), organization_id)

    def rooms(self, organization_id: str) -> list[Room]:
        return _scoped(self._rooms.values(), organization_id)

    def rules(self, organization_id: str) -> list[Rule]:
        return _scoped(self._rules.values(), organization_id)

    def holidays(self, organization_id: str) -> list[Holiday]:
        return _scoped(self._holidays.values(), organization_id)

    def overrides(
        self, organization_id: str, start: date, end: date
    ) -> list[AvailabilityOverride]:
        return [
            o
            for o in _scoped(self._overrides.values(), organization_id)
            if start <= o.date <= end
        ]

    def find_practitioner(self, practitioner_id: str) -> Practitioner | None:
        return _copy_or_none(self._practitioners.get(practitioner_id))

    def find_client(self, client_id: str) -> Client | None:
        return _copy_or_none(self._clients.get(client_id))

    def find_room(self, room_id: str) -> Room | None:
        return _copy_or_none(self._rooms.get(room_id))

    def get_schedule(self, schedule_id: str) -> Schedule:
        with self._lock:
            schedule = self._schedules.get(schedule_id)
            if schedule is None:
                raise EntityNotFoundError(
                    message=f"Schedule {schedule_id} not found",
                    source="InMemoryEntityStore.get_schedule",
                    suggested_action="Reload the schedule list; it may have been removed.",
                )
            return schedule.model_copy(deep=True)

    def schedules(self, organization_id: str) -> list[Schedule]:
        with self._lock:
            return _scoped(self._schedules.values(), organization_id)

    def published_sessions_between(
        self, organization_id: str, start: date, end: date
    ) -> list[Session]:
        out: list[Session] = []
        for schedule in self.schedules(organization_id):
            if not schedule.is_published:
                continue
            out.extend(s for s in schedule.sessions if start <= s.date <= end)
        return out

    # ------------------------------
    # Writes
    # ------------------------------
    def insert_schedule(self, schedule: Schedule) -> Schedule:
        with self._lock:
            if schedule.id in self._schedules:
                raise DataError(
                    message=f"Schedule {schedule.id} already exists",
                    source="InMemoryEntityStore.insert_schedule",
                    suggested_action="Generate a fresh schedule id.",
                )
            stored = schedule.model_copy(deep=True)
            if stored.created_at is None:
                stored.created_at = datetime.now(timezone.utc)
            self._schedules[stored.id] = stored
            logger.info("Schedule %s inserted (version %d)", stored.id, stored.version)
            return stored.model_copy(deep=True)

    def commit_schedule(self, schedule: Schedule, expected_version: int) -> Schedule:
        """
        @brief
        Replace a stored schedule if its version is unchanged.

        @details
        The stored record gets `expected_version + 1`; the caller's copy is
        not modified.

        @raises
            EntityNotFoundError
                If the schedule does not exist.
            ConcurrencyConflictError
                If another writer committed since `expected_version` was read.
        """
        with self._lock:
            current = self._schedules.get(schedule.id)
            if current is None:
                raise EntityNotFoundError(
                    message=f"Schedule {schedule.id} not found",
                    source="InMemoryEntityStore.commit_schedule",
                )
            if current.version != expected_version:
                raise ConcurrencyConflictError(
                    message=(
                        f"Schedule {schedule.id} changed: expected version "
                        f"{expected_version}, found {current.version}"
                    ),
                    expected_version=expected_version,
                    actual_version=current.version,
                    source="InMemoryEntityStore.commit_schedule",
                    suggested_action="Reload the schedule and retry the operation.",
                )
            stored = schedule.model_copy(deep=True, update={"version": expected_version + 1})
            for session in stored.sessions:
                session.schedule_id = stored.id
            self._schedules[stored.id] = stored
            logger.info("Schedule %s committed (version %d)", stored.id, stored.version)
            return stored.model_copy(deep=True)


def _scoped(entities: Iterable, organization_id: str) -> list:
    """Entities of one organization, sorted by id, as deep copies."""
    return sorted(
        (e.model_copy(deep=True) for e in entities if e.organization_id == organization_id),
        key=lambda e: e.id,
    )


def _copy_or_none(entity):
    return None if entity is None else entity.model_copy(deep=True)


__all__ = ["EntityStore", "InMemoryEntityStore"]
