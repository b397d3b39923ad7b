# src/therasched/dataloader/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from therasched.schemas.models import (
    AvailabilityOverride,
    Client,
    Holiday,
    Organization,
    Practitioner,
    Room,
    Rule,
)
from therasched.store.entity_store import InMemoryEntityStore


@dataclass(slots=True)
class Roster:
    """
    One organization's scheduling inputs, as read from a roster file.

    Fields:
        organization: The tenant every other record belongs to.
        practitioners, clients, rooms: Roster entities.
        rules: Organization rules (decoded later by RuleStore).
        holidays: Organization closure dates.
        overrides: Per-practitioner availability overrides.
    """

    organization: Organization
    practitioners: list[Practitioner] = field(default_factory=list)
    clients: list[Client] = field(default_factory=list)
    rooms: list[Room] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)
    holidays: list[Holiday] = field(default_factory=list)
    overrides: list[AvailabilityOverride] = field(default_factory=list)

    def to_store(self, store: InMemoryEntityStore | None = None) -> InMemoryEntityStore:
        """Seed an in-memory entity store (a new one unless given)."""
        target = store if store is not None else InMemoryEntityStore()
        return target.add(
            self.organization,
            *self.practitioners,
            *self.clients,
            *self.rooms,
            *self.rules,
            *self.holidays,
            *self.overrides,
        )


@dataclass(slots=True)
class LoadResult:
    """
    Structured result of a roster loading step.

    Fields:
        success: True if no record-level issues were found, False otherwise.
        roster: Validated roster (None if success=False).
        errors: List of issue dicts with per-record context (used for reporting).
                Each item contains at least: kind, section, index, entity_id, message.
        total_records: Number of records observed across all sections.
        kept_records: Number of records that validated.
    """

    success: bool
    roster: Roster | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)
    total_records: int = 0
    kept_records: int = 0


__all__ = ["Roster", "LoadResult"]
