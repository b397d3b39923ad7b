# src/therasched/validator/tenant.py
"""
@brief
Tenant-isolation boundary for externally supplied entity references.

@details
Before any caller-supplied practitioner, client or room id reaches the
engine it is checked against the entity store. A reference is either
`unknown` (no such entity anywhere) or `foreign` (it belongs to another
organization). Failures always name the offending field and id; a raw
not-found never leaks out of this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from therasched.errors import TenantViolationError
from therasched.store.entity_store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EntityRefs:
    """Optional references carried by one request."""

    practitioner_id: str | None = None
    client_id: str | None = None
    room_id: str | None = None


@dataclass(frozen=True, slots=True)
class TenantViolation:
    field: str
    entity_id: str
    reason: str  # unknown | foreign

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "entity_id": self.entity_id, "reason": self.reason}


@dataclass(slots=True)
class TenantCheck:
    valid: bool
    violations: list[TenantViolation] = field(default_factory=list)


class SessionValidator:
    """Confirms that referenced entities belong to the caller's organization."""

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def validate(self, organization_id: str, refs: EntityRefs) -> TenantCheck:
        lookups = (
            ("practitioner_id", refs.practitioner_id, self.store.find_practitioner),
            ("client_id", refs.client_id, self.store.find_client),
            ("room_id", refs.room_id, self.store.find_room),
        )
        violations: list[TenantViolation] = []
        for name, entity_id, find in lookups:
            if entity_id is None:
                continue
            entity = find(entity_id)
            if entity is None:
                violations.append(TenantViolation(name, entity_id, "unknown"))
            elif entity.organization_id != organization_id:
                violations.append(TenantViolation(name, entity_id, "foreign"))
        return TenantCheck(valid=not violations, violations=violations)

    def ensure_valid(self, organization_id: str, refs: EntityRefs) -> None:
        """
        @raises
            TenantViolationError listing every invalid reference.
        """
        check = self.validate(organization_id, refs)
        if check.valid:
            return
        described = ", ".join(f"{v.field}={v.entity_id} ({v.reason})" for v in check.violations)
        logger.warning("Tenant check failed for organization %s: %s", organization_id, described)
        raise TenantViolationError(
            message=f"Invalid reference(s) for organization {organization_id}: {described}",
            violations=[v.to_dict() for v in check.violations],
            source="SessionValidator.ensure_valid",
            suggested_action="Use identifiers belonging to your organization.",
        )


__all__ = ["EntityRefs", "TenantViolation", "TenantCheck", "SessionValidator"]
