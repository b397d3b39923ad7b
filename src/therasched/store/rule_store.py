# src/therasched/store/rule_store.py
"""
@brief
Organization rules, decoded and ordered for conflict resolution.

@details
`RuleStore.active_rules_for` returns active rules sorted by priority
descending, then creation order ascending (rule id as final tiebreak), each
paired with its typed payload. `RuleSet` groups them by category and merges
session-shape parameters: for each parameter the highest-ranked rule that
sets it wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime, timezone

from pydantic import ValidationError

from therasched.schemas.models import Rule
from therasched.schemas.rules import (
    PAYLOAD_TYPES,
    AvailabilityPayload,
    CertificationPayload,
    DecodedRule,
    GenderPairingPayload,
    InertPayload,
    SessionShapePayload,
    SpecificPairingPayload,
)
from therasched.store.entity_store import EntityStore

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def rule_order_key(rule: Rule) -> tuple[int, datetime, str]:
    return (-rule.priority, rule.created_at or _EPOCH, rule.id)


def decode_rule(rule: Rule) -> DecodedRule:
    """Decode one rule's payload; failures yield an inert payload and a warning log."""
    payload_type = PAYLOAD_TYPES.get(rule.category)
    if payload_type is None:
        logger.warning("Rule %s has unknown category %r; treated as inert", rule.id, rule.category)
        return DecodedRule(rule, InertPayload(rule.category, "unknown category"))
    try:
        payload = payload_type.model_validate(rule.rule_logic)
    except ValidationError as e:
        logger.warning("Rule %s payload is malformed; treated as inert: %s", rule.id, e)
        reason = f"malformed payload: {e.error_count()} error(s)"
        return DecodedRule(rule, InertPayload(rule.category, reason))
    return DecodedRule(rule, payload)


class RuleStore:
    """Reads rules from the entity store and decodes them at this boundary."""

    def __init__(self, entities: EntityStore) -> None:
        self._entities = entities

    def active_rules_for(self, organization_id: str) -> list[DecodedRule]:
        active = [r for r in self._entities.rules(organization_id) if r.is_active]
        active.sort(key=rule_order_key)
        return [decode_rule(r) for r in active]


@dataclass(frozen=True, slots=True)
class SessionLimits:
    """Merged session-shape parameters; None means unconstrained."""

    min_gap_minutes: int | None = None
    max_sessions_per_day: int | None = None
    max_consecutive_minutes: int | None = None
    required_break_minutes: int | None = None
    start_time_intervals: tuple[int, ...] | None = None
    frequency_threshold: int | None = None
    spread_across_days: bool | None = None
    min_day_gap: int | None = None


class RuleSet:
    """
    @brief
    Ordered rules of one organization, grouped by category.

    @details
    Each per-category list keeps the global priority order. Inert rules are
    kept in `all` (for reporting) but excluded from every category list.
    """

    def __init__(self, rules: list[DecodedRule]) -> None:
        self.all = list(rules)
        live = [r for r in self.all if not r.is_inert]
        self.gender = [r for r in live if isinstance(r.payload, GenderPairingPayload)]
        self.session = [r for r in live if isinstance(r.payload, SessionShapePayload)]
        self.availability = [r for r in live if isinstance(r.payload, AvailabilityPayload)]
        self.pairing = [r for r in live if isinstance(r.payload, SpecificPairingPayload)]
        self.certification = [r for r in live if isinstance(r.payload, CertificationPayload)]
        self.limits = self._merge_limits()

    @classmethod
    def empty(cls) -> RuleSet:
        return cls([])

    @property
    def inert(self) -> list[DecodedRule]:
        return [r for r in self.all if r.is_inert]

    def _merge_limits(self) -> SessionLimits:
        merged: dict[str, object] = {}
        for rule in self.session:
            payload = rule.payload
            for f in fields(SessionLimits):
                if f.name in merged:
                    continue
                value = getattr(payload, f.name)
                if value is None:
                    continue
                if f.name == "start_time_intervals":
                    value = tuple(sorted(set(value)))
                merged[f.name] = value
        return SessionLimits(**merged)  # type: ignore[arg-type]


__all__ = ["RuleStore", "RuleSet", "SessionLimits", "decode_rule", "rule_order_key"]
