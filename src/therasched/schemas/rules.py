# src/therasched/schemas/rules.py
"""
@brief
Category-tagged rule payloads.

@details
Rule records carry a free-form `rule_logic` mapping. The rule store decodes
it exactly once into one of the payload classes below, chosen by the
record's category. Keys are accepted in snake_case and in the camelCase
spelling organizations author rules with (e.g. `minGapMinutes`).

Unknown categories and payloads that fail validation decode to
`InertPayload`, which every consumer ignores.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from therasched.errors import TemporalInputError
from therasched.schemas.models import Gender, Rule, RuleCategory, _normalize_time
from therasched.temporal.timezone import TimeOfDay, Weekday, time_to_minutes


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class _RulePayload(BaseModel):
    model_config = {
        "extra": "ignore",
        "populate_by_name": True,
        "use_enum_values": True,
    }

    category: ClassVar[str] = ""


class GenderPairingPayload(_RulePayload):
    """
    Match practitioner gender for clients of a given gender.

    `strength == "required"` (or `enforce_preference`) turns the match into a
    filter; otherwise it only adds to the score. With no practitioner gender
    the client's own `gender_preference` is used.
    """

    category: ClassVar[str] = RuleCategory.GENDER_PAIRING.value

    client_gender: Gender | None = Field(
        None, validation_alias=_alias("client_gender", "patientGender", "clientGender")
    )
    practitioner_gender: Gender | None = Field(
        None,
        validation_alias=_alias(
            "practitioner_gender", "preferredTherapistGender", "therapistGender"
        ),
    )
    strength: Literal["required", "preferred"] = Field(
        "preferred", validation_alias=_alias("strength", "priority")
    )
    enforce_preference: bool = Field(
        False, validation_alias=_alias("enforce_preference", "enforcePreference")
    )

    @field_validator("client_gender", "practitioner_gender", "strength", mode="before")
    @classmethod
    def _v_lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def is_required(self) -> bool:
        return self.strength == "required" or self.enforce_preference


class SessionShapePayload(_RulePayload):
    """Per-practitioner day-shape limits and client spreading parameters."""

    category: ClassVar[str] = RuleCategory.SESSION.value

    min_gap_minutes: int | None = Field(
        None, ge=0, validation_alias=_alias("min_gap_minutes", "minGapMinutes")
    )
    max_sessions_per_day: int | None = Field(
        None, ge=1, validation_alias=_alias("max_sessions_per_day", "maxSessionsPerDay")
    )
    max_consecutive_minutes: int | None = Field(
        None, gt=0, validation_alias=_alias("max_consecutive_minutes", "maxConsecutiveMinutes")
    )
    required_break_minutes: int | None = Field(
        None, ge=0, validation_alias=_alias("required_break_minutes", "requiredBreakMinutes")
    )
    start_time_intervals: list[int] | None = Field(
        None, validation_alias=_alias("start_time_intervals", "startTimeIntervals")
    )
    frequency_threshold: int | None = Field(
        None, ge=1, validation_alias=_alias("frequency_threshold", "frequencyThreshold")
    )
    spread_across_days: bool | None = Field(
        None, validation_alias=_alias("spread_across_days", "spreadAcrossDays")
    )
    min_day_gap: int | None = Field(None, ge=0, validation_alias=_alias("min_day_gap", "minDayGap"))

    @field_validator("start_time_intervals")
    @classmethod
    def _v_intervals(cls, v: list[int] | None) -> list[int] | None:
        if v is not None and any(m < 0 or m > 59 for m in v):
            raise ValueError("start_time_intervals must be minutes past the hour (0-59)")
        return v


class AvailabilityPayload(_RulePayload):
    """
    @brief
    Organization-wide availability shaping.

    @details
    kinds:
        exclude_dates    -> listed dates (and optionally federal holidays) are closed;
        time_window      -> sessions must lie within [start_time, end_time);
        day_restriction  -> on `day_of_week`, the window is clipped to start/end,
                            or the day is closed when neither is given;
        preferred_time   -> soft: clients preferring `preferred_time` score higher
                            for sessions ending by `end_time`.
    The kind is inferred from the keys when `type` is absent.
    """

    category: ClassVar[str] = RuleCategory.AVAILABILITY.value

    kind: Literal["exclude_dates", "time_window", "day_restriction", "preferred_time"] | None = (
        Field(None, validation_alias=_alias("kind", "type"))
    )
    exclude_federal_holidays: bool = Field(
        False, validation_alias=_alias("exclude_federal_holidays", "excludeFederalHolidays")
    )
    dates: list[dt.date] = Field(default_factory=list)
    start_time: str | None = Field(None, validation_alias=_alias("start_time", "startTime"))
    end_time: str | None = Field(None, validation_alias=_alias("end_time", "endTime"))
    day_of_week: Weekday | None = Field(None, validation_alias=_alias("day_of_week", "dayOfWeek"))
    preferred_time: TimeOfDay | None = Field(
        None, validation_alias=_alias("preferred_time", "preferredTime")
    )

    @field_validator("start_time", mode="before")
    @classmethod
    def _v_start(cls, v: Any) -> Any:
        return None if v in (None, "") else _normalize_time(v)

    @field_validator("end_time", mode="before")
    @classmethod
    def _v_end(cls, v: Any) -> Any:
        return None if v in (None, "") else _normalize_time(v, end_of_day=True)

    @field_validator("day_of_week", mode="before")
    @classmethod
    def _v_day(cls, v: Any) -> Any:
        if v in (None, ""):
            return None
        try:
            return Weekday.parse(v).value
        except TemporalInputError as e:
            raise ValueError(str(e.args[0])) from e

    @field_validator("preferred_time", mode="before")
    @classmethod
    def _v_pref(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def _v_kind(self) -> AvailabilityPayload:
        # (1) Infer kind from the keys present
        if self.kind is None:
            if self.preferred_time is not None:
                self.kind = "preferred_time"
            elif self.day_of_week is not None:
                self.kind = "day_restriction"
            elif self.start_time is not None or self.end_time is not None:
                self.kind = "time_window"
            elif self.dates or self.exclude_federal_holidays:
                self.kind = "exclude_dates"
            else:
                raise ValueError("availability payload has no recognizable shape")

        # (2) Kind-specific requirements
        if self.kind == "time_window" and self.start_time is None and self.end_time is None:
            raise ValueError("time_window requires start_time or end_time")
        if self.kind == "day_restriction" and self.day_of_week is None:
            raise ValueError("day_restriction requires day_of_week")
        if self.kind == "preferred_time" and self.preferred_time is None:
            raise ValueError("preferred_time requires preferred_time")
        return self

    def window_minutes(self) -> tuple[int, int]:
        """(start, end) bounds; an open side extends to the edge of the day."""
        start = time_to_minutes(self.start_time) if self.start_time else 0
        end = (
            time_to_minutes(self.end_time, allow_end_of_day=True)
            if self.end_time
            else 24 * 60
        )
        return start, end


class SpecificPairingPayload(_RulePayload):
    """
    kinds:
        maintain_consistency -> soft: prefer a client's recently used practitioners;
        pair                 -> prefer or avoid one practitioner/client pairing;
        new_client           -> soft: prefer certifications for recently admitted clients.
    """

    category: ClassVar[str] = RuleCategory.SPECIFIC_PAIRING.value

    kind: Literal["maintain_consistency", "pair", "new_client"] = Field(
        "pair", validation_alias=_alias("kind", "type")
    )
    lookback_weeks: int | None = Field(
        None, ge=1, validation_alias=_alias("lookback_weeks", "lookbackWeeks")
    )
    practitioner_id: str | None = Field(
        None, validation_alias=_alias("practitioner_id", "practitionerId", "staffId", "therapistId")
    )
    client_id: str | None = Field(
        None, validation_alias=_alias("client_id", "clientId", "patientId")
    )
    mode: Literal["prefer", "avoid"] = "prefer"
    new_client_weeks: int | None = Field(
        None, ge=1, validation_alias=_alias("new_client_weeks", "newClientWeeks")
    )
    prefer_certifications: list[str] = Field(
        default_factory=list,
        validation_alias=_alias("prefer_certifications", "preferCertifications"),
    )
    entity_bindings: list[dict[str, Any]] = Field(
        default_factory=list, validation_alias=_alias("entity_bindings", "entityBindings")
    )

    @model_validator(mode="after")
    def _v_pair(self) -> SpecificPairingPayload:
        # (1) Fill ids from entity bindings resolved when the rule was authored
        for binding in self.entity_bindings:
            kind = str(binding.get("entityType", binding.get("entity_type", ""))).lower()
            entity_id = binding.get("entityId", binding.get("entity_id"))
            if not entity_id:
                continue
            if kind in {"staff", "practitioner"} and self.practitioner_id is None:
                self.practitioner_id = str(entity_id)
            elif kind in {"patient", "client"} and self.client_id is None:
                self.client_id = str(entity_id)

        # (2) A pairing needs both ends
        if self.kind == "pair" and (self.practitioner_id is None or self.client_id is None):
            raise ValueError("pair rule requires practitioner_id and client_id")
        return self


class CertificationPayload(_RulePayload):
    """
    Certification requirements beyond the client's own list.

    When the client requires any of `client_requires` (or the list is empty),
    the practitioner must hold any of `practitioner_must_have` (all of them
    with `enforce_exact`). `prefer_certification` only adds to the score.
    """

    category: ClassVar[str] = RuleCategory.CERTIFICATION.value

    enforce_required: bool = Field(
        True, validation_alias=_alias("enforce_required", "enforceRequired")
    )
    client_requires: list[str] = Field(
        default_factory=list, validation_alias=_alias("client_requires", "patientRequires")
    )
    practitioner_must_have: list[str] = Field(
        default_factory=list,
        validation_alias=_alias("practitioner_must_have", "therapistMustHave"),
    )
    enforce_exact: bool = Field(False, validation_alias=_alias("enforce_exact", "enforceExact"))
    prefer_certification: str | None = Field(
        None, validation_alias=_alias("prefer_certification", "preferCertification")
    )


@dataclass(frozen=True, slots=True)
class InertPayload:
    """Placeholder for rules that could not be decoded; contributes nothing."""

    category: str
    reason: str


RulePayload = Union[
    GenderPairingPayload,
    SessionShapePayload,
    AvailabilityPayload,
    SpecificPairingPayload,
    CertificationPayload,
    InertPayload,
]

PAYLOAD_TYPES: dict[str, type[_RulePayload]] = {
    cls.category: cls
    for cls in (
        GenderPairingPayload,
        SessionShapePayload,
        AvailabilityPayload,
        SpecificPairingPayload,
        CertificationPayload,
    )
}


@dataclass(frozen=True, slots=True)
class DecodedRule:
    """A stored rule paired with its decoded payload."""

    rule: Rule
    payload: RulePayload

    @property
    def id(self) -> str:
        return self.rule.id

    @property
    def priority(self) -> int:
        return self.rule.priority

    @property
    def category(self) -> str:
        return self.rule.category

    @property
    def is_inert(self) -> bool:
        return isinstance(self.payload, InertPayload)

    @property
    def weight(self) -> float:
        """Multiplier applied to this rule's soft contributions."""
        return float(max(self.rule.priority, 1))


__all__ = [
    "GenderPairingPayload",
    "SessionShapePayload",
    "AvailabilityPayload",
    "SpecificPairingPayload",
    "CertificationPayload",
    "InertPayload",
    "RulePayload",
    "PAYLOAD_TYPES",
    "DecodedRule",
]
