# src/therasched/schemas/models.py
"""
@brief
Pydantic data models for the therasched scheduling core.

@details
Defines the canonical entity types read from the entity store:
    - Organization, Practitioner, AvailabilityOverride, Client, SessionSpec,
      Room, Rule, Holiday: scheduling inputs, each scoped to one organization;
    - Schedule, Session: the persisted output, carrying local calendar dates
      and "HH:MM" wall-clock strings, never raw instants;
    - Config: runtime configuration (from config.yaml).

Enum-typed fields are stored as their raw string values
(`use_enum_values`), so lookups keyed by weekday or status use `.value`.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from therasched.errors import TemporalInputError
from therasched.temporal.timezone import (
    MINUTES_PER_DAY,
    TimeOfDay,
    Weekday,
    minutes_to_time,
    time_to_minutes,
)


class _StrictBaseModel(BaseModel):
    """
    @brief
    Base model enforcing strict defaults for configuration and data contracts.

    @details
    Forbids unknown fields and preserves exact naming rules.
    Designed as a foundation for all other therasched models.
    """

    model_config = {
        "extra": "forbid",  # Reject unknown fields
        "populate_by_name": True,  # Allow population by field name
        "use_enum_values": True,  # Export raw enum values
        "validate_default": True,  # Defaults go through the same enum coercion
    }


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class EntityStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class OverrideStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ScheduleStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class RuleCategory(str, Enum):
    GENDER_PAIRING = "gender_pairing"
    SESSION = "session"
    AVAILABILITY = "availability"
    SPECIFIC_PAIRING = "specific_pairing"
    CERTIFICATION = "certification"


# ------------------------------------------------------------
# Field helpers
# ------------------------------------------------------------
def _normalize_time(value: Any, *, end_of_day: bool = False) -> str:
    """Normalize a wall-clock string to "HH:MM"; pydantic reports ValueError per field."""
    try:
        minutes = time_to_minutes(value, allow_end_of_day=end_of_day)
    except TemporalInputError as e:
        raise ValueError(str(e.args[0])) from e
    return "24:00" if minutes == MINUTES_PER_DAY else minutes_to_time(minutes)


def _normalize_weekday_map(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    out: dict[str, Any] = {}
    for key, hours in value.items():
        try:
            out[Weekday.parse(key).value] = hours
        except TemporalInputError as e:
            raise ValueError(str(e.args[0])) from e
    return out


def _lower_list(value: Any) -> Any:
    if isinstance(value, list):
        return [v.strip().lower() if isinstance(v, str) else v for v in value]
    return value


def _utc_aware(value: dt.datetime | None) -> dt.datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


class WorkingHours(_StrictBaseModel):
    """Half-open local window [start, end) within one day; end may be "24:00"."""

    start: str = Field(..., description="Local start time, HH:MM")
    end: str = Field(..., description="Local end time, HH:MM (24:00 allowed)")

    @field_validator("start", mode="before")
    @classmethod
    def _v_start(cls, v: Any) -> str:
        return _normalize_time(v)

    @field_validator("end", mode="before")
    @classmethod
    def _v_end(cls, v: Any) -> str:
        return _normalize_time(v, end_of_day=True)

    @model_validator(mode="after")
    def _v_order(self) -> WorkingHours:
        if self.start_minutes >= self.end_minutes:
            raise ValueError(f"start {self.start} must precede end {self.end}")
        return self

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end, allow_end_of_day=True)


# ------------------------------------------------------------
# Tenant and roster entities
# ------------------------------------------------------------
class Organization(_StrictBaseModel):
    """
    @brief
    Tenant boundary.

    @details
    `business_hours` is optional; when present, a weekday missing from the
    map (or mapped to null) means the organization is closed that day.
    `labels` overrides display terms such as "client" or "practitioner".
    """

    id: str = Field(..., description="Organization identifier")
    name: str = Field("", description="Display name")
    timezone: str | None = Field(None, description="IANA timezone name")
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="active | inactive")
    labels: dict[str, str] = Field(default_factory=dict, description="Display-label overrides")
    business_hours: dict[str, WorkingHours | None] | None = Field(
        None, description="Per-weekday opening hours"
    )

    @field_validator("business_hours", mode="before")
    @classmethod
    def _v_business_hours(cls, v: Any) -> Any:
        return _normalize_weekday_map(v)

    def label(self, key: str, default: str | None = None) -> str:
        return self.labels.get(key) or default or key


class Practitioner(_StrictBaseModel):
    """Staff member delivering sessions."""

    id: str = Field(..., description="Practitioner identifier")
    organization_id: str = Field(..., description="Owning organization")
    name: str = Field("", description="Display name")
    gender: Gender | None = Field(None, description="male | female | other")
    certifications: list[str] = Field(default_factory=list, description="Certification tags")
    default_hours: dict[str, WorkingHours | None] = Field(
        default_factory=dict, description="Weekly working hours keyed by weekday"
    )
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="active | inactive")

    @field_validator("default_hours", mode="before")
    @classmethod
    def _v_default_hours(cls, v: Any) -> Any:
        return _normalize_weekday_map(v)

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE.value

    def hours_on(self, weekday: Weekday) -> WorkingHours | None:
        return self.default_hours.get(weekday.value)


class AvailabilityOverride(_StrictBaseModel):
    """
    @brief
    Dated exception to a practitioner's default hours.

    @details
    Only approved overrides affect feasibility:
        - available=False, no range  -> whole day off;
        - available=False, range     -> that range blocked;
        - available=True, range      -> custom hours replace the default.
    """

    id: str = Field(..., description="Override identifier")
    organization_id: str = Field(..., description="Owning organization")
    practitioner_id: str = Field(..., description="Practitioner the override applies to")
    date: dt.date = Field(..., description="Local calendar date")
    available: bool = Field(False, description="True for custom hours, False for time off")
    start_time: str | None = Field(None, description="Optional range start, HH:MM")
    end_time: str | None = Field(None, description="Optional range end, HH:MM")
    status: OverrideStatus = Field(OverrideStatus.PENDING, description="pending | approved | rejected")
    reason: str | None = None

    @field_validator("start_time", mode="before")
    @classmethod
    def _v_start(cls, v: Any) -> Any:
        return None if v in (None, "") else _normalize_time(v)

    @field_validator("end_time", mode="before")
    @classmethod
    def _v_end(cls, v: Any) -> Any:
        return None if v in (None, "") else _normalize_time(v, end_of_day=True)

    @model_validator(mode="after")
    def _v_range(self) -> AvailabilityOverride:
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.window is not None and self.window.start_minutes >= self.window.end_minutes:
            raise ValueError("override start_time must precede end_time")
        return self

    @property
    def is_approved(self) -> bool:
        return self.status == OverrideStatus.APPROVED.value

    @property
    def window(self) -> WorkingHours | None:
        if self.start_time is None or self.end_time is None:
            return None
        return WorkingHours.model_construct(start=self.start_time, end=self.end_time)


class SessionSpec(_StrictBaseModel):
    """
    @brief
    One named recurring requirement of a client.

    @details
    Unset preferences fall back to the owning client's; certification and
    capability requirements are unioned with the client's.
    """

    id: str = Field(..., description="Specification identifier")
    client_id: str | None = Field(None, description="Owning client")
    name: str = Field("", description="Display name, e.g. 'ABA therapy'")
    sessions_per_week: int = Field(2, ge=0, description="Required weekly occurrences")
    duration_minutes: int | None = Field(None, gt=0, description="Session length in minutes")
    required_certifications: list[str] = Field(default_factory=list)
    preferred_room_id: str | None = None
    required_room_capabilities: list[str] = Field(default_factory=list)
    preferred_times: list[TimeOfDay] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("preferred_times", mode="before")
    @classmethod
    def _v_times(cls, v: Any) -> Any:
        return _lower_list(v)


class Client(_StrictBaseModel):
    """Person receiving sessions."""

    id: str = Field(..., description="Client identifier")
    organization_id: str = Field(..., description="Owning organization")
    name: str = Field("", description="Display name")
    identifier: str | None = Field(None, description="External short identifier")
    gender: Gender | None = None
    sessions_per_week: int = Field(0, ge=0, description="Weekly count when no specs are defined")
    duration_minutes: int | None = Field(None, gt=0)
    required_certifications: list[str] = Field(default_factory=list)
    preferred_room_id: str | None = None
    required_room_capabilities: list[str] = Field(default_factory=list)
    preferred_times: list[TimeOfDay] = Field(default_factory=list)
    gender_preference: Gender | None = Field(None, description="Preferred practitioner gender")
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="active | inactive")
    created_at: dt.date | None = Field(None, description="Intake date")
    session_specs: list[SessionSpec] = Field(default_factory=list)

    @field_validator("preferred_times", mode="before")
    @classmethod
    def _v_times(cls, v: Any) -> Any:
        return _lower_list(v)

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE.value


class Room(_StrictBaseModel):
    id: str = Field(..., description="Room identifier")
    organization_id: str = Field(..., description="Owning organization")
    name: str = ""
    capabilities: list[str] = Field(default_factory=list)
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="active | inactive")

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE.value


class Rule(_StrictBaseModel):
    """
    @brief
    Organization rule as stored.

    @details
    `category` is kept as a plain string so unknown categories survive
    loading; `rule_logic` stays a raw mapping until the rule store decodes it.
    """

    id: str = Field(..., description="Rule identifier")
    organization_id: str = Field(..., description="Owning organization")
    category: str = Field(..., description="Rule category tag")
    description: str = ""
    rule_logic: dict[str, Any] = Field(default_factory=dict, description="Category payload")
    priority: int = Field(0, description="Higher wins")
    is_active: bool = True
    created_at: dt.datetime | None = Field(None, description="Creation instant (ordering)")

    @field_validator("created_at", mode="after")
    @classmethod
    def _v_created(cls, v: dt.datetime | None) -> dt.datetime | None:
        return _utc_aware(v)


class Holiday(_StrictBaseModel):
    """Organization-specific closure date."""

    id: str
    organization_id: str
    date: dt.date
    name: str = ""


# ------------------------------------------------------------
# Schedule output
# ------------------------------------------------------------
class Session(_StrictBaseModel):
    """
    @brief
    One booked session inside a schedule.

    @details
    Stored as a local calendar date plus local "HH:MM" strings so the
    displayed wall-clock time never shifts with later timezone changes.
    Sessions never cross midnight.
    """

    id: str = Field(..., description="Session identifier")
    schedule_id: str | None = Field(None, description="Owning schedule")
    practitioner_id: str
    client_id: str
    room_id: str | None = None
    session_spec_id: str | None = None
    date: dt.date = Field(..., description="Local calendar date")
    start_time: str = Field(..., description="Local start, HH:MM")
    end_time: str = Field(..., description="Local end, HH:MM (24:00 allowed)")
    notes: str | None = None

    @field_validator("start_time", mode="before")
    @classmethod
    def _v_start(cls, v: Any) -> str:
        return _normalize_time(v)

    @field_validator("end_time", mode="before")
    @classmethod
    def _v_end(cls, v: Any) -> str:
        return _normalize_time(v, end_of_day=True)

    @model_validator(mode="after")
    def _v_order(self) -> Session:
        if self.start_minutes >= self.end_minutes:
            raise ValueError(f"start_time {self.start_time} must precede end_time {self.end_time}")
        return self

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time, allow_end_of_day=True)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def key(self) -> tuple[str, str, str | None, dt.date, str, str]:
        """Identity-free tuple used to compare session sets across runs."""
        return (
            self.practitioner_id,
            self.client_id,
            self.room_id,
            self.date,
            self.start_time,
            self.end_time,
        )


class Schedule(_StrictBaseModel):
    """A week of sessions for one organization."""

    id: str = Field(..., description="Schedule identifier")
    organization_id: str
    week_start_date: dt.date = Field(..., description="Local calendar date of day one")
    status: ScheduleStatus = Field(ScheduleStatus.DRAFT, description="draft | published")
    version: int = Field(1, ge=1, description="Optimistic-concurrency counter")
    sessions: list[Session] = Field(default_factory=list)
    created_at: dt.datetime | None = None
    published_at: dt.datetime | None = None
    source_schedule_id: str | None = None

    @property
    def is_published(self) -> bool:
        return self.status == ScheduleStatus.PUBLISHED.value

    @property
    def week_end_date(self) -> dt.date:
        return self.week_start_date + dt.timedelta(days=6)

    def session_by_id(self, session_id: str) -> Session | None:
        return next((s for s in self.sessions if s.id == session_id), None)


# ------------------------------------------------------------
# Runtime configuration
# ------------------------------------------------------------
class ScoringConfig(_StrictBaseModel):
    """
    @brief
    Soft-score weights.

    @details
    Entity preferences (preferred room, preferred times, gender preference)
    contribute their weight once; rule-derived contributions are multiplied
    by the rule's priority (minimum 1).
    """

    gender_match: float = Field(10.0, ge=0.0)
    preferred_room: float = Field(4.0, ge=0.0)
    preferred_time: float = Field(6.0, ge=0.0)
    consistency: float = Field(8.0, ge=0.0)
    preferred_certification: float = Field(3.0, ge=0.0)
    pairing: float = Field(12.0, ge=0.0)


class IOPolicy(BaseModel):
    """
    @brief
    Controls runtime behavior for artifact writing.

    @details
    Used by the service and ResultStore to decide whether metrics, schedule
    CSV and configuration snapshots are written after each generation.
    """

    write_artifacts: bool = Field(
        False, description="If True, writes metrics.json, schedule.csv and config snapshot."
    )


class ValidationConfig(BaseModel):
    """
    @brief
    Controls behavior of validation subsystem.

    @details
    Determines whether to generate a report and whether warnings
    should be treated as failures.
    """

    write_report: bool = True
    fail_on_warnings: bool = False


class Config(_StrictBaseModel):
    """
    @brief
    Represents the full runtime configuration loaded from config.yaml.

    @details
    Combines search, scoring, I/O and validation settings.
    Every field has a default so an empty mapping is a valid configuration.
    """

    default_session_duration: int = Field(60, gt=0, description="Minutes per session")
    slot_interval: int = Field(30, gt=0, description="Minutes between candidate starts")
    confidence_floor: float = Field(
        0.5, ge=0.0, le=1.0, description="Minimum parser confidence for edits"
    )
    high_frequency_threshold: int = Field(
        4, ge=1, description="Weekly count from which sessions spread across days"
    )
    allow_roomless_sessions: bool = Field(
        True, description="Schedule without a room when no eligible room is free"
    )
    consistency_lookback_weeks: int = Field(4, ge=0)
    default_timezone: str = Field("UTC", description="Used when an organization has none")
    max_reasons_per_warning: int = Field(3, ge=1)

    scoring: ScoringConfig = Field(default_factory=ScoringConfig.model_construct)
    output_dir: str | None = "data/output"
    io_policy: IOPolicy = Field(default_factory=IOPolicy.model_construct)
    validation: ValidationConfig = Field(default_factory=ValidationConfig.model_construct)


__all__ = [
    "Gender",
    "EntityStatus",
    "OverrideStatus",
    "ScheduleStatus",
    "RuleCategory",
    "WorkingHours",
    "Organization",
    "Practitioner",
    "AvailabilityOverride",
    "SessionSpec",
    "Client",
    "Room",
    "Rule",
    "Holiday",
    "Session",
    "Schedule",
    "ScoringConfig",
    "IOPolicy",
    "ValidationConfig",
    "Config",
]
