# src/therasched/schemas/commands.py
"""
@brief
Boundary types for parsed natural-language commands.

@details
The parser is an external, untrusted oracle: `(text, context) -> ParsedCommand`.
The envelope is validated strictly; action payloads ignore unknown keys but
validate every field they use. Date and time fields stay strings here and
are parsed by the temporal layer when the command is applied, so malformed
values surface as `TemporalInputError`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from therasched.schemas.models import _StrictBaseModel


class CommandAction(str, Enum):
    MOVE = "move"
    CANCEL = "cancel"
    CREATE = "create"


class CommandContext(str, Enum):
    GENERAL = "general"
    CLIENT = "client"
    PRACTITIONER = "practitioner"
    RULE = "rule"
    SCHEDULE = "schedule"


class ParsedCommand(_StrictBaseModel):
    """Parser output: command type, confidence in [0, 1], typed data, warnings."""

    command_type: str = Field(..., description="move | cancel | create (others are rejected)")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Parser-reported confidence")
    data: dict[str, Any] = Field(default_factory=dict, description="Action payload")
    warnings: list[str] = Field(default_factory=list)
    context: CommandContext = Field(CommandContext.SCHEDULE)

    @field_validator("command_type", mode="before")
    @classmethod
    def _v_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class _CommandPayload(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}


class SessionSelector(_CommandPayload):
    """
    Fields identifying an existing session. `session_id` wins when present;
    otherwise names, ids, day and time are matched with a score.
    """

    session_id: str | None = Field(None, validation_alias=AliasChoices("session_id", "sessionId"))
    practitioner_id: str | None = Field(
        None, validation_alias=AliasChoices("practitioner_id", "practitionerId", "staffId")
    )
    practitioner_name: str | None = Field(
        None,
        validation_alias=AliasChoices("practitioner_name", "practitionerName", "therapistName"),
    )
    client_id: str | None = Field(
        None, validation_alias=AliasChoices("client_id", "clientId", "patientId")
    )
    client_name: str | None = Field(
        None, validation_alias=AliasChoices("client_name", "clientName", "patientName")
    )
    date: str | None = Field(None, validation_alias=AliasChoices("date", "currentDate"))
    day_of_week: str | None = Field(
        None, validation_alias=AliasChoices("day_of_week", "dayOfWeek", "currentDayOfWeek")
    )
    start_time: str | None = Field(
        None, validation_alias=AliasChoices("start_time", "startTime", "currentStartTime")
    )

    def is_empty(self) -> bool:
        return not any(
            (
                self.session_id,
                self.practitioner_id,
                self.practitioner_name,
                self.client_id,
                self.client_name,
                self.date,
                self.day_of_week,
                self.start_time,
            )
        )


class MovePayload(SessionSelector):
    new_date: str | None = Field(None, validation_alias=AliasChoices("new_date", "newDate"))
    new_day_of_week: str | None = Field(
        None, validation_alias=AliasChoices("new_day_of_week", "newDayOfWeek")
    )
    new_start_time: str | None = Field(
        None, validation_alias=AliasChoices("new_start_time", "newStartTime")
    )
    new_end_time: str | None = Field(
        None, validation_alias=AliasChoices("new_end_time", "newEndTime")
    )
    new_practitioner_id: str | None = Field(
        None, validation_alias=AliasChoices("new_practitioner_id", "newPractitionerId")
    )
    new_room_id: str | None = Field(
        None, validation_alias=AliasChoices("new_room_id", "newRoomId")
    )

    @model_validator(mode="after")
    def _v_has_target(self) -> MovePayload:
        # Anything left unset keeps the session's current value
        if not any(
            (
                self.new_date,
                self.new_day_of_week,
                self.new_start_time,
                self.new_end_time,
                self.new_practitioner_id,
                self.new_room_id,
            )
        ):
            raise ValueError("move needs a new day, date, time, practitioner or room")
        return self


class CancelPayload(SessionSelector):
    reason: str | None = None


class CreatePayload(_CommandPayload):
    practitioner_id: str | None = Field(
        None, validation_alias=AliasChoices("practitioner_id", "practitionerId", "staffId")
    )
    practitioner_name: str | None = Field(
        None,
        validation_alias=AliasChoices("practitioner_name", "practitionerName", "therapistName"),
    )
    client_id: str | None = Field(
        None, validation_alias=AliasChoices("client_id", "clientId", "patientId")
    )
    client_name: str | None = Field(
        None, validation_alias=AliasChoices("client_name", "clientName", "patientName")
    )
    room_id: str | None = Field(None, validation_alias=AliasChoices("room_id", "roomId"))
    session_spec_id: str | None = Field(
        None, validation_alias=AliasChoices("session_spec_id", "sessionSpecId")
    )
    date: str | None = None
    day_of_week: str | None = Field(
        None, validation_alias=AliasChoices("day_of_week", "dayOfWeek")
    )
    start_time: str = Field(..., validation_alias=AliasChoices("start_time", "startTime"))
    end_time: str | None = Field(None, validation_alias=AliasChoices("end_time", "endTime"))
    notes: str | None = None


PAYLOAD_BY_ACTION: dict[str, type[_CommandPayload]] = {
    CommandAction.MOVE.value: MovePayload,
    CommandAction.CANCEL.value: CancelPayload,
    CommandAction.CREATE.value: CreatePayload,
}


__all__ = [
    "CommandAction",
    "CommandContext",
    "ParsedCommand",
    "SessionSelector",
    "MovePayload",
    "CancelPayload",
    "CreatePayload",
    "PAYLOAD_BY_ACTION",
]
