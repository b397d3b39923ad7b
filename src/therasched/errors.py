# src/therasched/errors.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


class TheraschedError(Exception):
    """Base class for all structured therasched exceptions."""

    retryable: bool = False

    def __init__(
        self, message: str, source: str | None = None, suggested_action: str | None = None
    ):
        super().__init__(message)
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_type = self.__class__.__name__
        self.source = source or "unknown"
        self.suggested_action = suggested_action

    def __str__(self) -> str:
        base = f"[{self.error_type}] {self.args[0]}"
        if self.source:
            base += f" (source={self.source})"
        if self.suggested_action:
            base += f" | action: {self.suggested_action}"
        return base


class ConfigError(TheraschedError):
    """Invalid or missing configuration (config.yaml)"""


class DataError(TheraschedError):
    """Malformed or inconsistent input data"""


class ValidationError(TheraschedError):
    """Failed schedule validation or report persistence"""


class TemporalInputError(TheraschedError):
    """Unparseable local date, time or timezone input"""


class CommandError(TheraschedError):
    """Structured command payload is malformed or unsupported"""


class EntityNotFoundError(TheraschedError):
    """Schedule or organization record does not exist"""


class SessionNotFoundError(TheraschedError):
    """No session in the schedule matches the command selector"""


class ScheduleStateError(TheraschedError):
    """Operation not permitted in the schedule's current status"""


class TenantViolationError(TheraschedError):
    """
    Referenced entity is unknown or belongs to another organization.

    `violations` lists one mapping per bad reference with keys
    field, entity_id and reason ("unknown" | "foreign").
    """

    def __init__(
        self,
        message: str,
        violations: list[dict[str, Any]] | None = None,
        source: str | None = None,
        suggested_action: str | None = None,
    ):
        super().__init__(message, source=source, suggested_action=suggested_action)
        self.violations = list(violations or [])


class ConfidenceRejectedError(TheraschedError):
    """Parsed command confidence is below the configured floor"""

    def __init__(
        self,
        message: str,
        confidence: float,
        floor: float,
        source: str | None = None,
        suggested_action: str | None = None,
    ):
        super().__init__(message, source=source, suggested_action=suggested_action)
        self.confidence = confidence
        self.floor = floor


class ConcurrencyConflictError(TheraschedError):
    """Stored schedule version differs from the version the caller read"""

    retryable = True

    def __init__(
        self,
        message: str,
        expected_version: int,
        actual_version: int,
        source: str | None = None,
        suggested_action: str | None = None,
    ):
        super().__init__(message, source=source, suggested_action=suggested_action)
        self.expected_version = expected_version
        self.actual_version = actual_version


class InfeasibleModificationError(TheraschedError):
    """Requested edit violates a hard constraint"""

    def __init__(
        self,
        message: str,
        reasons: list[str] | None = None,
        source: str | None = None,
        suggested_action: str | None = None,
    ):
        super().__init__(message, source=source, suggested_action=suggested_action)
        self.reasons = list(reasons or [])


__all__ = [
    "TheraschedError",
    "ConfigError",
    "DataError",
    "ValidationError",
    "TemporalInputError",
    "CommandError",
    "EntityNotFoundError",
    "SessionNotFoundError",
    "ScheduleStateError",
    "TenantViolationError",
    "ConfidenceRejectedError",
    "ConcurrencyConflictError",
    "InfeasibleModificationError",
]
