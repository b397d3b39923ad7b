# tests/schemas/test_rule_payloads.py
from datetime import date

import pytest
from pydantic import ValidationError

from therasched.schemas.rules import (
    AvailabilityPayload,
    CertificationPayload,
    GenderPairingPayload,
    SessionShapePayload,
    SpecificPairingPayload,
)


def test_gender_payload_accepts_authored_spelling():
    """
    @brief
    camelCase keys from authored rules map onto the snake_case fields.
    """
    # --- Act ---
    payload = GenderPairingPayload.model_validate(
        {"patientGender": "Female", "therapistGender": "FEMALE", "priority": "Required"}
    )

    # --- Assert ---
    assert payload.client_gender == "female"
    assert payload.practitioner_gender == "female"
    assert payload.is_required


def test_gender_payload_defaults_to_preferred():
    payload = GenderPairingPayload.model_validate({"clientGender": "male"})
    assert payload.strength == "preferred"
    assert not payload.is_required
    assert GenderPairingPayload.model_validate({"enforcePreference": True}).is_required


def test_session_shape_payload_reads_limits_and_ignores_unknown_keys():
    # --- Act ---
    payload = SessionShapePayload.model_validate(
        {
            "minGapMinutes": 15,
            "maxSessionsPerDay": 4,
            "startTimeIntervals": [0, 30],
            "authoredBy": "ops",
        }
    )

    # --- Assert ---
    assert payload.min_gap_minutes == 15
    assert payload.max_sessions_per_day == 4
    assert payload.start_time_intervals == [0, 30]
    assert payload.max_consecutive_minutes is None


@pytest.mark.parametrize(
    "logic",
    [
        {"startTimeIntervals": [0, 75]},
        {"maxSessionsPerDay": 0},
        {"minGapMinutes": -5},
    ],
)
def test_session_shape_payload_rejects_out_of_range_values(logic):
    with pytest.raises(ValidationError):
        SessionShapePayload.model_validate(logic)


@pytest.mark.parametrize(
    ("logic", "kind"),
    [
        ({"dates": ["2025-03-05"]}, "exclude_dates"),
        ({"excludeFederalHolidays": True}, "exclude_dates"),
        ({"startTime": "08:00", "endTime": "18:00"}, "time_window"),
        ({"dayOfWeek": "Fri", "endTime": "12:00"}, "day_restriction"),
        ({"preferredTime": "Morning", "endTime": "12:00"}, "preferred_time"),
    ],
)
def test_availability_kind_is_inferred_from_keys(logic, kind):
    assert AvailabilityPayload.model_validate(logic).kind == kind


def test_availability_window_open_sides_extend_to_day_edges():
    # --- Arrange ---
    evening_close = AvailabilityPayload.model_validate({"endTime": "18:00"})
    full = AvailabilityPayload.model_validate({"type": "time_window", "startTime": "7:00", "endTime": "24:00"})

    # --- Assert ---
    assert evening_close.window_minutes() == (0, 18 * 60)
    assert full.window_minutes() == (7 * 60, 24 * 60)
    assert AvailabilityPayload.model_validate({"dates": ["2025-03-05"]}).dates == [date(2025, 3, 5)]


@pytest.mark.parametrize(
    "logic",
    [
        {},
        {"type": "day_restriction"},
        {"type": "time_window"},
        {"dayOfWeek": "noday"},
        {"startTime": "25:00"},
    ],
)
def test_availability_rejects_shapeless_or_malformed_payloads(logic):
    with pytest.raises(ValidationError):
        AvailabilityPayload.model_validate(logic)


def test_pair_rule_needs_both_ids():
    with pytest.raises(ValidationError):
        SpecificPairingPayload.model_validate({"type": "pair", "practitionerId": "p1"})


def test_pair_rule_ids_can_come_from_entity_bindings():
    # --- Act ---
    payload = SpecificPairingPayload.model_validate(
        {
            "type": "pair",
            "mode": "avoid",
            "entityBindings": [
                {"entityType": "staff", "entityId": "p1"},
                {"entityType": "patient", "entityId": "c1"},
            ],
        }
    )

    # --- Assert ---
    assert (payload.practitioner_id, payload.client_id) == ("p1", "c1")
    assert payload.mode == "avoid"


def test_consistency_rule_needs_no_ids():
    payload = SpecificPairingPayload.model_validate({"type": "maintain_consistency", "lookbackWeeks": 2})
    assert payload.kind == "maintain_consistency"
    assert payload.lookback_weeks == 2


def test_certification_payload_defaults():
    payload = CertificationPayload.model_validate(
        {"patientRequires": ["aba"], "therapistMustHave": ["bcba", "rbt"]}
    )
    assert payload.enforce_required
    assert not payload.enforce_exact
    assert payload.practitioner_must_have == ["bcba", "rbt"]
