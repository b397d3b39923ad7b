from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from therasched.schemas.models import (
    AvailabilityOverride,
    Client,
    Config,
    Organization,
    Practitioner,
    Rule,
    Schedule,
    Session,
)
from therasched.temporal.timezone import Weekday


def test_session_model_valid():
    s = Session(
        id="S001",
        practitioner_id="p1",
        client_id="c1",
        date="2025-03-03",
        start_time="9:00",
        end_time="10:30",
    )
    assert s.start_time == "09:00"
    assert s.duration_minutes == 90
    assert s.date == date(2025, 3, 3)
    assert s.key() == ("p1", "c1", None, date(2025, 3, 3), "09:00", "10:30")


@pytest.mark.parametrize(
    ("start", "end"),
    [("10:00", "10:00"), ("11:00", "10:00"), ("24:00", "24:00"), ("9am", "10:00")],
)
def test_session_model_rejects_bad_times(start, end):
    with pytest.raises(ValidationError):
        Session(id="s", practitioner_id="p", client_id="c", date="2025-03-03", start_time=start, end_time=end)


def test_session_may_end_at_midnight():
    s = Session(id="s", practitioner_id="p", client_id="c", date="2025-03-03", start_time="23:00", end_time="24:00")
    assert s.end_minutes == 1440


def test_practitioner_hours_keyed_by_normalized_weekday():
    p = Practitioner(
        id="p1",
        organization_id="org",
        gender="female",
        default_hours={"Mon": {"start": "09:00", "end": "17:00"}, "friday": None},
    )
    assert p.hours_on(Weekday.MONDAY).start_minutes == 540
    assert p.hours_on(Weekday.FRIDAY) is None
    assert p.status == "active" and p.is_active


def test_override_range_must_be_complete():
    with pytest.raises(ValidationError):
        AvailabilityOverride(id="o", organization_id="org", practitioner_id="p", date="2025-03-03", start_time="09:00")
    o = AvailabilityOverride(id="o", organization_id="org", practitioner_id="p", date="2025-03-03")
    assert o.status == "pending" and not o.is_approved
    assert o.window is None


def test_strict_models_forbid_unknown_fields():
    with pytest.raises(ValidationError):
        Client(id="c", organization_id="org", favourite_colour="blue")
    with pytest.raises(ValidationError):
        Organization(id="org", business_hours={"funday": {"start": "09:00", "end": "17:00"}})


def test_rule_keeps_unknown_categories_and_normalizes_created_at():
    r = Rule(id="r", organization_id="org", category="billing", created_at=datetime(2025, 1, 1))
    assert r.category == "billing"
    assert r.created_at.tzinfo == timezone.utc


def test_schedule_defaults_and_helpers():
    s = Schedule(id="sch", organization_id="org", week_start_date="2025-03-03")
    assert s.status == "draft" and s.version == 1 and not s.is_published
    assert s.week_end_date == date(2025, 3, 9)
    assert s.session_by_id("x") is None
    with pytest.raises(ValidationError):
        Schedule(id="sch", organization_id="org", week_start_date="2025-03-03", version=0)


def test_config_defaults():
    cfg = Config()
    assert cfg.default_session_duration == 60
    assert cfg.slot_interval == 30
    assert cfg.confidence_floor == pytest.approx(0.5)
    assert cfg.scoring.pairing == pytest.approx(12.0)
    assert cfg.io_policy.write_artifacts is False

    data = cfg.model_dump()
    assert "scoring" in data and "validation" in data
    with pytest.raises(ValidationError):
        Config(confidence_floor=1.5)
