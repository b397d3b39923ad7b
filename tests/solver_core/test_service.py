# tests/solver_core/test_service.py
from datetime import date

import pytest

from helpers import (
    MONDAY,
    TUESDAY,
    counter_ids,
    mk_client,
    mk_config,
    mk_practitioner,
    mk_room,
    mk_store,
)
from therasched.errors import (
    ConcurrencyConflictError,
    ConfidenceRejectedError,
    EntityNotFoundError,
    ScheduleStateError,
    TemporalInputError,
)
from therasched.schemas.models import AvailabilityOverride
from therasched.solver_core.service import SchedulingService
from therasched.store.org_cache import OrganizationCache

NEXT_WEEK = date(2025, 3, 10)


@pytest.fixture
def store():
    return mk_store(
        mk_practitioner("p1", name="Ana Lopez"),
        mk_practitioner("p2", name="Ben Ray"),
        mk_client("c1", name="Eli Moss", sessions=2),
        mk_client("c2", name="Maya Chen"),
        mk_room("r1"),
    )


@pytest.fixture
def service(store):
    return SchedulingService(store, mk_config(), id_factory=counter_ids("id"))


def test_generate_inserts_a_draft_version_one(service, store):
    # --- Act ---
    outcome = service.generate_schedule("org-a", "2025-03-03")

    # --- Assert ---
    schedule = outcome.schedule
    assert schedule.status == "draft"
    assert schedule.version == 1
    assert schedule.week_start_date == MONDAY
    assert len(schedule.sessions) == 3
    assert outcome.stats.sessions_created == 3
    assert outcome.warnings == []
    assert store.get_schedule(schedule.id).sessions == schedule.sessions


def test_generate_rejects_bad_inputs(service):
    with pytest.raises(EntityNotFoundError):
        service.generate_schedule("org-missing", MONDAY)
    with pytest.raises(TemporalInputError):
        service.generate_schedule("org-a", "03/03/2025")


def test_modification_commits_under_version_check(service, store):
    """
    @brief
    Edits commit with version + 1; stale versions are refused.
    """
    # --- Arrange ---
    schedule = service.generate_schedule("org-a", MONDAY).schedule
    first = schedule.sessions[0]
    command = {
        "command_type": "move",
        "confidence": 0.9,
        "data": {"sessionId": first.id, "newDayOfWeek": "friday", "newStartTime": "14:00"},
    }

    # --- Act ---
    result = service.apply_modification(schedule.id, command, expected_version=1)

    # --- Assert ---
    assert result.schedule.version == 2
    assert store.get_schedule(schedule.id).session_by_id(first.id).start_time == "14:00"
    with pytest.raises(ConcurrencyConflictError):
        service.apply_modification(schedule.id, command, expected_version=1)


def test_publish_freezes_the_schedule(service):
    # --- Arrange ---
    schedule = service.generate_schedule("org-a", MONDAY).schedule

    # --- Act ---
    published = service.publish_schedule(schedule.id, expected_version=1)

    # --- Assert ---
    assert published.is_published and published.version == 2
    assert published.published_at is not None
    with pytest.raises(ScheduleStateError):
        service.publish_schedule(schedule.id)
    with pytest.raises(ScheduleStateError):
        service.apply_modification(
            schedule.id, {"command_type": "cancel", "confidence": 1.0, "data": {"sessionId": schedule.sessions[0].id}}
        )


def test_draft_copy_links_source_and_partitions_sessions(service, store):
    """
    @brief
    A copy onto the next week keeps what still fits.

    @details
    p1 takes next Monday off, so c1's Monday session is regenerated while
    the rest is kept. The copy is version source + 1.
    """
    # --- Arrange ---
    source = service.generate_schedule("org-a", MONDAY).schedule
    source = service.publish_schedule(source.id)
    store.add(
        AvailabilityOverride(
            id="off", organization_id="org-a", practitioner_id="p1", date=NEXT_WEEK, status="approved"
        )
    )

    # --- Act ---
    outcome = service.create_draft_copy(source.id, NEXT_WEEK)

    # --- Assert ---
    copy = outcome.schedule
    assert copy.source_schedule_id == source.id
    assert copy.version == source.version + 1
    assert copy.status == "draft"
    assert len(outcome.kept) + len(outcome.regenerated) + len(outcome.removed) == len(source.sessions)
    assert outcome.removed == []
    assert all(s.date >= NEXT_WEEK for s in copy.sessions)
    assert all(s.practitioner_id != "p1" or s.date != NEXT_WEEK for s in copy.sessions)
    assert outcome.regenerated, "the Monday p1 sessions must be replaced"


def test_cache_serves_the_organization(store):
    # --- Arrange ---
    cache = OrganizationCache()
    service = SchedulingService(store, mk_config(), cache=cache)

    # --- Act ---
    service.build_context("org-a", TUESDAY)

    # --- Assert ---
    assert cache.get("org-a") is not None


def test_artifacts_written_when_enabled(store, tmp_path):
    # --- Arrange ---
    cfg = mk_config(output_dir=str(tmp_path), io_policy={"write_artifacts": True})
    service = SchedulingService(store, cfg, id_factory=counter_ids("id"))

    # --- Act ---
    outcome = service.generate_schedule("org-a", MONDAY)

    # --- Assert ---
    assert (tmp_path / f"metrics_{outcome.schedule.id}.json").exists()
    assert (tmp_path / f"schedule_{outcome.schedule.id}.csv").exists()


def test_low_confidence_edit_leaves_the_schedule_untouched(service, store):
    # --- Arrange ---
    schedule = service.generate_schedule("org-a", MONDAY).schedule
    command = {
        "command_type": "cancel",
        "confidence": 0.3,
        "data": {"sessionId": schedule.sessions[0].id},
    }

    # --- Act ---
    with pytest.raises(ConfidenceRejectedError):
        service.apply_modification(schedule.id, command)

    # --- Assert ---
    stored = store.get_schedule(schedule.id)
    assert stored.version == 1
    assert stored.sessions == schedule.sessions


def test_regeneration_on_an_unchanged_roster_is_idempotent(service):
    # --- Act ---
    first = service.generate_schedule("org-a", MONDAY).schedule
    second = service.generate_schedule("org-a", MONDAY).schedule

    # --- Assert ---
    assert first.id != second.id
    assert [s.key() for s in first.sessions] == [s.key() for s in second.sessions]


def test_three_certified_sessions_around_a_wednesday_gap():
    """
    @brief
    Three sessions needing certification X with enough total capacity.

    @details
    p1 does not work Wednesdays; p2 works every weekday. All three sessions
    must be placed without warnings, without overlaps and never with p1 on
    Wednesday.
    """
    # --- Arrange ---
    no_wednesday = {
        day: {"start": "09:00", "end": "17:00"}
        for day in ("monday", "tuesday", "thursday", "friday")
    }
    store = mk_store(
        mk_practitioner("p1", certifications=["X"], hours=no_wednesday),
        mk_practitioner("p2", certifications=["X"]),
        mk_practitioner("p3"),
        mk_client("c1", sessions=3, certifications=["X"]),
        mk_room("r1"),
    )
    service = SchedulingService(store, mk_config(), id_factory=counter_ids("id"))

    # --- Act ---
    outcome = service.generate_schedule("org-a", MONDAY)

    # --- Assert ---
    sessions = outcome.schedule.sessions
    assert len(sessions) == 3
    assert outcome.warnings == []
    assert {s.practitioner_id for s in sessions} <= {"p1", "p2"}
    assert not any(s.practitioner_id == "p1" and s.date.weekday() == 2 for s in sessions)
    for i, a in enumerate(sessions):
        for b in sessions[i + 1 :]:
            same_day = a.date == b.date
            overlap = a.start_minutes < b.end_minutes and b.start_minutes < a.end_minutes
            assert not (same_day and overlap)
