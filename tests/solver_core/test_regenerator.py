# tests/solver_core/test_regenerator.py
from datetime import date

from helpers import (
    MONDAY,
    SUNDAY,
    TUESDAY,
    WEDNESDAY,
    counter_ids,
    mk_client,
    mk_context,
    mk_practitioner,
    mk_room,
    mk_schedule,
    mk_session,
    mk_store,
)
from therasched.schemas.models import AvailabilityOverride
from therasched.solver_core.engine import AssignmentEngine
from therasched.solver_core.regenerator import DraftRegenerator

PREV_WEEK = date(2025, 2, 24)
PREV_MONDAY = PREV_WEEK
PREV_WEDNESDAY = date(2025, 2, 26)


def _source(*sessions):
    return mk_schedule(list(sessions), schedule_id="src", week=PREV_WEEK)


def _regenerator(*entities):
    ctx = mk_context(mk_store(*entities))
    return DraftRegenerator(AssignmentEngine(ctx, id_factory=counter_ids("n")))


def _day_off(day):
    return AvailabilityOverride(
        id=f"off-{day.isoformat()}",
        organization_id="org-a",
        practitioner_id="p1",
        date=day,
        status="approved",
    )


def test_target_date_keeps_the_weekday():
    regen = _regenerator(mk_practitioner("p1"))
    assert regen.target_date(PREV_WEDNESDAY, MONDAY) == WEDNESDAY
    assert regen.target_date(PREV_WEDNESDAY, SUNDAY) == date(2025, 3, 12)
    assert regen.target_date(PREV_MONDAY, MONDAY) == MONDAY


def test_feasible_sessions_are_kept_on_the_same_weekday():
    # --- Arrange ---
    regen = _regenerator(mk_practitioner("p1"), mk_client("c1"), mk_room("r1"))
    original = mk_session("old-1", "p1", "c1", PREV_WEDNESDAY, "10:00", "11:00", room_id="r1", schedule_id="src")

    # --- Act ---
    result = regen.regenerate(_source(original), "draft-1")

    # --- Assert ---
    assert [k.original.id for k in result.kept] == ["old-1"]
    kept = result.kept[0].session
    assert (kept.date, kept.start_time, kept.room_id) == (WEDNESDAY, "10:00", "r1")
    assert kept.id == "n-1" and kept.schedule_id == "draft-1"
    assert result.regenerated == [] and result.removed == []


def test_infeasible_session_is_regenerated_with_same_length():
    """
    @brief
    A session whose practitioner is off on the new date is searched again.

    @details
    The replacement keeps the client and the original 90-minute length even
    though the client's current duration is 60.
    """
    # --- Arrange ---
    regen = _regenerator(mk_practitioner("p1"), mk_client("c1", duration=60), _day_off(MONDAY))
    original = mk_session("old-1", "p1", "c1", PREV_MONDAY, "09:00", "10:30", schedule_id="src")

    # --- Act ---
    result = regen.regenerate(_source(original), "draft-1")

    # --- Assert ---
    assert result.kept == []
    assert len(result.regenerated) == 1
    replacement = result.regenerated[0]
    assert (replacement.session.date, replacement.session.start_time, replacement.session.end_time) == (
        TUESDAY,
        "09:00",
        "10:30",
    )
    assert "not available on 2025-03-03" in replacement.reasons[0]


def test_sessions_without_any_placement_are_removed():
    # --- Arrange ---
    regen = _regenerator(
        mk_practitioner("p1", hours={"monday": {"start": "09:00", "end": "17:00"}}),
        mk_client("c1"),
        mk_client("c2", status="inactive"),
        _day_off(MONDAY),
    )
    gone = mk_session("old-1", "p1", "c1", PREV_MONDAY, "09:00", "10:00", schedule_id="src")
    inactive = mk_session("old-2", "p1", "c2", PREV_MONDAY, "11:00", "12:00", schedule_id="src")

    # --- Act ---
    result = regen.regenerate(_source(gone, inactive), "draft-1")

    # --- Assert ---
    assert result.sessions == []
    assert {r.original.id for r in result.removed} == {"old-1", "old-2"}
    assert len(result.warnings) == 2
    assert any("c2 is no longer active" in w for w in result.warnings)


def test_kept_sessions_win_over_replacements():
    """
    @brief
    Every inherited session lands in exactly one partition.

    @details
    The 09:00 session stays put; the 10:00 one conflicts with a day-off
    override for p2 and is moved without displacing the kept session.
    """
    # --- Arrange ---
    regen = _regenerator(
        mk_practitioner("p1"),
        mk_practitioner("p2", hours={"monday": {"start": "09:00", "end": "17:00"}}),
        mk_client("c1"),
        mk_client("c2"),
        AvailabilityOverride(
            id="off", organization_id="org-a", practitioner_id="p2", date=MONDAY, status="approved"
        ),
    )
    stays = mk_session("old-1", "p1", "c1", PREV_MONDAY, "09:00", "10:00", schedule_id="src")
    moves = mk_session("old-2", "p2", "c2", PREV_MONDAY, "09:00", "10:00", schedule_id="src")

    # --- Act ---
    result = regen.regenerate(_source(stays, moves), "draft-1")

    # --- Assert ---
    assert [k.original.id for k in result.kept] == ["old-1"]
    assert [r.original.id for r in result.regenerated] == ["old-2"]
    moved = result.regenerated[0].session
    assert (moved.practitioner_id, moved.date, moved.start_time) == ("p1", MONDAY, "10:00")
    assert len(result.sessions) == 2
