# tests/solver_core/test_evaluator.py
from datetime import date

import pytest

from helpers import (
    MONDAY,
    SATURDAY,
    mk_client,
    mk_context,
    mk_practitioner,
    mk_room,
    mk_rule,
    mk_schedule,
    mk_session,
    mk_store,
)
from therasched.solver_core.evaluator import ConstraintEvaluator, SchedulePlan
from therasched.solver_core.types import Candidate


def _candidate(client="c1", practitioner="p1", room=None, day=MONDAY, start="09:00", minutes=60):
    h, m = map(int, start.split(":"))
    return Candidate(
        client_id=client,
        practitioner_id=practitioner,
        room_id=room,
        date=day,
        start=h * 60 + m,
        end=h * 60 + m + minutes,
    )


def _evaluator(*entities):
    return ConstraintEvaluator(mk_context(mk_store(*entities)))


def _categories(verdict):
    return {r.category for r in verdict.rejections}


@pytest.fixture
def basic():
    return _evaluator(
        mk_practitioner("p1", certifications=["rbt"]),
        mk_practitioner("p2", certifications=["rbt"]),
        mk_client("c1", certifications=["rbt"]),
        mk_client("c2"),
        mk_room("r1"),
    )


def test_free_slot_is_feasible(basic):
    assert basic.feasible(_candidate(room="r1"), SchedulePlan()).ok


def test_overlaps_are_rejected_per_resource(basic):
    """
    @brief
    Same practitioner, room or client may not be double-booked.
    """
    # --- Arrange ---
    plan = SchedulePlan([mk_session("s1", "p1", "c2", MONDAY, "09:00", "10:00", room_id="r1")])

    # --- Act ---
    same_practitioner = basic.feasible(_candidate(start="09:30"), plan)
    same_room = basic.feasible(_candidate(practitioner="p2", room="r1", start="09:30"), plan)
    same_client = basic.feasible(_candidate(client="c2", practitioner="p2", start="09:00"), plan)
    back_to_back = basic.feasible(_candidate(start="10:00", room="r1"), plan)

    # --- Assert ---
    assert _categories(same_practitioner) == {"practitioner_conflict"}
    assert _categories(same_room) == {"room_conflict"}
    assert _categories(same_client) == {"client_conflict"}
    assert back_to_back.ok


def test_all_failing_checks_are_reported(basic):
    # --- Act ---
    verdict = basic.feasible(_candidate(practitioner="p1", day=SATURDAY), SchedulePlan())
    uncertified = _evaluator(mk_practitioner("p1"), mk_client("c1", certifications=["bcba"]))
    both = uncertified.feasible(_candidate(day=SATURDAY), SchedulePlan())

    # --- Assert ---
    assert _categories(verdict) == {"availability"}
    assert _categories(both) == {"availability", "certification"}
    assert any("lacks certification(s): bcba" in r for r in both.reasons)


def test_inactive_and_unknown_entities(basic):
    # --- Arrange ---
    ev = _evaluator(mk_practitioner("p1", status="inactive"), mk_client("c1"))

    # --- Act / Assert ---
    assert _categories(ev.feasible(_candidate(), SchedulePlan())) == {"status"}
    unknown = basic.feasible(_candidate(client="ghost"), SchedulePlan())
    assert unknown.reasons == ["client ghost is not known"]


def test_room_capabilities_and_roomless_sessions():
    # --- Arrange ---
    ev = _evaluator(
        mk_practitioner("p1"),
        mk_client("c1", required_room_capabilities=["sensory"]),
        mk_room("r1"),
        mk_room("r2", capabilities=["sensory"]),
    )

    # --- Act / Assert ---
    assert _categories(ev.feasible(_candidate(room="r1"), SchedulePlan())) == {"room_capability"}
    assert _categories(ev.feasible(_candidate(room=None), SchedulePlan())) == {"room_capability"}
    assert ev.feasible(_candidate(room="r2"), SchedulePlan()).ok
    req = ev.ctx.requirement("c1", None)
    assert [r.id for r in ev.eligible_rooms(req)] == ["r2"]


def test_eligible_rooms_puts_preferred_room_first():
    ev = _evaluator(mk_client("c1", preferred_room_id="r2"), mk_room("r1"), mk_room("r2"))
    req = ev.ctx.requirement("c1", None)
    assert [r.id for r in ev.eligible_rooms(req)] == ["r2", "r1"]


def test_session_shape_limits():
    """
    @brief
    Session rules constrain a practitioner's day.

    @details
    - start minutes restricted to :00;
    - at most 2 sessions per day;
    - 15 minutes between sessions;
    - at most 120 consecutive minutes without a 30-minute break.
    """
    # --- Arrange ---
    ev = _evaluator(
        mk_practitioner("p1"),
        mk_client("c1"),
        mk_client("c2"),
        mk_client("c3"),
        mk_rule("r-start", "session", {"startTimeIntervals": [0]}),
        mk_rule("r-gap", "session", {"minGapMinutes": 15}),
    )
    one = SchedulePlan([mk_session("s1", "p1", "c2", MONDAY, "09:00", "10:00")])

    # --- Act / Assert ---
    assert "session_rule" in _categories(ev.feasible(_candidate(start="10:30"), one))
    assert "session_rule" in _categories(ev.feasible(_candidate(start="10:00"), one))
    assert ev.feasible(_candidate(start="11:00"), one).ok

    capped = _evaluator(
        mk_practitioner("p1"),
        mk_client("c1"),
        mk_client("c2"),
        mk_client("c3"),
        mk_rule("r-cap", "session", {"maxSessionsPerDay": 2}),
        mk_rule("r-run", "session", {"maxConsecutiveMinutes": 120, "requiredBreakMinutes": 30}),
    )
    two = SchedulePlan(
        [
            mk_session("s1", "p1", "c2", MONDAY, "09:00", "10:00"),
            mk_session("s2", "p1", "c3", MONDAY, "10:00", "11:00"),
        ]
    )
    reasons = capped.feasible(_candidate(start="11:00"), two).reasons
    assert any("max 2" in r for r in reasons)
    assert any("180 consecutive" in r for r in reasons)


def test_required_gender_rule_filters_practitioners():
    # --- Arrange ---
    ev = _evaluator(
        mk_practitioner("p1", gender="male"),
        mk_practitioner("p2", gender="female"),
        mk_client("c1", gender="female"),
        mk_rule(
            "r-g",
            "gender_pairing",
            {"patientGender": "female", "therapistGender": "female", "strength": "required"},
        ),
    )

    # --- Act / Assert ---
    assert _categories(ev.feasible(_candidate(practitioner="p1"), SchedulePlan())) == {"rule"}
    assert ev.feasible(_candidate(practitioner="p2"), SchedulePlan()).ok


def test_avoid_pair_and_certification_rules():
    # --- Arrange ---
    ev = _evaluator(
        mk_practitioner("p1", certifications=["rbt"]),
        mk_practitioner("p2", certifications=["bcba"]),
        mk_client("c1", certifications=["aba"]),
        mk_rule("r-avoid", "specific_pairing", {"type": "pair", "mode": "avoid", "practitionerId": "p2", "clientId": "c1"}),
        mk_rule("r-cert", "certification", {"patientRequires": ["aba"], "therapistMustHave": ["bcba"]}),
    )
    plan = SchedulePlan()

    # --- Act ---
    p1 = _evaluator(
        mk_practitioner("p1", certifications=["rbt", "aba"]),
        mk_client("c1", certifications=["aba"]),
        mk_rule("r-cert", "certification", {"patientRequires": ["aba"], "therapistMustHave": ["bcba"]}),
    ).feasible(_candidate(), plan)
    p2 = ev.feasible(_candidate(practitioner="p2"), plan)

    # --- Assert ---
    assert any("rule r-cert requires practitioner p1" in r for r in p1.reasons)
    assert any("forbids pairing p2 with c1" in r for r in p2.reasons)


def test_score_adds_preferences_and_weighted_soft_rules():
    """
    @brief
    Entity preferences count once; soft rules scale with priority.
    """
    # --- Arrange ---
    ev = _evaluator(
        mk_practitioner("p1", gender="female"),
        mk_practitioner("p2", gender="male"),
        mk_client(
            "c1",
            gender_preference="female",
            preferred_room_id="r1",
            preferred_times=["Morning"],
        ),
        mk_room("r1"),
        mk_rule("r-pair", "specific_pairing", {"practitionerId": "p2", "clientId": "c1"}, priority=2),
    )

    # --- Act ---
    p1_morning_r1 = ev.score(_candidate(practitioner="p1", room="r1"))
    p1_afternoon = ev.score(_candidate(practitioner="p1", start="13:00"))
    p2 = ev.score(_candidate(practitioner="p2"))

    # --- Assert ---
    assert p1_morning_r1 == 10 + 4 + 6
    assert p1_afternoon == 10
    assert p2 == 6 + 12 * 2


def test_consistency_rule_rewards_recent_pairings():
    # --- Arrange ---
    store = mk_store(
        mk_practitioner("p1"),
        mk_practitioner("p2"),
        mk_client("c1"),
        mk_rule("r-cons", "specific_pairing", {"type": "maintain_consistency", "lookbackWeeks": 2}),
        mk_schedule(
            [mk_session("old", "p2", "c1", date(2025, 2, 24), "09:00", "10:00", schedule_id="prev")],
            schedule_id="prev",
            week=date(2025, 2, 24),
            status="published",
        ),
    )
    ev = ConstraintEvaluator(mk_context(store))

    # --- Act / Assert ---
    assert ev.score(_candidate(practitioner="p2")) == 8
    assert ev.score(_candidate(practitioner="p1")) == 0


def test_rank_key_prefers_score_then_time_then_practitioner():
    # --- Arrange ---
    early = _candidate(practitioner="p2", start="09:00")
    late = _candidate(practitioner="p1", start="10:00")
    same_time = _candidate(practitioner="p1", start="09:00")
    rank = ConstraintEvaluator.rank_key

    # --- Assert ---
    assert rank(late, 5) < rank(early, 1)
    assert rank(early, 1) < rank(late, 1)
    assert rank(same_time, 1) < rank(early, 1)
