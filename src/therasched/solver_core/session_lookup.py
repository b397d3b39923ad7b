# src/therasched/solver_core/session_lookup.py
"""
Locates the session a parsed edit refers to.

Parsed commands usually name people and a day rather than a session id, so
candidates are scored: practitioner and client matches weigh 40 each, day
(or date) and start time 30 each. A session needs at least 40 points, and
a tie for the best score is reported as ambiguous instead of guessed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from therasched.errors import CommandError, SessionNotFoundError
from therasched.schemas.commands import SessionSelector
from therasched.schemas.models import Client, Practitioner, Schedule, Session
from therasched.temporal.timezone import Weekday, parse_local_date, time_to_minutes

logger = logging.getLogger(__name__)

PERSON_SCORE = 40
DAY_SCORE = 30
TIME_SCORE = 30
MIN_SCORE = 40


def name_matches(query: str | None, name: str | None) -> bool:
    """Case-insensitive match on the full name or any whole word of it."""
    if not query or not name:
        return False
    q = query.strip().lower()
    n = name.strip().lower()
    return q == n or q in n.split() or n.startswith(q)


def _person_score(
    wanted_id: str | None,
    wanted_name: str | None,
    actual_id: str,
    entity: Practitioner | Client | None,
) -> int | None:
    """Points for one person field; None when an explicit id contradicts."""
    if wanted_id:
        return PERSON_SCORE if wanted_id == actual_id else None
    if wanted_name:
        names = [entity.name] if entity is not None else []
        if entity is not None and isinstance(entity, Client) and entity.identifier:
            names.append(entity.identifier)
        return PERSON_SCORE if any(name_matches(wanted_name, n) for n in names) else 0
    return 0


def find_session(
    schedule: Schedule,
    selector: SessionSelector,
    practitioners: Mapping[str, Practitioner],
    clients: Mapping[str, Client],
) -> Session:
    """
    @brief
    Resolve a selector to exactly one session of the schedule.

    @raises
        CommandError          : empty selector or ambiguous match.
        SessionNotFoundError  : no session scores high enough.
        TemporalInputError    : malformed date or time in the selector.
    """
    source = "session_lookup.find_session"

    # (1) Explicit id wins
    if selector.session_id:
        session = schedule.session_by_id(selector.session_id)
        if session is None:
            raise SessionNotFoundError(
                message=f"Session {selector.session_id} not found in schedule {schedule.id}",
                source=source,
                suggested_action="Refresh the schedule and retry with a current session id.",
            )
        return session

    if selector.is_empty():
        raise CommandError(
            message="Command does not identify a session",
            source=source,
            suggested_action="Name the practitioner or client and the day of the session.",
        )

    # (2) Normalize day and time once; malformed values surface here
    wanted_date = parse_local_date(selector.date) if selector.date else None
    wanted_day = Weekday.parse(selector.day_of_week) if selector.day_of_week else None
    wanted_start = time_to_minutes(selector.start_time) if selector.start_time else None

    # (3) Score every session
    scored: list[tuple[int, Session]] = []
    for session in schedule.sessions:
        p_score = _person_score(
            selector.practitioner_id,
            selector.practitioner_name,
            session.practitioner_id,
            practitioners.get(session.practitioner_id),
        )
        c_score = _person_score(
            selector.client_id,
            selector.client_name,
            session.client_id,
            clients.get(session.client_id),
        )
        if p_score is None or c_score is None:
            continue
        score = p_score + c_score
        if wanted_date is not None:
            if session.date != wanted_date:
                continue
            score += DAY_SCORE
        elif wanted_day is not None and Weekday.from_date(session.date) == wanted_day:
            score += DAY_SCORE
        if wanted_start is not None and session.start_minutes == wanted_start:
            score += TIME_SCORE
        if score >= MIN_SCORE:
            scored.append((score, session))

    if not scored:
        raise SessionNotFoundError(
            message=f"No session in schedule {schedule.id} matches the command",
            source=source,
            suggested_action="Check the names, day and time mentioned in the command.",
        )

    # (4) The best score must be unique
    scored.sort(key=lambda item: (-item[0], item[1].date, item[1].start_minutes, item[1].id))
    best_score, best = scored[0]
    ties = [s for score, s in scored if score == best_score]
    if len(ties) > 1:
        listed = ", ".join(f"{s.id} ({s.date.isoformat()} {s.start_time})" for s in ties[:5])
        raise CommandError(
            message=f"Command matches {len(ties)} sessions equally: {listed}",
            source=source,
            suggested_action="Add the day or start time to pick one session.",
        )
    logger.debug("Selector resolved to session %s (score %d)", best.id, best_score)
    return best


__all__ = ["find_session", "name_matches"]
