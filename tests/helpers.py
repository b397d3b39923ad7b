# tests/helpers.py
"""
Factories shared by the test modules.

The reference week starts Monday 2025-03-03. Practitioners work 09:00-17:00
Monday to Friday unless told otherwise; the organization runs in UTC so
wall-clock arithmetic in tests stays obvious.
"""

from __future__ import annotations

from datetime import date, timedelta
from itertools import count
from typing import Any

from therasched.schemas.models import (
    Client,
    Config,
    Organization,
    Practitioner,
    Room,
    Rule,
    Schedule,
    Session,
)
from therasched.solver_core.evaluator import EvaluationContext
from therasched.solver_core.service import SchedulingService
from therasched.store.entity_store import InMemoryEntityStore

ORG_ID = "org-a"
OTHER_ORG_ID = "org-b"
WEEK = date(2025, 3, 3)  # Monday
MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = (
    WEEK + timedelta(days=i) for i in range(7)
)

WEEKDAY_HOURS = {
    day: {"start": "09:00", "end": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


def mk_org(org_id: str = ORG_ID, **kw: Any) -> Organization:
    kw.setdefault("name", f"Clinic {org_id}")
    kw.setdefault("timezone", "UTC")
    return Organization(id=org_id, **kw)


def mk_practitioner(
    pid: str,
    certifications: tuple[str, ...] | list[str] = (),
    gender: str | None = None,
    hours: dict | None = None,
    org: str = ORG_ID,
    **kw: Any,
) -> Practitioner:
    kw.setdefault("name", pid)
    return Practitioner(
        id=pid,
        organization_id=org,
        gender=gender,
        certifications=list(certifications),
        default_hours=WEEKDAY_HOURS if hours is None else hours,
        **kw,
    )


def mk_client(
    cid: str,
    sessions: int = 1,
    duration: int | None = 60,
    certifications: tuple[str, ...] | list[str] = (),
    org: str = ORG_ID,
    **kw: Any,
) -> Client:
    kw.setdefault("name", cid)
    return Client(
        id=cid,
        organization_id=org,
        sessions_per_week=sessions,
        duration_minutes=duration,
        required_certifications=list(certifications),
        **kw,
    )


def mk_room(rid: str, capabilities: tuple[str, ...] | list[str] = (), org: str = ORG_ID, **kw) -> Room:
    return Room(id=rid, organization_id=org, capabilities=list(capabilities), **kw)


def mk_rule(
    rid: str, category: str, logic: dict[str, Any], priority: int = 0, org: str = ORG_ID, **kw
) -> Rule:
    return Rule(
        id=rid, organization_id=org, category=category, rule_logic=logic, priority=priority, **kw
    )


def mk_session(
    sid: str,
    practitioner_id: str,
    client_id: str,
    day: date,
    start: str,
    end: str,
    room_id: str | None = None,
    spec_id: str | None = None,
    schedule_id: str | None = "sched-1",
) -> Session:
    return Session(
        id=sid,
        schedule_id=schedule_id,
        practitioner_id=practitioner_id,
        client_id=client_id,
        room_id=room_id,
        session_spec_id=spec_id,
        date=day,
        start_time=start,
        end_time=end,
    )


def mk_schedule(
    sessions: list[Session] | None = None,
    schedule_id: str = "sched-1",
    week: date = WEEK,
    org: str = ORG_ID,
    **kw: Any,
) -> Schedule:
    return Schedule(
        id=schedule_id,
        organization_id=org,
        week_start_date=week,
        sessions=list(sessions or []),
        **kw,
    )


def mk_store(*entities: Any, org: Organization | None = None) -> InMemoryEntityStore:
    return InMemoryEntityStore().add(org or mk_org(), *entities)


def mk_config(**kw: Any) -> Config:
    return Config(**kw)


def counter_ids(prefix: str = "id") -> Any:
    """Deterministic id factory: id-1, id-2, ..."""
    seq = count(1)
    return lambda: f"{prefix}-{next(seq)}"


def mk_context(
    store: InMemoryEntityStore,
    week: date = WEEK,
    cfg: Config | None = None,
    org_id: str = ORG_ID,
) -> EvaluationContext:
    return SchedulingService(store, cfg or mk_config()).build_context(org_id, week)
