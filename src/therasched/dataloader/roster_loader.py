# src/therasched/dataloader/roster_loader.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from therasched.dataloader.types import LoadResult, Roster
from therasched.errors import DataError
from therasched.schemas.models import (
    AvailabilityOverride,
    Client,
    Holiday,
    Organization,
    Practitioner,
    Room,
    Rule,
)

logger = logging.getLogger(__name__)


class RosterLoader:
    """
    YAML roster -> LoadResult[Roster].

    Layout:
      organization: {id, name, timezone, labels, business_hours}   (required)
      practitioners, clients, rooms, rules, holidays,
      availability_overrides: lists of records                     (optional)

    Record-level validation (issue + continue):
      * record is not a mapping         -> invalid_record
      * missing id                      -> missing_id
      * organization_id of another org  -> foreign_organization
      * duplicate id within a section   -> duplicate_id (first valid record kept)
      * pydantic schema violation       -> schema_error
      * reference to an unknown entity  -> unknown_reference
    Records without organization_id inherit the roster's organization, and
    session specs without client_id inherit their client's.

    Any issue makes the whole load unsuccessful (success=False, roster=None).

    Fatal errors (raise DataError immediately):
      * file missing, unreadable or not YAML
      * root not a mapping, missing or invalid organization
      * a section that is not a list
    """

    SECTIONS: dict[str, type[BaseModel]] = {
        "practitioners": Practitioner,
        "clients": Client,
        "rooms": Room,
        "rules": Rule,
        "holidays": Holiday,
        "availability_overrides": AvailabilityOverride,
    }

    def load(self, path: Path) -> LoadResult:
        data = self._read_yaml(path)
        organization = self._organization(data)
        result = self._records_to_result(organization, data)
        self._report_summary(path, result)
        return result

    # ------------------------------
    # Internal helpers
    # ------------------------------
    def _read_yaml(self, path: Path) -> dict[str, Any]:
        if not isinstance(path, Path):
            raise DataError(
                message=f"Invalid path type: expected pathlib.Path, got {type(path).__name__}",
                source="RosterLoader._read_yaml",
                suggested_action="Pass a pathlib.Path pointing to roster.yaml",
            )
        if not path.exists():
            raise DataError(
                message=f"Roster file not found: {path}",
                source="RosterLoader._read_yaml",
                suggested_action="Verify the --roster path.",
            )

        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise DataError(
                message=f"Roster YAML parsing failed: {e}",
                source="RosterLoader._read_yaml",
                suggested_action="Fix YAML syntax and indentation.",
            ) from e
        except OSError as e:
            raise DataError(
                message=f"Unable to read roster: {e}",
                source="RosterLoader._read_yaml",
                suggested_action="Check file permissions.",
            ) from e

        if not isinstance(data, Mapping):
            raise DataError(
                message="Roster root must be a mapping with an 'organization' key.",
                source="RosterLoader._read_yaml",
                suggested_action="See data/sample/roster.yaml for the expected layout.",
            )
        return dict(data)

    def _organization(self, data: dict[str, Any]) -> Organization:
        raw = data.get("organization")
        if not isinstance(raw, Mapping):
            raise DataError(
                message="Roster has no 'organization' mapping.",
                source="RosterLoader._organization",
                suggested_action="Add an organization block with at least an id.",
            )
        try:
            return Organization(**raw)
        except ValidationError as e:
            raise DataError(
                message=f"Invalid organization: {e}",
                source="RosterLoader._organization",
                suggested_action="Fix the organization block.",
            ) from e

    def _records_to_result(self, organization: Organization, data: dict[str, Any]) -> LoadResult:
        issues: list[dict[str, Any]] = []
        parsed: dict[str, list[Any]] = {}
        total = 0

        for section, model in self.SECTIONS.items():
            records = data.get(section) or []
            if not isinstance(records, list):
                raise DataError(
                    message=f"Roster section '{section}' must be a list",
                    source="RosterLoader._records_to_result",
                    suggested_action=f"Write '{section}' as a YAML list of records.",
                )
            total += len(records)
            parsed[section] = self._parse_section(section, model, records, organization, issues)

        self._check_references(parsed, issues)

        kept = sum(len(items) for items in parsed.values())
        if issues:
            return LoadResult(success=False, errors=issues, total_records=total, kept_records=0)

        roster = Roster(
            organization=organization,
            practitioners=parsed["practitioners"],
            clients=parsed["clients"],
            rooms=parsed["rooms"],
            rules=parsed["rules"],
            holidays=parsed["holidays"],
            overrides=parsed["availability_overrides"],
        )
        return LoadResult(success=True, roster=roster, total_records=total, kept_records=kept)

    def _parse_section(
        self,
        section: str,
        model: type[BaseModel],
        records: list[Any],
        organization: Organization,
        issues: list[dict[str, Any]],
    ) -> list[Any]:
        out: list[Any] = []
        seen_ids: set[str] = set()

        for idx, raw in enumerate(records):
            if not isinstance(raw, Mapping):
                issues.append(_issue("invalid_record", section, idx, None, "Record is not a mapping"))
                continue

            record = dict(raw)
            rid = str(record.get("id") or "").strip()
            if not rid:
                issues.append(_issue("missing_id", section, idx, None, "Missing id"))
                continue

            # (1) Tenant scope
            owner = record.setdefault("organization_id", organization.id)
            if owner != organization.id:
                issues.append(
                    _issue(
                        "foreign_organization",
                        section,
                        idx,
                        rid,
                        f"organization_id {owner!r} differs from roster organization "
                        f"{organization.id!r}",
                    )
                )
                continue

            # (2) Duplicates: keep first
            if rid in seen_ids:
                issues.append(
                    _issue("duplicate_id", section, idx, rid, "Duplicate id (later record skipped)")
                )
                continue

            if model is Client:
                record["session_specs"] = [
                    {"client_id": rid, **spec} if isinstance(spec, Mapping) else spec
                    for spec in record.get("session_specs") or []
                ]

            # (3) Schema
            try:
                entity = model(**record)
            except ValidationError as e:
                issues.append(_issue("schema_error", section, idx, rid, str(e)))
                continue

            out.append(entity)
            seen_ids.add(rid)
        return out

    def _check_references(self, parsed: dict[str, list[Any]], issues: list[dict[str, Any]]) -> None:
        practitioner_ids = {p.id for p in parsed["practitioners"]}
        room_ids = {r.id for r in parsed["rooms"]}

        for idx, override in enumerate(parsed["availability_overrides"]):
            if override.practitioner_id not in practitioner_ids:
                issues.append(
                    _issue(
                        "unknown_reference",
                        "availability_overrides",
                        idx,
                        override.id,
                        f"Unknown practitioner_id {override.practitioner_id!r}",
                    )
                )

        for idx, client in enumerate(parsed["clients"]):
            preferred = [client.preferred_room_id] + [
                spec.preferred_room_id for spec in client.session_specs
            ]
            for room_id in preferred:
                if room_id is not None and room_id not in room_ids:
                    issues.append(
                        _issue(
                            "unknown_reference",
                            "clients",
                            idx,
                            client.id,
                            f"Unknown preferred_room_id {room_id!r}",
                        )
                    )

    def _report_summary(self, path: Path, result: LoadResult) -> None:
        if result.success:
            logger.info(
                "RosterLoader OK: kept=%d/%d record(s) from %s",
                result.kept_records,
                result.total_records,
                path,
            )
            return

        counts: dict[str, int] = {}
        for it in result.errors:
            counts[it["kind"]] = counts.get(it["kind"], 0) + 1
        summary = ", ".join(f"{k}={v}" for k, v in counts.items())
        logger.error(
            "RosterLoader failed: %d issue(s) across %d record(s) in %s [%s]",
            len(result.errors),
            result.total_records,
            path,
            summary or "no-summary",
        )


def _issue(kind: str, section: str, index: int, entity_id: str | None, message: str) -> dict:
    return {
        "kind": kind,
        "section": section,
        "index": index,
        "entity_id": entity_id,
        "message": message,
    }


__all__ = ["RosterLoader"]
