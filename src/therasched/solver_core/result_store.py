# src/therasched/solver_core/result_store.py
from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from therasched.export.schedule_export import write_schedule_csv
from therasched.metrics.logger import write_metrics
from therasched.metrics.metrics import collect_metrics
from therasched.schemas.models import Config, Practitioner, Schedule
from therasched.solver_core.types import UnmetRequirement

logger = logging.getLogger(__name__)


class ResultStore:
    """
    Single place for run side effects (artifacts on disk).

    Controlled by config:
      io_policy.write_artifacts: bool (default False)
      output_dir: str (default "data/output")

    Knows nothing about scheduling; it only writes.
    """

    def __init__(self, cfg: Config) -> None:
        """
        Args:
            cfg: Global configuration; reads io_policy.write_artifacts and output_dir.

        Notes:
            The output directory is created only when writing is enabled.
        """
        # (1) Store config reference
        self.cfg = cfg

        # (2) Resolve I/O policy
        self.write_artifacts = bool(cfg.io_policy.write_artifacts)

        # (3) Prepare output directory if writing is enabled
        self.output_dir = Path(cfg.output_dir or "data/output")
        if self.write_artifacts:
            self.output_dir.mkdir(parents=True, exist_ok=True)

    # --------------- Public facade ---------------

    def persist(
        self,
        schedule: Schedule,
        practitioners: Iterable[Practitioner] = (),
        warnings: Iterable[UnmetRequirement | str] = (),
        capacity_minutes: Mapping[str, int] | None = None,
    ) -> dict[str, str | None]:
        """
        Writes metrics, the schedule CSV and a config snapshot when enabled.

        Args:
            schedule: Schedule just generated or copied.
            practitioners: Practitioners of the organization (names for metrics).
            warnings: Unmet-requirement warnings of the run.
            capacity_minutes: Available minutes per practitioner for the week.

        Returns:
            Mapping of artifact name to written path (None when skipped).
        """
        artifacts: dict[str, str | None] = {
            "metrics_path": None,
            "schedule_path": None,
            "config_snapshot": None,
        }
        if not self.write_artifacts:
            return artifacts

        # (1) Metrics
        metrics = collect_metrics(schedule, practitioners, list(warnings), capacity_minutes)
        artifacts["metrics_path"] = str(
            write_metrics(metrics, self.output_dir, filename=f"metrics_{schedule.id}.json")
        )
        logger.debug("Metrics written to %s", artifacts["metrics_path"])

        # (2) Schedule CSV
        artifacts["schedule_path"] = str(
            write_schedule_csv(schedule.sessions, self.output_dir / f"schedule_{schedule.id}.csv")
        )
        logger.debug("Schedule written to %s", artifacts["schedule_path"])

        # (3) Config snapshot for reproducibility
        artifacts["config_snapshot"] = self._write_config_snapshot()
        return artifacts

    # --------------- Private writers ---------------

    def _write_config_snapshot(self) -> str:
        """
        Saves a JSON snapshot of the current config.

        Returns:
            Path to the created snapshot file.
        """
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        path = self.output_dir / f"config_snapshot_{ts}.json"
        payload: dict[str, Any] = self.cfg.model_dump(mode="json")
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        logger.debug("Config snapshot written to %s", str(path))
        return str(path)


__all__ = ["ResultStore"]
