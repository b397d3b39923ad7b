# scripts/run.py
from __future__ import annotations

import argparse
import logging
import sys
import time
import traceback
from datetime import date, timedelta
from pathlib import Path
from typing import Any

from therasched.dataloader.config_loader import ConfigLoader
from therasched.dataloader.postload_handler import LoadResultHandler
from therasched.dataloader.roster_loader import RosterLoader
from therasched.errors import DataError, TheraschedError
from therasched.export.schedule_export import write_schedule_csv
from therasched.metrics.logger import write_metrics
from therasched.metrics.metrics import collect_metrics
from therasched.solver_core.service import SchedulingService
from therasched.validator.validator import validate_schedule


def _setup_logging() -> None:
    """
    @brief
    Initializes global logging configuration.

    @details
    INFO level with a compact console format; library modules only log
    through their own module loggers.
    """
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


def _next_monday(today: date | None = None) -> date:
    today = today or date.today()
    return today + timedelta(days=(7 - today.weekday()) % 7 or 7)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    @brief
    Parses command-line arguments for the scheduling pipeline.

    @details
    - config path (YAML),
    - roster path (YAML),
    - week start date (defaults to next Monday),
    - output directory for generated artifacts.
    """
    parser = argparse.ArgumentParser(
        prog="therasched-run",
        description="Generate one weekly schedule: load -> generate -> validate -> metrics -> export",
    )

    # (1) Config path
    parser.add_argument(
        "--config",
        type=str,
        default="config/config.yaml",
        help="Path to config YAML (default: config/config.yaml)",
    )

    # (2) Roster path
    parser.add_argument(
        "--roster",
        type=str,
        default="data/sample/roster.yaml",
        help="Path to roster YAML (default: data/sample/roster.yaml)",
    )

    # (3) Target week
    parser.add_argument(
        "--week-start",
        type=str,
        default=None,
        help="First local date of the week, YYYY-MM-DD (default: next Monday)",
    )

    # (4) Output directory
    parser.add_argument(
        "--output",
        type=str,
        default="data/output",
        help="Output directory for artifacts (default: data/output)",
    )

    return parser.parse_args(argv)


def run_pipeline(
    config_path: Path,
    roster_path: Path,
    output_dir: Path,
    week_start: str | date | None = None,
) -> dict[str, Any]:
    """
    @brief
    Executes the full generation pipeline for one organization and week.

    @details
    (1) Load configuration and roster.
    (2) Seed an in-memory entity store and generate a draft schedule.
    (3) Validate the schedule and write the validation report.
    (4) Collect metrics and export the schedule CSV.
    Controlled failures raise TheraschedError.

    @returns
        Dictionary with validity flag, schedule id, session and warning
        counts, and artifact paths.

    @raises
        TheraschedError
            On configuration, roster or validation persistence issues.
    """
    # (1) Timer and output directory
    t0 = time.perf_counter()
    output_dir.mkdir(parents=True, exist_ok=True)

    # (2) Config and roster
    logging.info("Loading config: %s", config_path)
    cfg = ConfigLoader().load(config_path)
    cfg = cfg.model_copy(update={"output_dir": output_dir.as_posix()})

    logging.info("Loading roster: %s", roster_path)
    load_result = RosterLoader().load(roster_path)
    roster = LoadResultHandler(output_dir=output_dir).handle(load_result)
    if roster is None:
        load_errors_path = output_dir / LoadResultHandler.REPORT_NAME
        raise DataError(
            message=f"Roster load failed, see {load_errors_path.as_posix()}",
            source="scripts.run",
            suggested_action="Fix the issues reported in load_errors.json and rerun.",
        )

    # (3) Generate
    week = week_start or _next_monday()
    store = roster.to_store()
    service = SchedulingService(store, cfg)
    logging.info("Generating schedule for %s, week of %s", roster.organization.id, week)
    outcome = service.generate_schedule(roster.organization.id, week)
    schedule = outcome.schedule
    for w in outcome.warnings:
        logging.warning("%s", w.message)

    # (4) Validate
    logging.info("Validating schedule…")
    report = validate_schedule(
        schedule,
        roster.practitioners,
        roster.clients,
        roster.rooms,
        cfg,
        write_report=cfg.validation.write_report,
        out_dir=output_dir,
    )
    valid = bool(report.get("valid", False))
    if not valid:
        logging.warning("Validation failed (valid=False); see validation_report.json")

    # (5) Metrics
    logging.info("Collecting metrics…")
    ctx = service.build_context(roster.organization.id, week)
    capacity = {
        p.id: ctx.calendar.capacity_minutes(p, ctx.dates)
        for p in ctx.practitioners.values()
        if p.is_active
    }
    summary = collect_metrics(schedule, roster.practitioners, outcome.warnings, capacity)
    metrics_path = write_metrics(summary, out_dir=output_dir)

    # (6) Export
    logging.info("Exporting schedule.csv…")
    schedule_csv_path = write_schedule_csv(schedule.sessions, output_dir / "schedule.csv")

    dt = time.perf_counter() - t0
    logging.info("Pipeline finished in %.2f s", dt)

    validation_report_path = output_dir / "validation_report.json"
    return {
        "valid": valid,
        "schedule_id": schedule.id,
        "week_start": schedule.week_start_date.isoformat(),
        "num_sessions": len(schedule.sessions),
        "unmet_requirements": len(outcome.warnings),
        "stats": outcome.stats.to_dict(),
        "artifacts": {
            "validation_report": validation_report_path
            if validation_report_path.exists()
            else None,
            "metrics": metrics_path,
            "schedule_csv": schedule_csv_path,
        },
    }


def main(argv: list[str] | None = None) -> int:
    """
    @brief
    CLI entry point for the scheduling pipeline.

    @details
    Exit codes:
      0 – success (valid schedule)
      1 – controlled failure (config/roster/validation)
      2 – unexpected crash
    """
    _setup_logging()
    args = _parse_args(argv)

    try:
        result = run_pipeline(
            Path(args.config),
            Path(args.roster),
            Path(args.output),
            week_start=args.week_start,
        )
        logging.info(
            "Schedule %s: %d session(s), %d unmet requirement(s). Artifacts in %s",
            result["schedule_id"],
            result["num_sessions"],
            result["unmet_requirements"],
            Path(args.output).as_posix(),
        )
        return 0 if result.get("valid") else 1

    except TheraschedError as e:
        logging.error(str(e))
        return 1
    except Exception:
        logging.error("Unexpected error occurred:")
        traceback.print_exc()
        return 2


if __name__ == "__main__":
    sys.exit(main())
