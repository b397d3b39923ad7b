import csv
import json
import logging
from datetime import date
from pathlib import Path

import pytest

from scripts import run
from scripts.run import _next_monday, main, run_pipeline
from therasched.errors import DataError

ROOT = Path(__file__).resolve().parents[1]
CONFIG = ROOT / "config" / "config.yaml"
ROSTER = ROOT / "data" / "sample" / "roster.yaml"


def test_run_pipeline_sample_roster_creates_artifacts(tmp_path: Path):
    """
    @brief
    End-to-end run over the bundled sample clinic.

    @details
    Loads config and roster, generates the week of 2025-03-03, validates it
    and checks that every artifact is written and agrees with the result.
    """
    # --- Arrange ---
    output_dir = tmp_path / "out"

    # --- Act ---
    result = run_pipeline(CONFIG, ROSTER, output_dir, week_start="2025-03-03")
    arts = result["artifacts"]

    # --- Assert ---
    assert result["valid"] is True
    assert result["week_start"] == "2025-03-03"
    assert result["num_sessions"] > 0
    assert result["stats"]["sessions_created"] == result["num_sessions"]

    report = json.loads(Path(arts["validation_report"]).read_text(encoding="utf-8"))
    assert report["valid"] is True
    assert report["schedule_id"] == result["schedule_id"]

    metrics = json.loads(Path(arts["metrics"]).read_text(encoding="utf-8"))
    assert metrics["organization_id"] == "org-sunrise"
    assert metrics["num_sessions"] == result["num_sessions"]
    assert metrics["unmet_requirements"] == result["unmet_requirements"]
    assert 0.0 < metrics["utilization"] <= 1.0

    with Path(arts["schedule_csv"]).open(encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == result["num_sessions"]
    assert all("2025-03-03" <= r["date"] <= "2025-03-09" for r in rows)
    # p-ben is on approved leave on Wednesday
    assert not any(r["practitioner_id"] == "p-ben" and r["date"] == "2025-03-05" for r in rows)


def test_run_pipeline_invalid_roster_writes_load_errors(tmp_path: Path):
    # --- Arrange ---
    roster = tmp_path / "roster.yaml"
    roster.write_text(
        "organization: {id: org-a}\nrooms:\n  - {id: r1}\n  - {id: r1}\n", encoding="utf-8"
    )
    output_dir = tmp_path / "out"

    # --- Act & Assert ---
    with pytest.raises(DataError) as ei:
        run_pipeline(CONFIG, roster, output_dir, week_start="2025-03-03")

    assert "Roster load failed" in str(ei.value)
    issues = json.loads((output_dir / "load_errors.json").read_text(encoding="utf-8"))
    assert [i["kind"] for i in issues] == ["duplicate_id"]


def test_main_returns_zero_for_valid_schedule(tmp_path: Path):
    # --- Act ---
    code = main(
        [
            "--config",
            str(CONFIG),
            "--roster",
            str(ROSTER),
            "--output",
            str(tmp_path),
            "--week-start",
            "2025-03-03",
        ]
    )

    # --- Assert ---
    assert code == 0
    assert (tmp_path / "schedule.csv").exists()


def test_main_controlled_failure_returns_one(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    # --- Arrange ---
    caplog.set_level(logging.ERROR)

    # --- Act ---
    code = main(["--config", str(CONFIG), "--roster", str(tmp_path / "missing.yaml"), "--output", str(tmp_path)])

    # --- Assert ---
    assert code == 1
    assert "Roster file not found" in caplog.text


def test_main_unexpected_error_returns_two(monkeypatch, tmp_path: Path):
    """
    @brief
    Anything other than a TheraschedError is reported as a crash.
    """

    # --- Arrange ---
    def boom(*_, **__):
        raise RuntimeError("boom")

    monkeypatch.setattr(run, "run_pipeline", boom)

    # --- Act ---
    code = main(["--output", str(tmp_path)])

    # --- Assert ---
    assert code == 2


@pytest.mark.parametrize(
    "today, expected",
    [
        (date(2025, 3, 3), date(2025, 3, 10)),
        (date(2025, 3, 5), date(2025, 3, 10)),
        (date(2025, 3, 9), date(2025, 3, 10)),
    ],
)
def test_next_monday_is_strictly_after_today(today, expected):
    assert _next_monday(today) == expected
