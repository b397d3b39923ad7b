# src/therasched/dataloader/postload_handler.py
from __future__ import annotations

import json
import logging
from pathlib import Path

from therasched.dataloader.types import LoadResult, Roster

logger = logging.getLogger(__name__)


class LoadResultHandler:
    """
    @brief
    Turns a roster LoadResult into either a Roster or an error report.

    @details
    On success the validated roster flows on to scheduling. On failure the
    per-record issues are written to 'load_errors.json' in output_dir and
    None is returned so the caller can stop the pipeline.
    """

    REPORT_NAME = "load_errors.json"

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir

    def handle(self, result: LoadResult) -> Roster | None:
        """
        @brief
        Pass the roster through, or report issues and block.

        @details
        A failure to write the report is logged; the return value is None
        either way, since the roster itself is unusable.
        """
        # (1) Success path
        if result.success and result.roster is not None:
            logger.info(
                "PostLoad: organization %s ready (%d record(s)).",
                result.roster.organization.id,
                result.kept_records,
            )
            return result.roster

        # (2) Failure path: JSON report
        self.output_dir.mkdir(parents=True, exist_ok=True)
        out_path = self.output_dir / self.REPORT_NAME
        try:
            with out_path.open("w", encoding="utf-8") as f:
                json.dump(result.errors, f, ensure_ascii=False, indent=2)
            logger.error(
                "PostLoad: roster validation failed, %d issue(s). See %s",
                len(result.errors),
                out_path,
            )
        except OSError as e:
            logger.error("PostLoad: failed to write error report: %s", e)

        return None


__all__ = ["LoadResultHandler"]
