# src/therasched/metrics/logger.py
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from therasched.errors import DataError


def write_metrics(metrics: dict[str, Any], out_dir: Path, filename: str = "metrics.json") -> Path:
    """
    @brief
    Writes schedule metrics as JSON, atomically, in UTF-8.

    @details
    Keys are sorted so repeated runs over the same schedule produce
    byte-identical files (timestamp aside). An existing file is replaced
    in one filesystem operation.

    @params
        metrics : dict[str, Any]
            Output of `collect_metrics`.
        out_dir : Path
            Target directory, created when missing.
        filename : str
            Target file name (default metrics.json).

    @returns
        Path to the written file.

    @raises
        DataError
            If `metrics` is not a dict or is not JSON-serializable.
    """
    if not isinstance(metrics, dict):
        raise DataError("metrics must be a dict", source="metrics.write_metrics")

    # (1) Serialize first so a bad payload never touches the disk
    try:
        payload = json.dumps(metrics, ensure_ascii=False, sort_keys=True, indent=2)
    except (TypeError, ValueError) as e:
        raise DataError(
            f"metrics not JSON-serializable: {e}",
            source="metrics.write_metrics",
            suggested_action="Keep metric values to str, int, float, bool, lists and dicts.",
        ) from e

    # (2) Atomic replace inside the output directory
    target = Path(out_dir) / filename
    _atomic_write_text(target, payload + "\n")
    return target


def _atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> None:
    """
    @brief
    Writes text through a temporary sibling file and swaps it into place.

    @raises
        DataError
            On write or rename failure; the temporary file is removed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(prefix=path.name + ".", dir=str(path.parent))
    try:
        with open(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise DataError(
            f"atomic write failed for {path}: {e}",
            source="metrics._atomic_write_text",
            suggested_action="Check output directory permissions and disk space.",
        ) from e


__all__ = ["write_metrics"]
