from __future__ import annotations

import json
import os

import pytest

from therasched.errors import DataError
from therasched.metrics.logger import _atomic_write_text, write_metrics

# --------------------------
# write_metrics
# --------------------------


def test_write_metrics_writes_json_and_overwrites(tmp_path):
    """
    @brief
    Verifies that write_metrics() creates and overwrites metrics.json correctly.

    @details
    The test writes two consecutive JSON files and ensures that
    the second call replaces the previous one without residual content.
    """
    # --- Arrange ---
    out_dir = tmp_path / "out"

    # --- Act ---
    p1 = write_metrics({"a": 1, "b": "x"}, out_dir)
    obj1 = json.loads(p1.read_text(encoding="utf-8"))

    # --- Assert ---
    assert p1.name == "metrics.json"
    assert obj1 == {"a": 1, "b": "x"}

    # --- Act (overwrite) ---
    p2 = write_metrics({"a": 2, "c": True}, out_dir)
    obj2 = json.loads(p2.read_text(encoding="utf-8"))

    # --- Assert ---
    assert p2 == p1
    assert obj2 == {"a": 2, "c": True}
    assert sorted(os.listdir(out_dir)) == ["metrics.json"]


def test_write_metrics_sorts_keys_and_honours_filename(tmp_path):
    # --- Act ---
    path = write_metrics({"zeta": 1, "alpha": {"y": 2, "x": 1}}, tmp_path, filename="m.json")
    text = path.read_text(encoding="utf-8")

    # --- Assert ---
    assert path == tmp_path / "m.json"
    assert text.index('"alpha"') < text.index('"zeta"')
    assert text.index('"x"') < text.index('"y"')
    assert text.endswith("}\n")


def test_write_metrics_rejects_non_dict(tmp_path):
    """
    @brief
    Ensures that write_metrics() rejects non-dict inputs.
    """
    with pytest.raises(DataError) as ei:
        write_metrics(["not", "a", "dict"], tmp_path)
    assert "metrics must be a dict" in str(ei.value)


def test_write_metrics_non_serializable_raises(tmp_path):
    """
    @brief
    Ensures that non-serializable objects trigger DataError.

    @details
    Nothing is written when serialization fails.
    """

    class Bad:
        pass

    with pytest.raises(DataError) as ei:
        write_metrics({"ok": 1, "bad": Bad()}, tmp_path)
    msg = str(ei.value)
    assert "metrics not JSON-serializable" in msg
    assert "metrics.write_metrics" in msg
    assert not (tmp_path / "metrics.json").exists()


# --------------------------
# _atomic_write_text
# --------------------------


def test_atomic_write_text_failure_raises_and_cleans_tmp(tmp_path, monkeypatch):
    """
    @brief
    Forces os.replace() to fail and verifies DataError and cleanup.
    """
    # --- Arrange ---
    target = tmp_path / "folder" / "file.txt"

    def boom_replace(src, dst):
        raise OSError("nope")

    monkeypatch.setattr(os, "replace", boom_replace)

    # --- Act & Assert ---
    with pytest.raises(DataError) as ei:
        _atomic_write_text(target, "payload", encoding="utf-8")

    msg = str(ei.value)
    assert "atomic write failed" in msg
    assert "metrics._atomic_write_text" in msg

    # The temporary file must be removed after failure
    assert os.listdir(tmp_path / "folder") == []
