from __future__ import annotations

from pathlib import Path

import pytest

from analysis.motion.model import ActivityState, GateDecision, RecordingSession
from analysis.motion.sidecar import ActivitySidecarWriter
from sidecar.reader import SidecarReader
from sidecar.writer import SidecarWriter

A = ActivityState.ACTIVE
I = ActivityState.INACTIVE  # noqa: E741
U = ActivityState.UNKNOWN


def test_sidecar_roundtrip(tmp_path: Path):
    path = tmp_path / "activity.jsonl"
    w = SidecarWriter(path)
    w.open()
    w.append_meta({"service": "bird-watcher", "buffer": 4})
    w.append({"type": "activity_cycle", "cycle": 0, "states": ["active", "inactive"]})
    w.close()
    rows = list(SidecarReader(path))
    assert rows[0]["type"] == "meta" and rows[0]["buffer"] == 4
    assert rows[1]["states"] == ["active", "inactive"]


def test_sidecar_writer_requires_open(tmp_path):
    w = SidecarWriter(tmp_path / "x.jsonl")
    assert not w.is_open
    with pytest.raises(RuntimeError):
        w.append({"type": "x"})


def test_reader_skips_malformed_lines_and_filters_type(tmp_path):
    path = tmp_path / "mixed.jsonl"
    path.write_text(
        '{"type": "meta"}\n'
        "garbage\n"
        "\n"
        '{"type": "activity_cycle", "cycle": 1}\n',
        encoding="utf-8",
    )
    assert len(list(SidecarReader(path))) == 2
    cycles = list(SidecarReader(path, record_type="activity_cycle"))
    assert cycles == [{"type": "activity_cycle", "cycle": 1}]


def test_activity_sidecar_appends_cycles(tmp_path):
    path = tmp_path / "cycles.jsonl"
    quiet = GateDecision(cycle=0, states=(A, I, U), max_run=1, required=2)
    busy = GateDecision(cycle=1, states=(A, A, I), max_run=2, required=2)
    session = RecordingSession(
        output_path=tmp_path / "v.mp4", frame_pattern="f/*.jpg", max_run=2, required=2
    )

    with ActivitySidecarWriter(path) as sc:
        sc.write_cycle(quiet)
    # reopening appends instead of truncating
    with ActivitySidecarWriter(path) as sc:
        sc.write_cycle(busy, session)

    rows = list(SidecarReader(path, record_type="activity_cycle"))
    assert [r["cycle"] for r in rows] == [0, 1]
    assert rows[0]["states"] == ["active", "inactive", "unknown"]
    assert rows[0]["triggered"] is False and rows[0]["unknown"] == 1
    assert rows[0]["output_path"] is None
    assert rows[1]["triggered"] is True
    assert rows[1]["output_path"] == str(tmp_path / "v.mp4")
