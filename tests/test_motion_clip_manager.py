from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

from analysis.motion.clip_manager import RecordingTrigger, RecordingTriggerConfig
from analysis.motion.gate import longest_active_run
from analysis.motion.model import ActivityState, GateDecision
from record.recorder import EncodeError

A = ActivityState.ACTIVE
I = ActivityState.INACTIVE  # noqa: E741


class _FakeEncoder:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[Tuple[str, Path, int, int]] = []

    def encode(self, frame_pattern, output_path, input_framerate, output_framerate):
        self.calls.append((frame_pattern, Path(output_path), input_framerate, output_framerate))
        if self.fail:
            raise EncodeError("ffmpeg exited with status 1")
        return Path(output_path)


class _FakeBarrier:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.waits = 0

    def wait(self) -> int:
        self.waits += 1
        return self.failures


def _decision(states, required: int, cycle: int = 0) -> GateDecision:
    return GateDecision(
        cycle=cycle, states=tuple(states), max_run=longest_active_run(states), required=required
    )


def _trigger(encoder, barrier, tmp_path: Path) -> RecordingTrigger:
    cfg = RecordingTriggerConfig(
        frame_dir=tmp_path / "frames",
        output_dir=tmp_path / "videos",
        input_framerate=10,
        output_framerate=100,
    )
    return RecordingTrigger(encoder, barrier, cfg, stem=lambda: "2024-061-12-30-05-000123")


def test_triggered_decision_encodes_frame_glob(tmp_path):
    enc, barrier = _FakeEncoder(), _FakeBarrier()
    trig = _trigger(enc, barrier, tmp_path)

    session = trig.handle(_decision([A, A, A, I], required=3))

    assert barrier.waits == 1
    assert session is not None
    assert session.output_path == tmp_path / "videos" / "2024-061-12-30-05-000123.mp4"
    assert session.max_run == 3 and session.required == 3
    assert enc.calls == [
        (str(tmp_path / "frames" / "*.jpg"), session.output_path, 10, 100),
    ]


def test_quiet_decision_still_joins_saves_but_does_not_encode(tmp_path, caplog):
    enc, barrier = _FakeEncoder(), _FakeBarrier()
    trig = _trigger(enc, barrier, tmp_path)

    with caplog.at_level("INFO"):
        assert trig.handle(_decision([A, I, A, I], required=2)) is None

    assert barrier.waits == 1
    assert enc.calls == []
    assert "No video capture required" in caplog.text


def test_encode_failure_is_not_fatal(tmp_path, caplog):
    enc, barrier = _FakeEncoder(fail=True), _FakeBarrier()
    trig = _trigger(enc, barrier, tmp_path)

    with caplog.at_level("WARNING"):
        assert trig.handle(_decision([A, A], required=1)) is None

    assert len(enc.calls) == 1
    assert "Recording failed" in caplog.text

    # the next cycle can still record
    enc.fail = False
    assert trig.handle(_decision([A, A], required=1, cycle=1)) is not None


def test_save_failures_are_reported(tmp_path, caplog):
    trig = _trigger(_FakeEncoder(), _FakeBarrier(failures=2), tmp_path)
    with caplog.at_level("WARNING"):
        trig.handle(_decision([I, I], required=1, cycle=7))
    assert "2 frame save(s) failed in cycle 7" in caplog.text
