from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Set

import pytest

from analysis.motion.model import ActivityState, ClassificationResult
from analysis.motion.pipeline import MotionRecorder
from analysis.motion.sidecar import ActivitySidecarWriter
from capture.reader import FetchError, SyntheticFrameSource
from common.config import WatcherConfig
from sidecar.reader import SidecarReader


class _ScriptedSource:
    """Synthetic frames, with chosen calls failing or switching resolution."""

    def __init__(self, fail_calls: Set[int] = frozenset(), resize_from: int | None = None):
        self._small = SyntheticFrameSource(width=40, height=30)
        self._large = SyntheticFrameSource(width=48, height=36)
        self._fail_calls = set(fail_calls)
        self._resize_from = resize_from
        self.calls = 0
        self.closed = False

    def next_frame(self):
        call = self.calls
        self.calls += 1
        if call in self._fail_calls:
            raise FetchError(f"scripted failure on call {call}")
        if self._resize_from is not None and call >= self._resize_from:
            return self._large.next_frame()
        return self._small.next_frame()

    def close(self) -> None:
        self.closed = True


class _RecordingSink:
    def __init__(self) -> None:
        self.saved: List[str] = []
        self._lock = threading.Lock()

    def save(self, color, path):
        with self._lock:
            self.saved.append(Path(path).name)


class _FakeEncoder:
    def __init__(self) -> None:
        self.calls: List[tuple[str, Path]] = []

    def encode(self, frame_pattern, output_path, input_framerate, output_framerate):
        self.calls.append((frame_pattern, Path(output_path)))
        return Path(output_path)


class _BlockingClassifier:
    """Holds every classification until ``release`` is set."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self.slots: List[int] = []
        self._lock = threading.Lock()

    def classify(self, frame, history, slot=0, frame_id=0):
        self.started.set()
        self.release.wait(timeout=5.0)
        with self._lock:
            self.slots.append(slot)
        return ClassificationResult(slot=slot, frame_id=frame_id, state=ActivityState.INACTIVE)


def _config(tmp_path: Path, **overrides) -> WatcherConfig:
    values = dict(
        webcam_url="http://cam.local/snapshot.jpg",
        frame_buffer_size=4,
        activity_threshold=0.1,
        consecutive_active_frames=2,
        output_dir=tmp_path / "videos",
        frame_dir=tmp_path / "frames",
        classify_wait_s=5.0,
    )
    values.update(overrides)
    return WatcherConfig(**values)


@pytest.fixture
def parts():
    return _ScriptedSource(), _RecordingSink(), _FakeEncoder()


def _recorder(
    tmp_path, source, sink, encoder, pool, classifier=None, **overrides
) -> MotionRecorder:
    return MotionRecorder(
        config=_config(tmp_path, **overrides),
        source=source,
        sink=sink,
        encoder=encoder,
        pool=pool,
        classifier=classifier,
    )


def test_prime_fills_history_and_saves_every_slot(tmp_path, parts, pool):
    source, sink, encoder = parts
    rec = _recorder(tmp_path, source, sink, encoder, pool)
    try:
        assert rec.prime()
        assert rec.primed
        assert len(rec.history) == 4
        assert sorted(sink.saved) == [f"fr{i:08d}.jpg" for i in range(4)]
        assert encoder.calls == []
    finally:
        rec.close()


def test_step_requires_prime(tmp_path, parts, pool):
    source, sink, encoder = parts
    rec = _recorder(tmp_path, source, sink, encoder, pool)
    try:
        with pytest.raises(RuntimeError):
            rec.step()
    finally:
        rec.close()


def test_static_scene_triggers_recording_at_end_of_cycle(tmp_path, parts, pool):
    source, sink, encoder = parts
    rec = _recorder(tmp_path, source, sink, encoder, pool)
    try:
        rec.prime()
        decisions = [rec.step() for _ in range(4)]
    finally:
        rec.close()

    assert decisions[:3] == [None, None, None]
    decision = decisions[3]
    assert decision is not None
    assert decision.states == (ActivityState.ACTIVE,) * 4
    assert decision.max_run == 4 and decision.triggered
    assert len(encoder.calls) == 1
    pattern, out = encoder.calls[0]
    assert pattern == str(tmp_path / "frames" / "*.jpg")
    assert out.parent == tmp_path / "videos" and out.suffix == ".mp4"
    assert rec.last_session is not None and rec.last_session.output_path == out
    # every slot is overwritten once per cycle
    assert sorted(sink.saved[4:]) == [f"fr{i:08d}.jpg" for i in range(4)]
    assert rec.stats().recordings == 1


def test_requirement_above_buffer_never_records(tmp_path, parts, pool):
    source, sink, encoder = parts
    rec = _recorder(tmp_path, source, sink, encoder, pool, consecutive_active_frames=5)
    try:
        rec.prime()
        decision = [rec.step() for _ in range(4)][-1]
    finally:
        rec.close()
    assert decision is not None and not decision.triggered
    assert encoder.calls == []
    assert rec.stats().cycles == 1 and rec.stats().triggers == 0


def test_fetch_failure_skips_iteration_without_advancing(tmp_path, pool, caplog):
    # calls 0-3 prime; call 5 fails
    source = _ScriptedSource(fail_calls={5})
    sink, encoder = _RecordingSink(), _FakeEncoder()
    rec = _recorder(tmp_path, source, sink, encoder, pool)
    try:
        rec.prime()
        with caplog.at_level("WARNING"):
            results = [rec.step() for _ in range(5)]
    finally:
        rec.close()

    assert results[1] is None
    assert results[4] is not None  # fifth step closes the cycle
    assert rec.stats().fetch_failures == 1
    assert len(rec.history) == 4
    assert "scripted failure" in caplog.text


def test_fetch_failure_while_priming_is_retried(tmp_path, pool):
    source = _ScriptedSource(fail_calls={1, 2})
    rec = _recorder(tmp_path, source, _RecordingSink(), _FakeEncoder(), pool)
    try:
        assert rec.prime()
    finally:
        rec.close()
    assert source.calls == 6
    assert rec.stats().fetch_failures == 2


def test_resolution_change_resets_history(tmp_path, pool):
    source = _ScriptedSource(resize_from=5)
    rec = _recorder(tmp_path, source, _RecordingSink(), _FakeEncoder(), pool)
    try:
        rec.prime()
        assert rec.step() is None
        assert rec.step() is None  # resized frame
        assert not rec.primed
        assert len(rec.history) == 0
        assert rec.stats().resets == 1
        # re-priming works at the new size
        assert rec.prime()
        assert rec.history.snapshot().frames[0].shape == (36, 48)
    finally:
        rec.close()


def test_run_with_max_frames_and_sidecar(tmp_path, parts, pool):
    source, sink, encoder = parts
    sidecar_path = tmp_path / "cycles.jsonl"
    with ActivitySidecarWriter(sidecar_path) as sidecar:
        rec = MotionRecorder(
            config=_config(tmp_path),
            source=source,
            sink=sink,
            encoder=encoder,
            pool=pool,
            sidecar=sidecar,
        )
        try:
            assert rec.run(max_frames=8) == 8
        finally:
            rec.close()

    assert source.closed
    assert len(encoder.calls) == 2
    rows = list(SidecarReader(sidecar_path, record_type="activity_cycle"))
    assert [r["cycle"] for r in rows] == [0, 1]
    assert all(r["triggered"] for r in rows)


def test_run_returns_immediately_when_stopped(tmp_path, parts, pool):
    source, sink, encoder = parts
    rec = _recorder(tmp_path, source, sink, encoder, pool)
    stop = threading.Event()
    stop.set()
    try:
        assert rec.run(stop=stop) == 0
    finally:
        rec.close()
    assert source.calls == 0


def test_stalled_classifier_keeps_backlog_bounded(tmp_path, parts, pool, caplog):
    source, sink, encoder = parts
    clf = _BlockingClassifier()
    rec = _recorder(
        tmp_path,
        source,
        sink,
        encoder,
        pool,
        classifier=clf,
        classify_workers=1,
        classify_wait_s=0.0,
    )
    try:
        rec.prime()
        rec.step()
        assert clf.started.wait(timeout=2.0)
        seen = [rec.outstanding_classifications()]
        with caplog.at_level("WARNING"):
            for _ in range(11):
                rec.step()
                seen.append(rec.outstanding_classifications())
        assert max(seen) <= 4
        assert rec.stats().skipped_classifications == 8
        assert "leaving slot" in caplog.text
    finally:
        clf.release.set()
        rec.close()
    # slots 1-3 were superseded while queued, so only slot 0 was classified
    assert clf.slots == [0]
    assert rec.outstanding_classifications() == 0


def test_prime_removes_stale_slot_files(tmp_path, parts, pool):
    source, sink, encoder = parts
    frame_dir = tmp_path / "frames"
    frame_dir.mkdir()
    (frame_dir / "fr00000009.jpg").write_bytes(b"old")
    (frame_dir / "fr00000001.jpg").write_bytes(b"old")
    rec = _recorder(tmp_path, source, sink, encoder, pool)
    try:
        assert rec.prime()
    finally:
        rec.close()
    assert not (frame_dir / "fr00000009.jpg").exists()
    assert (frame_dir / "fr00000001.jpg").exists()
