"""Capture loop tying the source, history, classifier, gate and trigger together.

One call to :meth:`MotionRecorder.step` handles one captured frame:

1. fetch the frame (a failed fetch skips the iteration),
2. push its gray image into the history and queue its color image for saving
   under the current slot,
3. dispatch classification of the frame against a snapshot of the history,
   unless one classification per slot is already outstanding,
   and park the future in the slot,
4. at the last slot of the buffer, resolve all slots, evaluate the gate and
   hand the decision to the recording trigger.

The loop itself is single-threaded; frame saves, classifications and the row
kernels inside them run on their own bounded pools.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from capture.reader import FetchError, FrameSource
from common.config import WatcherConfig
from common.frame import Frame
from imaging.pool import RowPool
from record.frame_sink import FrameSink, SaveBarrier, clear_stale_slots, slot_path
from record.recorder import VideoEncoder

from .clip_manager import RecordingTrigger, RecordingTriggerConfig
from .engine import MotionClassifier
from .gate import ActivityBoard, ConsecutiveActivityGate
from .history import FrameHistory, HistorySnapshot
from .model import ClassifierConfig, GateDecision, RecordingSession
from .sidecar import ActivitySidecarWriter

_LOG = logging.getLogger(__name__)


@dataclass
class PipelineStats:
    frames: int = 0
    fetch_failures: int = 0
    cycles: int = 0
    triggers: int = 0
    recordings: int = 0
    resets: int = 0
    skipped_classifications: int = 0


class MotionRecorder:
    def __init__(
        self,
        config: WatcherConfig,
        source: FrameSource,
        sink: FrameSink,
        encoder: VideoEncoder,
        pool: Optional[RowPool] = None,
        sidecar: Optional[ActivitySidecarWriter] = None,
        classifier: Optional[MotionClassifier] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._cfg = config
        self._source = source
        self._sidecar = sidecar
        self._log = logger or _LOG
        self._n = config.frame_buffer_size
        self._frame_dir = Path(config.resolved_frame_dir())

        self._history = FrameHistory(self._n)
        self._board = ActivityBoard(self._n)
        self._gate = ConsecutiveActivityGate(config.consecutive_active_frames)
        self._classifier = classifier or MotionClassifier(
            ClassifierConfig(
                activity_threshold=config.activity_threshold,
                background_mode=config.background_mode,
            ),
            pool=pool,
        )
        self._classify_pool = ThreadPoolExecutor(
            max_workers=config.classify_workers, thread_name_prefix="classify"
        )
        # at most one queued or running classification per history slot
        self._outstanding = 0
        self._outstanding_lock = threading.Lock()
        self._barrier = SaveBarrier(sink)
        self._trigger = RecordingTrigger(
            encoder,
            self._barrier,
            RecordingTriggerConfig(
                frame_dir=self._frame_dir,
                output_dir=Path(config.output_dir),
                input_framerate=config.input_framerate,
                output_framerate=config.output_framerate,
            ),
        )

        self._slot = 0
        self._primed = False
        self._stats = PipelineStats()
        self.last_session: Optional[RecordingSession] = None

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def history(self) -> FrameHistory:
        return self._history

    @property
    def board(self) -> ActivityBoard:
        return self._board

    @property
    def frame_dir(self) -> Path:
        return self._frame_dir

    @property
    def primed(self) -> bool:
        return self._primed

    def stats(self) -> PipelineStats:
        return self._stats

    def outstanding_classifications(self) -> int:
        """Classifications submitted to the pool that have not yet returned."""
        with self._outstanding_lock:
            return self._outstanding

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _fetch(self) -> Optional[Frame]:
        try:
            frame = self._source.next_frame()
        except FetchError as exc:
            self._stats.fetch_failures += 1
            self._log.warning("skipping frame: %s", exc)
            return None
        self._stats.frames += 1
        return frame

    def _size_changed(self, frame: Frame) -> bool:
        snap = self._history.snapshot()
        return bool(snap.frames) and not snap.frames[-1].same_size(frame.gray)

    def _dispatch(self, frame: Frame, snapshot: HistorySnapshot, slot: int) -> Optional[Future]:
        """Queue a classification unless ``N`` are already outstanding.

        The returned future is owned by the board; cancelling it makes the
        queued job return without classifying. The job always runs to
        release its place, so the executor queue never holds more than
        ``N`` entries.
        """
        with self._outstanding_lock:
            if self._outstanding >= self._n:
                self._stats.skipped_classifications += 1
                self._log.warning(
                    "%d classifications outstanding; leaving slot %d unclassified",
                    self._outstanding,
                    slot,
                )
                return None
            self._outstanding += 1
        fut: Future = Future()
        try:
            self._classify_pool.submit(self._classify_job, fut, frame, snapshot, slot)
        except BaseException:
            self._release()
            raise
        return fut

    def _classify_job(
        self, fut: Future, frame: Frame, snapshot: HistorySnapshot, slot: int
    ) -> None:
        try:
            if not fut.set_running_or_notify_cancel():
                return
            try:
                result = self._classifier.classify(frame.gray, snapshot, slot, frame.frame_id)
            except Exception as exc:
                fut.set_exception(exc)
            else:
                fut.set_result(result)
        finally:
            self._release()

    def _release(self) -> None:
        with self._outstanding_lock:
            self._outstanding -= 1

    def _reset(self) -> None:
        for slot in range(self._n):
            self._board.reset(slot)
        self._barrier.wait()
        self._history = FrameHistory(self._n)
        self._board = ActivityBoard(self._n)
        self._slot = 0
        self._primed = False
        self._stats.resets += 1

    def _store(self, frame: Frame, slot: int) -> None:
        self._history.push(frame.gray)
        self._barrier.submit(frame.color, slot_path(self._frame_dir, slot))

    def _end_cycle(self) -> GateDecision:
        states = self._board.collect(self._cfg.classify_wait_s)
        decision = self._gate.evaluate(states)
        self._stats.cycles += 1
        self._log.info("Checking if video capture is required")
        self._log.info("\tMaximum consecutive active frames in buffer: %d", decision.max_run)
        if decision.unknown:
            self._log.info("\t%d of %d slots unclassified", decision.unknown, self._n)
        if decision.triggered:
            self._stats.triggers += 1

        session = self._trigger.handle(decision)
        if session is not None:
            self._stats.recordings += 1
        self.last_session = session
        if self._sidecar is not None:
            self._sidecar.write_cycle(decision, session)
        return decision

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def prime(self, stop: Optional[threading.Event] = None) -> bool:
        """Fill the history with ``N`` frames before detection starts.

        Returns ``False`` if ``stop`` was set before the history filled.
        """
        self._log.info("Filling the frame buffer")
        clear_stale_slots(self._frame_dir, self._n, logger=self._log)
        while not self._history.is_full():
            if stop is not None and stop.is_set():
                return False
            frame = self._fetch()
            if frame is None:
                continue
            if self._size_changed(frame):
                self._log.warning("frame size changed while priming; starting over")
                self._reset()
            self._store(frame, len(self._history))
        self._barrier.wait()
        self._slot = 0
        self._primed = True
        self._log.info("Done filling the frame buffer")
        return True

    def step(self) -> Optional[GateDecision]:
        """Process one frame; returns the gate decision at the end of a cycle."""
        if not self._primed:
            raise RuntimeError("call prime() before step()")
        frame = self._fetch()
        if frame is None:
            return None
        if self._size_changed(frame):
            self._log.warning(
                "frame size changed to %dx%d; refilling history",
                frame.gray.width,
                frame.gray.height,
            )
            self._reset()
            return None

        slot = self._slot
        self._store(frame, slot)
        snapshot = self._history.snapshot()
        self._board.reset(slot, self._dispatch(frame, snapshot, slot))

        decision = self._end_cycle() if slot == self._n - 1 else None
        self._slot = (slot + 1) % self._n
        return decision

    def run(
        self, max_frames: Optional[int] = None, stop: Optional[threading.Event] = None
    ) -> int:
        """Prime if needed, then step until ``stop`` is set or ``max_frames`` is reached.

        Returns the number of loop iterations executed after priming.
        """
        iterations = 0
        if not self._primed and not self.prime(stop):
            return iterations
        self._log.info("Object detection started")
        while stop is None or not stop.is_set():
            if max_frames is not None and iterations >= max_frames:
                break
            if not self._primed and not self.prime(stop):
                break
            self.step()
            iterations += 1
        return iterations

    def close(self) -> None:
        """Drain pending work and close the frame source."""
        self._classify_pool.shutdown(wait=True)
        self._barrier.close()
        self._source.close()
