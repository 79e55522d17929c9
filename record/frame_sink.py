from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Protocol

import cv2
import numpy as np

from common.time import label_time

_LOG = logging.getLogger(__name__)

FRAME_GLOB = "*.jpg"


class WriteError(Exception):
    """A frame could not be written to storage."""


class FrameSink(Protocol):
    def save(self, color: np.ndarray, path: Path) -> None: ...  # raises WriteError


def slot_path(frame_dir: Path, slot: int) -> Path:
    """Path of the JPEG backing history slot ``slot``."""
    return Path(frame_dir) / f"fr{slot:08d}.jpg"


def clear_stale_slots(frame_dir: Path, keep: int, logger: Optional[logging.Logger] = None) -> int:
    """Delete JPEGs in ``frame_dir`` other than the files of slots ``0..keep-1``.

    The encoder picks up every ``*.jpg`` in the directory, so leftovers from a
    run with a larger buffer would end up in the next recording.
    Returns the number of files removed.
    """
    frame_dir = Path(frame_dir)
    if not frame_dir.is_dir():
        return 0
    wanted = {slot_path(frame_dir, slot).name for slot in range(keep)}
    removed = 0
    for path in frame_dir.glob(FRAME_GLOB):
        if path.name in wanted:
            continue
        path.unlink()
        removed += 1
    if removed:
        (logger or _LOG).info("removed %d stale frame file(s) from %s", removed, frame_dir)
    return removed


def draw_label(color: np.ndarray, lines: List[str]) -> np.ndarray:
    """Copy ``color`` and burn ``lines`` into its bottom-right corner."""
    out = np.ascontiguousarray(color).copy()
    h, w = out.shape[:2]
    font = cv2.FONT_HERSHEY_PLAIN
    scale = 0.8
    y = h - 8 - 12 * (len(lines) - 1)
    for line in lines:
        (tw, _), _ = cv2.getTextSize(line, font, scale, 1)
        x = max(0, w - tw - 8)
        cv2.putText(out, line, (x, y), font, scale, (255, 0, 0), 1, cv2.LINE_AA)
        y += 12
    return out


class JpegFrameSink:
    """Write labelled color frames as JPEG (quality 100)."""

    def __init__(
        self,
        label_text: Optional[str] = "bird-watcher",
        quality: int = 100,
        clock: Callable[[], str] = label_time,
    ) -> None:
        self._label = label_text
        self._quality = int(quality)
        self._clock = clock

    def save(self, color: np.ndarray, path: Path) -> None:
        lines = [self._label, self._clock()] if self._label else [self._clock()]
        labelled = draw_label(color, lines)
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            ok = cv2.imwrite(str(path), labelled, [int(cv2.IMWRITE_JPEG_QUALITY), self._quality])
        except (OSError, cv2.error) as exc:
            raise WriteError(f"failed to write {path}: {exc}") from exc
        if not ok:
            raise WriteError(f"failed to write {path}")


class SaveBarrier:
    """Background frame persistence with a join point.

    :meth:`submit` queues a save on a small worker pool and returns
    immediately; :meth:`wait` blocks until every save submitted so far has
    finished and returns how many of them failed. Failures are logged, never
    raised.
    """

    def __init__(
        self,
        sink: FrameSink,
        max_workers: int = 2,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._sink = sink
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="frame-save")
        self._pending: List[Future] = []
        self._lock = threading.Lock()
        self._log = logger or _LOG

    def submit(self, color: np.ndarray, path: Path) -> Future:
        fut = self._executor.submit(self._sink.save, color, path)
        with self._lock:
            self._pending.append(fut)
        return fut

    def wait(self) -> int:
        with self._lock:
            pending, self._pending = self._pending, []
        failures = 0
        for fut in pending:
            exc = fut.exception()
            if exc is not None:
                failures += 1
                self._log.warning("frame save failed: %s", exc)
        return failures

    def outstanding(self) -> int:
        with self._lock:
            return sum(1 for f in self._pending if not f.done())

    def close(self) -> None:
        self.wait()
        self._executor.shutdown(wait=True)
