"""Fixed-capacity frame history used as the background model."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, Optional

import numpy as np

from imaging import arithmetic
from imaging.image import NormalizedImage, require_same_size
from imaging.pool import RowPool


@dataclass(frozen=True)
class HistorySnapshot:
    """Immutable view of the history at one instant.

    The frames are themselves read-only, so holding the tuple is enough to
    keep a consistent copy while the live history moves on.
    """

    frames: tuple[NormalizedImage, ...]
    capacity: int

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[NormalizedImage]:
        return iter(self.frames)

    def background(self, mode: str = "mean", pool: Optional[RowPool] = None) -> NormalizedImage:
        """Combine the held frames into a background image.

        ``mode="mean"``
            Pixelwise average of the frames (sum / count). Since every frame
            lies in [0, 1], so does the average; it is not renormalised.
        ``mode="sum"``
            Chain of pairwise :func:`imaging.arithmetic.add` calls, each of
            which normalises its result.
        """
        if not self.frames:
            raise ValueError("background of an empty history")
        first = self.frames[0]
        for frame in self.frames[1:]:
            require_same_size("background", first, frame)

        if mode == "mean":
            acc = np.zeros(first.shape, dtype=np.float64)
            for frame in self.frames:
                acc += frame.data
            return NormalizedImage(acc / float(len(self.frames)))
        if mode == "sum":
            bg = first
            for frame in self.frames[1:]:
                bg = arithmetic.add(bg, frame, pool=pool)
            return bg
        raise ValueError(f"unknown background mode: {mode!r}")


class FrameHistory:
    """FIFO of the most recent ``capacity`` frames.

    Owned and mutated by the orchestrator only; concurrent readers get a
    :class:`HistorySnapshot`.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = int(capacity)
        self._frames: Deque[NormalizedImage] = deque(maxlen=self._capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._frames)

    def is_full(self) -> bool:
        return len(self._frames) == self._capacity

    def push(self, frame: NormalizedImage) -> Optional[NormalizedImage]:
        """Append ``frame``; return the evicted oldest frame once at capacity."""
        evicted = self._frames[0] if self.is_full() else None
        self._frames.append(frame)
        return evicted

    def snapshot(self) -> HistorySnapshot:
        return HistorySnapshot(frames=tuple(self._frames), capacity=self._capacity)

    def background(self, mode: str = "mean", pool: Optional[RowPool] = None) -> NormalizedImage:
        return self.snapshot().background(mode=mode, pool=pool)
