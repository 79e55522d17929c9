from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Optional, Protocol

import cv2
import numpy as np
import requests

from common.frame import Frame
from common.time import now_ms
from imaging.image import NormalizedImage

_LOG = logging.getLogger(__name__)


class FetchError(Exception):
    """A frame could not be fetched or decoded."""


class FrameSource(Protocol):
    def next_frame(self) -> Frame: ...  # raises FetchError
    def close(self) -> None: ...


@dataclass
class ReaderStats:
    frames_out: int = 0
    fetch_errors: int = 0
    retries: int = 0
    fetch_ms_mean: float = 0.0
    fetch_ms_p95: float = 0.0
    _fetch_ms_hist: Deque[float] = field(default_factory=lambda: deque(maxlen=1000), repr=False)

    def update_fetch_ms(self, dt_ms: float) -> None:
        self._fetch_ms_hist.append(dt_ms)
        if self._fetch_ms_hist:
            arr = np.fromiter(self._fetch_ms_hist, dtype=np.float64)
            self.fetch_ms_mean = float(arr.mean())
            self.fetch_ms_p95 = float(np.percentile(arr, 95))


def decode_jpeg(payload: bytes) -> np.ndarray:
    """Decode an encoded image into a BGR uint8 array."""
    buf = np.frombuffer(payload, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_COLOR) if buf.size else None
    if img is None:
        raise FetchError(f"could not decode image payload ({len(payload)} bytes)")
    return img


@dataclass
class RetryPolicy:
    """Exponential backoff between fetch attempts.

    ``attempts`` counts the first try; the delay before retry ``k`` (1-based)
    is ``backoff_s * 2**(k-1)``, capped at ``backoff_max_s``.
    """

    attempts: int = 3
    backoff_s: float = 0.25
    backoff_max_s: float = 4.0

    def delay(self, retry: int) -> float:
        return min(self.backoff_max_s, self.backoff_s * (2 ** max(0, retry - 1)))


class HttpFrameSource:
    """Fetch single JPEG frames from a webcam snapshot endpoint.

    Each :meth:`next_frame` issues ``GET url`` and decodes the body. Network
    failures, non-200 responses and undecodable bodies are retried according
    to the :class:`RetryPolicy`; once the attempts are exhausted a
    :class:`FetchError` is raised and the caller decides what to do with the
    missing frame.
    """

    def __init__(
        self,
        url: str,
        timeout_s: float = 5.0,
        retry: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._url = url
        self._timeout_s = timeout_s
        self._retry = retry or RetryPolicy()
        self._session = session or requests.Session()
        self._sleep = sleep
        self._log = logger or _LOG
        self._frame_id = 0
        self._stats = ReaderStats()

    def _fetch_once(self) -> np.ndarray:
        try:
            resp = self._session.get(self._url, timeout=self._timeout_s)
        except requests.RequestException as exc:
            raise FetchError(f"GET {self._url!r} failed: {exc}") from exc
        if resp.status_code != 200:
            raise FetchError(f"GET {self._url!r} returned HTTP {resp.status_code}")
        return decode_jpeg(resp.content)

    def next_frame(self) -> Frame:
        last_exc: Optional[FetchError] = None
        for attempt in range(1, self._retry.attempts + 1):
            if attempt > 1:
                delay = self._retry.delay(attempt - 1)
                self._stats.retries += 1
                self._log.warning(
                    "frame fetch failed (%s); retry %d/%d in %.2fs",
                    last_exc,
                    attempt - 1,
                    self._retry.attempts - 1,
                    delay,
                )
                self._sleep(delay)
            t0 = time.perf_counter()
            try:
                color = self._fetch_once()
            except FetchError as exc:
                last_exc = exc
                continue
            self._stats.update_fetch_ms((time.perf_counter() - t0) * 1e3)
            return self._make_frame(color)

        self._stats.fetch_errors += 1
        raise FetchError(
            f"giving up on {self._url!r} after {self._retry.attempts} attempts: {last_exc}"
        )

    def _make_frame(self, color: np.ndarray) -> Frame:
        fid = self._frame_id
        self._frame_id += 1
        self._stats.frames_out += 1
        return Frame(
            color=color,
            gray=NormalizedImage.from_bgr(color),
            captured_ms=now_ms(),
            frame_id=fid,
        )

    def close(self) -> None:
        self._session.close()

    def stats(self) -> ReaderStats:
        return self._stats


class SyntheticFrameSource:
    """Synthesizes frames without a camera. Useful for tests/dev.

    By default the scene is static noise-free gray; pass ``motion=True`` to
    sweep a bright square across it.
    """

    def __init__(
        self, width: int = 160, height: int = 120, motion: bool = False, seed: int = 0
    ) -> None:
        self.width, self.height = width, height
        self._motion = motion
        self._rng = np.random.default_rng(seed)
        self._frame_id = 0
        self._stats = ReaderStats()

    def next_frame(self) -> Frame:
        color = np.full((self.height, self.width, 3), 96, dtype=np.uint8)
        # one fixed-position dark mark so the static scene has dynamic range
        color[: self.height // 8, : self.width // 8] = 16
        if self._motion:
            side = max(4, min(self.width, self.height) // 5)
            x = (self._frame_id * 3) % max(1, self.width - side)
            y = int(self._rng.integers(0, max(1, self.height - side)))
            color[y : y + side, x : x + side] = 255
        fid = self._frame_id
        self._frame_id += 1
        self._stats.frames_out += 1
        return Frame(
            color=color,
            gray=NormalizedImage.from_bgr(color),
            captured_ms=now_ms(),
            frame_id=fid,
        )

    def close(self) -> None:
        pass

    def stats(self) -> ReaderStats:
        return self._stats
