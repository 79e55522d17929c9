"""Bounded parallel-for shared by every row-wise image operator.

Each operator splits its output into disjoint bands of rows, runs one task per
band on a shared :class:`ThreadPoolExecutor` and blocks until every band is
done. numpy releases the GIL inside its inner loops, so bands of a large frame
genuinely overlap.

Tasks submitted here must never submit and wait on further work in the same
pool; operators that need stage-level concurrency (e.g. the two Sobel passes)
use their own executor and call back into the row pool from there.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

_LOG = logging.getLogger(__name__)

RowTask = Callable[[int, int], None]  # (row_start, row_stop)


class RowPool:
    def __init__(self, max_workers: Optional[int] = None, min_rows_per_task: int = 8) -> None:
        workers = max_workers or min(8, os.cpu_count() or 1)
        self._max_workers = max(1, int(workers))
        self._min_rows = max(1, int(min_rows_per_task))
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="imaging-rows"
        )
        self._closed = False

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def bands(self, n_rows: int) -> List[tuple[int, int]]:
        """Split ``range(n_rows)`` into at most ``max_workers`` contiguous bands."""
        if n_rows <= 0:
            return []
        n_tasks = max(1, min(self._max_workers, n_rows // self._min_rows))
        step = -(-n_rows // n_tasks)  # ceil
        return [(start, min(start + step, n_rows)) for start in range(0, n_rows, step)]

    def run(self, n_rows: int, task: RowTask) -> None:
        """Run ``task(start, stop)`` over every band and wait for all of them.

        The first exception raised by a band is re-raised here after all
        bands have finished.
        """
        if self._closed:
            raise RuntimeError("RowPool is shut down")
        bands = self.bands(n_rows)
        if len(bands) <= 1:
            for start, stop in bands:
                task(start, stop)
            return

        futures: List[Future] = [self._executor.submit(task, s, e) for s, e in bands]
        first_exc: Optional[BaseException] = None
        for fut in futures:
            exc = fut.exception()
            if exc is not None and first_exc is None:
                first_exc = exc
        if first_exc is not None:
            raise first_exc

    def shutdown(self) -> None:
        self._closed = True
        self._executor.shutdown(wait=True)


_default_pool: Optional[RowPool] = None
_default_lock = threading.Lock()


def default_pool() -> RowPool:
    """Process-wide row pool, created lazily on first use."""
    global _default_pool
    with _default_lock:
        if _default_pool is None or _default_pool._closed:
            _default_pool = RowPool()
            _LOG.debug("created default row pool with %d workers", _default_pool.max_workers)
        return _default_pool


def resolve(pool: Optional[RowPool]) -> RowPool:
    return pool if pool is not None else default_pool()
