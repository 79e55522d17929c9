"""Per-slot activity bookkeeping and the consecutive-activity gate."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, List, Optional, Sequence

from .model import ActivityState, ClassificationResult, GateDecision

_LOG = logging.getLogger(__name__)


def longest_active_run(states: Sequence[ActivityState]) -> int:
    """Length of the longest run of consecutive ``ACTIVE`` entries."""
    best = run = 0
    for state in states:
        if state is ActivityState.ACTIVE:
            run += 1
            if run > best:
                best = run
        else:
            run = 0
    return best


class ActivityBoard:
    """One slot per history position, each holding a pending classification.

    The orchestrator :meth:`reset`s a slot when it overwrites that slot's
    frame, attaching the future of the classification it just dispatched.
    :meth:`collect` resolves every slot once per cycle, waiting at most
    ``timeout_s`` in total for classifications still in flight; anything not
    done by then stays ``UNKNOWN``.
    """

    def __init__(
        self,
        size: int,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if size < 1:
            raise ValueError(f"size must be >= 1, got {size}")
        self._states: List[ActivityState] = [ActivityState.UNKNOWN] * size
        self._pending: List[Optional[Future]] = [None] * size
        self._clock = clock
        self._log = logger or _LOG

    def __len__(self) -> int:
        return len(self._states)

    def reset(self, slot: int, pending: Optional[Future] = None) -> None:
        """Mark ``slot`` unknown, cancelling any classification it supersedes."""
        previous = self._pending[slot]
        if previous is not None and previous is not pending:
            previous.cancel()
        self._states[slot] = ActivityState.UNKNOWN
        self._pending[slot] = pending

    def mark(self, slot: int, state: ActivityState) -> None:
        self._states[slot] = state
        self._pending[slot] = None

    def states(self) -> tuple[ActivityState, ...]:
        return tuple(self._states)

    def collect(self, timeout_s: float) -> tuple[ActivityState, ...]:
        deadline = self._clock() + max(0.0, timeout_s)
        for slot, fut in enumerate(self._pending):
            if fut is None:
                continue
            remaining = max(0.0, deadline - self._clock())
            try:
                result: ClassificationResult = fut.result(timeout=remaining)
            except FutureTimeout:
                self._log.warning("classification for slot %d not ready; leaving unknown", slot)
                continue
            except Exception as exc:
                self._log.warning("classification for slot %d failed: %s", slot, exc)
                self._pending[slot] = None
                continue
            self.mark(slot, result.state)
        return self.states()


class ConsecutiveActivityGate:
    """Decide whether a cycle's activity warrants a recording."""

    def __init__(self, required: int) -> None:
        if required < 1:
            raise ValueError(f"required must be >= 1, got {required}")
        self._required = int(required)
        self._cycle = 0

    @property
    def required(self) -> int:
        return self._required

    def evaluate(self, states: Sequence[ActivityState]) -> GateDecision:
        decision = GateDecision(
            cycle=self._cycle,
            states=tuple(states),
            max_run=longest_active_run(states),
            required=self._required,
        )
        self._cycle += 1
        return decision
