from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path


class ActivityState(enum.Enum):
    """Classification of one history slot."""

    UNKNOWN = "unknown"  # slot rewritten, classification not observed yet
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class ClassifierConfig:
    """
    Configuration knobs for the background-subtraction classifier.

    ``activity_threshold`` is compared against the standard deviation of the
    foreground mask: above it the frame is inactive, at or below it active.
    """

    activity_threshold: float
    # adaptive threshold = mean(diff) + std_factor * std(diff)
    std_factor: float = 0.5
    background_mode: str = "mean"  # "mean" or "sum"


@dataclass(frozen=True)
class ClassificationResult:
    """
    Per-frame output of the classifier.

    Telemetry fields are kept so logs and sidecars can explain a decision.
    """

    slot: int
    frame_id: int
    state: ActivityState
    diff_mean: float = 0.0
    diff_std: float = 0.0
    threshold: float = 0.0
    mask_std: float = 0.0


@dataclass(frozen=True)
class GateDecision:
    """Outcome of scanning one full buffer cycle."""

    cycle: int
    states: tuple[ActivityState, ...]
    max_run: int
    required: int

    @property
    def triggered(self) -> bool:
        return self.max_run >= self.required

    @property
    def unknown(self) -> int:
        return sum(1 for s in self.states if s is ActivityState.UNKNOWN)


@dataclass(frozen=True)
class RecordingSession:
    """A recording being produced for one triggering cycle."""

    output_path: Path
    frame_pattern: str
    max_run: int
    required: int
