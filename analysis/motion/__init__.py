"""Public exports for the motion analysis package."""

from __future__ import annotations

from .clip_manager import RecordingTrigger, RecordingTriggerConfig
from .engine import MotionClassifier
from .gate import ActivityBoard, ConsecutiveActivityGate, longest_active_run
from .history import FrameHistory, HistorySnapshot
from .model import (
    ActivityState,
    ClassificationResult,
    ClassifierConfig,
    GateDecision,
    RecordingSession,
)
from .pipeline import MotionRecorder, PipelineStats
from .sidecar import ActivitySidecarWriter

__all__ = [
    "ActivityState",
    "ClassifierConfig",
    "ClassificationResult",
    "GateDecision",
    "RecordingSession",
    "FrameHistory",
    "HistorySnapshot",
    "MotionClassifier",
    "ActivityBoard",
    "ConsecutiveActivityGate",
    "longest_active_run",
    "RecordingTrigger",
    "RecordingTriggerConfig",
    "ActivitySidecarWriter",
    "MotionRecorder",
    "PipelineStats",
]
