"""Background-subtraction activity classifier.

For each new frame the classifier:

- builds a background image from a :class:`HistorySnapshot`,
- subtracts the frame from it (normalised difference image),
- thresholds the difference adaptively at ``mean + std_factor * std``,
- and measures the standard deviation of the resulting 0/1 mask.

A mask std above ``activity_threshold`` classifies the frame as
``INACTIVE``; anything at or below it is ``ACTIVE``. A scattered mask (the
threshold picking out a balanced share of pixels) therefore reads as
inactive, while a mask that is almost uniform reads as active.

The classifier holds no mutable state, so one instance can serve many
concurrent :meth:`classify` calls.
"""

from __future__ import annotations

import logging
from typing import Optional

from imaging import arithmetic, stats, thresholds
from imaging.image import NormalizedImage
from imaging.pool import RowPool

from .history import HistorySnapshot
from .model import ActivityState, ClassificationResult, ClassifierConfig

_LOG = logging.getLogger(__name__)


class MotionClassifier:
    def __init__(
        self,
        config: ClassifierConfig,
        pool: Optional[RowPool] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._cfg = config
        self._pool = pool
        self._log = logger or _LOG

    @property
    def config(self) -> ClassifierConfig:
        return self._cfg

    def classify(
        self,
        frame: NormalizedImage,
        history: HistorySnapshot,
        slot: int = 0,
        frame_id: int = 0,
    ) -> ClassificationResult:
        """Classify ``frame`` against ``history``.

        Raises
        ------
        DimensionMismatch
            If the frame and the history frames differ in size.
        """
        pool = self._pool
        background = history.background(mode=self._cfg.background_mode, pool=pool)
        difference = arithmetic.subtract(background, frame, pool=pool)

        diff_mean, diff_std = stats.mean_std(difference)
        threshold = diff_mean + self._cfg.std_factor * diff_std
        foreground = thresholds.single_threshold(difference, threshold, pool=pool)
        _, mask_std = stats.mean_std(foreground)

        if mask_std > self._cfg.activity_threshold:
            state = ActivityState.INACTIVE
        else:
            state = ActivityState.ACTIVE

        self._log.debug(
            "frame %d (slot %d): diff mean=%.4f std=%.4f thr=%.4f mask_std=%.4f -> %s",
            frame_id,
            slot,
            diff_mean,
            diff_std,
            threshold,
            mask_std,
            state.value,
        )
        return ClassificationResult(
            slot=slot,
            frame_id=frame_id,
            state=state,
            diff_mean=diff_mean,
            diff_std=diff_std,
            threshold=threshold,
            mask_std=mask_std,
        )
