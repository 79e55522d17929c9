from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from common.time import recording_stem
from record.frame_sink import FRAME_GLOB, SaveBarrier
from record.recorder import EncodeError, VideoEncoder

from .model import GateDecision, RecordingSession

_LOG = logging.getLogger(__name__)


@dataclass
class RecordingTriggerConfig:
    """Where frames are read from and recordings written to."""

    frame_dir: Path
    output_dir: Path
    input_framerate: int = 10
    output_framerate: int = 100
    suffix: str = ".mp4"


class RecordingTrigger:
    """Turn gate decisions into encoder calls.

    Every decision first joins the outstanding frame saves of the cycle so the
    frame directory is complete and stable. A decision that meets its
    threshold then encodes the frame directory into a timestamped file in
    ``output_dir``. Encoder failures are logged and swallowed so the capture
    loop keeps running.
    """

    def __init__(
        self,
        encoder: VideoEncoder,
        barrier: SaveBarrier,
        config: RecordingTriggerConfig,
        stem: Callable[[], str] = recording_stem,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._encoder = encoder
        self._barrier = barrier
        self._cfg = config
        self._stem = stem
        self._log = logger or _LOG

    def _session(self, decision: GateDecision) -> RecordingSession:
        cfg = self._cfg
        return RecordingSession(
            output_path=Path(cfg.output_dir) / f"{self._stem()}{cfg.suffix}",
            frame_pattern=str(Path(cfg.frame_dir) / FRAME_GLOB),
            max_run=decision.max_run,
            required=decision.required,
        )

    def handle(self, decision: GateDecision) -> Optional[RecordingSession]:
        """Join pending saves, then encode if ``decision`` triggered.

        Returns the :class:`RecordingSession` of a successful encode, else
        ``None``.
        """
        failed = self._barrier.wait()
        if failed:
            self._log.warning("%d frame save(s) failed in cycle %d", failed, decision.cycle)

        if not decision.triggered:
            self._log.info("\tNo video capture required")
            return None

        session = self._session(decision)
        self._log.info("\tSaving video at %s", session.output_path)
        try:
            self._encoder.encode(
                session.frame_pattern,
                session.output_path,
                self._cfg.input_framerate,
                self._cfg.output_framerate,
            )
        except EncodeError as exc:
            # Non-fatal: the next cycle may still record.
            self._log.warning("Recording failed (non-fatal): %s", exc)
            return None
        return session
