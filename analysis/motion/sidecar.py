from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from common.time import now_ms
from sidecar.writer import SidecarWriter

from .model import GateDecision, RecordingSession


class ActivitySidecarWriter:
    """
    Thin wrapper around SidecarWriter for gate cycles.

    Writes one ``type="activity_cycle"`` JSON object per buffer cycle with
    the slot states, the longest active run and the recording (if any).
    """

    def __init__(self, path: str | Path):
        self._writer = SidecarWriter(path, append=True)

    def __enter__(self) -> ActivitySidecarWriter:
        self._writer.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._writer.__exit__(exc_type, exc, tb)

    def open(self) -> None:
        self._writer.open()

    def write_cycle(
        self, decision: GateDecision, session: Optional[RecordingSession] = None
    ) -> None:
        payload: dict[str, Any] = {
            "type": "activity_cycle",
            "ts_ms": now_ms(),
            "cycle": int(decision.cycle),
            "states": [s.value for s in decision.states],
            "max_run": int(decision.max_run),
            "required": int(decision.required),
            "triggered": bool(decision.triggered),
            "unknown": int(decision.unknown),
            "output_path": str(session.output_path) if session is not None else None,
        }
        self._writer.append(payload)
        self._writer.flush()

    def close(self) -> None:
        self._writer.close()
