# ruff: noqa: UP007  # keep Optional[...] for Py3.9; don't force X | Y
from __future__ import annotations

import json
import os
import threading
from contextlib import suppress
from pathlib import Path
from typing import Any, Mapping, Optional, TextIO


class SidecarWriter:
    """Append-only JSON Lines writer, safe to share between threads."""

    def __init__(self, path: str | Path, append: bool = False):
        self.path = Path(path)
        self._append = append
        self._fh: Optional[TextIO] = None
        self._lock = threading.Lock()

    def __enter__(self) -> SidecarWriter:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        mode = "a" if self._append else "w"
        self._fh = self.path.open(mode, encoding="utf-8", newline="")

    def append_meta(self, meta: Mapping[str, Any]) -> None:
        self.append({"type": "meta", **meta})

    def append(self, rec: Mapping[str, Any]) -> None:
        line = json.dumps(dict(rec), ensure_ascii=False, default=str) + "\n"
        with self._lock:
            if not self._fh:
                raise RuntimeError("SidecarWriter is not open")
            self._fh.write(line)

    def flush(self) -> None:
        with self._lock:
            if self._fh:
                self._fh.flush()

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                with suppress(Exception):
                    self._fh.flush()
                # Best-effort durability; harmless if underlying file doesn't support fileno()
                with suppress(Exception):
                    os.fsync(self._fh.fileno())
                self._fh.close()
                self._fh = None
