from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Optional

_LOG = logging.getLogger(__name__)


class SidecarReader:
    """Iterate the JSON objects of a JSON Lines sidecar, skipping bad lines."""

    def __init__(self, path: str | Path, record_type: Optional[str] = None):
        self.path = Path(path)
        self.record_type = record_type

    def __iter__(self) -> Iterator[dict[str, Any]]:
        with self.path.open("r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    rec = json.loads(line)
                except json.JSONDecodeError:
                    _LOG.debug("skipping malformed line %d in %s", lineno, self.path)
                    continue
                if self.record_type is not None and rec.get("type") != self.record_type:
                    continue
                yield rec
