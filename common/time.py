from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def now_ms() -> float:
    return datetime.now(tz=timezone.utc).timestamp() * 1000.0


def label_time(when: Optional[datetime] = None) -> str:
    """Local wall-clock time to the second, for burning into saved frames."""
    when = when or datetime.now()
    return when.strftime("%Y-%m-%d %H:%M:%S")


def recording_stem(when: Optional[datetime] = None) -> str:
    """File stem for a recording: year-dayofyear-hour-minute-second-microsecond."""
    when = when or datetime.now()
    return when.strftime("%Y-%j-%H-%M-%S-%f")
