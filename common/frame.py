from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from imaging.image import NormalizedImage


@dataclass(frozen=True)
class Frame:
    color: np.ndarray  # BGR (H,W,3), uint8, as decoded from the camera
    gray: NormalizedImage
    captured_ms: float  # epoch ms (float)
    frame_id: int
