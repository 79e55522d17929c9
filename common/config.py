from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

_LOG = logging.getLogger(__name__)

VERSION = "bird-watcher-v1.1"

DEFAULT_CONFIG_PATHS = (
    Path("/etc") / VERSION / "activity-detector-service-config.json",
    Path("config.json"),
)

# JSON keys of the on-disk config -> WatcherConfig field names.
_JSON_KEYS = {
    "webcam-url": "webcam_url",
    "frame-buffer-size": "frame_buffer_size",
    "activity-threshold": "activity_threshold",
    "consecutive-active-frames-required": "consecutive_active_frames",
    "output-dir": "output_dir",
    "frame-dir": "frame_dir",
    "input-framerate": "input_framerate",
    "output-framerate": "output_framerate",
    "fetch-timeout-s": "fetch_timeout_s",
    "fetch-retries": "fetch_retries",
    "fetch-backoff-s": "fetch_backoff_s",
    "fetch-backoff-max-s": "fetch_backoff_max_s",
    "row-workers": "row_workers",
    "classify-workers": "classify_workers",
    "classify-wait-s": "classify_wait_s",
    "background-mode": "background_mode",
    "label-text": "label_text",
    "encoder-timeout-s": "encoder_timeout_s",
    "sidecar-path": "sidecar_path",
}

BACKGROUND_MODES = ("mean", "sum")


class ConfigError(ValueError):
    """Configuration is missing, unreadable or has invalid values."""


@dataclass(frozen=True)
class WatcherConfig:
    """Immutable settings for the motion-triggered recorder.

    Parameters
    ----------
    webcam_url:
        URL returning one JPEG frame per GET.
    frame_buffer_size:
        Number of frames held in the history and scanned per gate cycle (N).
    activity_threshold:
        A frame is classified inactive when the std of its foreground mask
        exceeds this value.
    consecutive_active_frames:
        Minimum longest run of active frames in one cycle that triggers a
        recording.
    output_dir:
        Directory for encoded recordings.
    frame_dir:
        Directory for the per-slot JPEG frames fed to the encoder. ``None``
        selects the RAM disk (see :func:`ram_disk_dir`).
    classify_wait_s:
        Total time the gate waits, per cycle, for outstanding classifications.
    background_mode:
        ``"mean"`` averages the history; ``"sum"`` chains pairwise adds.
    """

    webcam_url: str
    frame_buffer_size: int
    activity_threshold: float
    consecutive_active_frames: int
    output_dir: Path
    frame_dir: Optional[Path] = None
    input_framerate: int = 10
    output_framerate: int = 100
    fetch_timeout_s: float = 5.0
    fetch_retries: int = 3
    fetch_backoff_s: float = 0.25
    fetch_backoff_max_s: float = 4.0
    row_workers: Optional[int] = None
    classify_workers: int = 2
    classify_wait_s: float = 2.0
    background_mode: str = "mean"
    label_text: str = "bird-watcher"
    encoder_timeout_s: float = 300.0
    sidecar_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.frame_buffer_size < 2:
            raise ConfigError(f"frame_buffer_size must be >= 2, got {self.frame_buffer_size}")
        if self.activity_threshold < 0:
            raise ConfigError(f"activity_threshold must be >= 0, got {self.activity_threshold}")
        if self.consecutive_active_frames < 1:
            raise ConfigError(
                f"consecutive_active_frames must be >= 1, got {self.consecutive_active_frames}"
            )
        if self.input_framerate <= 0 or self.output_framerate <= 0:
            raise ConfigError("frame rates must be positive")
        if self.fetch_retries < 1:
            raise ConfigError(f"fetch_retries must be >= 1, got {self.fetch_retries}")
        if self.classify_workers < 1:
            raise ConfigError(f"classify_workers must be >= 1, got {self.classify_workers}")
        if self.classify_wait_s < 0:
            raise ConfigError(f"classify_wait_s must be >= 0, got {self.classify_wait_s}")
        if self.background_mode not in BACKGROUND_MODES:
            raise ConfigError(
                f"background_mode must be one of {BACKGROUND_MODES}, got {self.background_mode!r}"
            )

    def resolved_frame_dir(self) -> Path:
        return self.frame_dir if self.frame_dir is not None else ram_disk_dir() / VERSION

    def with_overrides(self, **overrides: Any) -> "WatcherConfig":
        """Return a copy with the non-``None`` overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **_coerce(changes)) if changes else self


def ram_disk_dir() -> Path:
    """``/dev/shm`` when it is writable, otherwise the system temp dir."""
    shm = Path("/dev/shm")
    if shm.is_dir() and os.access(shm, os.W_OK):
        return shm
    return Path(tempfile.gettempdir())


_FIELD_TYPES = {
    "frame_buffer_size": int,
    "consecutive_active_frames": int,
    "input_framerate": int,
    "output_framerate": int,
    "fetch_retries": int,
    "classify_workers": int,
    "row_workers": int,
    "activity_threshold": float,
    "fetch_timeout_s": float,
    "fetch_backoff_s": float,
    "fetch_backoff_max_s": float,
    "classify_wait_s": float,
    "encoder_timeout_s": float,
    "output_dir": Path,
    "frame_dir": Path,
    "sidecar_path": Path,
    "webcam_url": str,
    "background_mode": str,
    "label_text": str,
}


def _coerce(values: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, val in values.items():
        conv = _FIELD_TYPES.get(key)
        if conv is None or val is None:
            out[key] = val
            continue
        try:
            out[key] = conv(val)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid value for {key}: {val!r} ({exc})") from exc
    return out


def config_from_mapping(data: Mapping[str, Any]) -> WatcherConfig:
    """Build a :class:`WatcherConfig` from a mapping.

    Accepts both the hyphenated JSON keys and the dataclass field names.
    Unknown keys are ignored with a warning.
    """
    known = {f.name for f in fields(WatcherConfig)}
    values: dict[str, Any] = {}
    for key, val in data.items():
        name = _JSON_KEYS.get(key, key)
        if name not in known:
            _LOG.warning("ignoring unknown config key %r", key)
            continue
        values[name] = val

    missing = [
        name
        for name in (
            "webcam_url",
            "frame_buffer_size",
            "activity_threshold",
            "consecutive_active_frames",
            "output_dir",
        )
        if name not in values
    ]
    if missing:
        raise ConfigError(f"missing required config values: {', '.join(missing)}")
    return WatcherConfig(**_coerce(values))


def load_config(path: str | Path) -> WatcherConfig:
    """Read a JSON config file."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as exc:
        raise ConfigError(f"could not read config {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"config {path} must be a JSON object")
    return config_from_mapping(data)


def load_first_config(paths: Iterable[str | Path] = DEFAULT_CONFIG_PATHS) -> WatcherConfig:
    """Try each path in order and return the first config that loads."""
    errors: list[str] = []
    for path in paths:
        _LOG.info("Attempting to read config from %s", path)
        try:
            cfg = load_config(path)
        except ConfigError as exc:
            _LOG.info("Failed to read config from %s: %s", path, exc)
            errors.append(str(exc))
            continue
        _LOG.info("Successfully parsed config file %s", path)
        return cfg
    raise ConfigError("no usable config found: " + "; ".join(errors))


def config_from_cfg(cfg_module: Any) -> WatcherConfig:
    """Build :class:`WatcherConfig` from an application settings module.

    The module is expected to define at least:

    - WEBCAM_URL
    - FRAME_BUFFER_SIZE
    - ACTIVITY_THRESHOLD
    - CONSECUTIVE_ACTIVE_FRAMES
    - OUTPUT_DIR

    and may define any other field in upper case (e.g. ``CLASSIFY_WAIT_S``).
    """
    values: dict[str, Any] = {}
    for f in fields(WatcherConfig):
        attr = f.name.upper()
        if hasattr(cfg_module, attr):
            values[f.name] = getattr(cfg_module, attr)
    return config_from_mapping(values)
