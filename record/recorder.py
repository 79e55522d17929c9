from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

_LOG = logging.getLogger(__name__)


class EncodeError(Exception):
    """Base class for video encoding errors."""


class EncoderNotFound(EncodeError):
    """The encoder executable is not installed or not on PATH."""


class EncodeTimeoutError(EncodeError):
    """The encoder did not finish within the configured timeout."""


class VideoEncoder(Protocol):
    def encode(
        self,
        frame_pattern: str,
        output_path: Path,
        input_framerate: int,
        output_framerate: int,
    ) -> Path: ...  # raises EncodeError


@dataclass
class EncoderConfig:
    """Configuration for :class:`FfmpegEncoder`.

    Parameters
    ----------
    ffmpeg_bin:
        Executable name or path.
    codec:
        Video codec passed to ``-c:v``.
    timeout_s:
        Maximum time an encode may take before :class:`EncodeTimeoutError`.
    extra_args:
        Extra output options inserted before the output path.
    """

    ffmpeg_bin: str = "ffmpeg"
    codec: str = "libx264"
    timeout_s: float = 300.0
    extra_args: Sequence[str] = ()


Runner = Callable[..., subprocess.CompletedProcess]


class FfmpegEncoder:
    """Encode a glob of still frames into a video with ffmpeg.

    The call is synchronous: it returns once ffmpeg has exited successfully,
    and raises :class:`EncodeError` for a missing binary, a non-zero exit or
    a timeout.
    """

    def __init__(
        self,
        cfg: Optional[EncoderConfig] = None,
        runner: Runner = subprocess.run,
        which: Callable[[str], Optional[str]] = shutil.which,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._cfg = cfg or EncoderConfig()
        self._run = runner
        self._which = which
        self._log = logger or _LOG

    def build_command(
        self,
        ffmpeg_path: str,
        frame_pattern: str,
        output_path: Path,
        input_framerate: int,
        output_framerate: int,
    ) -> list[str]:
        return [
            ffmpeg_path,
            "-y",
            "-framerate",
            str(int(input_framerate)),
            "-pattern_type",
            "glob",
            "-i",
            frame_pattern,
            "-c:v",
            self._cfg.codec,
            "-r",
            str(int(output_framerate)),
            *self._cfg.extra_args,
            str(output_path),
        ]

    def encode(
        self,
        frame_pattern: str,
        output_path: Path,
        input_framerate: int,
        output_framerate: int,
    ) -> Path:
        ffmpeg_path = self._which(self._cfg.ffmpeg_bin)
        if ffmpeg_path is None:
            raise EncoderNotFound(f"{self._cfg.ffmpeg_bin!r} not found on PATH")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(
            ffmpeg_path, frame_pattern, output_path, input_framerate, output_framerate
        )
        self._log.info("encoding %s -> %s", frame_pattern, output_path)
        self._log.debug("ffmpeg command: %r", cmd)

        try:
            proc = self._run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._cfg.timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise EncodeTimeoutError(
                f"ffmpeg did not finish within {self._cfg.timeout_s:.0f}s for {output_path}"
            ) from exc
        except OSError as exc:
            raise EncodeError(f"failed to start ffmpeg: {exc}") from exc

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", "replace") if proc.stderr else ""
            raise EncodeError(
                f"ffmpeg exited with status {proc.returncode} for {output_path}: "
                f"{stderr.strip()[-500:]}"
            )

        self._log.info("encoded %s", output_path)
        return output_path

