from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any, List

import pytest

from record.recorder import (
    EncodeError,
    EncoderConfig,
    EncoderNotFound,
    EncodeTimeoutError,
    FfmpegEncoder,
)


class _FakeRunner:
    def __init__(self, returncode: int = 0, stderr: bytes = b"", exc: Exception | None = None):
        self.returncode = returncode
        self.stderr = stderr
        self.exc = exc
        self.calls: List[tuple[list[str], dict[str, Any]]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((list(cmd), kwargs))
        if self.exc is not None:
            raise self.exc
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=b"", stderr=self.stderr)


def _which(name: str) -> str:
    return f"/usr/bin/{name}"


def test_build_command_matches_frame_glob_invocation():
    enc = FfmpegEncoder(EncoderConfig(codec="libx264"))
    cmd = enc.build_command("/usr/bin/ffmpeg", "/dev/shm/fr/*.jpg", Path("/videos/a.mp4"), 10, 100)
    assert cmd == [
        "/usr/bin/ffmpeg",
        "-y",
        "-framerate",
        "10",
        "-pattern_type",
        "glob",
        "-i",
        "/dev/shm/fr/*.jpg",
        "-c:v",
        "libx264",
        "-r",
        "100",
        "/videos/a.mp4",
    ]


def test_extra_args_precede_output_path():
    enc = FfmpegEncoder(EncoderConfig(extra_args=("-pix_fmt", "yuv420p")))
    cmd = enc.build_command("ffmpeg", "x/*.jpg", Path("out.mp4"), 10, 100)
    assert cmd[-3:] == ["-pix_fmt", "yuv420p", "out.mp4"]


def test_encode_runs_ffmpeg_and_creates_output_dir(tmp_path):
    runner = _FakeRunner()
    enc = FfmpegEncoder(EncoderConfig(timeout_s=12.0), runner=runner, which=_which)
    out = tmp_path / "videos" / "clip.mp4"

    assert enc.encode("/frames/*.jpg", out, 10, 100) == out

    assert out.parent.is_dir()
    (cmd, kwargs), = runner.calls
    assert cmd[0] == "/usr/bin/ffmpeg"
    assert cmd[-1] == str(out)
    assert kwargs["timeout"] == 12.0
    assert kwargs["check"] is False


def test_missing_binary_raises_not_found(tmp_path):
    enc = FfmpegEncoder(runner=_FakeRunner(), which=lambda _name: None)
    with pytest.raises(EncoderNotFound):
        enc.encode("/frames/*.jpg", tmp_path / "a.mp4", 10, 100)


def test_nonzero_exit_raises_with_stderr_tail(tmp_path):
    runner = _FakeRunner(returncode=1, stderr=b"Invalid data found when processing input\n")
    enc = FfmpegEncoder(runner=runner, which=_which)
    with pytest.raises(EncodeError, match="Invalid data found"):
        enc.encode("/frames/*.jpg", tmp_path / "a.mp4", 10, 100)


def test_timeout_raises_timeout_error(tmp_path):
    runner = _FakeRunner(exc=subprocess.TimeoutExpired(cmd="ffmpeg", timeout=1.0))
    enc = FfmpegEncoder(runner=runner, which=_which)
    with pytest.raises(EncodeTimeoutError):
        enc.encode("/frames/*.jpg", tmp_path / "a.mp4", 10, 100)


def test_os_error_becomes_encode_error(tmp_path):
    enc = FfmpegEncoder(runner=_FakeRunner(exc=PermissionError("denied")), which=_which)
    with pytest.raises(EncodeError):
        enc.encode("/frames/*.jpg", tmp_path / "a.mp4", 10, 100)
