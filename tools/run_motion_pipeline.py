from __future__ import annotations

import argparse
import contextlib
import logging
import signal
import sys
import threading
from typing import Optional

from analysis.motion.pipeline import MotionRecorder
from analysis.motion.sidecar import ActivitySidecarWriter
from capture.reader import HttpFrameSource, RetryPolicy, SyntheticFrameSource
from common.config import (
    BACKGROUND_MODES,
    DEFAULT_CONFIG_PATHS,
    ConfigError,
    WatcherConfig,
    load_config,
    load_first_config,
)
from imaging.pool import RowPool
from record.frame_sink import JpegFrameSink
from record.recorder import EncoderConfig, FfmpegEncoder

_LOG = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Watch a webcam and record a video whenever sustained activity is seen.",
    )
    ap.add_argument(
        "--config",
        type=str,
        default=None,
        help=(
            "JSON config file. Without it the default locations are tried in order: "
            + ", ".join(str(p) for p in DEFAULT_CONFIG_PATHS)
        ),
    )
    ap.add_argument("--webcam-url", type=str, default=None, help="Override webcam-url.")
    ap.add_argument("--output-dir", type=str, default=None, help="Override output-dir.")
    ap.add_argument("--frame-dir", type=str, default=None, help="Override frame-dir.")
    ap.add_argument(
        "--frame-buffer-size", type=int, default=None, help="Override frame-buffer-size."
    )
    ap.add_argument(
        "--activity-threshold", type=float, default=None, help="Override activity-threshold."
    )
    ap.add_argument(
        "--consecutive-active-frames",
        type=int,
        default=None,
        help="Override consecutive-active-frames-required.",
    )
    ap.add_argument(
        "--background-mode",
        type=str,
        choices=list(BACKGROUND_MODES),
        default=None,
        help="How the background image is built from the history.",
    )
    ap.add_argument(
        "--sidecar",
        type=str,
        default=None,
        help="Path of a JSONL file receiving one record per gate cycle.",
    )
    ap.add_argument(
        "--synthetic",
        action="store_true",
        help="Use generated frames instead of the webcam (for development).",
    )
    ap.add_argument(
        "--synthetic-motion",
        action="store_true",
        help="With --synthetic, sweep a bright square across the frames.",
    )
    ap.add_argument(
        "--max-frames",
        type=int,
        default=0,
        help="If > 0, stop after this many frames past priming; otherwise run until Ctrl+C.",
    )
    ap.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return ap


def resolve_config(args: argparse.Namespace) -> WatcherConfig:
    cfg = load_config(args.config) if args.config else load_first_config()
    return cfg.with_overrides(
        webcam_url=args.webcam_url,
        output_dir=args.output_dir,
        frame_dir=args.frame_dir,
        frame_buffer_size=args.frame_buffer_size,
        activity_threshold=args.activity_threshold,
        consecutive_active_frames=args.consecutive_active_frames,
        background_mode=args.background_mode,
        sidecar_path=args.sidecar,
    )


def build_recorder(
    cfg: WatcherConfig,
    synthetic: bool = False,
    synthetic_motion: bool = False,
    sidecar: Optional[ActivitySidecarWriter] = None,
) -> tuple[MotionRecorder, RowPool]:
    """Wire the production components for ``cfg``.

    Returns the recorder and the row pool it shares; the caller owns both.
    """
    if synthetic:
        source = SyntheticFrameSource(motion=synthetic_motion)
    else:
        source = HttpFrameSource(
            cfg.webcam_url,
            timeout_s=cfg.fetch_timeout_s,
            retry=RetryPolicy(
                attempts=cfg.fetch_retries,
                backoff_s=cfg.fetch_backoff_s,
                backoff_max_s=cfg.fetch_backoff_max_s,
            ),
        )
    pool = RowPool(max_workers=cfg.row_workers)
    recorder = MotionRecorder(
        config=cfg,
        source=source,
        sink=JpegFrameSink(label_text=cfg.label_text),
        encoder=FfmpegEncoder(EncoderConfig(timeout_s=cfg.encoder_timeout_s)),
        pool=pool,
        sidecar=sidecar,
    )
    return recorder, pool


def main(argv: Optional[list[str]] = None) -> int:
    ap = build_arg_parser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        cfg = resolve_config(args)
    except ConfigError as exc:
        _LOG.error("Configuration error: %s", exc)
        return 2

    _LOG.info(
        "Watching %s (buffer=%d, threshold=%.3f, consecutive=%d)",
        "synthetic frames" if args.synthetic else cfg.webcam_url,
        cfg.frame_buffer_size,
        cfg.activity_threshold,
        cfg.consecutive_active_frames,
    )
    _LOG.info("Frames in %s, recordings in %s", cfg.resolved_frame_dir(), cfg.output_dir)

    stop = threading.Event()
    prev_handler = None
    with contextlib.suppress(ValueError):  # not in the main thread
        prev_handler = signal.signal(signal.SIGTERM, lambda *_: stop.set())

    sidecar: Optional[ActivitySidecarWriter] = None
    if cfg.sidecar_path is not None:
        sidecar = ActivitySidecarWriter(cfg.sidecar_path)
        sidecar.open()
        _LOG.info("Writing gate cycles to %s", cfg.sidecar_path)

    recorder, pool = build_recorder(
        cfg, synthetic=args.synthetic, synthetic_motion=args.synthetic_motion, sidecar=sidecar
    )
    try:
        recorder.run(max_frames=args.max_frames or None, stop=stop)
    except KeyboardInterrupt:
        _LOG.info("KeyboardInterrupt received, shutting down.")
    finally:
        stats = recorder.stats()
        _LOG.info(
            "frames=%d fetch_failures=%d cycles=%d triggers=%d recordings=%d",
            stats.frames,
            stats.fetch_failures,
            stats.cycles,
            stats.triggers,
            stats.recordings,
        )
        recorder.close()
        pool.shutdown()
        if sidecar is not None:
            sidecar.close()
        if prev_handler is not None:
            signal.signal(signal.SIGTERM, prev_handler)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
