# capture/__init__.py
"""Capture package: HTTP snapshot reader, synthetic source, retry policy."""

from .reader import (
    FetchError,
    FrameSource,
    HttpFrameSource,
    ReaderStats,
    RetryPolicy,
    SyntheticFrameSource,
)

__all__ = [
    "FrameSource",
    "FetchError",
    "HttpFrameSource",
    "SyntheticFrameSource",
    "RetryPolicy",
    "ReaderStats",
]

__version__ = "0.1.0"
