# tests/conftest.py
import os
import sys

import numpy as np
import pytest

# Repo root on sys.path so the flat top-level packages import without install.
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from imaging.pool import RowPool  # noqa: E402


@pytest.fixture
def pool():
    # Small bands so even tiny test images fan out across several workers.
    p = RowPool(max_workers=4, min_rows_per_task=1)
    yield p
    p.shutdown()


@pytest.fixture
def gradient_array():
    # 6 rows x 8 cols, values 0..47
    return np.arange(48, dtype=np.float32).reshape(6, 8)
