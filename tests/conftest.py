import sys
from pathlib import Path

# Make the top-level simulation modules importable from the tests
ROOT = Path(__file__).resolve().parents[1]
for path in (ROOT, ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

import pytest

from normalization import NormalizationStats
from fakes import wind_text
from wind_data import WindSequence


@pytest.fixture
def unit_stats():
    # normalize/denormalize become the identity
    return NormalizationStats(pos_mean=(0.0, 0.0, 0.0), pos_std=(1.0, 1.0, 1.0),
                              disp_mean=(0.0, 0.0, 0.0), disp_std=(1.0, 1.0, 1.0))


@pytest.fixture
def make_sequence():
    def _make(length):
        return WindSequence.from_texts([wind_text(start=float(i)) for i in range(length)])
    return _make
