"""Tests for calibration metrics."""

import math

import numpy as np
import pytest

from penetrance_engine.evaluation import brier_score


def test_brier_score_basic():
    assert brier_score([0.2, 0.5], [0.0, 1.0]) == pytest.approx((0.04 + 0.25) / 2)


def test_brier_score_perfect():
    assert brier_score(np.array([0.1, 0.9]), np.array([0.1, 0.9])) == 0.0


def test_brier_score_skips_missing_pairs():
    assert brier_score([0.2, None, 0.4], [0.0, 1.0, math.nan]) == pytest.approx(0.04)


def test_brier_score_no_pairs():
    assert brier_score([None, 0.3], [0.5, None]) is None
    assert brier_score([], []) is None


def test_brier_score_length_mismatch():
    with pytest.raises(ValueError):
        brier_score([0.1, 0.2], [0.1])
