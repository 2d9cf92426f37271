"""Calibration metrics for penetrance predictions."""

import numpy as np


def brier_score(predicted, observed) -> float | None:
    """
    Unweighted mean squared error between predicted and observed penetrance.

    Pairs where either side is missing (None or NaN) are skipped.

    Returns:
        Brier score, or None if no complete pairs remain
    """
    p = np.asarray(predicted, dtype=float)
    o = np.asarray(observed, dtype=float)
    if p.shape != o.shape:
        raise ValueError(f"length mismatch: {p.shape} vs {o.shape}")

    complete = ~(np.isnan(p) | np.isnan(o))
    if not complete.any():
        return None
    return float(np.mean((p[complete] - o[complete]) ** 2))
