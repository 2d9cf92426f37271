"""Tests for the empirical Beta prior."""

import polars as pl
import pytest

from penetrance_engine.dataset import prepare_variant_table
from penetrance_engine.engine.beta import BetaPrior
from penetrance_engine.engine.prior import estimate_empirical_prior


def _prepared(affected, total, category=None) -> pl.DataFrame:
    n = len(affected)
    return prepare_variant_table(pl.DataFrame({
        "variant_id": [f"V{i}" for i in range(n)],
        "position": list(range(100, 100 + n)),
        "category": category or ["missense"] * n,
        "affected": affected,
        "unaffected": [t - a for a, t in zip(affected, total)],
        "total": total,
    }))


def test_prior_method_of_moments():
    """Equal weights: p is the plain mean, v the mean squared deviation."""
    # penetrance 0.1, 0.2, 0.3, 0.4 -> p = 0.25, v = 0.0125
    df = _prepared([1, 2, 3, 4], [10, 10, 10, 10])

    prior = estimate_empirical_prior(df)

    assert not prior.degenerate
    assert prior.n_variants == 4
    assert prior.weighted_mean == pytest.approx(0.25)
    assert prior.weighted_variance == pytest.approx(0.0125)
    assert prior.alpha == pytest.approx(3.5)
    assert prior.beta == pytest.approx(10.5)
    assert prior.mean == pytest.approx(0.25)


def test_prior_ignores_non_missense_and_zero_weight():
    df = _prepared(
        [1, 2, 3, 4, 9, 0],
        [10, 10, 10, 10, 10, 0],
        category=["missense"] * 4 + ["nonsense", "missense"],
    )

    prior = estimate_empirical_prior(df)

    assert prior.n_variants == 4
    assert prior.weighted_mean == pytest.approx(0.25)


def test_prior_weighted_toward_larger_cohorts():
    """A well-observed variant pulls p further than a singleton."""
    df = _prepared([1, 1, 40], [2, 10, 100])

    prior = estimate_empirical_prior(df)
    weights = df["weight"].to_numpy()
    penetrance = df["penetrance"].to_numpy()

    expected = (weights * penetrance).sum() / weights.sum()
    assert prior.weighted_mean == pytest.approx(expected)


def test_prior_degenerate_zero_penetrance():
    """p = 0 is outside (0, 1): fallback prior is used and flagged."""
    df = _prepared([0, 0, 0], [10, 12, 8])

    prior = estimate_empirical_prior(df)

    assert prior.degenerate
    assert prior.reason is not None
    assert (prior.alpha, prior.beta) == (1.0, 1.0)


def test_prior_degenerate_no_carriers_uses_configured_fallback():
    df = _prepared([0, 0], [0, 0])

    prior = estimate_empirical_prior(df, fallback=BetaPrior(2.0, 3.0))

    assert prior.degenerate
    assert prior.n_variants == 0
    assert prior.weighted_mean is None
    assert prior.as_beta() == BetaPrior(2.0, 3.0)
