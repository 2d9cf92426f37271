"""Weighted correlations with permutation-based significance."""

from typing import Callable, Literal, Sequence

import numpy as np
import polars as pl
import structlog
from scipy.stats import rankdata

logger = structlog.get_logger(__name__)

# Fewer paired observations than this gives a null correlation
MIN_PAIRS = 3


def weighted_pearson(x: np.ndarray, y: np.ndarray, w: np.ndarray) -> float:
    """
    Weighted Pearson correlation.

    Returns NaN if the weights sum to zero or either variable has no
    weighted variance.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    w = np.asarray(w, dtype=float)
    if w.sum() <= 0:
        return float("nan")

    mx = np.average(x, weights=w)
    my = np.average(y, weights=w)
    cov = np.average((x - mx) * (y - my), weights=w)
    var_x = np.average((x - mx) ** 2, weights=w)
    var_y = np.average((y - my) ** 2, weights=w)
    if var_x <= 0 or var_y <= 0:
        return float("nan")
    return float(cov / np.sqrt(var_x * var_y))


def weighted_spearman(x: np.ndarray, y: np.ndarray, w: np.ndarray) -> float:
    """Weighted Pearson correlation of the average ranks of x and y."""
    return weighted_pearson(rankdata(x), rankdata(y), w)


CORRELATIONS: dict[str, Callable[[np.ndarray, np.ndarray, np.ndarray], float]] = {
    "pearson": weighted_pearson,
    "spearman": weighted_spearman,
}


def permutation_pvalue(
    x: np.ndarray,
    y: np.ndarray,
    w: np.ndarray,
    method: Literal["spearman", "pearson"] = "spearman",
    n_permutations: int = 1000,
    rng: np.random.Generator | None = None,
) -> tuple[float, float]:
    """
    Correlation and its permutation p-value.

    y is shuffled ``n_permutations`` times (x and w stay paired); the
    p-value is the fraction of shuffles whose |correlation| exceeds the
    observed |correlation|.

    Returns:
        (correlation, p_value); both NaN if the correlation is undefined
    """
    corr = CORRELATIONS[method]
    rng = rng if rng is not None else np.random.default_rng()

    observed = corr(x, y, w)
    if np.isnan(observed):
        return observed, float("nan")

    y = np.asarray(y, dtype=float)
    exceed = 0
    for _ in range(n_permutations):
        permuted = corr(x, rng.permutation(y), w)
        if abs(permuted) > abs(observed):
            exceed += 1
    return observed, exceed / n_permutations


def correlate_covariates(
    df: pl.DataFrame,
    target: str,
    covariates: Sequence[str],
    weight: str = "weight",
    method: Literal["spearman", "pearson"] = "spearman",
    n_permutations: int = 1000,
    seed: int = 42,
) -> pl.DataFrame:
    """
    Weighted correlation of ``target`` with each covariate.

    Each covariate uses the rows where it, the target and the weight are
    all present.

    Returns:
        DataFrame with covariate, n, correlation, p_value, method; sorted by
        |correlation| descending, nulls last
    """
    rng = np.random.default_rng(seed)
    rows = []

    for covariate in covariates:
        pairs = df.filter(
            pl.col(target).is_not_null()
            & pl.col(covariate).is_not_null()
            & pl.col(weight).is_not_null()
        )
        n = pairs.height
        correlation = p_value = None

        if n >= MIN_PAIRS:
            r, p = permutation_pvalue(
                pairs[covariate].to_numpy(),
                pairs[target].to_numpy(),
                pairs[weight].to_numpy(),
                method=method,
                n_permutations=n_permutations,
                rng=rng,
            )
            if not np.isnan(r):
                correlation, p_value = r, p
        else:
            logger.warning("correlation_insufficient_pairs", covariate=covariate, n=n)

        rows.append(
            {
                "covariate": covariate,
                "n": n,
                "correlation": correlation,
                "p_value": p_value,
                "method": method,
            }
        )

    result = pl.DataFrame(
        rows,
        schema={
            "covariate": pl.Utf8,
            "n": pl.Int64,
            "correlation": pl.Float64,
            "p_value": pl.Float64,
            "method": pl.Utf8,
        },
    ).sort(pl.col("correlation").abs(), descending=True, nulls_last=True)

    logger.info(
        "correlate_covariates_complete",
        target=target,
        method=method,
        n_permutations=n_permutations,
        results={r["covariate"]: r["correlation"] for r in result.to_dicts()},
    )
    return result
