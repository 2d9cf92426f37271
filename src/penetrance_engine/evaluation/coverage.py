"""Bootstrap check of posterior credible-interval coverage."""

import numpy as np
import polars as pl
import structlog
from scipy import stats

logger = structlog.get_logger(__name__)

# Empirical coverage of a 95% interval outside this band is flagged
COVERAGE_BAND = (0.90, 0.99)

# Guards floor/ceil against representation error (0.3/0.05 == 5.999...)
_ROUNDING_TOLERANCE = 1e-9


def round_outward(
    low: np.ndarray, high: np.ndarray, step: float | None
) -> tuple[np.ndarray, np.ndarray]:
    """Widen interval bounds to multiples of ``step``, clipped to [0, 1].

    A falsy step leaves the bounds unchanged.
    """
    if not step:
        return low, high
    low = np.floor(np.asarray(low) / step + _ROUNDING_TOLERANCE) * step
    high = np.ceil(np.asarray(high) / step - _ROUNDING_TOLERANCE) * step
    return np.clip(low, 0.0, 1.0), np.clip(high, 0.0, 1.0)


def simulate_coverage(
    alpha: float,
    beta: float,
    true_penetrance: float,
    n_carriers: int,
    n_trials: int = 1000,
    step: float | None = 0.05,
    level: float = 0.95,
    rng: np.random.Generator | None = None,
) -> float:
    """
    Fraction of simulated credible intervals containing the true penetrance.

    Each trial draws the affected count of ``n_carriers`` carriers from
    Binomial(n_carriers, true_penetrance), updates Beta(alpha, beta) with it,
    and takes the equal-tailed ``level`` interval rounded outward to ``step``.

    Args:
        alpha: Prior alpha of the variant
        beta: Prior beta of the variant
        true_penetrance: Assumed true probability in [0, 1]
        n_carriers: Carriers per simulated trial
        n_trials: Number of simulated trials
        step: Reporting granularity; None or 0 disables rounding
        level: Credible level
        rng: numpy Generator; a fresh unseeded one if None

    Returns:
        Empirical coverage in [0, 1]
    """
    if not 0.0 <= true_penetrance <= 1.0:
        raise ValueError(f"true_penetrance {true_penetrance} outside [0, 1]")
    rng = rng if rng is not None else np.random.default_rng()

    affected = rng.binomial(n_carriers, true_penetrance, size=n_trials)
    tail = (1.0 - level) / 2.0
    low = stats.beta.ppf(tail, alpha + affected, beta + n_carriers - affected)
    high = stats.beta.ppf(1.0 - tail, alpha + affected, beta + n_carriers - affected)
    low, high = round_outward(low, high, step)

    return float(np.mean((low <= true_penetrance) & (true_penetrance <= high)))


def coverage_by_variant(
    table: pl.DataFrame,
    n_carriers: int = 10,
    n_trials: int = 1000,
    step: float | None = 0.05,
    level: float = 0.95,
    truth_column: str = "posterior_mean",
    seed: int = 42,
) -> pl.DataFrame:
    """
    Run the coverage simulation for every variant of a final EM table.

    Each variant's own prior (alpha, beta) is used and ``truth_column`` is
    taken as its true penetrance. Variants with a null truth are skipped.

    Returns:
        DataFrame with variant_id, true_penetrance, alpha, beta, coverage
    """
    rng = np.random.default_rng(seed)
    rows = table.filter(pl.col(truth_column).is_not_null()).select(
        "variant_id", pl.col(truth_column).alias("true_penetrance"), "alpha", "beta"
    )

    coverage = [
        simulate_coverage(
            alpha,
            beta,
            truth,
            n_carriers,
            n_trials=n_trials,
            step=step,
            level=level,
            rng=rng,
        )
        for _, truth, alpha, beta in rows.iter_rows()
    ]
    result = rows.with_columns(pl.Series("coverage", coverage, dtype=pl.Float64))

    logger.info(
        "coverage_by_variant_complete",
        variants=result.height,
        n_carriers=n_carriers,
        n_trials=n_trials,
        mean_coverage=f"{result['coverage'].mean():.4f}" if result.height else "N/A",
    )
    return result


def flag_coverage(
    coverage: pl.DataFrame,
    low: float = COVERAGE_BAND[0],
    high: float = COVERAGE_BAND[1],
) -> pl.DataFrame:
    """Variants whose empirical coverage falls outside [low, high]."""
    flagged = coverage.filter((pl.col("coverage") < low) | (pl.col("coverage") > high))
    if flagged.height:
        logger.warning(
            "coverage_outside_band",
            flagged=flagged.height,
            band=f"[{low:.2f}, {high:.2f}]",
            examples=flagged["variant_id"].head(5).to_list(),
        )
    return flagged
