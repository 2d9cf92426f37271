"""Beta prior parameterisation and the conjugate Beta-Binomial update."""

from dataclasses import dataclass

import numpy as np
import polars as pl
import structlog
from scipy import stats

from penetrance_engine.errors import DegenerateDistributionError

logger = structlog.get_logger(__name__)

# Shape parameters below this are replaced by the global empirical prior.
# A heuristic guard carried over as-is; the threshold has no derivation.
DEGENERATE_FLOOR = 0.01


@dataclass(frozen=True)
class BetaPrior:
    """Beta(alpha, beta) belief about penetrance."""

    alpha: float
    beta: float

    @property
    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)


def moments_to_shape(mean, variance) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorised method of moments.

    alpha = ((1 - mean)/variance - 1/mean) * mean^2
    beta  = alpha * (1/mean - 1)

    Returns:
        (alpha, beta, defined) arrays; ``defined`` is False where mean is
        outside (0, 1), variance is not positive or either parameter is not
        a positive finite number
    """
    mean = np.asarray(mean, dtype=float)
    variance = np.asarray(variance, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        alpha = ((1.0 - mean) / variance - 1.0 / mean) * mean**2
        beta = alpha * (1.0 / mean - 1.0)

    defined = (
        (mean > 0.0)
        & (mean < 1.0)
        & (variance > 0.0)
        & np.isfinite(alpha)
        & np.isfinite(beta)
        & (alpha > 0.0)
        & (beta > 0.0)
    )
    return alpha, beta, defined


def method_of_moments(mean: float, variance: float) -> tuple[float, float]:
    """
    Convert a (mean, variance) pair to Beta shape parameters.

    Raises:
        DegenerateDistributionError: If mean is outside (0, 1), variance is
            not positive, or either parameter comes out non-positive
    """
    if not (np.isfinite(mean) and np.isfinite(variance)):
        raise DegenerateDistributionError(f"non-finite moments: mean={mean}, variance={variance}")
    if not 0.0 < mean < 1.0:
        raise DegenerateDistributionError(f"mean {mean} outside (0, 1)")
    if variance <= 0.0:
        raise DegenerateDistributionError(f"variance {variance} is not positive")

    alpha, beta, defined = moments_to_shape(mean, variance)
    alpha, beta = float(alpha), float(beta)

    if not defined:
        raise DegenerateDistributionError(
            f"non-positive shape parameters alpha={alpha:.4g}, beta={beta:.4g} "
            f"(variance {variance:.4g} >= mean*(1-mean))"
        )
    return alpha, beta


def posterior_mean(alpha: float, beta: float, affected: int, total: int) -> float:
    """Mean of Beta(alpha + affected, beta + total - affected)."""
    if total == 0:
        return alpha / (alpha + beta)
    return (alpha + affected) / (alpha + beta + total)


def credible_interval(
    alpha: float,
    beta: float,
    affected: int,
    total: int,
    level: float = 0.95,
) -> tuple[float, float]:
    """Equal-tailed posterior credible interval from the Beta quantile function."""
    tail = (1.0 - level) / 2.0
    low, high = stats.beta.ppf(
        [tail, 1.0 - tail], alpha + affected, beta + total - affected
    )
    return float(low), float(high)


class BetaBinomialUpdater:
    """
    Turns covariate-derived (mean, variance) pairs into Beta posteriors.

    Degenerate moment pairs, and pairs giving a shape parameter below
    ``floor``, use the global empirical prior instead of the derived values.
    """

    def __init__(self, global_prior: BetaPrior, floor: float = DEGENERATE_FLOOR):
        self.global_prior = global_prior
        self.floor = floor

    def shape_parameters(self, mean: float, variance: float) -> tuple[float, float, bool]:
        """
        Beta parameters for one record.

        Returns:
            (alpha, beta, used_fallback)
        """
        alpha, beta, fallback = self.floored_shape(mean, variance)
        return float(alpha), float(beta), bool(fallback)

    def floored_shape(self, mean, variance) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Method of moments with the global-prior fallback applied elementwise."""
        alpha, beta, defined = moments_to_shape(mean, variance)
        fallback = ~defined | (alpha < self.floor) | (beta < self.floor)
        alpha = np.where(fallback, self.global_prior.alpha, alpha)
        beta = np.where(fallback, self.global_prior.beta, beta)
        return alpha, beta, fallback

    def update(
        self, mean: float, variance: float, affected: int, total: int
    ) -> tuple[float, float, float]:
        """Returns (alpha, beta, posterior_mean) for one record."""
        alpha, beta, _ = self.shape_parameters(mean, variance)
        return alpha, beta, posterior_mean(alpha, beta, affected, total)

    def update_frame(
        self,
        df: pl.DataFrame,
        mean_column: str = "predicted_mean",
        variance_column: str = "predicted_variance",
    ) -> pl.DataFrame:
        """
        Vectorised update over a table.

        Adds alpha, beta, prior_mean, posterior_mean and prior_fallback.
        Null means or variances count as degenerate.
        """
        mean = df[mean_column].cast(pl.Float64).fill_null(np.nan).to_numpy()
        variance = df[variance_column].cast(pl.Float64).fill_null(np.nan).to_numpy()
        affected = df["affected"].to_numpy().astype(float)
        total = df["total"].to_numpy().astype(float)

        alpha, beta, fallback = self.floored_shape(mean, variance)

        prior = alpha / (alpha + beta)
        posterior = np.where(total == 0, prior, (alpha + affected) / (alpha + beta + total))

        if fallback.any():
            logger.debug(
                "beta_fallback_to_global_prior",
                records=int(fallback.sum()),
                alpha0=self.global_prior.alpha,
                beta0=self.global_prior.beta,
            )

        return df.with_columns(
            pl.Series("alpha", alpha),
            pl.Series("beta", beta),
            pl.Series("prior_mean", prior),
            pl.Series("posterior_mean", posterior),
            pl.Series("prior_fallback", fallback),
        )


def attach_credible_intervals(df: pl.DataFrame, level: float = 0.95) -> pl.DataFrame:
    """Add credible_interval_low/high from alpha, beta and the carrier counts."""
    alpha = df["alpha"].to_numpy()
    beta = df["beta"].to_numpy()
    affected = df["affected"].to_numpy()
    unaffected = df["total"].to_numpy() - affected

    tail = (1.0 - level) / 2.0
    return df.with_columns(
        pl.Series("credible_interval_low", stats.beta.ppf(tail, alpha + affected, beta + unaffected)),
        pl.Series("credible_interval_high", stats.beta.ppf(1.0 - tail, alpha + affected, beta + unaffected)),
    )
