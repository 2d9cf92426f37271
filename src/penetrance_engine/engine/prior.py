"""Population-level empirical Beta prior from observed missense penetrance."""

from dataclasses import dataclass

import numpy as np
import polars as pl
import statsmodels.api as sm
import structlog

from penetrance_engine.engine.beta import BetaPrior, method_of_moments
from penetrance_engine.errors import DegenerateDistributionError

logger = structlog.get_logger(__name__)

DEFAULT_FALLBACK_PRIOR = BetaPrior(alpha=1.0, beta=1.0)


@dataclass(frozen=True)
class EmpiricalPrior:
    """
    Result of the empirical prior fit.

    Attributes:
        alpha: Prior alpha (alpha0), fallback value if degenerate
        beta: Prior beta (beta0), fallback value if degenerate
        weighted_mean: Weighted mean penetrance p (None if not estimable)
        weighted_variance: Weighted mean squared residual v (None if not estimable)
        n_variants: Missense variants with positive weight used in the fit
        degenerate: True if the fallback prior was substituted
        reason: Why the fit was degenerate
    """

    alpha: float
    beta: float
    weighted_mean: float | None
    weighted_variance: float | None
    n_variants: int
    degenerate: bool = False
    reason: str | None = None

    @property
    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)

    def as_beta(self) -> BetaPrior:
        return BetaPrior(self.alpha, self.beta)


def estimate_empirical_prior(
    df: pl.DataFrame,
    fallback: BetaPrior = DEFAULT_FALLBACK_PRIOR,
) -> EmpiricalPrior:
    """
    Fit the global Beta(alpha0, beta0) prior by method of moments.

    An intercept-only weighted linear model of empirical penetrance, with the
    reliability weight as regression weight, gives the weighted mean p. The
    weighted mean of squared residuals gives v.

    Args:
        df: Prepared variant table (penetrance, weight, category columns)
        fallback: Prior used when the data cannot support a fit

    Returns:
        EmpiricalPrior; ``degenerate`` is set and a warning logged when v <= 0,
        p is outside (0, 1) or the derived parameters are not positive
    """
    subset = df.filter(
        (pl.col("category") == "missense")
        & (pl.col("weight") > 0)
        & pl.col("penetrance").is_not_null()
    )
    n = subset.height

    if n == 0:
        return _degenerate(fallback, None, None, 0, "no missense variants with carriers")

    y = subset["penetrance"].to_numpy()
    w = subset["weight"].to_numpy()
    fit = sm.WLS(y, np.ones((n, 1)), weights=w).fit()

    p = float(fit.params[0])
    v = float(np.average(np.asarray(fit.resid) ** 2, weights=w))

    try:
        alpha0, beta0 = method_of_moments(p, v)
    except DegenerateDistributionError as e:
        return _degenerate(fallback, p, v, n, str(e))

    logger.info(
        "empirical_prior_fit",
        n_variants=n,
        weighted_mean=f"{p:.4f}",
        weighted_variance=f"{v:.5f}",
        alpha0=f"{alpha0:.4f}",
        beta0=f"{beta0:.4f}",
    )
    return EmpiricalPrior(
        alpha=alpha0,
        beta=beta0,
        weighted_mean=p,
        weighted_variance=v,
        n_variants=n,
    )


def _degenerate(
    fallback: BetaPrior,
    p: float | None,
    v: float | None,
    n: int,
    reason: str,
) -> EmpiricalPrior:
    logger.warning(
        "empirical_prior_degenerate",
        reason=reason,
        n_variants=n,
        fallback_alpha=fallback.alpha,
        fallback_beta=fallback.beta,
    )
    return EmpiricalPrior(
        alpha=fallback.alpha,
        beta=fallback.beta,
        weighted_mean=p,
        weighted_variance=v,
        n_variants=n,
        degenerate=True,
        reason=reason,
    )
