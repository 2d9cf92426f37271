"""Empirical-Bayes penetrance estimation: prior, regression, Beta update, EM loop."""

from penetrance_engine.engine.beta import (
    DEGENERATE_FLOOR,
    BetaBinomialUpdater,
    BetaPrior,
    attach_credible_intervals,
    credible_interval,
    method_of_moments,
    moments_to_shape,
    posterior_mean,
)
from penetrance_engine.engine.prior import EmpiricalPrior, estimate_empirical_prior
from penetrance_engine.engine.regression import CovariateRegressionStep, SubsetFit
from penetrance_engine.engine.em import (
    EMConvergenceLoop,
    EMResult,
    EMState,
    WorkingSnapshot,
    estimate_penetrance,
    output_table,
)

__all__ = [
    "DEGENERATE_FLOOR",
    "BetaBinomialUpdater",
    "BetaPrior",
    "attach_credible_intervals",
    "credible_interval",
    "method_of_moments",
    "moments_to_shape",
    "posterior_mean",
    "EmpiricalPrior",
    "estimate_empirical_prior",
    "CovariateRegressionStep",
    "SubsetFit",
    "EMConvergenceLoop",
    "EMResult",
    "EMState",
    "WorkingSnapshot",
    "estimate_penetrance",
    "output_table",
]
