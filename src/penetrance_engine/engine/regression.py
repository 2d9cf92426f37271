"""Covariate-conditioned quasi-binomial regression of current penetrance estimates."""

import warnings
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import polars as pl
import statsmodels.api as sm
import structlog
from scipy.special import expit
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from penetrance_engine.errors import MissingCovariateError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SubsetFit:
    """GLM fitted on one covariate subset.

    Attributes:
        columns: Covariates in the design, after the intercept
        params: Coefficients, intercept first
        cov_params: Coefficient covariance, already scaled by the dispersion
        dispersion: Pearson chi-square / residual df
        n_obs: Records the model was fitted on
        converged: IRLS convergence flag
    """

    columns: tuple[str, ...]
    params: np.ndarray
    cov_params: np.ndarray
    dispersion: float
    n_obs: int
    converged: bool

    def predict(self, values: Sequence[float]) -> tuple[float, float]:
        """Fitted mean and delta-method variance of the mean for one record."""
        x = np.concatenate(([1.0], np.asarray(values, dtype=float)))
        eta = float(x @ self.params)
        var_eta = float(x @ self.cov_params @ x)
        mu = float(expit(eta))
        se_mu = mu * (1.0 - mu) * np.sqrt(max(var_eta, 0.0))
        return mu, se_mu**2


class CovariateRegressionStep:
    """
    Predict each record's prior mean and variance from its own covariates.

    For every record the model uses exactly the covariates that record has
    (missing ones are left out of the formula, never imputed) and is fitted
    on all records with those covariates present and positive weight. The
    fit is a binomial-family, logit-link GLM with the reliability weight as
    variance weight and a Pearson-estimated dispersion (quasi-binomial).

    Records sharing a covariate subset share one fit, which is identical to
    refitting per record.
    """

    def __init__(
        self,
        covariates: Sequence[str],
        response: str = "posterior_mean",
        weight: str = "weight",
    ):
        self.covariates = list(covariates)
        self.response = response
        self.weight = weight

    def available_covariates(self, row: dict) -> tuple[str, ...]:
        return tuple(c for c in self.covariates if row.get(c) is not None)

    def fit_subset(self, df: pl.DataFrame, columns: tuple[str, ...]) -> SubsetFit:
        """
        Fit the quasi-binomial GLM on records where ``columns`` are all present.

        Raises:
            MissingCovariateError: If ``columns`` is empty or too few records
                carry them to estimate the coefficients and dispersion
            numpy.linalg.LinAlgError: If the fit is numerically singular
        """
        if not columns:
            raise MissingCovariateError("record has no usable covariates")

        rows = df.filter(
            (pl.col(self.weight) > 0)
            & pl.col(self.response).is_not_null()
            & pl.all_horizontal([pl.col(c).is_not_null() for c in columns])
        )
        if rows.height < len(columns) + 2:
            raise MissingCovariateError(
                f"{rows.height} records carry covariates {list(columns)}; "
                f"need at least {len(columns) + 2}"
            )

        X = np.column_stack([np.ones(rows.height), rows.select(columns).to_numpy()])
        y = rows[self.response].to_numpy()
        w = rows[self.weight].to_numpy()

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ConvergenceWarning)
            model = sm.GLM(y, X, family=sm.families.Binomial(), var_weights=w)
            result = model.fit(scale="X2")

        convergence_warnings = [
            str(c.message) for c in caught if issubclass(c.category, ConvergenceWarning)
        ]
        if convergence_warnings:
            logger.warning(
                "regression_convergence_warning",
                covariates=list(columns),
                warnings=convergence_warnings,
            )

        return SubsetFit(
            columns=columns,
            params=np.asarray(result.params),
            cov_params=np.asarray(result.cov_params()),
            dispersion=float(result.scale),
            n_obs=rows.height,
            converged=bool(getattr(result, "converged", True)),
        )

    def run(self, df: pl.DataFrame) -> pl.DataFrame:
        """
        Predict (mean, variance) for every row of ``df``.

        Args:
            df: Working set of eligible records; read only

        Returns:
            Row-aligned DataFrame with variant_id, predicted_mean,
            predicted_variance, covariate_set and carried_forward. Carried
            forward rows have null predictions and keep their previous
            estimate in the caller.
        """
        fits: dict[tuple[str, ...], SubsetFit | None] = {}
        means: list[float | None] = []
        variances: list[float | None] = []
        subsets: list[str] = []
        carried: list[bool] = []

        for row in df.iter_rows(named=True):
            columns = self.available_covariates(row)
            if columns not in fits:
                try:
                    fits[columns] = self.fit_subset(df, columns)
                except MissingCovariateError as e:
                    logger.debug("regression_carry_forward", covariates=list(columns), reason=str(e))
                    fits[columns] = None
                except np.linalg.LinAlgError as e:
                    logger.warning("regression_singular_fit", covariates=list(columns), error=str(e))
                    fits[columns] = None

            fit = fits[columns]
            subsets.append(",".join(columns))
            if fit is None:
                means.append(None)
                variances.append(None)
                carried.append(True)
                continue

            mu, var = fit.predict([row[c] for c in columns])
            means.append(mu)
            variances.append(var)
            carried.append(False)

        logger.debug(
            "regression_step_complete",
            records=df.height,
            distinct_models=len(fits),
            carried_forward=sum(carried),
        )

        return df.select("variant_id").with_columns(
            pl.Series("predicted_mean", means, dtype=pl.Float64),
            pl.Series("predicted_variance", variances, dtype=pl.Float64),
            pl.Series("covariate_set", subsets, dtype=pl.Utf8),
            pl.Series("carried_forward", carried, dtype=pl.Boolean),
        )
