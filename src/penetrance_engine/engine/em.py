"""EM-style fixed-point loop alternating covariate regression and Beta-Binomial updates."""

import warnings
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import polars as pl
import structlog

from penetrance_engine.config.schema import CovariateSettings, EMSettings, EngineConfig
from penetrance_engine.dataset.models import OUTPUT_COLUMNS
from penetrance_engine.dataset.smoothing import SmoothingHook
from penetrance_engine.engine.beta import (
    BetaBinomialUpdater,
    BetaPrior,
    attach_credible_intervals,
)
from penetrance_engine.engine.prior import EmpiricalPrior, estimate_empirical_prior
from penetrance_engine.engine.regression import CovariateRegressionStep
from penetrance_engine.errors import NonConvergenceWarning

logger = structlog.get_logger(__name__)

ROW_INDEX = "_row"

MODEL_STATE_COLUMNS = [
    "alpha",
    "beta",
    "prior_mean",
    "posterior_mean",
    "prior_fallback",
]

PREDICTION_COLUMNS = [
    "predicted_mean",
    "predicted_variance",
    "covariate_set",
    "carried_forward",
]


class EMState(str, Enum):
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class WorkingSnapshot:
    """One immutable version of the working table.

    Version 0 is the seed; version k is the table after iteration k.
    """

    version: int
    frame: pl.DataFrame
    delta: float | None = None


@dataclass
class EMResult:
    """
    Outcome of an EM run.

    Attributes:
        table: Final per-variant table with prior/posterior and credible interval
        prior: Global empirical prior the run started from
        state: CONVERGED or EXHAUSTED
        iterations: Iterations performed
        deltas: L1 change in posterior means per iteration
        history: Every working snapshot, seed first
        eligible_count: Records in the covariate-complete missense working set
        fallback_count: Eligible records whose final prior fell back to the global prior
        carried_forward_count: Eligible records without a usable covariate model
    """

    table: pl.DataFrame
    prior: EmpiricalPrior
    state: EMState
    iterations: int
    deltas: list[float] = field(default_factory=list)
    history: list[WorkingSnapshot] = field(default_factory=list)
    eligible_count: int = 0
    fallback_count: int = 0
    carried_forward_count: int = 0

    @property
    def converged(self) -> bool:
        return self.state == EMState.CONVERGED


class EMConvergenceLoop:
    """
    Repeats regression + Beta-Binomial update until posterior means settle.

    Only missense records with every required covariate present take part;
    everything else keeps its seed estimate (global prior + own counts) and
    is merged back in the original row order.

    An instance owns the model-state columns of the table it is running on;
    it is not meant to be shared between concurrent runs.
    """

    def __init__(
        self,
        prior: EmpiricalPrior,
        covariates: CovariateSettings,
        settings: EMSettings | None = None,
        smoothing: SmoothingHook | None = None,
        level: float = 0.95,
    ):
        self.prior = prior
        self.covariates = covariates
        self.settings = settings or EMSettings()
        self.smoothing = smoothing
        self.level = level
        self.updater = BetaBinomialUpdater(prior.as_beta(), floor=self.settings.degenerate_floor)
        self.regression = CovariateRegressionStep(covariates.all)
        self.state = EMState.INITIALIZING

    def eligible_expr(self) -> pl.Expr:
        expr = pl.col("category") == "missense"
        for c in self.covariates.required:
            expr = expr & pl.col(c).is_not_null()
        return expr

    def _with_eligibility(self, frame: pl.DataFrame) -> pl.DataFrame:
        return frame.with_columns(self.eligible_expr().fill_null(False).alias("eligible"))

    def seed(self, df: pl.DataFrame) -> WorkingSnapshot:
        """Version 0: every record updated from the global prior with its own counts."""
        frame = df.drop([c for c in [*MODEL_STATE_COLUMNS, *PREDICTION_COLUMNS] if c in df.columns])
        if ROW_INDEX not in frame.columns:
            frame = frame.with_row_index(ROW_INDEX)

        if self.smoothing is not None:
            frame = self.smoothing.refresh(frame, outcome_column="penetrance")

        frame = frame.with_columns(
            pl.lit(None, dtype=pl.Float64).alias("predicted_mean"),
            pl.lit(None, dtype=pl.Float64).alias("predicted_variance"),
            pl.lit(None, dtype=pl.Utf8).alias("covariate_set"),
            pl.lit(False).alias("carried_forward"),
        )
        frame = self.updater.update_frame(frame)
        # Seeding uses the global prior by construction, not as a fallback
        frame = frame.with_columns(pl.lit(False).alias("prior_fallback"))
        return WorkingSnapshot(version=0, frame=self._with_eligibility(frame))

    def step(self, snapshot: WorkingSnapshot) -> WorkingSnapshot:
        """Run one iteration and return the next snapshot; ``snapshot`` is untouched."""
        frame = snapshot.frame
        if self.smoothing is not None:
            frame = self._with_eligibility(self.smoothing.refresh(frame))

        working = frame.filter(pl.col("eligible"))
        rest = frame.filter(~pl.col("eligible"))

        predictions = self.regression.run(working)
        candidate = self.updater.update_frame(
            working.drop(PREDICTION_COLUMNS).hstack(predictions.drop("variant_id"))
        )

        # Records without a usable model keep their previous estimate
        keep = pl.col("carried_forward")
        updated = candidate.with_columns(
            [
                pl.when(keep).then(working[c]).otherwise(pl.col(c)).alias(c)
                for c in MODEL_STATE_COLUMNS
            ]
        )

        delta = float(
            np.abs(updated["posterior_mean"].to_numpy() - working["posterior_mean"].to_numpy()).sum()
        )

        merged = pl.concat([rest, updated.select(frame.columns)], how="vertical").sort(ROW_INDEX)
        return WorkingSnapshot(version=snapshot.version + 1, frame=merged, delta=delta)

    def finalize(self, snapshot: WorkingSnapshot) -> pl.DataFrame:
        """
        Final re-weighting pass.

        The covariate-predicted mean is given variance mean*(1-mean)/(1+k),
        which makes the prior worth k equivalent observations, and the
        updater is applied once more. Records without a prediction get the
        global prior.
        """
        k = self.settings.tuning_constant
        frame = snapshot.frame.with_columns(
            (pl.col("predicted_mean") * (1.0 - pl.col("predicted_mean")) / (1.0 + k)).alias(
                "predicted_variance"
            )
        )
        frame = self.updater.update_frame(frame)
        frame = frame.with_columns(
            (pl.col("prior_fallback") & pl.col("predicted_mean").is_not_null()).alias("prior_fallback")
        )
        return attach_credible_intervals(frame, level=self.level).drop(ROW_INDEX)

    def run(self, df: pl.DataFrame) -> EMResult:
        """
        Iterate to convergence or the iteration cap.

        Issues NonConvergenceWarning (never raises) when the cap is reached;
        the result then reports state EXHAUSTED.
        """
        self.state = EMState.INITIALIZING
        snapshot = self.seed(df)
        history = [snapshot]
        deltas: list[float] = []
        eligible_count = int(snapshot.frame["eligible"].sum())

        logger.info(
            "em_start",
            records=snapshot.frame.height,
            eligible=eligible_count,
            alpha0=f"{self.prior.alpha:.4f}",
            beta0=f"{self.prior.beta:.4f}",
            max_iterations=self.settings.max_iterations,
            delta_threshold=self.settings.delta_threshold,
        )

        self.state = EMState.ITERATING
        while self.state == EMState.ITERATING:
            snapshot = self.step(snapshot)
            history.append(snapshot)
            deltas.append(snapshot.delta)

            logger.info(
                "em_iteration",
                iteration=snapshot.version,
                delta=f"{snapshot.delta:.5f}",
                carried_forward=int(snapshot.frame["carried_forward"].sum()),
            )

            if snapshot.delta < self.settings.delta_threshold:
                self.state = EMState.CONVERGED
            elif snapshot.version >= self.settings.max_iterations:
                self.state = EMState.EXHAUSTED

        if self.state == EMState.EXHAUSTED:
            warnings.warn(
                f"EM loop stopped after {snapshot.version} iterations with delta "
                f"{snapshot.delta:.4f} >= {self.settings.delta_threshold}",
                NonConvergenceWarning,
                stacklevel=2,
            )
            logger.warning(
                "em_not_converged",
                iterations=snapshot.version,
                last_delta=f"{snapshot.delta:.5f}",
            )

        table = self.finalize(snapshot)
        eligible = table.filter(pl.col("eligible"))
        result = EMResult(
            table=table,
            prior=self.prior,
            state=self.state,
            iterations=snapshot.version,
            deltas=deltas,
            history=history,
            eligible_count=eligible_count,
            fallback_count=int(eligible["prior_fallback"].sum()),
            carried_forward_count=int(eligible["carried_forward"].sum()),
        )

        logger.info(
            "em_complete",
            state=result.state.value,
            iterations=result.iterations,
            fallback_count=result.fallback_count,
            carried_forward=result.carried_forward_count,
        )
        return result


def estimate_penetrance(
    df: pl.DataFrame,
    config: EngineConfig,
    smoothing: SmoothingHook | None = None,
) -> EMResult:
    """
    Empirical prior followed by the EM loop on a prepared variant table.

    Args:
        df: Output of prepare_variant_table
        config: Engine configuration
        smoothing: Optional hook refreshing one covariate per iteration

    Returns:
        EMResult with the final per-variant table
    """
    fallback = BetaPrior(config.em.fallback_alpha, config.em.fallback_beta)
    prior = estimate_empirical_prior(df, fallback=fallback)
    loop = EMConvergenceLoop(
        prior,
        config.covariates,
        config.em,
        smoothing=smoothing,
        level=config.coverage.level,
    )
    return loop.run(df)


def output_table(result: EMResult) -> pl.DataFrame:
    """Project the final table onto the downstream output columns."""
    return result.table.select(OUTPUT_COLUMNS)
