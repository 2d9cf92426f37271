"""K-fold cross-validation of the covariate-derived prior."""

from dataclasses import dataclass, field

import numpy as np
import polars as pl
import structlog

from penetrance_engine.config.schema import EngineConfig
from penetrance_engine.dataset.smoothing import SmoothingHook
from penetrance_engine.engine.em import estimate_penetrance
from penetrance_engine.evaluation.correlation import MIN_PAIRS, weighted_pearson, weighted_spearman
from penetrance_engine.evaluation.metrics import brier_score

logger = structlog.get_logger(__name__)


@dataclass
class FoldResult:
    """Held-out metrics for one fold."""

    fold: int
    n_held_out: int
    n_scored: int
    spearman: float | None
    pearson: float | None
    brier: float | None
    converged: bool
    iterations: int


@dataclass
class CrossValidationResult:
    """
    Per-fold metric vectors plus the held-out predictions they came from.

    Attributes:
        folds: One FoldResult per fold, ordered by fold id
        fold_ids: Fold assignment for each input row
        predictions: variant_id, fold, prior_mean, posterior_mean,
            penetrance and observed_weight of every record in its held-out pass
    """

    folds: list[FoldResult]
    fold_ids: np.ndarray
    predictions: pl.DataFrame = field(default_factory=pl.DataFrame)

    @property
    def spearman(self) -> list[float | None]:
        return [f.spearman for f in self.folds]

    @property
    def pearson(self) -> list[float | None]:
        return [f.pearson for f in self.folds]

    @property
    def brier(self) -> list[float | None]:
        return [f.brier for f in self.folds]

    def to_frame(self) -> pl.DataFrame:
        return pl.DataFrame([vars(f) for f in self.folds])


def assign_folds(n: int, k: int, seed: int = 42) -> np.ndarray:
    """
    Random partition of ``n`` rows into ``k`` folds.

    Every row lands in exactly one fold and fold sizes differ by at most one.

    Raises:
        ValueError: If k < 2 or k > n
    """
    if k < 2 or k > n:
        raise ValueError(f"need 2 <= k <= n, got k={k}, n={n}")

    order = np.random.default_rng(seed).permutation(n)
    fold_ids = np.empty(n, dtype=np.int64)
    for fold, rows in enumerate(np.array_split(order, k)):
        fold_ids[rows] = fold
    return fold_ids


def mask_fold(df: pl.DataFrame, fold_ids: np.ndarray, fold: int) -> pl.DataFrame:
    """Copy of ``df`` with the reliability weight of ``fold`` set to 0.

    Held-out records stay in the table but carry no weight in any fit.
    """
    held_out = pl.Series("held_out", fold_ids == fold)
    return df.with_columns(
        pl.when(held_out).then(pl.lit(0.0)).otherwise(pl.col("weight")).alias("weight")
    )


def _metric(value: float) -> float | None:
    return None if value is None or np.isnan(value) else float(value)


def score_fold(held_out: pl.DataFrame) -> tuple[int, float | None, float | None, float | None]:
    """Score held-out prior means against observed penetrance.

    Correlations are weighted by the observed reliability weight; the Brier
    score is unweighted.

    Returns:
        (n_scored, spearman, pearson, brier)
    """
    scored = held_out.filter(pl.col("penetrance").is_not_null() & (pl.col("observed_weight") > 0))
    n = scored.height
    if n == 0:
        return 0, None, None, None

    predicted = scored["prior_mean"].to_numpy()
    observed = scored["penetrance"].to_numpy()
    weights = scored["observed_weight"].to_numpy()

    brier = brier_score(predicted, observed)
    if n < MIN_PAIRS:
        return n, None, None, brier

    return (
        n,
        _metric(weighted_spearman(predicted, observed, weights)),
        _metric(weighted_pearson(predicted, observed, weights)),
        brier,
    )


def cross_validate(
    df: pl.DataFrame,
    config: EngineConfig,
    n_folds: int | None = None,
    seed: int | None = None,
    smoothing: SmoothingHook | None = None,
) -> CrossValidationResult:
    """
    K-fold cross-validation of the full estimation procedure.

    For each fold the fold's weights are zeroed, the empirical prior and EM
    loop are rerun on the whole table, and the fold's predicted prior means
    are compared with their empirical penetrance.

    Args:
        df: Prepared variant table
        config: Engine configuration
        n_folds: Overrides config.evaluation.n_folds
        seed: Overrides config.evaluation.seed
        smoothing: Optional smoothing hook passed through to each EM run

    Returns:
        CrossValidationResult with length-k metric vectors
    """
    k = n_folds or config.evaluation.n_folds
    seed = config.evaluation.seed if seed is None else seed
    fold_ids = assign_folds(df.height, k, seed=seed)

    logger.info("cross_validation_start", records=df.height, folds=k, seed=seed)

    folds: list[FoldResult] = []
    held_out_frames: list[pl.DataFrame] = []

    for fold in range(k):
        result = estimate_penetrance(mask_fold(df, fold_ids, fold), config, smoothing=smoothing)

        held_out = (
            result.table.select("variant_id", "prior_mean", "posterior_mean", "penetrance")
            .with_columns(
                pl.Series("fold", fold_ids),
                df["weight"].alias("observed_weight"),
            )
            .filter(pl.col("fold") == fold)
        )
        n_scored, spearman, pearson, brier = score_fold(held_out)

        folds.append(
            FoldResult(
                fold=fold,
                n_held_out=held_out.height,
                n_scored=n_scored,
                spearman=spearman,
                pearson=pearson,
                brier=brier,
                converged=result.converged,
                iterations=result.iterations,
            )
        )
        held_out_frames.append(held_out)

        logger.info(
            "cross_validation_fold",
            fold=fold,
            held_out=held_out.height,
            scored=n_scored,
            spearman=f"{spearman:.4f}" if spearman is not None else "N/A",
            pearson=f"{pearson:.4f}" if pearson is not None else "N/A",
            brier=f"{brier:.4f}" if brier is not None else "N/A",
        )

    return CrossValidationResult(
        folds=folds,
        fold_ids=fold_ids,
        predictions=pl.concat(held_out_frames),
    )
