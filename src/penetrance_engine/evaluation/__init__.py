"""Calibration and discrimination checks for the penetrance engine."""

from penetrance_engine.evaluation.correlation import (
    correlate_covariates,
    permutation_pvalue,
    weighted_pearson,
    weighted_spearman,
)
from penetrance_engine.evaluation.coverage import (
    COVERAGE_BAND,
    coverage_by_variant,
    flag_coverage,
    round_outward,
    simulate_coverage,
)
from penetrance_engine.evaluation.cross_validation import (
    CrossValidationResult,
    FoldResult,
    assign_folds,
    cross_validate,
    mask_fold,
)
from penetrance_engine.evaluation.metrics import brier_score

__all__ = [
    "correlate_covariates",
    "permutation_pvalue",
    "weighted_pearson",
    "weighted_spearman",
    "COVERAGE_BAND",
    "coverage_by_variant",
    "flag_coverage",
    "round_outward",
    "simulate_coverage",
    "CrossValidationResult",
    "FoldResult",
    "assign_folds",
    "cross_validate",
    "mask_fold",
    "brier_score",
]
