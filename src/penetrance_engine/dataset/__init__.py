"""Variant table: carrier observations, covariates and derived weights."""

from penetrance_engine.dataset.models import (
    COUNT_COLUMNS,
    MUTATION_CATEGORIES,
    OUTPUT_COLUMNS,
    REQUIRED_COLUMNS,
    VariantRecord,
)
from penetrance_engine.dataset.load import (
    add_derived_columns,
    build_variant_table,
    prepare_variant_table,
    read_variant_table,
    validate_variant_table,
)
from penetrance_engine.dataset.smoothing import (
    DistanceSmoothingService,
    SmoothingHook,
    attach_smoothed_covariate,
)

__all__ = [
    "COUNT_COLUMNS",
    "MUTATION_CATEGORIES",
    "OUTPUT_COLUMNS",
    "REQUIRED_COLUMNS",
    "VariantRecord",
    "add_derived_columns",
    "build_variant_table",
    "prepare_variant_table",
    "read_variant_table",
    "validate_variant_table",
    "DistanceSmoothingService",
    "SmoothingHook",
    "attach_smoothed_covariate",
]
