"""Validate a harmonised variant table and attach derived columns."""

from pathlib import Path
from typing import Sequence

import polars as pl
import structlog

from penetrance_engine.dataset.models import (
    COUNT_COLUMNS,
    MUTATION_CATEGORIES,
    REQUIRED_COLUMNS,
    VariantRecord,
)
from penetrance_engine.errors import InvalidInputError

logger = structlog.get_logger(__name__)

NULL_MARKERS = ["NA", "N/A", ".", ""]


def _first_offender(df: pl.DataFrame, mask: pl.Expr) -> str | None:
    hits = df.filter(mask.fill_null(False))
    if hits.height == 0:
        return None
    return hits["variant_id"][0]


def _resolve_counts(df: pl.DataFrame) -> pl.DataFrame:
    """Fill absent count columns from the ones that are present.

    total defaults to affected + unaffected; a missing side of the
    affected/unaffected split is derived from total. A record with a
    non-zero total and neither side known stays null and is rejected.
    """
    df = df.with_columns(
        [
            pl.col(c).cast(pl.Float64, strict=False) if c in df.columns
            else pl.lit(None, dtype=pl.Float64).alias(c)
            for c in COUNT_COLUMNS
        ]
    )

    a, u, t = pl.col("affected"), pl.col("unaffected"), pl.col("total")
    df = df.with_columns(
        pl.when(t.is_null()).then(a.fill_null(0.0) + u.fill_null(0.0)).otherwise(t).alias("total")
    )
    df = df.with_columns(
        pl.when(a.is_null() & u.is_not_null()).then(t - u).otherwise(a).alias("affected"),
        pl.when(u.is_null() & a.is_not_null()).then(t - a).otherwise(u).alias("unaffected"),
    )
    return df.with_columns(
        pl.when(a.is_null() & u.is_null() & (t == 0.0)).then(0.0).otherwise(a).alias("affected"),
        pl.when(a.is_null() & u.is_null() & (t == 0.0)).then(0.0).otherwise(u).alias("unaffected"),
    )


def validate_variant_table(df: pl.DataFrame, covariates: Sequence[str] = ()) -> pl.DataFrame:
    """Check structure and count invariants, returning a typed copy.

    Args:
        df: Harmonised table, one row per variant
        covariates: Covariate columns the run will use

    Returns:
        DataFrame with Int64 counts, normalised categories and Float64
        covariates where NaN has been replaced by null

    Raises:
        InvalidInputError: On missing columns, duplicate keys, unknown
            categories or malformed counts. The offending variant is named.
    """
    missing = [c for c in [*REQUIRED_COLUMNS, *covariates] if c not in df.columns]
    if missing:
        raise InvalidInputError(f"Missing required columns: {missing}")

    df = df.with_columns(
        pl.col("variant_id").cast(pl.Utf8),
        pl.col("category").cast(pl.Utf8).str.strip_chars().str.to_lowercase(),
    )

    if df["variant_id"].null_count() > 0:
        raise InvalidInputError("variant_id must not be null")

    duplicated = df.filter(pl.col("variant_id").is_duplicated())
    if duplicated.height > 0:
        raise InvalidInputError(
            "Duplicate variant_id; counts must be merged upstream",
            variant_id=duplicated["variant_id"][0],
        )

    offender = _first_offender(
        df, pl.col("category").is_null() | ~pl.col("category").is_in(list(MUTATION_CATEGORIES))
    )
    if offender is not None:
        raise InvalidInputError(
            f"category must be one of {MUTATION_CATEGORIES}", variant_id=offender
        )

    position = pl.col("position").cast(pl.Float64, strict=False)
    offender = _first_offender(df, position.is_null() | (position != position.floor()))
    if offender is not None:
        raise InvalidInputError("position must be an integer", variant_id=offender)
    df = df.with_columns(pl.col("position").cast(pl.Float64).cast(pl.Int64))

    # A value the cast turns into null was present but unreadable
    for column in [c for c in COUNT_COLUMNS if c in df.columns]:
        parsed = pl.col(column).cast(pl.Float64, strict=False)
        unreadable = pl.col(column).is_not_null() & parsed.is_null()
        offender = _first_offender(df, unreadable)
        if offender is not None:
            raise InvalidInputError("carrier counts must be numeric", variant_id=offender)

    df = _resolve_counts(df)
    checks = [
        (
            pl.any_horizontal([pl.col(c).is_null() for c in COUNT_COLUMNS]),
            "affected/unaffected breakdown missing for non-zero total",
        ),
        (
            pl.any_horizontal([pl.col(c) != pl.col(c).floor() for c in COUNT_COLUMNS]),
            "carrier counts must be integers",
        ),
        (
            pl.any_horizontal([pl.col(c) < 0 for c in COUNT_COLUMNS]),
            "carrier counts must be non-negative",
        ),
        (pl.col("affected") > pl.col("total"), "affected exceeds total"),
        (
            pl.col("total") != pl.col("affected") + pl.col("unaffected"),
            "total must equal affected + unaffected",
        ),
    ]
    for mask, message in checks:
        offender = _first_offender(df, mask)
        if offender is not None:
            raise InvalidInputError(message, variant_id=offender)

    df = df.with_columns([pl.col(c).cast(pl.Int64) for c in COUNT_COLUMNS])

    if covariates:
        df = df.with_columns(
            [pl.col(c).cast(pl.Float64, strict=False).fill_nan(None) for c in covariates]
        )

    return df


def add_derived_columns(df: pl.DataFrame, weight_epsilon: float = 0.01) -> pl.DataFrame:
    """Attach empirical penetrance and reliability weight.

    penetrance is null for variants without carriers. The weight
    1 - 1/(epsilon + total) is negative at total = 0 and is floored at 0.
    """
    return df.with_columns(
        pl.when(pl.col("total") > 0)
        .then(pl.col("affected") / pl.col("total"))
        .otherwise(None)
        .alias("penetrance"),
        pl.max_horizontal(
            pl.lit(0.0),
            1.0 - 1.0 / (weight_epsilon + pl.col("total").cast(pl.Float64)),
        ).alias("weight"),
    )


def prepare_variant_table(
    df: pl.DataFrame,
    covariates: Sequence[str] = (),
    weight_epsilon: float = 0.01,
) -> pl.DataFrame:
    """Validate ``df`` and add derived columns; the engine's entry point."""
    df = add_derived_columns(validate_variant_table(df, covariates), weight_epsilon)

    logger.info(
        "prepare_variant_table_complete",
        variants=df.height,
        with_carriers=df.filter(pl.col("total") > 0).height,
        carriers=int(df["total"].sum()),
        missing_covariates={c: df[c].null_count() for c in covariates},
    )
    return df


def build_variant_table(
    records: Sequence[VariantRecord],
    covariates: Sequence[str] = (),
    weight_epsilon: float = 0.01,
) -> pl.DataFrame:
    """Assemble VariantRecords into a validated working table."""
    rows = [r.to_row() for r in records]
    for row in rows:
        for c in covariates:
            row.setdefault(c, None)
    schema_overrides = {c: pl.Float64 for c in covariates}
    df = pl.DataFrame(rows, schema_overrides=schema_overrides, infer_schema_length=None)
    return prepare_variant_table(df, covariates, weight_epsilon)


def read_variant_table(
    path: Path | str,
    covariates: Sequence[str] = (),
    weight_epsilon: float = 0.01,
) -> pl.DataFrame:
    """Read a harmonised TSV/CSV/Parquet table and prepare it.

    Raises:
        FileNotFoundError: If path doesn't exist
        InvalidInputError: If the table is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Variant table not found: {path}")

    if path.suffix == ".parquet":
        df = pl.read_parquet(path)
    else:
        separator = "," if path.suffix == ".csv" else "\t"
        df = pl.read_csv(
            path,
            separator=separator,
            null_values=NULL_MARKERS,
            infer_schema_length=None,
        )

    logger.info("read_variant_table", path=str(path), rows=df.height)
    return prepare_variant_table(df, covariates, weight_epsilon)
