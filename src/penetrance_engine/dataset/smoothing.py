"""Contract for the residue-distance smoothing service.

The kernel computation over the residue-distance matrix lives outside this
package. The engine only calls it, once per residue position, and broadcasts
the result to every variant at that position.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import polars as pl
import structlog

from penetrance_engine.config.schema import SmoothingSettings

logger = structlog.get_logger(__name__)


class DistanceSmoothingService(Protocol):
    """Anything that can smooth an outcome column over residue distance."""

    def smooth(
        self,
        position: int,
        variant_key: str,
        observation_table: pl.DataFrame,
        distance_matrix: Any,
        outcome_column: str,
        kernel: str = "sigmoid",
        bandwidth: float = 7.0,
    ) -> tuple[float | None, float | None]:
        """Return (smoothed value, confidence weight); None marks no estimate."""
        ...


def attach_smoothed_covariate(
    df: pl.DataFrame,
    service: DistanceSmoothingService,
    distance_matrix: Any,
    outcome_column: str,
    covariate: str,
    kernel: str = "sigmoid",
    bandwidth: float = 7.0,
) -> pl.DataFrame:
    """Add ``covariate`` and ``{covariate}_weight`` from the smoothing service.

    Args:
        df: Working table with a position column
        service: Smoothing implementation
        distance_matrix: Opaque residue-distance data passed through to the service
        outcome_column: Column the service smooths (e.g. penetrance, posterior_mean)
        covariate: Name of the covariate column to (re)write
        kernel: Kernel name forwarded to the service
        bandwidth: Kernel bandwidth forwarded to the service

    Returns:
        New DataFrame; existing values of the covariate columns are replaced.
        The weight column is informational and not read by the engine.
    """
    weight_column = f"{covariate}_weight"

    # First variant (by key) at each position stands in for the position
    representatives = (
        df.select("position", "variant_id")
        .sort(["position", "variant_id"])
        .unique(subset="position", keep="first", maintain_order=True)
    )

    rows = []
    for position, variant_key in representatives.iter_rows():
        value, confidence = service.smooth(
            position,
            variant_key,
            df,
            distance_matrix,
            outcome_column,
            kernel=kernel,
            bandwidth=bandwidth,
        )
        rows.append({"position": position, covariate: value, weight_column: confidence})

    smoothed = pl.DataFrame(
        rows,
        schema={"position": pl.Int64, covariate: pl.Float64, weight_column: pl.Float64},
    ).with_columns(pl.col(covariate).fill_nan(None))

    out = (
        df.drop([c for c in (covariate, weight_column) if c in df.columns])
        .with_row_index("_smoothing_order")
        .join(smoothed, on="position", how="left")
        .sort("_smoothing_order")
        .drop("_smoothing_order")
    )

    logger.debug(
        "attach_smoothed_covariate",
        covariate=covariate,
        outcome_column=outcome_column,
        positions=smoothed.height,
        missing=out[covariate].null_count(),
    )
    return out


@dataclass(frozen=True)
class SmoothingHook:
    """Refreshes one covariate from the current posterior each EM iteration.

    The service's confidence weight lands in ``<covariate>_weight`` on the
    working table for inspection only. Regression fits weight records by
    carrier count, never by this column.
    """

    service: DistanceSmoothingService
    distance_matrix: Any
    settings: SmoothingSettings

    def refresh(self, df: pl.DataFrame, outcome_column: str = "posterior_mean") -> pl.DataFrame:
        return attach_smoothed_covariate(
            df,
            self.service,
            self.distance_matrix,
            outcome_column,
            self.settings.covariate,
            kernel=self.settings.kernel,
            bandwidth=self.settings.bandwidth,
        )
