"""Data models for per-variant carrier observations."""

from typing import Literal

from pydantic import BaseModel, Field

MUTATION_CATEGORIES = ("missense", "nonsense", "synonymous")

# Columns every input table must carry
REQUIRED_COLUMNS = ["variant_id", "position", "category"]

# Carrier counts; any of them may be absent and is then derived
COUNT_COLUMNS = ["affected", "unaffected", "total"]

# Columns handed to downstream plotting/export
OUTPUT_COLUMNS = [
    "variant_id",
    "prior_mean",
    "posterior_mean",
    "alpha",
    "beta",
    "credible_interval_low",
    "credible_interval_high",
    "affected",
    "total",
]


class VariantRecord(BaseModel):
    """Carrier observations and covariates for a single variant.

    Attributes:
        variant_id: Stable key, native residue + position + substituted residue (e.g. A561V)
        position: Residue position in the protein
        category: Mutation category
        affected: Carriers manifesting the phenotype
        unaffected: Carriers without the phenotype
        total: Total carriers; derived from affected + unaffected when omitted
        covariates: Named predictors; None marks a missing value

    Count consistency is checked on the assembled table, not here, so a bad
    record is reported as InvalidInputError together with its variant_id.
    """

    variant_id: str
    position: int
    category: Literal["missense", "nonsense", "synonymous"]
    affected: int | None = None
    unaffected: int | None = None
    total: int | None = None
    covariates: dict[str, float | None] = Field(default_factory=dict)

    def to_row(self) -> dict:
        """Flatten into a single table row."""
        row = self.model_dump(exclude={"covariates"})
        row.update(self.covariates)
        return row
