"""Error taxonomy for the penetrance engine.

Structural problems with the input (missing columns, malformed counts) abort
a run. Per-record numerical problems are recovered locally by the engine and
only counted.
"""


class PenetranceEngineError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(PenetranceEngineError):
    """Input table violates the required structure or count invariants.

    Attributes:
        variant_id: Offending record, or None for table-level problems
    """

    def __init__(self, message: str, variant_id: str | None = None):
        self.variant_id = variant_id
        if variant_id is not None:
            message = f"{message} (variant {variant_id})"
        super().__init__(message)


class DegenerateDistributionError(PenetranceEngineError):
    """Method of moments gave undefined or non-positive Beta parameters."""


class MissingCovariateError(PenetranceEngineError):
    """A record has no usable covariates for the regression step."""


class NonConvergenceWarning(UserWarning):
    """The EM loop hit its iteration cap before the delta threshold."""
