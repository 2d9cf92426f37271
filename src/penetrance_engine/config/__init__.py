from .loader import load_config, load_config_with_overrides
from .schema import (
    CoverageSettings,
    CovariateSettings,
    EMSettings,
    EngineConfig,
    EvaluationSettings,
    SmoothingSettings,
)

__all__ = [
    "load_config",
    "load_config_with_overrides",
    "EngineConfig",
    "EMSettings",
    "CovariateSettings",
    "EvaluationSettings",
    "CoverageSettings",
    "SmoothingSettings",
]
