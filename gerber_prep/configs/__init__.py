"""Export configuration loading and validation."""

from gerber_prep.configs.loader import (
    ClippingConfig,
    ConfigError,
    ExportConfig,
    LoggingConfig,
    OutlineConfig,
    RasterConfig,
    ResolutionConfig,
    load_config,
)

__all__ = [
    "ClippingConfig",
    "ConfigError",
    "ExportConfig",
    "LoggingConfig",
    "OutlineConfig",
    "RasterConfig",
    "ResolutionConfig",
    "load_config",
]
