"""Configuration loader for Gerber export preparation.

Loads and validates ``export.yaml`` into typed, frozen dataclasses.
Resolutions, clipping tolerances, raster retry limits and output file
suffixes all come from the config.

Connector measurements are stored in **authoring units** (90 DPI scene
pixels).  Conversion to output units happens only where a value is
written into a layer document, via :attr:`ResolutionConfig.scale`.

Usage::

    from gerber_prep.configs.loader import load_config
    cfg = load_config()                      # default path
    cfg = load_config("/custom/export.yaml") # explicit path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from gerber_prep.utils.fs import load_yaml

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolutionConfig:
    """Authoring and output resolutions in dots per inch."""

    authoring_dpi: float = 90.0
    output_dpi: float = 1000.0

    @property
    def scale(self) -> float:
        """Factor mapping authoring units to output units."""
        return self.output_dpi / self.authoring_dpi


@dataclass(frozen=True)
class ClippingConfig:
    """Board clipping tolerances.

    ``margin`` grows the board rect on every side before the bounding
    box test.  ``hole_radius_growth`` and ``hole_stroke_width`` describe
    how a surviving possible-hole clone is enlarged so the raster round
    trip does not eat its edge.
    """

    margin: float = 0.1
    grid_padding_px: int = 2
    hole_radius_growth: float = 4.0
    hole_stroke_width: float = 2.0
    nonconnector_marker: str = "nonconn"
    board_outline_id: str = "boardoutline"


@dataclass(frozen=True)
class RasterConfig:
    """Raster fallback settings."""

    max_retries: int = 5
    trace_batch_size: int = 10
    trace_color: str = "#000000"
    ink_threshold: int = 128

    @property
    def max_attempts(self) -> int:
        """Total renders allowed by the stability loop."""
        return self.max_retries + 1


@dataclass(frozen=True)
class OutlineConfig:
    """Default polygon extractor settings."""

    approx_epsilon_px: float = 1.0
    min_area_px: float = 4.0


@dataclass(frozen=True)
class LoggingConfig:
    """Logging options forwarded to ``setup_logging``."""

    level: str = "INFO"
    file: str | None = None
    json: bool = False
    color: bool = True


_DEFAULT_SUFFIXES: dict[str, str] = {
    "copper0": "_copperBottom.gbl",
    "copper1": "_copperTop.gtl",
    "mask0": "_maskBottom.gbs",
    "mask1": "_maskTop.gts",
    "paste0": "_pasteMaskBottom.gbp",
    "paste1": "_pasteMaskTop.gtp",
    "silk0": "_silkBottom.gbo",
    "silk1": "_silkTop.gto",
    "drill": "_drill.txt",
    "outline": "_contour.gm1",
}


@dataclass(frozen=True)
class ExportConfig:
    """Top-level export configuration."""

    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    clipping: ClippingConfig = field(default_factory=ClippingConfig)
    raster: RasterConfig = field(default_factory=RasterConfig)
    outline: OutlineConfig = field(default_factory=OutlineConfig)
    suffixes: dict[str, str] = field(
        default_factory=lambda: dict(_DEFAULT_SUFFIXES)
    )
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def suffix_for(self, key: str) -> str:
        """Return the file suffix for an output key (e.g. ``"copper1"``)."""
        try:
            return self.suffixes[key]
        except KeyError:
            raise ConfigError(
                f"No file suffix configured for '{key}'. "
                f"Available: {sorted(self.suffixes)}"
            ) from None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _validate_config(cfg: ExportConfig) -> None:
    """Validate value ranges and cross-field consistency.

    Raises
    ------
    ConfigError
        On any invalid combination.
    """
    res = cfg.resolution
    if res.authoring_dpi <= 0 or res.output_dpi <= 0:
        raise ConfigError(
            f"Resolutions must be positive, got authoring_dpi="
            f"{res.authoring_dpi}, output_dpi={res.output_dpi}"
        )

    clip = cfg.clipping
    if clip.margin < 0:
        raise ConfigError(f"clipping.margin must be >= 0, got {clip.margin}")
    if clip.grid_padding_px < 0:
        raise ConfigError(
            f"clipping.grid_padding_px must be >= 0, got {clip.grid_padding_px}"
        )
    if clip.hole_stroke_width < 0:
        raise ConfigError(
            f"clipping.hole_stroke_width must be >= 0, got {clip.hole_stroke_width}"
        )
    if not clip.nonconnector_marker:
        raise ConfigError("clipping.nonconnector_marker must not be empty")

    ras = cfg.raster
    if ras.max_retries < 0:
        raise ConfigError(f"raster.max_retries must be >= 0, got {ras.max_retries}")
    if ras.trace_batch_size < 1:
        raise ConfigError(
            f"raster.trace_batch_size must be >= 1, got {ras.trace_batch_size}"
        )
    if not 0 < ras.ink_threshold <= 255:
        raise ConfigError(
            f"raster.ink_threshold must be in (0, 255], got {ras.ink_threshold}"
        )

    if cfg.outline.approx_epsilon_px < 0:
        raise ConfigError(
            f"outline.approx_epsilon_px must be >= 0, got "
            f"{cfg.outline.approx_epsilon_px}"
        )

    missing = sorted(set(_DEFAULT_SUFFIXES) - set(cfg.suffixes))
    if missing:
        raise ConfigError(f"suffixes is missing entries: {missing}")

    if cfg.logging.level.upper() not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {_LOG_LEVELS}, got '{cfg.logging.level}'"
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(value)}")
    return value


def load_config(path: str | Path | None = None) -> ExportConfig:
    """Load and validate export configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``export.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    ExportConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "export.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)

    try:
        data: dict[str, Any] = load_yaml(path)
    except yaml.YAMLError as e:
        raise ConfigError(str(e)) from e
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {path}")

    try:
        # -- resolution -----------------------------------------------------
        res_data = _section(data, "resolution")
        resolution = ResolutionConfig(
            authoring_dpi=float(res_data["authoring_dpi"]),
            output_dpi=float(res_data["output_dpi"]),
        )

        # -- clipping -------------------------------------------------------
        clip_data = _section(data, "clipping")
        clipping = ClippingConfig(
            margin=float(clip_data["margin"]),
            grid_padding_px=int(clip_data.get("grid_padding_px", 2)),
            hole_radius_growth=float(clip_data.get("hole_radius_growth", 4.0)),
            hole_stroke_width=float(clip_data.get("hole_stroke_width", 2.0)),
            nonconnector_marker=str(
                clip_data.get("nonconnector_marker", "nonconn")
            ),
            board_outline_id=str(clip_data.get("board_outline_id", "boardoutline")),
        )

        # -- raster ---------------------------------------------------------
        ras_data = _section(data, "raster")
        raster = RasterConfig(
            max_retries=int(ras_data["max_retries"]),
            trace_batch_size=int(ras_data.get("trace_batch_size", 10)),
            trace_color=str(ras_data.get("trace_color", "#000000")),
            ink_threshold=int(ras_data.get("ink_threshold", 128)),
        )

        # -- outline --------------------------------------------------------
        out_data = _section(data, "outline")
        outline = OutlineConfig(
            approx_epsilon_px=float(out_data.get("approx_epsilon_px", 1.0)),
            min_area_px=float(out_data.get("min_area_px", 4.0)),
        )

        # -- suffixes -------------------------------------------------------
        suffixes = dict(_DEFAULT_SUFFIXES)
        suffixes.update(
            {str(k): str(v) for k, v in _section(data, "suffixes").items()}
        )

        # -- logging --------------------------------------------------------
        log_data = _section(data, "logging")
        log_file = log_data.get("file")
        logging_cfg = LoggingConfig(
            level=str(log_data.get("level", "INFO")),
            file=str(log_file) if log_file else None,
            json=bool(log_data.get("json", False)),
            color=bool(log_data.get("color", True)),
        )

        config = ExportConfig(
            resolution=resolution,
            clipping=clipping,
            raster=raster,
            outline=outline,
            suffixes=suffixes,
            logging=logging_cfg,
        )

        _validate_config(config)
        logger.info("Configuration loaded successfully")
        return config

    except KeyError as exc:
        raise ConfigError(
            f"Missing required configuration key: {exc}"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Invalid configuration value: {exc}"
        ) from exc
