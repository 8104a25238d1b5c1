"""Per-pixel harmonic regression of satellite NDVI time series."""
from .constants import (
    DEFAULT_AMPLITUDE_DISPLAY_SCALE,
    DEFAULT_HARMONICS,
    EPOCH,
    NODATA_INT16,
    QUANT_SCALE,
)
from .config import ConfigError, HarmonicConfig, config_from_mapping, load_config
from .features import design_matrix, design_row, fractional_years, independent_names
from .models import fit_harmonic_model, reconstruct_fitted_sequence
from .regression import FitResult, fit_harmonic_cube
from .stats import SeasonalStatistics, derive_statistics
from .composite import YearlyComposite, model_composites, yearly_composites
from .format import dequantize, quantize, read_product, write_product
from .pipeline import HarmonicProducts, export_products, fit_cube, run_harmonic_pipeline
from .version import __version__, get_build_meta, get_version_string

__all__ = [
    "DEFAULT_AMPLITUDE_DISPLAY_SCALE",
    "DEFAULT_HARMONICS",
    "EPOCH",
    "NODATA_INT16",
    "QUANT_SCALE",
    "ConfigError",
    "HarmonicConfig",
    "config_from_mapping",
    "load_config",
    "design_matrix",
    "design_row",
    "fractional_years",
    "independent_names",
    "fit_harmonic_model",
    "reconstruct_fitted_sequence",
    "FitResult",
    "fit_harmonic_cube",
    "SeasonalStatistics",
    "derive_statistics",
    "YearlyComposite",
    "model_composites",
    "yearly_composites",
    "dequantize",
    "quantize",
    "read_product",
    "write_product",
    "HarmonicProducts",
    "export_products",
    "fit_cube",
    "run_harmonic_pipeline",
    "get_build_meta",
    "get_version_string",
    "__version__",
]
