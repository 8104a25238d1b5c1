"""End-to-end harmonic regression: fit, derive, composite, export."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Sequence

import numpy as np

from .composite import YearlyComposite, model_composites, stack_composites
from .config import HarmonicConfig
from .constants import N_OBS_BAND
from .features import as_datetime64, design_matrix, independent_names
from .format import RasterGrid, coefficient_band_names, write_product
from .regression import FitResult, fit_harmonic_cube
from .stats import SeasonalStatistics, derive_statistics
from .utils import load_scene_stack, save_seasonality_png
from .version import raster_tags

logger = logging.getLogger(__name__)


@dataclass
class HarmonicProducts:
    """Everything computed for one cube, before quantization."""

    config: HarmonicConfig
    dates: np.ndarray
    design: np.ndarray
    fit: FitResult
    statistics: SeasonalStatistics
    composites: list[YearlyComposite]

    def coefficient_stack(self) -> tuple[np.ndarray, list[str]]:
        """(B, H, W) float bands in export order with their names."""
        cfg = self.config
        stats = self.statistics
        amplitude = stats.amplitude_display if cfg.legacy_amplitude_scaling else stats.amplitude
        layers = [self.fit.coefficients, amplitude, stats.phase, stats.mean[None]]
        if cfg.export_display_amplitude:
            layers.append(stats.amplitude_display)
        if cfg.export_diagnostics:
            layers.append(self.fit.n_obs[None].astype(np.float64))
            layers.append(self.fit.rmse[None])
        names = coefficient_band_names(
            cfg.harmonics,
            cfg.dependent_variable,
            display_amplitude=cfg.export_display_amplitude,
            diagnostics=cfg.export_diagnostics,
        )
        return np.concatenate(layers, axis=0), names

    def yearly_stack(self) -> tuple[np.ndarray, list[str]]:
        return stack_composites(self.composites)


def fit_cube(
    values: np.ndarray,
    dates: Sequence,
    config: HarmonicConfig | None = None,
    valid: np.ndarray | None = None,
) -> HarmonicProducts:
    """
    Run the numeric pipeline on an in-memory (T, H, W) cube.

    NaN values are missing observations. ``valid`` overrides the mask used
    for ``composite_valid_only`` and defaults to the finite values.
    """
    config = (config or HarmonicConfig()).validate()
    values = np.asarray(values)
    if not np.issubdtype(values.dtype, np.floating):
        values = values.astype(np.float32)
    if values.ndim != 3:
        raise ValueError("values must have shape (T, H, W)")
    days = as_datetime64(dates)
    if days.ndim != 1 or days.shape[0] != values.shape[0]:
        raise ValueError(f"{days.shape[0]} dates for {values.shape[0]} observations")
    if days.size == 0:
        raise ValueError("At least one observation is required")
    if np.any(np.diff(days.astype(np.int64)) < 0):
        raise ValueError("dates must be sorted ascending")
    if valid is not None and np.shape(valid) != values.shape:
        raise ValueError("valid mask must match the values shape")

    k = config.harmonics
    design = design_matrix(days, k)
    fit = fit_harmonic_cube(
        values,
        design,
        names=independent_names(k),
        block_size=config.block_size,
        workers=config.worker_count,
        rcond=config.rcond,
        max_ram_mb=config.max_ram_mb,
    )
    statistics = derive_statistics(
        fit.coefficients, values, k, display_scale=config.amplitude_display_scale
    )

    valid_only = config.composite_valid_only
    composites = model_composites(
        fit.coefficients,
        design,
        days,
        config.years(),
        config.composite_window,
        valid=valid if valid_only else None,
        observations=values if valid_only else None,
        workers=config.worker_count,
    )
    logger.info(
        "Composited %d of %d years: %s",
        len(composites),
        len(config.years()),
        ", ".join(c.label for c in composites) or "none",
    )
    return HarmonicProducts(
        config=config,
        dates=days,
        design=design,
        fit=fit,
        statistics=statistics,
        composites=composites,
    )


def _product_tags(config: HarmonicConfig) -> Dict[str, str]:
    tags = raster_tags()
    tags.update(
        {
            "HARMONICS": str(config.harmonics),
            "DEPENDENT": config.dependent_variable,
            "AMPLITUDE_DISPLAY_SCALE": str(config.amplitude_display_scale),
            "LEGACY_AMPLITUDE_SCALING": "1" if config.legacy_amplitude_scaling else "0",
        }
    )
    return tags


def export_products(
    products: HarmonicProducts,
    grid: RasterGrid,
    out_dir: str | Path,
    preview: bool = False,
) -> Dict[str, Path]:
    """Write the coefficient raster, the yearly raster and an optional preview."""
    config = products.config
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    tags = _product_tags(config)
    written: Dict[str, Path] = {}

    data, names = products.coefficient_stack()
    coef_path = out_dir / f"{config.output_name}.tif"
    write_product(
        coef_path,
        data,
        names,
        grid,
        driver=config.driver,
        tags=tags,
        unscaled=[N_OBS_BAND] if N_OBS_BAND in names else [],
    )
    written["coefficients"] = coef_path
    logger.info("Wrote %d bands to %s", len(names), coef_path)

    yearly, labels = products.yearly_stack()
    if labels:
        yearly_path = out_dir / f"{config.output_name}_yearly.tif"
        write_product(yearly_path, yearly, labels, grid, driver=config.driver, tags=tags)
        written["yearly"] = yearly_path
        logger.info("Wrote %d yearly bands to %s", len(labels), yearly_path)
    else:
        logger.warning("No composite year had observations; yearly raster not written")

    if preview:
        stats = products.statistics
        png_path = out_dir / f"{config.output_name}_seasonality.png"
        save_seasonality_png(stats.phase[0], stats.amplitude_display[0], stats.mean, png_path)
        written["preview"] = png_path
    return written


def run_harmonic_pipeline(
    inputs: Iterable[str | Path],
    out_dir: str | Path,
    config: HarmonicConfig | None = None,
    preview: bool = False,
) -> Dict[str, Path]:
    """Load scenes, fit every pixel and export the raster products."""
    config = (config or HarmonicConfig()).validate()
    stack = load_scene_stack(inputs, config)
    products = fit_cube(stack.values, stack.dates, config)
    return export_products(products, stack.grid, out_dir, preview=preview)
