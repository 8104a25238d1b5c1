"""Fixed-point band encoding and GeoTIFF layout for harmonic products."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Sequence

import numpy as np
import rasterio
from rasterio.transform import Affine

from .constants import (
    INT16_MAX_VALID,
    INT16_MIN_VALID,
    MEAN_SUFFIX,
    N_OBS_BAND,
    NODATA_INT16,
    QUANT_SCALE,
    RMSE_BAND,
)
from .features import (
    amplitude_display_names,
    amplitude_names,
    independent_names,
    phase_names,
)

TAG_SCALE = "SCALE_FACTOR"
TAG_UNSCALED = "UNSCALED"


@dataclass
class RasterGrid:
    """Output grid: CRS, affine transform and pixel dimensions."""

    crs: str
    transform: Affine
    width: int
    height: int

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width


@dataclass
class RasterProduct:
    names: list[str]
    data: np.ndarray  # (B, H, W) float64 decoded values, NaN for no data
    grid: RasterGrid
    tags: Dict[str, str] = field(default_factory=dict)

    def band(self, name: str) -> np.ndarray:
        return self.data[self.names.index(name)]


def quantize(values: np.ndarray, scale: int = QUANT_SCALE) -> np.ndarray:
    """
    Encode floats as round(v * scale) int16.

    NaN maps to NODATA_INT16. Finite values are clamped to
    [INT16_MIN_VALID, INT16_MAX_VALID], so anything beyond +-3.2767 at the
    default scale is lossy and never collides with no data.
    """
    v = np.asarray(values, dtype=np.float64)
    out = np.full(v.shape, NODATA_INT16, dtype=np.int16)
    finite = np.isfinite(v)
    scaled = np.rint(np.clip(v[finite] * scale, INT16_MIN_VALID, INT16_MAX_VALID))
    out[finite] = scaled.astype(np.int16)
    # +-inf clamps like any other out-of-range value
    out[np.isposinf(v)] = INT16_MAX_VALID
    out[np.isneginf(v)] = INT16_MIN_VALID
    return out


def dequantize(encoded: np.ndarray, scale: int = QUANT_SCALE) -> np.ndarray:
    q = np.asarray(encoded)
    out = q.astype(np.float64) / scale
    out[q == NODATA_INT16] = np.nan
    return out


def _encode_unscaled(values: np.ndarray) -> np.ndarray:
    v = np.asarray(values, dtype=np.float64)
    out = np.full(v.shape, NODATA_INT16, dtype=np.int16)
    finite = np.isfinite(v)
    out[finite] = np.rint(np.clip(v[finite], INT16_MIN_VALID, INT16_MAX_VALID)).astype(np.int16)
    return out


def coefficient_band_names(
    harmonics: int,
    dependent: str = "NDVI",
    display_amplitude: bool = False,
    diagnostics: bool = False,
) -> list[str]:
    """Band order of the coefficient raster."""
    names = (
        independent_names(harmonics)
        + amplitude_names(harmonics)
        + phase_names(harmonics)
        + [f"{dependent}{MEAN_SUFFIX}"]
    )
    if display_amplitude:
        names += amplitude_display_names(harmonics)
    if diagnostics:
        names += [N_OBS_BAND, RMSE_BAND]
    return names


def write_product(
    path: str | Path,
    data: np.ndarray,
    names: Sequence[str],
    grid: RasterGrid,
    driver: str = "GTiff",
    tags: Dict[str, str] | None = None,
    unscaled: Iterable[str] = (),
) -> None:
    """
    Write a (B, H, W) float stack as a quantized int16 raster.

    Bands listed in ``unscaled`` are rounded without the fixed-point scale.
    """
    data = np.asarray(data)
    if data.ndim != 3:
        raise ValueError("data must have shape (B, H, W)")
    if data.shape[0] != len(names):
        raise ValueError(f"{data.shape[0]} bands but {len(names)} names")
    if data.shape[1:] != grid.shape:
        raise ValueError(f"data grid {data.shape[1:]} does not match {grid.shape}")
    if data.shape[0] == 0:
        raise ValueError("Refusing to write a raster with no bands")
    unscaled = set(unscaled)

    profile = {
        "driver": driver,
        "dtype": "int16",
        "count": int(data.shape[0]),
        "height": grid.height,
        "width": grid.width,
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": NODATA_INT16,
        "compress": "deflate",
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.update_tags(**{**(tags or {}), TAG_SCALE: str(QUANT_SCALE)})
        for idx, name in enumerate(names, start=1):
            band = data[idx - 1]
            if name in unscaled:
                dst.write(_encode_unscaled(band), idx)
                dst.update_tags(idx, **{TAG_UNSCALED: "1"})
            else:
                dst.write(quantize(band), idx)
            dst.set_band_description(idx, name)


def read_product(path: str | Path) -> RasterProduct:
    """Read a raster written by write_product, decoding every band to float."""
    with rasterio.open(path) as src:
        tags = src.tags()
        scale = int(float(tags.get(TAG_SCALE, QUANT_SCALE)))
        names = [d or f"band_{i}" for i, d in enumerate(src.descriptions, start=1)]
        raw = src.read()
        data = np.empty(raw.shape, dtype=np.float64)
        for idx in range(raw.shape[0]):
            if src.tags(idx + 1).get(TAG_UNSCALED) == "1":
                data[idx] = dequantize(raw[idx], scale=1)
            else:
                data[idx] = dequantize(raw[idx], scale=scale)
        grid = RasterGrid(
            crs=src.crs.to_string() if src.crs else "",
            transform=src.transform,
            width=src.width,
            height=src.height,
        )
    return RasterProduct(names=names, data=data, grid=grid, tags=tags)
