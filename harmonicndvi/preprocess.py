"""Per-scene masking, reflectance rescaling and NDVI."""
from __future__ import annotations

from typing import Mapping

import numpy as np

from .constants import (
    BAND_NIR,
    BAND_QA_PIXEL,
    BAND_QA_RADSAT,
    BAND_RED,
    OPTICAL_OFFSET,
    OPTICAL_PREFIX,
    OPTICAL_SCALE,
    QA_CLEAR_BITS,
    THERMAL_OFFSET,
    THERMAL_PREFIX,
    THERMAL_SCALE,
)

QA_BANDS = (BAND_QA_PIXEL, BAND_QA_RADSAT)


def qa_clear_mask(qa_pixel: np.ndarray) -> np.ndarray:
    """True where none of the fill/cloud/cirrus/shadow bits are set."""
    qa = np.asarray(qa_pixel).astype(np.int64, copy=False)
    return (qa & QA_CLEAR_BITS) == 0


def saturation_mask(qa_radsat: np.ndarray) -> np.ndarray:
    """True where no band is radiometrically saturated."""
    return np.asarray(qa_radsat) == 0


def rescale_optical(dn: np.ndarray) -> np.ndarray:
    return (np.asarray(dn, dtype=np.float64) * OPTICAL_SCALE + OPTICAL_OFFSET).astype(np.float32)


def rescale_thermal(dn: np.ndarray) -> np.ndarray:
    return (np.asarray(dn, dtype=np.float64) * THERMAL_SCALE + THERMAL_OFFSET).astype(np.float32)


def normalized_difference(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """(a - b) / (a + b); NaN where either input is NaN or the sum is zero."""
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    total = a + b
    out = np.full(total.shape, np.nan, dtype=np.float32)
    ok = np.isfinite(total) & (total != 0)
    out[ok] = (a[ok] - b[ok]) / total[ok]
    return out


def mask_scene(bands: Mapping[str, np.ndarray]) -> dict[str, np.ndarray]:
    """
    Rescale optical and thermal bands and set cloud/saturated pixels to NaN.

    QA bands are passed through untouched. Other bands are cast to float32
    and masked but not rescaled.
    """
    for name in QA_BANDS:
        if name not in bands:
            raise ValueError(f"Scene is missing required band {name}")
    keep = qa_clear_mask(bands[BAND_QA_PIXEL]) & saturation_mask(bands[BAND_QA_RADSAT])

    out: dict[str, np.ndarray] = {}
    for name, arr in bands.items():
        if name in QA_BANDS:
            out[name] = np.asarray(arr)
            continue
        if name.startswith(OPTICAL_PREFIX):
            scaled = rescale_optical(arr)
        elif name.startswith(THERMAL_PREFIX):
            scaled = rescale_thermal(arr)
        else:
            scaled = np.asarray(arr, dtype=np.float32).copy()
        if scaled.shape != keep.shape:
            raise ValueError(f"Band {name} shape {scaled.shape} does not match QA shape {keep.shape}")
        scaled[~keep] = np.nan
        out[name] = scaled
    return out


def add_ndvi(bands: Mapping[str, np.ndarray], name: str = "NDVI") -> dict[str, np.ndarray]:
    for required in (BAND_NIR, BAND_RED):
        if required not in bands:
            raise ValueError(f"Scene is missing required band {required}")
    out = dict(bands)
    out[name] = normalized_difference(bands[BAND_NIR], bands[BAND_RED])
    return out


def preprocess_scene(bands: Mapping[str, np.ndarray]) -> dict[str, np.ndarray]:
    """Mask, rescale and add the NDVI band to one scene of raw digital numbers."""
    return add_ndvi(mask_scene(bands))
