from __future__ import annotations

import numpy as np
import pytest

from harmonicndvi.preprocess import (
    mask_scene,
    normalized_difference,
    preprocess_scene,
    qa_clear_mask,
    saturation_mask,
)


def test_qa_bits_zero_through_four_mask():
    qa = np.array([0, 1, 2, 4, 8, 16, 32, 64 | 32, 21824])
    # bit 5 (snow) and above do not mask; 21824 is a typical clear-land value
    assert list(qa_clear_mask(qa)) == [True, False, False, False, False, False, True, True, True]
    assert list(saturation_mask(np.array([0, 1, 2]))) == [True, False, False]


def test_normalized_difference_handles_zero_and_nan():
    nd = normalized_difference(np.array([0.3, 0.0, np.nan]), np.array([0.1, 0.0, 0.2]))
    assert abs(nd[0] - 0.5) < 1e-6
    assert np.isnan(nd[1])
    assert np.isnan(nd[2])


def _scene():
    red = np.full((2, 2), 9090, dtype=np.uint16)  # ~0.05 reflectance
    nir = np.full((2, 2), 21818, dtype=np.uint16)  # ~0.4 reflectance
    qa = np.array([[21824, 8], [21824, 21824]], dtype=np.uint16)
    radsat = np.array([[0, 0], [2, 0]], dtype=np.uint16)
    thermal = np.full((2, 2), 44000, dtype=np.uint16)
    return {"SR_B4": red, "SR_B5": nir, "QA_PIXEL": qa, "QA_RADSAT": radsat, "ST_B10": thermal}


def test_mask_scene_rescales_and_masks():
    out = mask_scene(_scene())
    assert abs(out["SR_B4"][0, 0] - (9090 * 0.0000275 - 0.2)) < 1e-6
    assert abs(out["ST_B10"][0, 0] - (44000 * 0.00341802 + 149.0)) < 1e-2
    assert np.isnan(out["SR_B4"][0, 1])  # cloud
    assert np.isnan(out["SR_B5"][1, 0])  # saturated
    assert out["QA_PIXEL"][0, 1] == 8


def test_preprocess_scene_adds_ndvi():
    out = preprocess_scene(_scene())
    ndvi = out["NDVI"]
    red = 9090 * 0.0000275 - 0.2
    nir = 21818 * 0.0000275 - 0.2
    assert abs(ndvi[0, 0] - (nir - red) / (nir + red)) < 1e-5
    assert np.isnan(ndvi[0, 1])
    assert np.isnan(ndvi[1, 0])
    assert np.isfinite(ndvi[1, 1])


def test_missing_qa_band_raises():
    scene = _scene()
    del scene["QA_RADSAT"]
    with pytest.raises(ValueError):
        mask_scene(scene)
