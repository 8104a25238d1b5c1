from __future__ import annotations

import datetime as dt

import numpy as np
import rasterio
from rasterio.transform import from_origin

from harmonicndvi.config import HarmonicConfig
from harmonicndvi.features import time_radians
from harmonicndvi.format import read_product
from harmonicndvi.pipeline import fit_cube, run_harmonic_pipeline


def _weekly_dates(start_year: int, years: int, per_year: int = 50) -> np.ndarray:
    start = dt.date(start_year, 1, 1)
    step = 365.0 / per_year
    return np.array(
        [np.datetime64(start + dt.timedelta(days=int(i * step)), "D") for i in range(years * per_year)]
    )


def test_pure_sinusoid_is_recovered():
    dates = _weekly_dates(2015, 5)
    t = time_radians(dates)
    values = np.empty((dates.size, 2, 2))
    values[:] = (0.5 + 0.2 * np.cos(t))[:, None, None]
    values[:, 1, 1] = np.nan  # no valid observations at all

    config = HarmonicConfig(harmonics=1, date_range=("2015-01-01", "2020-01-01"), workers=1)
    products = fit_cube(values, dates, config)
    fit = products.fit
    stats = products.statistics

    assert abs(fit.band("constant")[0, 0] - 0.5) < 1e-6
    assert abs(fit.band("t")[0, 0]) < 1e-8
    assert abs(fit.band("cos_1")[0, 0] - 0.2) < 1e-6
    assert abs(fit.band("sin_1")[0, 0]) < 1e-6
    assert abs(stats.amplitude[0, 0, 0] - 0.2) < 1e-6
    assert abs(stats.amplitude_display[0, 0, 0] - 1.0) < 1e-5
    assert abs(stats.phase[0, 0, 0] - 0.5) < 1e-6
    assert abs(stats.mean[0, 0] - np.mean(0.5 + 0.2 * np.cos(t))) < 1e-12

    # all-missing pixel: every derived band undefined, absent from composites
    assert np.all(np.isnan(fit.coefficients[:, 1, 1]))
    assert np.isnan(stats.amplitude[0, 1, 1])
    assert np.isnan(stats.phase[0, 1, 1])
    assert np.isnan(stats.mean[1, 1])
    assert [c.label for c in products.composites] == ["2015", "2016", "2017", "2018", "2019"]
    for comp in products.composites:
        assert np.isnan(comp.image[1, 1])
        assert np.isfinite(comp.image[0, 0])

    data, names = products.coefficient_stack()
    assert names == ["constant", "t", "cos_1", "sin_1", "amplitude_1", "phase_1", "NDVI_mean"]
    assert data.shape == (7, 2, 2)


def test_legacy_amplitude_scaling_changes_only_amplitude_band():
    dates = _weekly_dates(2016, 3)
    t = time_radians(dates)
    values = (0.4 + 0.1 * np.sin(2 * t))[:, None, None] * np.ones((1, 1, 1))
    base = HarmonicConfig(harmonics=2, date_range=("2016-01-01", "2019-01-01"), workers=1)
    legacy = HarmonicConfig(
        harmonics=2,
        date_range=("2016-01-01", "2019-01-01"),
        workers=1,
        legacy_amplitude_scaling=True,
        export_display_amplitude=True,
        export_diagnostics=True,
    )
    a, names_a = fit_cube(values, dates, base).coefficient_stack()
    b, names_b = fit_cube(values, dates, legacy).coefficient_stack()
    amp = names_a.index("amplitude_2")
    assert abs(a[amp, 0, 0] - 0.1) < 1e-6
    assert abs(b[names_b.index("amplitude_2"), 0, 0] - 0.5) < 1e-5
    assert abs(b[names_b.index("amplitude_display_2"), 0, 0] - 0.5) < 1e-5
    assert b[names_b.index("n_obs"), 0, 0] == dates.size


def test_dropping_a_year_removes_one_band():
    dates = _weekly_dates(2015, 4)
    t = time_radians(dates)
    values = (0.5 + 0.2 * np.cos(t))[:, None, None] * np.ones((1, 2, 3))
    config = HarmonicConfig(harmonics=1, date_range=("2015-01-01", "2019-01-01"), workers=1)
    full = fit_cube(values, dates, config)

    summer_2016 = (dates >= np.datetime64("2016-06-01")) & (dates < np.datetime64("2016-09-30"))
    reduced = fit_cube(values[~summer_2016], dates[~summer_2016], config)
    full_labels = [c.label for c in full.composites]
    reduced_labels = [c.label for c in reduced.composites]
    assert len(reduced_labels) == len(full_labels) - 1
    assert reduced_labels == [y for y in full_labels if y != "2016"]


def _write_scene(path, ndvi: np.ndarray, cloud: np.ndarray, date: dt.date | None = None):
    red_refl = 0.05
    nir_refl = red_refl * (1 + ndvi) / (1 - ndvi)
    red = np.full(ndvi.shape, np.rint((red_refl + 0.2) / 0.0000275), dtype=np.uint16)
    nir = np.rint((nir_refl + 0.2) / 0.0000275).astype(np.uint16)
    qa = np.where(cloud, 8, 21824).astype(np.uint16)
    radsat = np.zeros(ndvi.shape, dtype=np.uint16)
    profile = {
        "driver": "GTiff",
        "dtype": "uint16",
        "count": 4,
        "height": ndvi.shape[0],
        "width": ndvi.shape[1],
        "crs": "EPSG:5070",
        "transform": from_origin(0.0, 120.0, 30.0, 30.0),
    }
    with rasterio.open(path, "w", **profile) as dst:
        for idx, (name, band) in enumerate(
            [("SR_B4", red), ("SR_B5", nir), ("QA_PIXEL", qa), ("QA_RADSAT", radsat)], start=1
        ):
            dst.write(band, idx)
            dst.set_band_description(idx, name)
        if date is not None:
            dst.update_tags(DATE_ACQUIRED=date.isoformat())


def test_scene_files_to_rasters(tmp_path):
    scenes = tmp_path / "scenes"
    scenes.mkdir()
    dates = [dt.date(2019, 1, 5) + dt.timedelta(days=16 * i) for i in range(46)]
    t = time_radians(dates)
    for i, (day, ti) in enumerate(zip(dates, t)):
        ndvi = np.full((4, 4), 0.5 + 0.2 * np.cos(ti))
        cloud = np.zeros((4, 4), dtype=bool)
        cloud[0, 0] = True  # never observed
        cloud[3, 3] = i % 3 == 0
        name = f"LC08_L2SP_044034_{day:%Y%m%d}_20200824_02_T1.tif"
        _write_scene(scenes / name, ndvi, cloud, date=day if i % 2 else None)
    # outside the date range, must be ignored
    _write_scene(scenes / "LC08_L2SP_044034_20180101_20200824_02_T1.tif", np.full((4, 4), -0.5), np.zeros((4, 4), bool))

    config = HarmonicConfig(
        harmonics=1,
        date_range=("2019-01-01", "2021-01-01"),
        region=(0.0, 0.0, 120.0, 120.0),
        workers=2,
    )
    written = run_harmonic_pipeline([scenes], tmp_path / "out", config, preview=True)
    assert written["coefficients"].exists()
    assert written["yearly"].exists()
    assert written["preview"].exists()

    coef = read_product(written["coefficients"])
    assert coef.names == ["constant", "t", "cos_1", "sin_1", "amplitude_1", "phase_1", "NDVI_mean"]
    assert coef.grid.width == 4 and coef.grid.height == 4
    assert abs(coef.band("cos_1")[1, 1] - 0.2) < 2e-3
    assert abs(coef.band("amplitude_1")[3, 3] - 0.2) < 2e-3
    assert abs(coef.band("phase_1")[2, 2] - 0.5) < 2e-3
    assert np.isnan(coef.band("constant")[0, 0])
    assert np.isnan(coef.band("NDVI_mean")[0, 0])
    assert coef.tags["HARMONICS"] == "1"

    yearly = read_product(written["yearly"])
    assert yearly.names == ["2019", "2020"]
    assert np.isnan(yearly.band("2019")[0, 0])
    # summer sits in the trough of a January-peaking cycle
    assert 0.29 < yearly.band("2019")[1, 1] < 0.5


def test_valid_only_mode_drops_year_with_every_pixel_masked():
    dates = _weekly_dates(2015, 3)
    t = time_radians(dates)
    values = (0.5 + 0.2 * np.cos(t))[:, None, None] * np.ones((1, 2, 2))
    summer_2016 = (dates >= np.datetime64("2016-06-01")) & (dates < np.datetime64("2016-09-30"))
    values[summer_2016] = np.nan

    base = dict(harmonics=1, date_range=("2015-01-01", "2018-01-01"), workers=1)
    every_date = fit_cube(values, dates, HarmonicConfig(**base))
    assert [c.label for c in every_date.composites] == ["2015", "2016", "2017"]

    valid_only = fit_cube(values, dates, HarmonicConfig(composite_valid_only=True, **base))
    assert [c.label for c in valid_only.composites] == ["2015", "2017"]
    for comp in valid_only.composites:
        assert np.isfinite(comp.image).all()


def test_float32_stack_fits_without_conversion():
    dates = _weekly_dates(2015, 2)
    t = time_radians(dates)
    values = ((0.5 + 0.2 * np.cos(t))[:, None, None] * np.ones((1, 2, 2))).astype(np.float32)
    products = fit_cube(values, dates, HarmonicConfig(harmonics=1, date_range=("2015-01-01", "2017-01-01"), workers=1))
    assert products.fit.coefficients.dtype == np.float64
    assert abs(products.fit.band("cos_1")[0, 0] - 0.2) < 1e-5
    assert abs(products.statistics.mean[1, 1] - np.mean(values[:, 1, 1], dtype=np.float64)) < 1e-9
