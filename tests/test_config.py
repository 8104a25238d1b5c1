from __future__ import annotations

import datetime as dt

import pytest

from harmonicndvi.config import ConfigError, HarmonicConfig, config_from_mapping, load_config


def test_defaults_are_valid():
    cfg = HarmonicConfig().validate()
    assert cfg.n_columns == 8
    assert cfg.start_date == dt.date(2013, 1, 1)
    assert cfg.end_date == dt.date(2024, 1, 1)
    assert cfg.years() == list(range(2013, 2024))
    assert cfg.driver == "GTiff"


@pytest.mark.parametrize(
    "overrides",
    [
        {"harmonics": 0},
        {"harmonics": -2},
        {"date_range": ("2020-01-01", "2019-01-01")},
        {"date_range": ("2020-01-01", "2020-01-01")},
        {"date_range": ("not-a-date", "2020-01-01")},
        {"composite_window": (9, 30, 6, 1)},
        {"composite_window": (2, 30, 3, 1)},
        {"scale": 0},
        {"export_format": "PNG"},
        {"crs_transform": [30.0, 0.0, 1.0]},
        {"crs_transform": [0.0, 0.0, 1.0, 0.0, -30.0, 2.0]},
        {"region": [10, 10, 0, 20]},
        {"workers": 0},
        {"block_size": 0},
    ],
)
def test_invalid_config_fails_fast(overrides):
    with pytest.raises(ConfigError):
        config_from_mapping(overrides)


def test_unknown_key_rejected():
    with pytest.raises(ConfigError, match="harmonic"):
        config_from_mapping({"harmonic": 2})


def test_year_only_dates_and_explicit_years():
    cfg = config_from_mapping({"date_range": ["2013", "2024"], "composite_years": [2020, 2014]})
    assert cfg.start_date == dt.date(2013, 1, 1)
    assert cfg.years() == [2014, 2020]


def test_repeated_composite_years_collapse():
    cfg = config_from_mapping({"composite_years": [2015, 2015, 2013]})
    assert cfg.years() == [2013, 2015]


def test_load_yaml_round_trip(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text(
        "harmonics: 2\n"
        "date_range: [2015-01-01, 2020-01-01]\n"
        "composite_window: [5, 1, 10, 1]\n"
        "crs: EPSG:32633\n"
        "scale: 10\n"
        "export_format: GeoTIFF\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.harmonics == 2
    assert cfg.composite_window == (5, 1, 10, 1)
    assert cfg.scale == 10.0
    assert cfg.driver == "GTiff"
    again = config_from_mapping(cfg.to_dict())
    assert again.to_dict() == cfg.to_dict()
