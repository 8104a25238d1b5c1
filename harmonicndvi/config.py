"""Run configuration for harmonic NDVI regression."""
from __future__ import annotations

import datetime as _dt
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import yaml

from .composite import composite_years as _years_in_range
from .constants import (
    DEFAULT_AMPLITUDE_DISPLAY_SCALE,
    DEFAULT_BLOCK_SIZE,
    DEFAULT_COMPOSITE_WINDOW,
    DEFAULT_CRS,
    DEFAULT_DATE_RANGE,
    DEFAULT_DEPENDENT,
    DEFAULT_EXPORT_FORMAT,
    DEFAULT_HARMONICS,
    DEFAULT_OUTPUT_NAME,
    DEFAULT_SCALE,
)

EXPORT_DRIVERS = {"GTiff": "GTiff", "GeoTIFF": "GTiff", "COG": "COG"}


class ConfigError(ValueError):
    """Raised when a configuration cannot be used for a run."""


def _to_date(value: Any) -> _dt.date:
    if isinstance(value, _dt.datetime):
        return value.date()
    if isinstance(value, _dt.date):
        return value
    text = str(value).strip()
    # Year-only strings follow the filterDate('2013', '2024') convention.
    if len(text) == 4 and text.isdigit():
        return _dt.date(int(text), 1, 1)
    try:
        return _dt.date.fromisoformat(text)
    except ValueError as exc:
        raise ConfigError(f"Invalid date: {value!r}") from exc


@dataclass
class HarmonicConfig:
    """
    Settings threaded through every stage of the pipeline.

    Attributes:
        harmonics:
            Number of cosine/sine cycle pairs per year.
        dependent_variable:
            Band that is modelled.
        date_range:
            (start, end) dates; start inclusive, end exclusive.
        composite_window:
            (month_start, day_start, month_end, day_end) applied to every
            composite year; the end day is exclusive.
        composite_years:
            Explicit years to composite. Defaults to every year touched by
            ``date_range``.
        composite_valid_only:
            Only unmasked observations contribute to a yearly median.
        crs, scale, crs_transform, region:
            Output grid. ``crs_transform`` pins the grid origin,
            ``region`` is (minx, miny, maxx, maxy) in ``crs`` units.
        export_format:
            ``GTiff``/``GeoTIFF`` or ``COG``.
        amplitude_display_scale:
            Visualization factor for ``amplitude_display_i``.
        export_display_amplitude:
            Add ``amplitude_display_i`` bands to the coefficient raster.
        legacy_amplitude_scaling:
            Write display-scaled values into ``amplitude_i``.
        export_diagnostics:
            Add ``n_obs`` and ``rmse`` bands.
        block_size, workers, max_ram_mb:
            Pixels per solve block, worker threads, soft memory cap.
        rcond:
            Singular value cutoff relative to the largest singular value.
    """

    harmonics: int = DEFAULT_HARMONICS
    dependent_variable: str = DEFAULT_DEPENDENT
    date_range: tuple = DEFAULT_DATE_RANGE
    composite_window: tuple = DEFAULT_COMPOSITE_WINDOW
    composite_years: Optional[Sequence[int]] = None
    composite_valid_only: bool = False

    crs: str = DEFAULT_CRS
    scale: float = DEFAULT_SCALE
    crs_transform: Optional[Sequence[float]] = None
    region: Optional[Sequence[float]] = None
    export_format: str = DEFAULT_EXPORT_FORMAT
    output_name: str = DEFAULT_OUTPUT_NAME

    amplitude_display_scale: float = DEFAULT_AMPLITUDE_DISPLAY_SCALE
    export_display_amplitude: bool = False
    legacy_amplitude_scaling: bool = False
    export_diagnostics: bool = False

    block_size: int = DEFAULT_BLOCK_SIZE
    workers: Optional[int] = None
    max_ram_mb: Optional[int] = None
    rcond: Optional[float] = None

    extra: dict = field(default_factory=dict, repr=False)

    @property
    def start_date(self) -> _dt.date:
        return _to_date(self.date_range[0])

    @property
    def end_date(self) -> _dt.date:
        return _to_date(self.date_range[1])

    @property
    def n_columns(self) -> int:
        return 2 + 2 * self.harmonics

    @property
    def driver(self) -> str:
        return EXPORT_DRIVERS[self.export_format]

    @property
    def worker_count(self) -> int:
        return self.workers if self.workers is not None else (os.cpu_count() or 1)

    def years(self) -> list[int]:
        """Distinct composite years in ascending order."""
        if self.composite_years is not None:
            return sorted({int(y) for y in self.composite_years})
        return _years_in_range((self.start_date, self.end_date))

    def validate(self) -> "HarmonicConfig":
        if isinstance(self.harmonics, bool) or not isinstance(self.harmonics, int):
            raise ConfigError("harmonics must be an integer")
        if self.harmonics <= 0:
            raise ConfigError(f"harmonics must be >= 1, got {self.harmonics}")
        if not self.dependent_variable:
            raise ConfigError("dependent_variable must be a band name")

        if len(self.date_range) != 2:
            raise ConfigError("date_range must be (start, end)")
        if self.start_date >= self.end_date:
            raise ConfigError(
                f"date_range start {self.start_date} must precede end {self.end_date}"
            )

        if len(self.composite_window) != 4:
            raise ConfigError("composite_window must be (month_start, day_start, month_end, day_end)")
        m0, d0, m1, d1 = (int(v) for v in self.composite_window)
        try:
            start = _dt.date(2001, m0, d0)
            end = _dt.date(2001, m1, d1)
        except ValueError as exc:
            raise ConfigError(f"Invalid composite_window {self.composite_window}") from exc
        if start >= end:
            raise ConfigError("composite_window must start before it ends within a year")

        if self.scale <= 0:
            raise ConfigError("scale must be positive")
        if self.crs_transform is not None and len(self.crs_transform) != 6:
            raise ConfigError("crs_transform must have 6 elements")
        if self.crs_transform is not None and (self.crs_transform[0] == 0 or self.crs_transform[4] == 0):
            raise ConfigError("crs_transform pixel size must be non-zero")
        if self.region is not None:
            if len(self.region) != 4:
                raise ConfigError("region must be (minx, miny, maxx, maxy)")
            minx, miny, maxx, maxy = self.region
            if minx >= maxx or miny >= maxy:
                raise ConfigError("region bounds are inverted")
        if self.export_format not in EXPORT_DRIVERS:
            raise ConfigError(
                f"Unsupported export_format {self.export_format!r}; choose from {sorted(EXPORT_DRIVERS)}"
            )
        if self.amplitude_display_scale <= 0:
            raise ConfigError("amplitude_display_scale must be positive")
        if self.block_size <= 0:
            raise ConfigError("block_size must be positive")
        if self.workers is not None and self.workers <= 0:
            raise ConfigError("workers must be positive")
        if self.max_ram_mb is not None and self.max_ram_mb <= 0:
            raise ConfigError("max_ram_mb must be positive")
        if self.extra:
            raise ConfigError(f"Unknown configuration keys: {sorted(self.extra)}")
        return self

    def to_dict(self) -> dict:
        out = asdict(self)
        out.pop("extra")
        out["date_range"] = [self.start_date.isoformat(), self.end_date.isoformat()]
        for key in ("composite_window", "composite_years", "crs_transform", "region"):
            if out[key] is not None:
                out[key] = list(out[key])
        return out


def config_from_mapping(raw: Mapping[str, Any] | None) -> HarmonicConfig:
    """Build and validate a config from a plain mapping; unknown keys are an error."""
    raw = dict(raw or {})
    known = {f.name for f in fields(HarmonicConfig)} - {"extra"}
    kwargs = {k: v for k, v in raw.items() if k in known}
    extra = {k: v for k, v in raw.items() if k not in known}
    for key in ("date_range", "composite_window", "crs_transform", "region"):
        if isinstance(kwargs.get(key), list):
            kwargs[key] = tuple(kwargs[key])
    if "scale" in kwargs:
        kwargs["scale"] = float(kwargs["scale"])
    return HarmonicConfig(**kwargs, extra=extra).validate()


def load_config(path: str | Path) -> HarmonicConfig:
    """Load a config from a YAML file."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if raw is not None and not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return config_from_mapping(raw)
