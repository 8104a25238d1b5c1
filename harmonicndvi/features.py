"""Design matrix construction for harmonic regression."""
from __future__ import annotations

import datetime as _dt
from typing import Iterable, Sequence

import numpy as np

from .constants import EPOCH


def as_datetime64(dates: Iterable) -> np.ndarray:
    """Normalize dates (date, datetime, str, datetime64) to datetime64[D]."""
    arr = dates if isinstance(dates, np.ndarray) else np.asarray(list(dates))
    if arr.dtype.kind == "M":
        return arr.astype("datetime64[D]")
    out = np.array([np.datetime64(_to_iso(d), "D") for d in arr.ravel()], dtype="datetime64[D]")
    return out.reshape(arr.shape)


def _to_iso(value) -> str:
    if isinstance(value, _dt.datetime):
        return value.date().isoformat()
    if isinstance(value, _dt.date):
        return value.isoformat()
    return str(value)


def _calendar_years(days: np.ndarray) -> np.ndarray:
    years = days.astype("datetime64[Y]")
    year_start = years.astype("datetime64[D]")
    next_start = (years + 1).astype("datetime64[D]")
    elapsed = (days - year_start).astype(np.float64)
    length = (next_start - year_start).astype(np.float64)
    return years.astype(np.int64) + 1970 + elapsed / length


def fractional_years(dates: Iterable, epoch: _dt.date = EPOCH) -> np.ndarray:
    """
    Years elapsed since ``epoch``: whole calendar years plus the elapsed
    fraction of the current year (day offset / days in that year).
    """
    origin = _calendar_years(as_datetime64([epoch]))[0]
    return _calendar_years(as_datetime64(dates)) - origin


def time_radians(dates: Iterable, epoch: _dt.date = EPOCH) -> np.ndarray:
    return fractional_years(dates, epoch) * (2.0 * np.pi)


def harmonic_frequencies(harmonics: int) -> np.ndarray:
    if harmonics <= 0:
        raise ValueError(f"harmonics must be >= 1, got {harmonics}")
    return np.arange(1, harmonics + 1, dtype=np.float64)


def band_names(prefix: str, harmonics: int) -> list[str]:
    return [f"{prefix}{int(i)}" for i in harmonic_frequencies(harmonics)]


def independent_names(harmonics: int) -> list[str]:
    """Design columns in order: constant, t, cos_1..k, sin_1..k."""
    return ["constant", "t"] + band_names("cos_", harmonics) + band_names("sin_", harmonics)


def amplitude_names(harmonics: int) -> list[str]:
    return band_names("amplitude_", harmonics)


def amplitude_display_names(harmonics: int) -> list[str]:
    return band_names("amplitude_display_", harmonics)


def phase_names(harmonics: int) -> list[str]:
    return band_names("phase_", harmonics)


def design_from_time(t: np.ndarray, harmonics: int) -> np.ndarray:
    """Design matrix (T, 2 + 2k) from time already expressed in radians."""
    t = np.asarray(t, dtype=np.float64).reshape(-1)
    freqs = harmonic_frequencies(harmonics)
    angles = t[:, None] * freqs[None, :]
    return np.concatenate(
        [np.ones((t.size, 1)), t[:, None], np.cos(angles), np.sin(angles)], axis=1
    )


def design_matrix(dates: Sequence, harmonics: int, epoch: _dt.date = EPOCH) -> np.ndarray:
    return design_from_time(time_radians(dates, epoch), harmonics)


def design_row(date, harmonics: int, epoch: _dt.date = EPOCH) -> np.ndarray:
    return design_matrix([date], harmonics, epoch)[0]
