"""Seasonal statistics derived from harmonic coefficients."""
from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np


@dataclass
class SeasonalStatistics:
    amplitude: np.ndarray  # (k, ...) analytical amplitude
    amplitude_display: np.ndarray  # (k, ...) amplitude * display scale
    phase: np.ndarray  # (k, ...) in [0, 1]
    mean: np.ndarray  # (...) temporal mean of the dependent variable
    display_scale: float = 1.0

    @property
    def harmonics(self) -> int:
        return int(self.amplitude.shape[0])


def _split_terms(coefficients: np.ndarray, harmonics: int) -> tuple[np.ndarray, np.ndarray]:
    coefs = np.asarray(coefficients, dtype=np.float64)
    expected = 2 + 2 * harmonics
    if coefs.shape[0] != expected:
        raise ValueError(f"expected {expected} coefficients for {harmonics} harmonics, got {coefs.shape[0]}")
    cos = coefs[2 : 2 + harmonics]
    sin = coefs[2 + harmonics : 2 + 2 * harmonics]
    return cos, sin


def unit_scale(x: np.ndarray, low: float, high: float) -> np.ndarray:
    """Linearly map [low, high] onto [0, 1]."""
    return (np.asarray(x, dtype=np.float64) - low) / (high - low)


def amplitude(coefficients: np.ndarray, harmonics: int) -> np.ndarray:
    cos, sin = _split_terms(coefficients, harmonics)
    return np.hypot(sin, cos)


def phase(coefficients: np.ndarray, harmonics: int) -> np.ndarray:
    """atan2(sin_i, cos_i) rescaled from [-pi, pi] to [0, 1]."""
    cos, sin = _split_terms(coefficients, harmonics)
    return unit_scale(np.arctan2(sin, cos), -np.pi, np.pi)


def display_amplitude(amp: np.ndarray, scale: float) -> np.ndarray:
    return np.asarray(amp, dtype=np.float64) * float(scale)


def temporal_mean(series: np.ndarray, rows: int = 256) -> np.ndarray:
    """
    Mean over axis 0 ignoring NaN; NaN where no observation is valid.

    Stacks are reduced ``rows`` at a time along axis 1 so only a slab of the
    series is ever copied.
    """
    series = np.asarray(series)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        if series.ndim < 2:
            return np.nanmean(series, axis=0, dtype=np.float64)
        out = np.empty(series.shape[1:], dtype=np.float64)
        for start in range(0, series.shape[1], rows):
            out[start : start + rows] = np.nanmean(
                series[:, start : start + rows], axis=0, dtype=np.float64
            )
        return out


def derive_statistics(
    coefficients: np.ndarray,
    series: np.ndarray,
    harmonics: int,
    display_scale: float = 1.0,
) -> SeasonalStatistics:
    """
    Amplitude, phase and mean level for every pixel.

    ``coefficients`` is (2 + 2k, ...) and ``series`` is (T, ...) over the same
    trailing grid. NaN coefficients give NaN amplitude and phase.
    """
    amp = amplitude(coefficients, harmonics)
    return SeasonalStatistics(
        amplitude=amp,
        amplitude_display=display_amplitude(amp, display_scale),
        phase=phase(coefficients, harmonics),
        mean=temporal_mean(series),
        display_scale=float(display_scale),
    )


def coefficients_from_polar(amp: np.ndarray, ph: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Inverse of amplitude/phase: return (cos, sin) terms."""
    angle = np.asarray(ph, dtype=np.float64) * (2.0 * np.pi) - np.pi
    amp = np.asarray(amp, dtype=np.float64)
    return amp * np.cos(angle), amp * np.sin(angle)
