"""Yearly seasonal-window composites of fitted values."""
from __future__ import annotations

import datetime as _dt
import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from .features import as_datetime64

logger = logging.getLogger(__name__)


@dataclass
class YearlyComposite:
    year: int
    image: np.ndarray  # (H, W) median fitted value, NaN where undefined
    count: int  # observations inside the window

    @property
    def label(self) -> str:
        return str(self.year)


def window_bounds(year: int, window: Sequence[int]) -> tuple[_dt.date, _dt.date]:
    """(start, end) of the seasonal window in ``year``; end is exclusive."""
    m0, d0, m1, d1 = (int(v) for v in window)
    return _dt.date(year, m0, d0), _dt.date(year, m1, d1)


def composite_years(date_range: Sequence) -> list[int]:
    start = as_datetime64([date_range[0]])[0].astype(object)
    end = as_datetime64([date_range[1]])[0].astype(object)
    last_day = end - _dt.timedelta(days=1)
    return list(range(start.year, last_day.year + 1))


def fitted_series(coefficients: np.ndarray, design: np.ndarray) -> np.ndarray:
    """Apply (C, H, W) coefficients to a (T, C) design; returns (T, H, W)."""
    coefs = np.asarray(coefficients, dtype=np.float64)
    X = np.asarray(design, dtype=np.float64)
    if coefs.shape[0] != X.shape[1]:
        raise ValueError(f"{coefs.shape[0]} coefficients for {X.shape[1]} design columns")
    return np.tensordot(X, coefs, axes=([1], [0]))


def _nanmedian(stack: np.ndarray) -> np.ndarray:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return np.nanmedian(stack, axis=0)


def _reduce_years(
    days: np.ndarray,
    years: Sequence[int],
    window: Sequence[int],
    stack_for: Callable[[np.ndarray], np.ndarray],
    mask_for: Callable[[np.ndarray], np.ndarray] | None,
    workers: int,
) -> list[YearlyComposite]:
    def reduce(year: int) -> YearlyComposite | None:
        start, end = window_bounds(year, window)
        in_window = (days >= np.datetime64(start)) & (days < np.datetime64(end))
        idx = np.nonzero(in_window)[0]
        if idx.size == 0:
            logger.info("No observations in %s..%s; dropping year %d", start, end, year)
            return None
        stack = stack_for(idx)
        if mask_for is not None:
            mask = mask_for(idx)
            if not mask.any():
                logger.info("No valid observations in %s..%s; dropping year %d", start, end, year)
                return None
            stack = np.where(mask, stack, np.nan)
        return YearlyComposite(year=int(year), image=_nanmedian(stack), count=int(idx.size))

    ordered = sorted({int(y) for y in years})
    if workers > 1 and len(ordered) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(reduce, ordered))
    else:
        results = [reduce(y) for y in ordered]
    return [r for r in results if r is not None]


def yearly_composites(
    fitted: np.ndarray,
    dates: Sequence,
    years: Sequence[int],
    window: Sequence[int],
    valid: np.ndarray | None = None,
    workers: int = 1,
) -> list[YearlyComposite]:
    """
    Median of fitted values per year within the seasonal window.

    Years whose window contains no observation are left out of the result,
    so the output length can be shorter than ``years``. With ``valid`` (a
    (T, H, W) boolean mask) only unmasked observations contribute to each
    pixel's median, and a year with no unmasked observation is left out too.
    The result is ordered by year.
    """
    fitted = np.asarray(fitted, dtype=np.float64)
    days = as_datetime64(dates)
    if fitted.ndim != 3 or fitted.shape[0] != days.shape[0]:
        raise ValueError(f"fitted {fitted.shape} does not match {days.shape[0]} dates")
    if valid is not None:
        valid = np.asarray(valid, dtype=bool)
        if valid.shape != fitted.shape:
            raise ValueError("valid mask must match fitted shape")
    mask_for = None if valid is None else (lambda idx: valid[idx])
    return _reduce_years(days, years, window, lambda idx: fitted[idx], mask_for, workers)


def model_composites(
    coefficients: np.ndarray,
    design: np.ndarray,
    dates: Sequence,
    years: Sequence[int],
    window: Sequence[int],
    valid: np.ndarray | None = None,
    observations: np.ndarray | None = None,
    workers: int = 1,
) -> list[YearlyComposite]:
    """
    Same as :func:`yearly_composites`, evaluating the model one year at a time.

    Only the design rows inside each window are applied to the (C, H, W)
    coefficients, so the full fitted cube is never held in memory. The
    per-observation mask is ``valid`` when given, else the finite entries of
    ``observations``; with neither, every observation contributes.
    """
    days = as_datetime64(dates)
    X = np.asarray(design, dtype=np.float64)
    if X.ndim != 2 or X.shape[0] != days.shape[0]:
        raise ValueError(f"design {X.shape} does not match {days.shape[0]} dates")

    def mask_for(idx: np.ndarray) -> np.ndarray:
        if valid is not None:
            return np.asarray(valid[idx], dtype=bool)
        return np.isfinite(observations[idx])

    masked = valid is not None or observations is not None
    return _reduce_years(
        days,
        years,
        window,
        lambda idx: fitted_series(coefficients, X[idx]),
        mask_for if masked else None,
        workers,
    )


def stack_composites(composites: Sequence[YearlyComposite]) -> tuple[np.ndarray, list[str]]:
    """Stack composites into a (Y, H, W) array with year labels."""
    if not composites:
        return np.empty((0, 0, 0)), []
    return np.stack([c.image for c in composites], axis=0), [c.label for c in composites]
