"""Single-series harmonic model fit and reconstruction."""
from __future__ import annotations

import numpy as np


def _check_design(values: np.ndarray, design: np.ndarray) -> None:
    if values.ndim != 1:
        raise ValueError("values must be 1-D")
    if design.ndim != 2:
        raise ValueError("design must be 2-D")
    if design.shape[0] != values.shape[0]:
        raise ValueError(
            f"design has {design.shape[0]} rows but values has {values.shape[0]} entries"
        )


def fit_harmonic_model(
    values: np.ndarray, design: np.ndarray, rcond: float | None = None
) -> np.ndarray:
    """
    Least-squares coefficients for values ≈ design @ beta, ignoring NaN values.

    Returns an all-NaN vector when fewer valid observations than design
    columns remain, or when the valid rows are rank deficient.
    """
    v = np.asarray(values, dtype=np.float64)
    X = np.asarray(design, dtype=np.float64)
    _check_design(v, X)
    C = X.shape[1]
    undefined = np.full((C,), np.nan)
    valid = np.isfinite(v)
    if int(valid.sum()) < C:
        return undefined
    beta, _, rank, _ = np.linalg.lstsq(X[valid], v[valid], rcond=rcond)
    if rank < C:
        return undefined
    return beta


def reconstruct_fitted_sequence(coefficients: np.ndarray, design: np.ndarray) -> np.ndarray:
    """Return fitted[t] = design[t] @ coefficients (NaN when undefined)."""
    return np.asarray(design, dtype=np.float64) @ np.asarray(coefficients, dtype=np.float64)


def residual_sum_of_squares(
    values: np.ndarray, design: np.ndarray, coefficients: np.ndarray
) -> float:
    """Sum of squared residuals over the valid observations."""
    v = np.asarray(values, dtype=np.float64)
    X = np.asarray(design, dtype=np.float64)
    _check_design(v, X)
    valid = np.isfinite(v)
    resid = v[valid] - X[valid] @ np.asarray(coefficients, dtype=np.float64)
    return float(np.sum(resid * resid))
