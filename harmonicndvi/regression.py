"""Block-wise per-pixel harmonic regression over an image time series cube."""
from __future__ import annotations

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np

logger = logging.getLogger(__name__)

# float64 working arrays held per block: masked design, U factor, residuals
_BLOCK_ARRAYS = 3


@dataclass
class FitResult:
    """Per-pixel regression output on an (H, W) grid."""

    coefficients: np.ndarray  # (C, H, W), NaN where undefined
    n_obs: np.ndarray  # (H, W) valid observation count
    rmse: np.ndarray  # (H, W) root mean squared residual
    names: list[str] = field(default_factory=list)

    @property
    def defined(self) -> np.ndarray:
        return np.all(np.isfinite(self.coefficients), axis=0)

    def band(self, name: str) -> np.ndarray:
        return self.coefficients[self.names.index(name)]


def _effective_rcond(rcond: float | None, n_obs: np.ndarray, n_cols: int) -> np.ndarray:
    if rcond is not None:
        return np.full(n_obs.shape, float(rcond))
    return np.finfo(np.float64).eps * np.maximum(n_obs, n_cols).astype(np.float64)


def solve_block(
    values: np.ndarray, design: np.ndarray, rcond: float | None = None
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorized least squares for a block of pixels sharing one design matrix.

    ``values`` has shape (P, T) with NaN for missing observations. Missing
    rows are zeroed in a per-pixel copy of the design, which leaves the
    normal equations of the remaining rows unchanged. Each pixel is solved
    through its own SVD; pixels with fewer valid rows than columns or a
    rank-deficient design come back as NaN.

    Returns (coefficients (P, C), n_obs (P,), rmse (P,)).
    """
    values = np.asarray(values, dtype=np.float64)
    X = np.asarray(design, dtype=np.float64)
    if values.ndim != 2 or X.ndim != 2 or values.shape[1] != X.shape[0]:
        raise ValueError(f"values {values.shape} incompatible with design {X.shape}")
    P = values.shape[0]
    C = X.shape[1]

    valid = np.isfinite(values)
    n_obs = valid.sum(axis=1)
    coefs = np.full((P, C), np.nan)
    rmse = np.full((P,), np.nan)

    candidates = np.nonzero(n_obs >= C)[0]
    if candidates.size == 0:
        return coefs, n_obs, rmse

    mask = valid[candidates]
    A = np.where(mask[:, :, None], X[None, :, :], 0.0)
    y = np.where(mask, values[candidates], 0.0)

    u, s, vt = np.linalg.svd(A, full_matrices=False)
    tol = _effective_rcond(rcond, n_obs[candidates], C)[:, None] * s[:, :1]
    keep = s > tol
    rank = keep.sum(axis=1)
    inv_s = np.where(keep, 1.0 / np.where(keep, s, 1.0), 0.0)
    uty = np.einsum("ptc,pt->pc", u, y)
    beta = np.einsum("pcj,pc->pj", vt, inv_s * uty)

    resid = y - np.einsum("ptc,pc->pt", A, beta)
    rss = np.sum(resid * resid, axis=1)

    full_rank = rank == C
    solved = candidates[full_rank]
    coefs[solved] = beta[full_rank]
    rmse[solved] = np.sqrt(rss[full_rank] / n_obs[solved])
    return coefs, n_obs, rmse


def _block_slices(n_pixels: int, block_size: int) -> list[slice]:
    return [slice(start, min(n_pixels, start + block_size)) for start in range(0, n_pixels, block_size)]


def _bounded_block_size(block_size: int, T: int, C: int, max_ram_mb: int | None) -> int:
    per_pixel = T * C * 8 * _BLOCK_ARRAYS
    est_mb = block_size * per_pixel / (1024 * 1024)
    if max_ram_mb is None or est_mb <= max_ram_mb:
        return block_size
    bounded = max(1, int(max_ram_mb * 1024 * 1024 // per_pixel))
    warnings.warn(
        f"Estimated block working set {est_mb:.1f} MB exceeds max_ram_mb={max_ram_mb}; "
        f"reducing block_size from {block_size} to {bounded}."
    )
    return bounded


def fit_harmonic_cube(
    cube: np.ndarray,
    design: np.ndarray,
    names: list[str] | None = None,
    block_size: int = 1024,
    workers: int = 1,
    rcond: float | None = None,
    max_ram_mb: int | None = None,
) -> FitResult:
    """
    Fit every pixel of a (T, H, W) cube against a shared (T, C) design.

    Pixels are split into contiguous blocks that are solved independently,
    on a thread pool when ``workers > 1``. Results do not depend on the
    block size or worker count.
    """
    cube = np.asarray(cube)
    design = np.asarray(design, dtype=np.float64)
    if cube.ndim != 3:
        raise ValueError("cube must have shape (T, H, W)")
    T, H, W = cube.shape
    if design.shape[0] != T:
        raise ValueError(f"design has {design.shape[0]} rows for {T} observations")
    C = design.shape[1]
    if names is not None and len(names) != C:
        raise ValueError(f"{len(names)} names for {C} design columns")

    N = H * W
    pixels = cube.reshape(T, N).T
    coefs = np.full((N, C), np.nan)
    n_obs = np.zeros((N,), dtype=np.int64)
    rmse = np.full((N,), np.nan)

    block_size = _bounded_block_size(max(1, min(block_size, N)), T, C, max_ram_mb)
    blocks = _block_slices(N, block_size)

    def run(block: slice) -> None:
        b_coefs, b_obs, b_rmse = solve_block(pixels[block], design, rcond)
        coefs[block] = b_coefs
        n_obs[block] = b_obs
        rmse[block] = b_rmse
        logger.debug("Solved pixels %d:%d", block.start, block.stop)

    if workers <= 1 or len(blocks) <= 1:
        for block in blocks:
            run(block)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for _ in pool.map(run, blocks):
                pass

    result = FitResult(
        coefficients=coefs.T.reshape(C, H, W),
        n_obs=n_obs.reshape(H, W),
        rmse=rmse.reshape(H, W),
        names=list(names) if names is not None else [],
    )
    undefined = int(N - result.defined.sum())
    logger.info(
        "Fitted %dx%d pixels over %d observations in %d blocks; undefined pixels=%d",
        H,
        W,
        T,
        len(blocks),
        undefined,
    )
    return result
