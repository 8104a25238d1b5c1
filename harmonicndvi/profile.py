"""Wall time and memory profile of the harmonic pipeline on synthetic data."""
from __future__ import annotations

import argparse
import datetime as _dt
import json
import sys
import time
import tracemalloc
from pathlib import Path
from typing import Optional

import numpy as np
import psutil

from .composite import fitted_series
from .config import HarmonicConfig
from .features import time_radians
from .pipeline import fit_cube
from .utils import mse
from .version import get_build_meta


def current_rss_mb() -> float:
    proc = psutil.Process()
    return proc.memory_info().rss / (1024 * 1024)


def synthetic_cube(
    size: int = 64,
    years: int = 5,
    per_year: int = 23,
    start_year: int = 2013,
    cloud_fraction: float = 0.2,
    seed: int = 0,
) -> tuple[np.ndarray, np.ndarray]:
    """Noisy single-harmonic NDVI cube with random cloud gaps."""
    rng = np.random.default_rng(seed)
    start = _dt.date(start_year, 1, 1)
    step = 365.25 / per_year
    dates = np.array(
        [np.datetime64(start + _dt.timedelta(days=int(i * step)), "D") for i in range(years * per_year)]
    )
    t = time_radians(dates)
    base = rng.uniform(0.3, 0.6, size=(size, size))
    amp = rng.uniform(0.05, 0.3, size=(size, size))
    values = base[None] + amp[None] * np.cos(t)[:, None, None]
    values += rng.normal(0.0, 0.02, size=values.shape)
    values[rng.random(values.shape) < cloud_fraction] = np.nan
    return values.astype(np.float32), dates


def run_profile(out_dir: Path, size: int = 64, years: int = 5, workers: int | None = None) -> dict:
    out_dir.mkdir(parents=True, exist_ok=True)
    values, dates = synthetic_cube(size=size, years=years)
    config = HarmonicConfig(
        date_range=(str(dates[0]), str(dates[-1] + np.timedelta64(1, "D"))),
        workers=workers,
    )
    result = {}

    tracemalloc.start()
    rss_start = current_rss_mb()
    t0 = time.perf_counter()
    products = fit_cube(values, dates, config)
    fit_time = time.perf_counter() - t0
    rss_fit = current_rss_mb()
    _, peak_size = tracemalloc.get_traced_memory()
    tracemalloc.stop()

    result["pixels"] = size * size
    result["observations"] = int(values.shape[0])
    result["fit_time_sec"] = fit_time
    result["pixels_per_sec"] = (size * size) / fit_time if fit_time > 0 else None
    result["undefined_pixels"] = int((~products.fit.defined).sum())
    result["fit_mse"] = mse(fitted_series(products.fit.coefficients, products.design), values)
    result["composite_years"] = [c.label for c in products.composites]
    result["rss_start_mb"] = rss_start
    result["rss_fit_mb"] = rss_fit
    result["tracemalloc_peak_bytes"] = peak_size
    result["env"] = {
        "python": sys.version,
        "platform": sys.platform,
        "workers": config.worker_count,
        "build": get_build_meta(),
    }

    with open(out_dir / "profile.json", "w", encoding="utf-8") as f:
        json.dump(result, f, indent=2)
    return result


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Profile harmonic regression on a synthetic cube")
    parser.add_argument("--out", type=Path, required=True, help="Output directory for profile")
    parser.add_argument("--size", type=int, default=64, help="Grid edge length in pixels")
    parser.add_argument("--years", type=int, default=5, help="Years of synthetic observations")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads")
    args = parser.parse_args(argv)

    res = run_profile(args.out, size=args.size, years=args.years, workers=args.workers)
    print(json.dumps(res, indent=2))


if __name__ == "__main__":
    main()
