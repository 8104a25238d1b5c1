"""Helpers for loading scene stacks, writing previews and basic metrics."""
from __future__ import annotations

import datetime as _dt
import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

import imageio.v2 as imageio
import numpy as np
import rasterio
from matplotlib.colors import hsv_to_rgb
from rasterio.enums import Resampling
from rasterio.transform import Affine
from rasterio.vrt import WarpedVRT
from rasterio.warp import transform_bounds

from .config import HarmonicConfig
from .constants import BAND_NIR, BAND_QA_PIXEL, BAND_QA_RADSAT, BAND_RED
from .format import RasterGrid
from .preprocess import preprocess_scene

logger = logging.getLogger(__name__)

SCENE_SUFFIXES = (".tif", ".tiff")
REQUIRED_BANDS = (BAND_RED, BAND_NIR, BAND_QA_PIXEL, BAND_QA_RADSAT)
_DATE_TOKEN = re.compile(r"(?<!\d)(\d{8})(?!\d)")


@dataclass
class SceneStack:
    """Preprocessed dependent-variable cube on a common grid."""

    dates: np.ndarray  # (T,) datetime64[D], ascending
    values: np.ndarray  # (T, H, W) float32, NaN for no data
    grid: RasterGrid
    paths: list[Path]

    @property
    def valid(self) -> np.ndarray:
        return np.isfinite(self.values)


def find_scenes(inputs: Iterable[str | Path]) -> list[Path]:
    """Expand files and directories into a sorted list of GeoTIFF paths."""
    found: list[Path] = []
    for item in inputs:
        p = Path(item)
        if p.is_dir():
            found.extend(f for f in sorted(p.iterdir()) if f.suffix.lower() in SCENE_SUFFIXES)
        elif p.exists():
            found.append(p)
        else:
            raise FileNotFoundError(f"Scene not found: {p}")
    return found


def parse_acquisition_date(path: str | Path, tags: dict | None = None) -> _dt.date:
    """
    Acquisition date from a DATE_ACQUIRED tag, else the first YYYYMMDD token
    in the file name (Landsat product ids carry the acquisition date first).
    """
    tags = tags or {}
    for key in ("DATE_ACQUIRED", "ACQUISITION_DATE"):
        if key in tags:
            try:
                return _dt.date.fromisoformat(str(tags[key])[:10])
            except ValueError as exc:
                raise ValueError(f"Unparseable {key}={tags[key]!r} in {path}") from exc
    for token in _DATE_TOKEN.findall(Path(path).stem):
        try:
            return _dt.datetime.strptime(token, "%Y%m%d").date()
        except ValueError:
            continue
    raise ValueError(f"Cannot determine acquisition date for {path}")


def _scene_date(path: Path) -> _dt.date:
    with rasterio.open(path) as src:
        return parse_acquisition_date(path, src.tags())


def target_grid(paths: Sequence[Path], config: HarmonicConfig) -> RasterGrid:
    """
    Output grid in ``config.crs`` at ``config.scale``.

    The extent is ``config.region`` when set, otherwise the union of the
    scene footprints. ``config.crs_transform`` snaps the grid origin.
    """
    if config.region is not None:
        minx, miny, maxx, maxy = (float(v) for v in config.region)
    else:
        bounds = []
        for path in paths:
            with rasterio.open(path) as src:
                bounds.append(transform_bounds(src.crs, config.crs, *src.bounds))
        if not bounds:
            raise ValueError("No scenes to derive an output grid from")
        minx = min(b[0] for b in bounds)
        miny = min(b[1] for b in bounds)
        maxx = max(b[2] for b in bounds)
        maxy = max(b[3] for b in bounds)

    xres = yres = float(config.scale)
    if config.crs_transform is not None:
        # the transform's pixel size wins over scale
        xres, _, x0, _, yres, y0 = (float(v) for v in config.crs_transform)
        xres, yres = abs(xres), abs(yres)
        minx = x0 + math.floor((minx - x0) / xres) * xres
        maxy = y0 - math.floor((y0 - maxy) / yres) * yres
    width = max(1, int(math.ceil((maxx - minx) / xres)))
    height = max(1, int(math.ceil((maxy - miny) / yres)))
    return RasterGrid(
        crs=config.crs,
        transform=Affine(xres, 0.0, minx, 0.0, -yres, maxy),
        width=width,
        height=height,
    )


def read_scene_bands(path: Path, grid: RasterGrid, names: Sequence[str]) -> dict[str, np.ndarray]:
    """
    Read named bands warped onto ``grid`` with nearest resampling.

    Pixels outside the scene footprint get the QA fill bit so they mask out.
    """
    with rasterio.open(path) as src:
        index = {d: i for i, d in enumerate(src.descriptions, start=1) if d}
        missing = [n for n in names if n not in index]
        if missing:
            raise ValueError(f"{path} is missing bands {missing}")
        with WarpedVRT(
            src,
            crs=grid.crs,
            transform=grid.transform,
            width=grid.width,
            height=grid.height,
            resampling=Resampling.nearest,
            add_alpha=True,
        ) as vrt:
            bands = {n: vrt.read(index[n]) for n in names}
            outside = vrt.dataset_mask() == 0
    qa = bands[BAND_QA_PIXEL].astype(np.int64)
    qa[outside] |= 1
    bands[BAND_QA_PIXEL] = qa
    return bands


def load_scene_stack(inputs: Iterable[str | Path], config: HarmonicConfig) -> SceneStack:
    """Load, filter by date range, preprocess and stack every scene."""
    paths = find_scenes(inputs)
    dated = []
    for path in paths:
        day = _scene_date(path)
        if config.start_date <= day < config.end_date:
            dated.append((day, path))
        else:
            logger.debug("Skipping %s acquired %s outside date range", path.name, day)
    if not dated:
        raise ValueError(
            f"No scenes acquired between {config.start_date} and {config.end_date}"
        )
    dated.sort(key=lambda item: item[0])
    kept = [p for _, p in dated]

    grid = target_grid(kept, config)
    names = list(REQUIRED_BANDS)
    dependent = config.dependent_variable
    values = np.empty((len(kept), grid.height, grid.width), dtype=np.float32)
    for t, path in enumerate(kept):
        with rasterio.open(path) as src:
            has_dependent = dependent in src.descriptions
        wanted = names + [dependent] if has_dependent and dependent not in names else names
        scene = preprocess_scene(read_scene_bands(path, grid, wanted))
        if dependent not in scene:
            raise ValueError(f"{path} provides no {dependent} band")
        values[t] = scene[dependent]

    logger.info(
        "Loaded %d scenes (%s..%s) onto a %dx%d grid",
        len(kept),
        dated[0][0],
        dated[-1][0],
        grid.height,
        grid.width,
    )
    dates = np.array([np.datetime64(d, "D") for d, _ in dated], dtype="datetime64[D]")
    return SceneStack(dates=dates, values=values, grid=grid, paths=kept)


def seasonality_rgb(phase: np.ndarray, amplitude: np.ndarray, mean: np.ndarray) -> np.ndarray:
    """HSV (phase, amplitude, mean) to uint8 RGB; undefined pixels are black."""
    hsv = np.stack([phase, amplitude, mean], axis=-1).astype(np.float64)
    undefined = ~np.all(np.isfinite(hsv), axis=-1)
    hsv = np.clip(np.nan_to_num(hsv, nan=0.0), 0.0, 1.0)
    rgb = hsv_to_rgb(hsv)
    rgb[undefined] = 0.0
    return np.rint(rgb * 255.0).astype(np.uint8)


def save_seasonality_png(
    phase: np.ndarray, amplitude: np.ndarray, mean: np.ndarray, path: str | Path
) -> None:
    imageio.imwrite(str(path), seasonality_rgb(phase, amplitude, mean))


def mse(a: np.ndarray, b: np.ndarray) -> float:
    """Mean squared error between two arrays, ignoring NaN pairs."""
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {a.shape} vs {b.shape}")
    diff = a.astype(np.float64) - b.astype(np.float64)
    diff = diff[np.isfinite(diff)]
    if diff.size == 0:
        return float("nan")
    return float(np.mean(diff * diff))
