"""Command-line entrypoints for harmonicndvi."""
from __future__ import annotations

import argparse
import logging
import sys
import warnings
from pathlib import Path

import numpy as np

from .config import ConfigError, HarmonicConfig, config_from_mapping, load_config
from .format import read_product
from .pipeline import run_harmonic_pipeline
from .profile import run_profile
from .version import get_version_string

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def _resolve_config(args: argparse.Namespace) -> HarmonicConfig:
    config = load_config(args.config) if args.config else HarmonicConfig()
    overrides = config.to_dict()
    for key in ("harmonics", "workers", "block_size", "max_ram_mb", "output_name"):
        value = getattr(args, key, None)
        if value is not None:
            overrides[key] = value
    if args.start or args.end:
        overrides["date_range"] = [args.start or overrides["date_range"][0], args.end or overrides["date_range"][1]]
    return config_from_mapping(overrides)


def _add_fit_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("inputs", nargs="+", help="Scene GeoTIFFs or directories of scenes")
    parser.add_argument("--out", required=True, help="Output directory")
    parser.add_argument("--config", default=None, help="YAML configuration file")
    parser.add_argument("--harmonics", type=int, default=None, help="Number of cosine/sine pairs")
    parser.add_argument("--start", default=None, help="First date (inclusive), YYYY-MM-DD")
    parser.add_argument("--end", default=None, help="Last date (exclusive), YYYY-MM-DD")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads")
    parser.add_argument("--block-size", type=int, default=None, help="Pixels per solve block")
    parser.add_argument("--max-ram-mb", type=int, default=None, help="Soft memory cap per block")
    parser.add_argument("--output-name", default=None, help="Output file prefix")
    parser.add_argument("--preview", action="store_true", help="Also write a seasonality PNG")


def fit_command(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    written = run_harmonic_pipeline(args.inputs, args.out, config, preview=args.preview)
    for kind, path in written.items():
        print(f"{kind}: {path}")
    return 0


def decode_command(args: argparse.Namespace) -> int:
    product = read_product(args.raster)
    print(f"{args.raster}: {len(product.names)} bands, {product.grid.height}x{product.grid.width}, {product.grid.crs}")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        for name in product.names:
            band = product.band(name)
            defined = int(np.isfinite(band).sum())
            print(
                f"{name:>20} defined={defined:<8d} min={np.nanmin(band) if defined else float('nan'):.4f} "
                f"mean={np.nanmean(band) if defined else float('nan'):.4f} "
                f"max={np.nanmax(band) if defined else float('nan'):.4f}"
            )
    return 0


def profile_command(args: argparse.Namespace) -> int:
    run_profile(args.out, size=args.size, years=args.years, workers=args.workers)
    print(f"Wrote {args.out / 'profile.json'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="harmonicndvi", description="Per-pixel harmonic NDVI regression")
    parser.add_argument("--version", action="version", version=get_version_string())
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_fit = sub.add_parser("fit", help="Fit scenes and export coefficient and yearly rasters")
    _add_fit_arguments(p_fit)
    p_fit.set_defaults(func=fit_command)

    p_dec = sub.add_parser("decode", help="Summarize a quantized output raster")
    p_dec.add_argument("raster")
    p_dec.set_defaults(func=decode_command)

    p_prof = sub.add_parser("profile", help="Profile a synthetic run")
    p_prof.add_argument("--out", type=Path, required=True)
    p_prof.add_argument("--size", type=int, default=64)
    p_prof.add_argument("--years", type=int, default=5)
    p_prof.add_argument("--workers", type=int, default=None)
    p_prof.set_defaults(func=profile_command)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    try:
        return args.func(args)
    except ConfigError as exc:
        parser.error(str(exc))
    except (ValueError, FileNotFoundError) as exc:
        logging.getLogger(__name__).error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
