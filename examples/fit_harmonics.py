"""CLI wrapper for fitting a harmonic model to a directory of Landsat scenes."""
from __future__ import annotations

import argparse
import logging

from harmonicndvi import HarmonicConfig, load_config, run_harmonic_pipeline


def main():
    parser = argparse.ArgumentParser(description="Per-pixel harmonic NDVI regression")
    parser.add_argument("scenes", help="Directory of Collection 2 Level-2 GeoTIFF scenes")
    parser.add_argument("output", help="Output directory")
    parser.add_argument("--config", default=None, help="YAML configuration file")
    parser.add_argument("--harmonics", type=int, default=None, help="Number of cosine/sine pairs")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads")
    parser.add_argument("--preview", action="store_true", help="Also write a seasonality PNG")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    config = load_config(args.config) if args.config else HarmonicConfig()
    if args.harmonics is not None:
        config.harmonics = args.harmonics
    if args.workers is not None:
        config.workers = args.workers

    written = run_harmonic_pipeline([args.scenes], args.output, config.validate(), preview=args.preview)
    for kind, path in written.items():
        print(f"{kind}: {path}")


if __name__ == "__main__":
    main()
