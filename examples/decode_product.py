"""Decode one band of a harmonic product raster to a float32 .npy array."""
from __future__ import annotations

import argparse

import numpy as np

from harmonicndvi import read_product


def main():
    parser = argparse.ArgumentParser(description="Decode a quantized harmonic product band")
    parser.add_argument("input", help="Coefficient or yearly GeoTIFF")
    parser.add_argument("band", help="Band name, e.g. amplitude_1 or 2016")
    parser.add_argument("output", help="Output .npy path")
    args = parser.parse_args()

    product = read_product(args.input)
    np.save(args.output, product.band(args.band).astype(np.float32))


if __name__ == "__main__":
    main()
