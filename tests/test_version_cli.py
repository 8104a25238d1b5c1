from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import numpy as np
import pytest
from rasterio.transform import from_origin

from harmonicndvi import __version__
from harmonicndvi.cli import main
from harmonicndvi.format import RasterGrid, write_product


def test_cli_version_outputs_version():
    repo_root = Path(__file__).resolve().parents[1]
    proc = subprocess.run(
        [sys.executable, "-m", "harmonicndvi", "--version"],
        cwd=repo_root,
        capture_output=True,
        text=True,
        check=True,
    )
    out = (proc.stdout or "").strip()
    assert out.startswith(f"harmonicndvi {__version__} (")


def test_cli_decode_summarizes_bands(tmp_path, capsys):
    grid = RasterGrid(crs="EPSG:5070", transform=from_origin(0, 60, 30, 30), width=2, height=2)
    data = np.stack([np.full((2, 2), 0.25), np.full((2, 2), np.nan)])
    path = tmp_path / "coef.tif"
    write_product(path, data, ["constant", "t"], grid)

    assert main(["decode", str(path)]) == 0
    out = capsys.readouterr().out
    assert "2 bands" in out
    assert "constant" in out and "mean=0.2500" in out
    assert "defined=0" in out


def test_cli_rejects_bad_harmonics(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["fit", str(tmp_path), "--out", str(tmp_path / "out"), "--harmonics", "0"])
    assert exc.value.code == 2


def test_cli_profile_writes_json(tmp_path):
    assert main(["profile", "--out", str(tmp_path), "--size", "6", "--years", "2", "--workers", "1"]) == 0
    report = json.loads((tmp_path / "profile.json").read_text(encoding="utf-8"))
    assert report["pixels"] == 36
    assert report["fit_mse"] < 0.01
