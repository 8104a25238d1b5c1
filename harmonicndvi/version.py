"""Package version and build metadata stamped into exported rasters."""
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict

__version__ = "0.1.0"
SOFTWARE_NAME = "harmonicndvi"


def _git(*args: str) -> str | None:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=Path(__file__).resolve().parent,
            capture_output=True,
            text=True,
        )
    except OSError:
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip()


def get_build_meta() -> Dict[str, str]:
    """Version, short git hash (or "unknown") and a dirty-tree flag."""
    return {
        "software": SOFTWARE_NAME,
        "version": __version__,
        "git_hash": _git("rev-parse", "--short", "HEAD") or "unknown",
        "dirty": "1" if _git("status", "--porcelain") else "0",
    }


def get_version_string() -> str:
    meta = get_build_meta()
    suffix = "+dirty" if meta["dirty"] == "1" else ""
    return f"{meta['software']} {meta['version']} ({meta['git_hash']}{suffix})"


def raster_tags() -> Dict[str, str]:
    """Build metadata as GeoTIFF dataset tags."""
    meta = get_build_meta()
    return {
        "SOFTWARE": f"{meta['software']} {meta['version']}",
        "SOFTWARE_GIT_HASH": meta["git_hash"],
    }
