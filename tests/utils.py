"""Shared helpers for building test inputs."""

import json
import zipfile
from pathlib import Path


def build_highland(
    path: Path,
    fountain_text: str,
    bundle_name: str = "script.textbundle",
    content_name: str = "text.fountain",
    info: dict | None = None,
) -> Path:
    """Write a zipped Highland 2 file holding one TextBundle."""
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(f"{bundle_name}/info.json", json.dumps(info or {"version": 2}))
        archive.writestr(f"{bundle_name}/{content_name}", fountain_text)
    return path
