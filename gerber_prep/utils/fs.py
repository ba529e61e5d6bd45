"""Filesystem helpers: atomic writes, YAML loading, debug bitmap dumps.

Every layer file goes through atomic_write_text(), so a failed export
never leaves a truncated layer next to good ones: data is written to a
sibling temp file, fsynced, then renamed over the target.

Usage:
    from gerber_prep.utils import fs
    fs.atomic_write_text(out_dir / "board_copperTop.gtl", gerber_text)
    cfg = fs.load_yaml("gerber_prep/configs/export.yaml")

Note: Module named `fs.py` rather than `io.py` to avoid shadowing stdlib `io`.
"""

import os
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import yaml
from PIL import Image

PathLike = Union[str, Path]


def ensure_dir(p: PathLike) -> Path:
    """Create ``p`` (and parents) if missing; return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def _discard(tmp_path: Path) -> None:
    try:
        tmp_path.unlink()
    except (FileNotFoundError, NotADirectoryError):
        pass


def atomic_write_bytes(path: PathLike, data: bytes, tmp_suffix: str = ".tmp") -> None:
    """Write ``data`` to ``path`` atomically.

    Parameters
    ----------
    path : str or Path
        Target file; its parent directory is created if needed
    data : bytes
        File content
    tmp_suffix : str
        Suffix of the sibling temp file

    Raises
    ------
    RuntimeError
        If the directory cannot be created or the file cannot be written
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + tmp_suffix)
    try:
        ensure_dir(path.parent)
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError as e:
        _discard(tmp_path)
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_write_text(path: PathLike, text: str, encoding: str = "utf-8") -> None:
    """Text variant of :func:`atomic_write_bytes`."""
    atomic_write_bytes(path, text.encode(encoding))


def save_bitmap(bitmap: np.ndarray, path: PathLike) -> None:
    """Dump a monochrome render as PNG (debugging aid, not on the export path).

    Raises
    ------
    RuntimeError
        If the image cannot be written
    """
    path = Path(path)
    if bitmap.dtype != np.uint8:
        bitmap = np.clip(bitmap, 0, 255).astype(np.uint8)

    tmp_path = path.with_name(path.stem + ".tmp" + path.suffix)
    try:
        ensure_dir(path.parent)
        Image.fromarray(bitmap).save(tmp_path, format="PNG")
        tmp_path.replace(path)
    except OSError as e:
        _discard(tmp_path)
        raise RuntimeError(f"Failed to save bitmap {path}: {e}") from e


def load_yaml(path: PathLike) -> Dict[str, Any]:
    """Parse a YAML file with ``yaml.safe_load``.

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    yaml.YAMLError
        If the content is not valid YAML
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"YAML file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
