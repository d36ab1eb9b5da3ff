"""
Atomic writes and readers for pipeline tables and metadata.

Outputs go to a temp file in the target directory and are renamed into place,
so an interrupted run leaves either the previous file or nothing, never a
truncated CSV that the next script would happily read.
"""

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd
import yaml

PathLike = Union[str, Path]

TABLE_SUFFIXES = (".csv", ".parquet")


def _temp_sibling(target: Path, suffix: str) -> Path:
    """Reserve a hidden temp file next to `target`."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(suffix=suffix, prefix=f".{target.stem}_", dir=target.parent)
    os.close(fd)
    return Path(name)


def _table_suffix(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in TABLE_SUFFIXES:
        raise ValueError(f"Unsupported format: {suffix} (expected one of {TABLE_SUFFIXES})")
    return suffix


# =============================================================================
# Writes
# =============================================================================

@contextmanager
def atomic_write(
    target_path: PathLike,
    mode: str = "w",
    suffix: Optional[str] = None,
):
    """
    Open a temp file for writing and move it onto `target_path` on success.

    On any exception the temp file is removed and the target is untouched.

    Example:
        with atomic_write(LOGS_DIR / "notes.txt") as f:
            f.write("...")
    """
    target = Path(target_path)
    temp = _temp_sibling(target, suffix or target.suffix or ".tmp")
    try:
        with open(temp, mode) as f:
            yield f
        temp.replace(target)
    except Exception:
        temp.unlink(missing_ok=True)
        raise


def atomic_write_df(df: pd.DataFrame, target_path: PathLike, **kwargs) -> None:
    """
    Write a DataFrame to .csv or .parquet atomically.

    Extra keyword arguments go to `to_csv` / `to_parquet`.

    Raises:
        ValueError: For any other suffix
    """
    target = Path(target_path)
    suffix = _table_suffix(target)
    temp = _temp_sibling(target, suffix)
    try:
        if suffix == ".csv":
            df.to_csv(temp, **kwargs)
        else:
            df.to_parquet(temp, **kwargs)
        temp.replace(target)
    except Exception:
        temp.unlink(missing_ok=True)
        raise


def atomic_write_json(data: Any, target_path: PathLike, **kwargs) -> None:
    """Write JSON atomically; numpy scalars and Paths fall back to str()."""
    kwargs.setdefault("indent", 2)
    kwargs.setdefault("default", str)
    with atomic_write(target_path, mode="w", suffix=".json") as f:
        json.dump(data, f, **kwargs)


# =============================================================================
# Reads
# =============================================================================

def read_yaml(path: PathLike) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def read_json(path: PathLike) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def read_df(path: PathLike, **kwargs) -> pd.DataFrame:
    """Read a .csv or .parquet table (ValueError for anything else)."""
    path = Path(path)
    if _table_suffix(path) == ".csv":
        return pd.read_csv(path, **kwargs)
    return pd.read_parquet(path, **kwargs)
