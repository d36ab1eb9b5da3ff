"""
Reproducibility metadata for pipeline outputs.

Every CSV the scripts write gets a `<stem>_metadata.json` sidecar in
data/processed/metadata/ recording:
  - sha256 of each input file (missing inputs are flagged, not fatal)
  - sha256 of the output itself, so a hand-edited CSV is detectable
  - the params dict and its digest
  - git commit / dirty flag, library versions, run_id and timestamp
"""

import hashlib
import json
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from shelter_avail.io_utils import atomic_write_json
from shelter_avail.logging_utils import get_versions
from shelter_avail.paths import METADATA_DIR

CHUNK_SIZE = 1 << 16


def hash_file(path: Union[str, Path], algorithm: str = "sha256") -> str:
    """
    Hex digest of a file's bytes, read in chunks.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cannot hash non-existent file: {path}")

    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def hash_dict(d: Dict[str, Any], algorithm: str = "sha256") -> str:
    """Digest of a dict that does not depend on key order."""
    payload = json.dumps(d, sort_keys=True, default=str).encode("utf-8")
    return hashlib.new(algorithm, payload).hexdigest()


def _run_git(args: list) -> Optional[str]:
    try:
        result = subprocess.run(["git", *args], capture_output=True, text=True, timeout=5)
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    return result.stdout.strip() if result.returncode == 0 else None


def get_git_info() -> Dict[str, Any]:
    """Commit hash and dirty flag; both None outside a git checkout."""
    status = _run_git(["status", "--porcelain"])
    return {
        "commit": _run_git(["rev-parse", "HEAD"]),
        "dirty": None if status is None else bool(status),
    }


def _describe_file(path: Path) -> Dict[str, Any]:
    if path.exists():
        return {"path": str(path), "hash": hash_file(path)}
    return {"path": str(path), "hash": None, "missing": True}


def create_metadata_sidecar(
    output_path: Union[str, Path],
    inputs: Dict[str, str],
    config: Dict[str, Any],
    run_id: str,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the sidecar dict for one output.

    Args:
        output_path: The written output (hashed if it already exists)
        inputs: Input name -> file path
        config: Parameters used for the run
        run_id: Run identifier shared with the JSONL log
        extra: Script-specific additions (row counts, join stats, fit stats)
    """
    output_path = Path(output_path)
    metadata = {
        "output_file": str(output_path),
        "output_hash": hash_file(output_path) if output_path.exists() else None,
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "inputs": {name: _describe_file(Path(p)) for name, p in inputs.items()},
        "config_digest": hash_dict(config),
        "config": config,
        "git": get_git_info(),
        "versions": get_versions(),
    }
    if extra:
        metadata["extra"] = extra
    return metadata


def write_metadata_sidecar(
    output_path: Union[str, Path],
    inputs: Dict[str, str],
    config: Dict[str, Any],
    run_id: str,
    extra: Optional[Dict[str, Any]] = None,
    metadata_dir: Optional[Path] = None,
) -> Path:
    """Write `<output stem>_metadata.json` and return its path."""
    output_path = Path(output_path)
    sidecar_path = Path(metadata_dir or METADATA_DIR) / f"{output_path.stem}_metadata.json"
    atomic_write_json(create_metadata_sidecar(output_path, inputs, config, run_id, extra), sidecar_path)
    return sidecar_path
