"""
Access to configs/params.yml.

Modules read their own section through a small `_load_<section>_config()`
helper; scripts log the full params dict at startup.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

from shelter_avail.io_utils import read_yaml
from shelter_avail.paths import PARAMS_PATH


def load_params(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load the project parameters file.

    Args:
        path: Alternative params file. Defaults to configs/params.yml.

    Returns:
        Parsed params dict (empty dict for an empty file).
    """
    params_path = Path(path) if path is not None else PARAMS_PATH
    if not params_path.exists():
        raise FileNotFoundError(f"Params file not found: {params_path}")
    return read_yaml(params_path) or {}


def get_section(name: str, path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Return one top-level section of params.yml, or {} if it is absent."""
    return load_params(path).get(name, {}) or {}
