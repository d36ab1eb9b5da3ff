"""
Project directories for the shelter availability pipeline.

Scripts and library modules take every location from here; nothing builds
'../' paths. The root is the nearest ancestor holding one of ROOT_MARKERS,
checked in order, so a checkout works from any working directory.

Layout:
    configs/params.yml
    data/raw/                      source extracts (shelter_occupancy/ holds yearly CSVs)
    data/interim/
    data/processed/merged/         output of script 01
    data/processed/model/          output of script 02
    data/processed/metadata/       *_metadata.json sidecars
    logs/                          JSONL run logs
"""

from pathlib import Path
from typing import Optional

ROOT_MARKERS = [".project-root", "pyproject.toml", ".git"]


def find_project_root(start_path: Optional[Path] = None) -> Path:
    """
    Nearest directory at or above `start_path` that contains a root marker.

    Raises:
        FileNotFoundError: If no ancestor, the filesystem root included, has one.
    """
    start = Path(start_path) if start_path is not None else Path(__file__).resolve().parent
    for candidate in [start, *start.parents]:
        if any((candidate / marker).exists() for marker in ROOT_MARKERS):
            return candidate
    raise FileNotFoundError(f"No project root marker {ROOT_MARKERS} above {start}")


PROJECT_ROOT = find_project_root()

CONFIG_DIR = PROJECT_ROOT / "configs"
PARAMS_PATH = CONFIG_DIR / "params.yml"

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
INTERIM_DIR = DATA_DIR / "interim"
PROCESSED_DIR = DATA_DIR / "processed"

OCCUPANCY_DIR = RAW_DIR / "shelter_occupancy"

MERGED_DIR = PROCESSED_DIR / "merged"
MODEL_DIR = PROCESSED_DIR / "model"
METADATA_DIR = PROCESSED_DIR / "metadata"

LOGS_DIR = PROJECT_ROOT / "logs"

# Directories the scripts write into or expect raw files in
PIPELINE_DIRS = [
    CONFIG_DIR, RAW_DIR, OCCUPANCY_DIR, INTERIM_DIR,
    MERGED_DIR, MODEL_DIR, METADATA_DIR, LOGS_DIR,
]


def ensure_dirs_exist() -> None:
    for d in PIPELINE_DIRS:
        d.mkdir(parents=True, exist_ok=True)


if __name__ == "__main__":
    for name in ["PROJECT_ROOT", "RAW_DIR", "MERGED_DIR", "MODEL_DIR", "LOGS_DIR"]:
        print(f"{name + ':':<15}{globals()[name]}")
