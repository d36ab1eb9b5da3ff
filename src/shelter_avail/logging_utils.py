"""
Structured run logs for the pipeline scripts.

Each script writes one JSONL file per run to logs/<script>_<run_id>.jsonl and
mirrors messages to stdout. Records share the keys timestamp, script_name,
run_id, level, message and an optional `extra` payload; the helper methods
below fix the payload shape for config, inputs/outputs, row counts, join match
rates and model statistics so runs can be compared with a JSON reader.
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from typing import Any, Optional

from shelter_avail.paths import LOGS_DIR

# Distributions whose versions are stamped into logs and metadata sidecars
TRACKED_DISTRIBUTIONS = ["pandas", "numpy", "scipy", "statsmodels", "scikit-learn", "PyYAML"]

CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def generate_run_id() -> str:
    """UTC timestamp plus a short random suffix."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}"


def get_versions() -> dict[str, str]:
    """Python and tracked library versions; uninstalled libraries are skipped."""
    versions = {"python": sys.version.split()[0]}
    for dist in TRACKED_DISTRIBUTIONS:
        try:
            versions[dist] = metadata.version(dist)
        except metadata.PackageNotFoundError:
            continue
    return versions


class JSONLLogger:
    """
    JSONL + console logger for one script run.

    Usage:
        with JSONLLogger("01_build_merged_dataset") as logger:
            logger.log_inputs({"crime": "data/raw/major_crime_indicators.csv"})
            logger.log_row_counts("crime join", before=1000, after=1000)

    Used as a context manager, an exception escaping the block is logged at
    ERROR level before the file is closed.
    """

    def __init__(
        self,
        script_name: str,
        run_id: Optional[str] = None,
        log_dir: Optional[Path] = None,
    ):
        self.script_name = script_name
        self.run_id = run_id or generate_run_id()
        self.log_dir = Path(log_dir) if log_dir is not None else LOGS_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_dir / f"{script_name}_{self.run_id}.jsonl"
        self._file_handle = open(self.log_file, "a", encoding="utf-8")

        self._console_handler = logging.StreamHandler(sys.stdout)
        self._console_handler.setLevel(logging.INFO)
        self._console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        self._logger = logging.getLogger(f"shelter_avail.{script_name}")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False
        self._logger.addHandler(self._console_handler)

        self._write_record("INFO", "Logger initialized", {
            "script_name": script_name,
            "run_id": self.run_id,
            "log_file": str(self.log_file),
            "versions": get_versions(),
        })

    def _write_record(self, level: str, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "script_name": self.script_name,
            "run_id": self.run_id,
            "level": level,
            "message": message,
        }
        if extra:
            record["extra"] = extra
        self._file_handle.write(json.dumps(record, default=str) + "\n")
        self._file_handle.flush()

    def _emit(self, level: str, message: str, extra: Optional[dict[str, Any]]) -> None:
        self._write_record(level, message, extra)
        self._logger.log(getattr(logging, level), message)

    # Plain messages

    def debug(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._emit("DEBUG", message, extra)

    def info(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._emit("INFO", message, extra)

    def warning(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._emit("WARNING", message, extra)

    def error(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._emit("ERROR", message, extra)

    # Structured records (file only)

    def log_config(self, config: dict[str, Any], config_digest: Optional[str] = None) -> None:
        self._write_record("INFO", "Configuration loaded", {"config": config, "config_digest": config_digest})

    def log_inputs(self, inputs: dict[str, str]) -> None:
        self._write_record("INFO", "Inputs registered", {"inputs": inputs})

    def log_outputs(self, outputs: dict[str, str]) -> None:
        self._write_record("INFO", "Outputs registered", {"outputs": outputs})

    def log_metrics(self, metrics: dict[str, Any]) -> None:
        self._write_record("INFO", "Metrics recorded", {"metrics": metrics})

    def log_row_counts(self, step: str, before: int, after: int) -> None:
        """Row counts around one pipeline step; a change is also printed."""
        self._write_record("INFO", "Row counts", {
            "step": step,
            "rows_before": int(before),
            "rows_after": int(after),
            "rows_removed": int(before) - int(after),
        })
        if before != after:
            self._logger.info(f"{step}: {before:,} -> {after:,} rows")

    def log_join_stats(self, join_stats: dict[str, Any]) -> None:
        self._write_record("INFO", "Join stats recorded", {"join_stats": join_stats})

    def log_model_stats(self, model_stats: dict[str, Any]) -> None:
        self._write_record("INFO", "Model stats recorded", {"model_stats": model_stats})

    def close(self) -> None:
        """Write the closing record and release the file and console handler."""
        self._write_record("INFO", "Logger closing", {"run_id": self.run_id})
        self._file_handle.close()
        self._logger.removeHandler(self._console_handler)

    def __enter__(self) -> "JSONLLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.error(
                f"Exception occurred: {exc_type.__name__}: {exc_val}",
                extra={"traceback": str(exc_tb)},
            )
        self.close()


def get_logger(script_name: str, run_id: Optional[str] = None) -> JSONLLogger:
    """Logger for a pipeline script writing under LOGS_DIR."""
    return JSONLLogger(script_name=script_name, run_id=run_id)
