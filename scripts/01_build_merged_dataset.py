#!/usr/bin/env python3
"""
01_build_merged_dataset.py

Merge shelter occupancy with neighbourhood, crime, weather, CPI and
unemployment data into one row per shelter program per date.

Steps:
- Concatenate yearly shelter occupancy extracts (mixed date formats)
- Attach neighbourhood codes from the manually compiled location mapping
- Pivot Major Crime Indicators to one count column per category and join on
  (date, neighbourhood); no reported crime -> 0
- Join daily weather on date (temperature interpolated, precipitation 0-filled)
- Join CPI and unemployment on (year, month)
- Derive capacity / occupancy totals and availability fields

Outputs:
- data/processed/merged/shelter_merged.csv
- data/processed/metadata/shelter_merged_metadata.json
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from datetime import datetime

from shelter_avail.config import load_params
from shelter_avail.hashing import hash_dict, write_metadata_sidecar
from shelter_avail.io_utils import atomic_write_df
from shelter_avail.loaders import resolve_inputs
from shelter_avail.logging_utils import get_logger
from shelter_avail.paths import MERGED_DIR, RAW_DIR, ensure_dirs_exist
from shelter_avail.pipeline import build_merged_dataset

# Constants
SCRIPT_NAME = "01_build_merged_dataset"


def main():
    ensure_dirs_exist()
    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    logger = get_logger(SCRIPT_NAME, run_id)
    logger.info("Starting Script 01: Build merged dataset")

    params = load_params()
    logger.log_config(params, config_digest=hash_dict(params))

    inputs = resolve_inputs(RAW_DIR, params.get("inputs", {}))
    input_paths = {
        **{f"occupancy_{p.stem}": str(p) for p in inputs["occupancy"]},
        **{k: str(v) for k, v in inputs.items() if k != "occupancy"},
    }
    logger.log_inputs(input_paths)

    missing = [p for p in input_paths.values() if not Path(p).exists()]
    if not inputs["occupancy"] or missing:
        logger.error("Missing input files", extra={
            "missing": missing,
            "occupancy_files": len(inputs["occupancy"]),
        })
        logger.close()
        sys.exit(1)

    # 1. Load + merge
    try:
        merged, stats = build_merged_dataset(inputs, params, logger=logger)
    except Exception as e:
        logger.error(f"Failed to build merged dataset: {e}")
        logger.close()
        sys.exit(1)

    logger.log_metrics({"row_counts": stats["rows"], "na_rates": stats["na_rates"]})

    # 2. Write outputs
    output_name = params.get("outputs", {}).get("merged", "shelter_merged.csv")
    output_path = MERGED_DIR / output_name
    atomic_write_df(merged, output_path, index=False)

    sidecar = write_metadata_sidecar(
        output_path,
        inputs=input_paths,
        config=params,
        run_id=run_id,
        extra={
            "rows": stats["rows"],
            "join_stats": stats["join_stats"],
            "weather_imputed": stats["weather_imputed"],
        },
    )
    logger.log_outputs({"merged": str(output_path), "metadata": str(sidecar)})

    logger.info("Script 01 complete.")
    logger.close()

    availability = merged["availability_binary"].mean()
    print(f"\n✓ Merged dataset built: {len(merged):,} shelter-program days")
    print(f"  Date range: {merged['occupancy_date'].min().date()} -> {merged['occupancy_date'].max().date()}")
    print(f"  Programs: {merged['program_id'].nunique():,}   Neighbourhoods: {merged['hood_158'].nunique():,}")
    print(f"  Share of program-days with a free bed/room: {availability:.1%}")
    for name, s in stats["join_stats"].items():
        print(f"  Join {name}: {s['matched']:,}/{s['rows']:,} matched")
    print(f"  Output: {output_path}")


if __name__ == "__main__":
    main()
