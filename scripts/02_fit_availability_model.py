#!/usr/bin/env python3
"""
02_fit_availability_model.py

Fit the binomial logistic regression of shelter-bed availability on crime,
weather, CPI and unemployment with sector and neighbourhood factors.

Steps:
- Drop rows with negative availability, zero capacity or missing covariates
- log1p-transform skewed covariates (crime counts, precipitation, CPI, capacity)
- Fit the model and an intercept-only null model on the same rows
- Likelihood-ratio test, pseudo R^2, confusion matrix at 0.5,
  accuracy / precision / recall / F1, variance inflation factors

Outputs:
- data/processed/model/model_summary.csv      (coefficients, odds ratios)
- data/processed/model/model_metrics.csv
- data/processed/model/vif.csv
- data/processed/model/confusion_matrix.csv
- data/processed/model/covariate_summary.csv
- data/processed/metadata/model_summary_metadata.json
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from datetime import datetime

from shelter_avail.config import load_params
from shelter_avail.hashing import hash_dict, write_metadata_sidecar
from shelter_avail.io_utils import atomic_write_df
from shelter_avail.loaders import load_merged
from shelter_avail.logging_utils import get_logger
from shelter_avail.model import ModelError, format_report, metrics_table, run_availability_model
from shelter_avail.paths import MERGED_DIR, MODEL_DIR
from shelter_avail.pipeline import prepare_analysis_table
from shelter_avail.qa import describe_covariates

# Constants
SCRIPT_NAME = "02_fit_availability_model"


def main():
    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    logger = get_logger(SCRIPT_NAME, run_id)
    logger.info("Starting Script 02: Fit availability model")

    params = load_params()
    logger.log_config(params, config_digest=hash_dict(params))
    outputs = params.get("outputs", {})
    model_cfg = params.get("model", {})

    # 1. Load merged data
    merged_path = MERGED_DIR / outputs.get("merged", "shelter_merged.csv")
    try:
        merged = load_merged(merged_path)
    except Exception as e:
        logger.error(f"Failed to load merged dataset: {e}", extra={"path": str(merged_path)})
        logger.close()
        sys.exit(1)
    logger.log_inputs({"merged": str(merged_path)})
    logger.info("Merged data loaded", extra={"rows": len(merged)})

    # 2. Clean + transform
    try:
        analysis, drops = prepare_analysis_table(merged, params, logger=logger)
    except Exception as e:
        logger.error(f"Failed to prepare analysis table: {e}")
        logger.close()
        sys.exit(1)
    for reason, count in drops.items():
        if count and reason != "total":
            logger.info(f"Dropped {count:,} rows: {reason}")

    # 3. Fit + diagnostics
    try:
        report = run_availability_model(
            analysis,
            outcome=model_cfg.get("outcome"),
            continuous=model_cfg.get("continuous"),
            categorical=model_cfg.get("categorical"),
            threshold=model_cfg.get("threshold"),
            vif_threshold=model_cfg.get("vif_threshold"),
            max_iter=model_cfg.get("max_iter"),
            logger=logger,
        )
    except ModelError as e:
        logger.error(f"Model fit failed: {e}")
        logger.close()
        sys.exit(1)

    covariates = describe_covariates(
        analysis,
        model_cfg.get("continuous", []) + ["availability_total", "availability_rate"],
        group_col=model_cfg.get("outcome", "availability_binary"),
    )

    # 4. Write outputs
    paths = {
        "summary": MODEL_DIR / outputs.get("summary", "model_summary.csv"),
        "metrics": MODEL_DIR / outputs.get("metrics", "model_metrics.csv"),
        "vif": MODEL_DIR / outputs.get("vif", "vif.csv"),
        "confusion_matrix": MODEL_DIR / outputs.get("confusion_matrix", "confusion_matrix.csv"),
        "covariate_summary": MODEL_DIR / outputs.get("covariate_summary", "covariate_summary.csv"),
    }
    atomic_write_df(report.coefficients, paths["summary"], index=False)
    atomic_write_df(metrics_table(report), paths["metrics"], index=False)
    atomic_write_df(report.vif, paths["vif"], index=False)
    atomic_write_df(report.confusion, paths["confusion_matrix"])
    atomic_write_df(covariates, paths["covariate_summary"], index=False)

    sidecar = write_metadata_sidecar(
        paths["summary"],
        inputs={"merged": str(merged_path)},
        config=params,
        run_id=run_id,
        extra={
            "formula": report.formula,
            "n_obs": report.n_obs,
            "drops": drops,
            "lr_test": report.lr_test,
            "pseudo_r2": report.pseudo_r2,
            "classification": report.classification,
            "warnings": report.warnings,
        },
    )
    logger.log_outputs({**{k: str(v) for k, v in paths.items()}, "metadata": str(sidecar)})

    logger.info("Script 02 complete.")
    logger.close()

    print()
    print(format_report(report))
    print(f"\n✓ Model summary saved to {paths['summary']}")


if __name__ == "__main__":
    main()
