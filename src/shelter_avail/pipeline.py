"""
End-to-end steps shared by the pipeline scripts and the integration tests.

    build_merged_dataset    load every source, join, derive availability
    prepare_analysis_table  clean, validate and log-transform the merged table
"""

from typing import Dict, Optional, Tuple

import pandas as pd

from shelter_avail.features import clean_analysis_table, derive_availability, impute_weather, log_transform
from shelter_avail.joins import merge_sources, pivot_crime_counts
from shelter_avail.loaders import (
    load_cpi,
    load_crime,
    load_neighbourhood_mapping,
    load_shelter_occupancy,
    load_unemployment,
    load_weather,
)
from shelter_avail.qa import assert_no_missing, assert_non_negative, compute_na_rates
from shelter_avail.schemas import ANALYSIS_SCHEMA, MERGED_SCHEMA, validate_schema
from shelter_avail.time_utils import add_season


def build_merged_dataset(
    inputs: Dict[str, object],
    params: Optional[dict] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Load all sources and merge them into one row per shelter program per date.

    Args:
        inputs: Paths as returned by loaders.resolve_inputs
        params: Parsed params.yml (sections fall back to module defaults)
        logger: Optional JSONLLogger

    Returns:
        Tuple of (merged DataFrame, stats dict with row counts, join stats
        and weather imputation counts)
    """
    params = params or {}
    dates = params.get("dates", {})
    crime_cfg = params.get("crime", {})
    weather_cfg = params.get("weather", {})
    monthly_cfg = params.get("monthly", {})

    occupancy = load_shelter_occupancy(
        inputs["occupancy"], dates.get("occupancy_formats"), logger=logger
    )
    mapping = load_neighbourhood_mapping(inputs["neighbourhood_mapping"], logger=logger)
    crime = load_crime(
        inputs["crime"],
        dates.get("crime_formats"),
        crime_cfg.get("excluded_hoods"),
        logger=logger,
    )
    weather = load_weather(inputs["weather"], dates.get("weather_formats"), logger=logger)
    cpi = load_cpi(inputs["cpi"], monthly_cfg.get("cpi_filters") or {})
    unemployment = load_unemployment(
        inputs["unemployment"], monthly_cfg.get("unemployment_filters") or {}
    )

    weather, weather_filled = impute_weather(
        weather,
        weather_cfg.get("temperature_method"),
        weather_cfg.get("precipitation_fill"),
    )
    if logger:
        logger.info("Weather gaps imputed", extra=weather_filled)

    crime_wide = pivot_crime_counts(crime, crime_cfg.get("categories"), logger=logger)

    merged, join_stats = merge_sources(
        occupancy, mapping, crime_wide, weather, cpi, unemployment, logger=logger
    )
    merged = derive_availability(merged)
    merged = add_season(merged)
    if logger:
        logger.log_row_counts("merge sources", len(occupancy), len(merged))

    validate_schema(merged, MERGED_SCHEMA, context="merged dataset")

    stats = {
        "rows": {
            "occupancy": len(occupancy),
            "mapping": len(mapping),
            "crime_records": len(crime),
            "crime_cells": len(crime_wide),
            "weather_days": len(weather),
            "cpi_months": len(cpi),
            "unemployment_months": len(unemployment),
            "merged": len(merged),
        },
        "join_stats": join_stats,
        "weather_imputed": weather_filled,
        "na_rates": compute_na_rates(merged),
    }
    return merged, stats


def prepare_analysis_table(
    merged: pd.DataFrame,
    params: Optional[dict] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """
    Clean the merged table and add log-transformed covariates.

    After cleaning, required columns have no NA and availability_total is
    non-negative; both are asserted before the table is returned.

    Returns:
        Tuple of (analysis DataFrame, drop counts per reason)
    """
    params = params or {}
    cleaning = params.get("cleaning", {})
    transforms = params.get("transforms", {})

    n_before = len(merged)
    cleaned, drops = clean_analysis_table(
        merged,
        cleaning.get("required_columns"),
        cleaning.get("drop_negative_availability"),
        cleaning.get("drop_zero_capacity"),
    )

    required = list(cleaning.get("required_columns") or [])
    assert_no_missing(cleaned, required, context="analysis table")
    assert_non_negative(cleaned, ["availability_total", "capacity_total"], context="analysis table")
    validate_schema(cleaned, ANALYSIS_SCHEMA, context="analysis table")

    analysis = log_transform(
        cleaned,
        transforms.get("log1p_columns"),
        transforms.get("prefix"),
    )

    if logger:
        logger.log_row_counts("clean analysis table", n_before, len(analysis))
        logger.log_metrics({"drops": drops})

    return analysis, drops
