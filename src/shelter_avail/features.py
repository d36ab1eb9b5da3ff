"""
Derived availability fields, imputation, cleaning and transforms.

Availability is computed over beds and rooms together: a program reports
either bed-based or room-based capacity, so the missing side counts as 0.
"""

from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from shelter_avail.config import get_section


def _load_weather_config() -> dict:
    """Load weather imputation configuration from params.yml."""
    return get_section("weather")


def _load_cleaning_config() -> dict:
    """Load cleaning rules from params.yml."""
    return get_section("cleaning")


def _load_transform_config() -> dict:
    """Load transform configuration from params.yml."""
    return get_section("transforms")


# =============================================================================
# Derived availability fields
# =============================================================================

def derive_availability(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add capacity / occupancy totals and availability measures.

    Adds:
        capacity_total       actual beds + actual rooms
        occupied_total       occupied beds + occupied rooms
        availability_total   capacity_total - occupied_total
        availability_binary  1 if availability_total > 0 else 0
        availability_rate    availability_total / capacity_total (NaN if capacity is 0)
    """
    df = df.copy()
    df["capacity_total"] = (
        df["capacity_actual_bed"].fillna(0) + df["capacity_actual_room"].fillna(0)
    )
    df["occupied_total"] = (
        df["occupied_beds"].fillna(0) + df["occupied_rooms"].fillna(0)
    )
    df["availability_total"] = df["capacity_total"] - df["occupied_total"]
    df["availability_binary"] = (df["availability_total"] > 0).astype("Int64")
    capacity = df["capacity_total"].where(df["capacity_total"] > 0)
    df["availability_rate"] = (df["availability_total"] / capacity).astype("float64")
    return df


# =============================================================================
# Imputation
# =============================================================================

def impute_weather(
    weather: pd.DataFrame,
    temperature_method: Optional[str] = None,
    precipitation_fill: Optional[float] = None,
) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """
    Fill gaps in the daily weather table before it is joined.

    Temperature gaps are interpolated linearly in date order (edges take the
    nearest observed value); precipitation gaps take a constant fill, 0 by
    default, since most unreported days had no precipitation.

    Args:
        weather: Output of loaders.load_weather
        temperature_method: "interpolate" or "none"
        precipitation_fill: Constant for missing precipitation, or None to keep NA

    Returns:
        Tuple of (imputed weather, {"mean_temp": n_filled, "total_precip": n_filled})
    """
    config = _load_weather_config()
    if temperature_method is None:
        temperature_method = config.get("temperature_method", "interpolate")
    if precipitation_fill is None:
        precipitation_fill = config.get("precipitation_fill", 0.0)

    weather = weather.sort_values("occupancy_date").reset_index(drop=True)
    filled = {"mean_temp": 0, "total_precip": 0}

    temp_missing = weather["mean_temp"].isna()
    if temperature_method == "interpolate" and temp_missing.any():
        series = weather.set_index("occupancy_date")["mean_temp"]
        series = series.interpolate(method="time", limit_direction="both")
        weather["mean_temp"] = series.values
        filled["mean_temp"] = int(temp_missing.sum() - weather["mean_temp"].isna().sum())
    elif temperature_method not in ("interpolate", "none"):
        raise ValueError(f"Unknown temperature imputation method: {temperature_method}")

    precip_missing = weather["total_precip"].isna()
    if precipitation_fill is not None and precip_missing.any():
        weather["total_precip"] = weather["total_precip"].fillna(float(precipitation_fill))
        filled["total_precip"] = int(precip_missing.sum())

    return weather, filled


# =============================================================================
# Cleaning
# =============================================================================

def clean_analysis_table(
    df: pd.DataFrame,
    required: Optional[Sequence[str]] = None,
    drop_negative_availability: Optional[bool] = None,
    drop_zero_capacity: Optional[bool] = None,
) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """
    Drop rows that cannot enter the model.

    Rules are applied in order and each row is counted under the first rule
    it fails:
        negative_availability  availability_total < 0 (occupied > capacity)
        zero_capacity          capacity_total <= 0
        missing_<column>       NA in a required covariate

    Returns:
        Tuple of (cleaned DataFrame, drop counts per reason)
    """
    config = _load_cleaning_config()
    if required is None:
        required = config.get("required_columns", [])
    if drop_negative_availability is None:
        drop_negative_availability = config.get("drop_negative_availability", True)
    if drop_zero_capacity is None:
        drop_zero_capacity = config.get("drop_zero_capacity", True)

    missing_cols = [c for c in required if c not in df.columns]
    if missing_cols:
        raise KeyError(f"Required columns not in table: {missing_cols}")

    drops: Dict[str, int] = {}
    keep = pd.Series(True, index=df.index)

    def _apply(reason: str, bad: pd.Series) -> None:
        bad = bad.fillna(False).astype(bool) & keep
        drops[reason] = int(bad.sum())
        keep.loc[bad] = False

    if drop_negative_availability:
        _apply("negative_availability", df["availability_total"] < 0)
    if drop_zero_capacity:
        _apply("zero_capacity", df["capacity_total"] <= 0)
    for col in required:
        _apply(f"missing_{col}", df[col].isna())

    cleaned = df.loc[keep].reset_index(drop=True)
    drops["total"] = int(len(df) - len(cleaned))
    return cleaned, drops


# =============================================================================
# Transforms
# =============================================================================

def log_transform(
    df: pd.DataFrame,
    columns: Optional[Iterable[str]] = None,
    prefix: Optional[str] = None,
) -> pd.DataFrame:
    """
    Add log1p-transformed copies of skewed non-negative columns.

    log1p keeps zero counts (days with no reported crime, dry days) finite.

    Args:
        df: Input DataFrame
        columns: Columns to transform
        prefix: Prefix for new column names (default "log_")

    Raises:
        KeyError: If a column is missing
        ValueError: If a column has negative values
    """
    config = _load_transform_config()
    if columns is None:
        columns = config.get("log1p_columns", [])
    if prefix is None:
        prefix = config.get("prefix", "log_")

    df = df.copy()
    for col in columns:
        if col not in df.columns:
            raise KeyError(f"Cannot log-transform missing column: {col}")
        values = pd.to_numeric(df[col], errors="coerce").astype("float64")
        if (values < 0).any():
            raise ValueError(f"Cannot log-transform {col}: {int((values < 0).sum())} negative values")
        df[f"{prefix}{col}"] = np.log1p(values)
    return df

