"""
Loaders for the raw analysis inputs.

Each loader reads one source, normalises column names to lower snake_case,
parses dates, coerces key dtypes and validates the result against its schema:

- shelter occupancy (one CSV per year, concatenated)
- manually compiled shelter location -> neighbourhood mapping
- Major Crime Indicators (one row per reported offence)
- daily weather
- monthly CPI and unemployment rate
"""

import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from shelter_avail.config import get_section
from shelter_avail.schemas import (
    CRIME_SCHEMA,
    MAPPING_SCHEMA,
    MONTHLY_SERIES_SCHEMA,
    SHELTER_OCCUPANCY_SCHEMA,
    WEATHER_SCHEMA,
    SchemaError,
    ensure_int64,
    validate_schema,
)
from shelter_avail.time_utils import configured_formats, parse_mixed_dates, parse_ref_month


PathLike = Union[str, Path]

OCCUPANCY_COUNT_COLUMNS = [
    "capacity_actual_bed",
    "capacity_funding_bed",
    "occupied_beds",
    "unoccupied_beds",
    "unavailable_beds",
    "capacity_actual_room",
    "capacity_funding_room",
    "occupied_rooms",
    "unoccupied_rooms",
    "unavailable_rooms",
    "service_user_count",
]

# Environment Canada daily export headers, after normalise_columns
WEATHER_COLUMN_ALIASES = {
    "date_time": "date",
    "mean_temp_c": "mean_temp",
    "total_precip_mm": "total_precip",
}

CRIME_COLUMN_ALIASES = {
    "occ_date": "crime_date",
    "occurrencedate": "crime_date",
}


def normalise_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lower-case column names and collapse non-alphanumerics to '_'."""
    df = df.copy()
    df.columns = [
        re.sub(r"[^0-9a-z]+", "_", str(c).strip().lower()).strip("_")
        for c in df.columns
    ]
    return df


def normalise_hood_code(values: pd.Series) -> pd.Series:
    """
    Normalise neighbourhood codes to zero-padded 3-character strings.

    79, "79", "079" and "79.0" all become "079"; non-numeric codes such as
    "NSA" are upper-cased and kept.
    """
    text = values.astype("string").str.strip()
    text = text.str.replace(r"\.0+$", "", regex=True)
    numeric = text.str.fullmatch(r"\d+").fillna(False).astype(bool)
    text = text.mask(numeric, text.str.zfill(3)).str.upper()
    blank = (text == "").fillna(False).astype(bool)
    text = text.mask(blank)
    return text.astype(object).where(text.notna(), None)


def _load_input_config() -> dict:
    """Load input file configuration from params.yml."""
    return get_section("inputs")


# =============================================================================
# Shelter occupancy
# =============================================================================

def read_occupancy_file(
    path: PathLike,
    date_formats: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Read one yearly occupancy extract into the normalised layout.

    Count columns missing from older extracts are added as NA so all years
    concatenate onto the same columns.
    """
    if date_formats is None:
        date_formats = configured_formats("occupancy")

    df = pd.read_csv(path, dtype={"OCCUPANCY_DATE": str}, low_memory=False)
    df = normalise_columns(df)
    df = df.drop(columns=["id"], errors="ignore")

    if "occupancy_date" not in df.columns:
        raise SchemaError(f"{Path(path).name}: missing OCCUPANCY_DATE column")

    df["occupancy_date"] = parse_mixed_dates(df["occupancy_date"], date_formats)

    for col in OCCUPANCY_COUNT_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        else:
            df[col] = np.nan

    df = ensure_int64(df, ["location_id", "program_id", "shelter_id"])
    return df


def load_shelter_occupancy(
    paths: Iterable[PathLike],
    date_formats: Optional[Sequence[str]] = None,
    logger=None,
) -> pd.DataFrame:
    """
    Load and concatenate yearly shelter occupancy files.

    Args:
        paths: Occupancy CSV paths (one per year)
        date_formats: strptime formats for OCCUPANCY_DATE, tried in order
        logger: Optional JSONLLogger

    Returns:
        One row per (program, date), validated against SHELTER_OCCUPANCY_SCHEMA

    Raises:
        FileNotFoundError: If no paths are given
        SchemaError: If the concatenated table fails validation
    """
    paths = sorted(Path(p) for p in paths)
    if not paths:
        raise FileNotFoundError("No shelter occupancy files found")

    frames = []
    for path in paths:
        frame = read_occupancy_file(path, date_formats)
        if logger:
            logger.info(f"Loaded {path.name}", extra={"rows": len(frame)})
        frames.append(frame)

    df = pd.concat(frames, ignore_index=True, sort=False)

    for col in ["sector", "capacity_type", "location_name", "program_name"]:
        if col in df.columns:
            df[col] = df[col].astype("string").str.strip().astype(object)

    validate_schema(df, SHELTER_OCCUPANCY_SCHEMA, context="shelter occupancy")

    duplicated = df.duplicated(subset=["program_id", "occupancy_date"])
    if duplicated.any():
        if logger:
            logger.warning(
                "Duplicate program/date rows dropped",
                extra={"duplicates": int(duplicated.sum())},
            )
        df = df[~duplicated].reset_index(drop=True)

    return df


# =============================================================================
# Neighbourhood mapping
# =============================================================================

def load_neighbourhood_mapping(path: PathLike, logger=None) -> pd.DataFrame:
    """
    Load the manually compiled shelter location -> neighbourhood mapping.

    Exact duplicate rows are collapsed; a location mapped to two different
    neighbourhoods is an error.
    """
    df = pd.read_csv(path, dtype=str)
    df = normalise_columns(df)

    missing = {"location_id", "hood_158"} - set(df.columns)
    if missing:
        raise SchemaError(f"Neighbourhood mapping missing columns: {sorted(missing)}")

    if "neighbourhood_158" not in df.columns:
        df["neighbourhood_158"] = None

    df = ensure_int64(df, ["location_id"])
    df["hood_158"] = normalise_hood_code(df["hood_158"])
    df = df[["location_id", "hood_158", "neighbourhood_158"]].drop_duplicates()

    conflicts = df[df.duplicated(subset=["location_id"], keep=False)]
    if not conflicts.empty:
        ids = conflicts["location_id"].unique()[:5].tolist()
        raise SchemaError(f"Locations mapped to more than one neighbourhood: {ids}")

    validate_schema(df, MAPPING_SCHEMA, context="neighbourhood mapping")

    if logger:
        logger.info("Neighbourhood mapping loaded", extra={
            "locations": len(df),
            "neighbourhoods": int(df["hood_158"].nunique()),
        })

    return df.reset_index(drop=True)


# =============================================================================
# Major Crime Indicators
# =============================================================================

def load_crime(
    path: PathLike,
    date_formats: Optional[Sequence[str]] = None,
    excluded_hoods: Optional[Sequence[str]] = None,
    logger=None,
) -> pd.DataFrame:
    """
    Load Major Crime Indicator records.

    Rows without a neighbourhood code, or with an excluded code such as
    "NSA" (not specified area), cannot be joined and are dropped. So are
    rows with a blank MCI category; their count is logged as a warning.

    Returns:
        DataFrame with crime_date (normalised to midnight), hood_158, mci_category
    """
    if date_formats is None:
        date_formats = configured_formats("crime")
    if excluded_hoods is None:
        excluded_hoods = get_section("crime").get("excluded_hoods", ["NSA"])

    df = pd.read_csv(path, dtype=str, low_memory=False)
    df = normalise_columns(df).rename(columns=CRIME_COLUMN_ALIASES)

    missing = {"crime_date", "hood_158", "mci_category"} - set(df.columns)
    if missing:
        raise SchemaError(f"Crime data missing columns: {sorted(missing)}")

    n_raw = len(df)
    df["hood_158"] = normalise_hood_code(df["hood_158"])
    df["mci_category"] = df["mci_category"].str.strip().replace("", pd.NA)
    excluded = {str(h).upper() for h in excluded_hoods}
    has_hood = df["hood_158"].notna() & ~df["hood_158"].isin(excluded)
    has_category = df["mci_category"].notna()
    n_no_hood = int((~has_hood).sum())
    n_no_category = int((has_hood & ~has_category).sum())
    df = df.loc[has_hood & has_category, ["crime_date", "hood_158", "mci_category"]].copy()

    df["crime_date"] = parse_mixed_dates(df["crime_date"], date_formats)

    validate_schema(df, CRIME_SCHEMA, context="major crime indicators")

    if logger:
        logger.info("Crime data loaded", extra={
            "rows_raw": n_raw,
            "rows_kept": len(df),
            "rows_dropped_no_hood": n_no_hood,
            "rows_dropped_no_category": n_no_category,
        })
        if n_no_category:
            logger.warning(f"Dropped {n_no_category:,} crime rows with a blank MCI category")

    return df.reset_index(drop=True)


# =============================================================================
# Weather
# =============================================================================

def load_weather(
    path: PathLike,
    date_formats: Optional[Sequence[str]] = None,
    logger=None,
) -> pd.DataFrame:
    """
    Load daily weather observations.

    Returns:
        DataFrame keyed by occupancy_date with mean_temp and total_precip.
        Gaps are left as NA here; see features.impute_weather.
    """
    if date_formats is None:
        date_formats = configured_formats("weather")

    df = pd.read_csv(path, dtype=str)
    df = normalise_columns(df).rename(columns=WEATHER_COLUMN_ALIASES)

    missing = {"date", "mean_temp", "total_precip"} - set(df.columns)
    if missing:
        raise SchemaError(f"Weather data missing columns: {sorted(missing)}")

    df = df[["date", "mean_temp", "total_precip"]].copy()
    df["occupancy_date"] = parse_mixed_dates(df.pop("date"), date_formats)
    df["mean_temp"] = pd.to_numeric(df["mean_temp"], errors="coerce").astype("float64")
    df["total_precip"] = pd.to_numeric(df["total_precip"], errors="coerce").astype("float64")
    df = df.sort_values("occupancy_date").reset_index(drop=True)
    df = df[["occupancy_date", "mean_temp", "total_precip"]]

    validate_schema(df, WEATHER_SCHEMA, context="weather")

    if logger:
        logger.info("Weather data loaded", extra={
            "days": len(df),
            "missing_temp": int(df["mean_temp"].isna().sum()),
            "missing_precip": int(df["total_precip"].isna().sum()),
        })

    return df


# =============================================================================
# Monthly series (CPI, unemployment)
# =============================================================================

def load_monthly_series(
    path: PathLike,
    value_name: str,
    filters: Optional[Dict[str, str]] = None,
    date_column: str = "ref_date",
    value_column: str = "value",
) -> pd.DataFrame:
    """
    Load a monthly statistical series into (year, month, <value_name>).

    Args:
        path: CSV path
        value_name: Output name for the value column (e.g. "cpi")
        filters: Optional {column: value} equality filters applied after
                 column normalisation, to pick one series out of a release
                 that carries several (e.g. {"geo": "Toronto, Ontario"})
        date_column: Normalised name of the reference period column
        value_column: Normalised name of the value column

    Raises:
        SchemaError: If columns are missing or a month appears twice
    """
    df = pd.read_csv(path, dtype=str)
    df = normalise_columns(df)

    missing = {date_column, value_column} - set(df.columns)
    if missing:
        raise SchemaError(f"{Path(path).name}: missing columns {sorted(missing)}")

    for column, wanted in (filters or {}).items():
        df = df[df[column].astype(str).str.strip() == str(wanted)]

    year, month = parse_ref_month(df[date_column])
    out = pd.DataFrame({
        "year": year.values,
        "month": month.values,
        value_name: pd.to_numeric(df[value_column], errors="coerce").astype("float64").values,
    })
    out["year"] = out["year"].astype("Int64")
    out["month"] = out["month"].astype("Int64")

    validate_schema(out, MONTHLY_SERIES_SCHEMA, context=value_name)

    dup = out.duplicated(subset=["year", "month"])
    if dup.any():
        raise SchemaError(
            f"{value_name}: {int(dup.sum())} duplicate months; add a filter to select one series"
        )

    return out.sort_values(["year", "month"]).reset_index(drop=True)


def load_cpi(path: PathLike, filters: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """Load monthly CPI as (year, month, cpi)."""
    if filters is None:
        filters = get_section("monthly").get("cpi_filters")
    return load_monthly_series(path, "cpi", filters=filters)


def load_unemployment(path: PathLike, filters: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """Load monthly unemployment rate as (year, month, unemployment_rate)."""
    if filters is None:
        filters = get_section("monthly").get("unemployment_filters")
    return load_monthly_series(path, "unemployment_rate", filters=filters)


# =============================================================================
# Merged dataset (round trip through CSV)
# =============================================================================

def load_merged(path: PathLike) -> pd.DataFrame:
    """
    Read the merged CSV written by 01_build_merged_dataset.

    Restores the dtypes CSV loses: neighbourhood codes stay zero-padded
    strings, dates are datetimes, keys and the outcome are Int64.
    """
    df = pd.read_csv(
        path,
        dtype={"hood_158": str, "neighbourhood_158": str, "sector": str, "capacity_type": str},
        parse_dates=["occupancy_date"],
        low_memory=False,
    )
    df = ensure_int64(df, ["location_id", "program_id", "shelter_id", "year", "month", "availability_binary"])
    for col in ["hood_158", "neighbourhood_158", "sector", "capacity_type"]:
        if col in df.columns:
            df[col] = df[col].astype(object).where(df[col].notna(), None)
    return df


# =============================================================================
# Input discovery
# =============================================================================

def resolve_inputs(raw_dir: Path, config: Optional[dict] = None) -> Dict[str, object]:
    """
    Resolve configured input file names against the raw data directory.

    Returns:
        Dict with 'occupancy' (list of Paths) and one Path per other source
    """
    if config is None:
        config = _load_input_config()

    raw_dir = Path(raw_dir)
    occupancy: List[Path] = sorted(raw_dir.glob(config.get("occupancy_glob", "shelter_occupancy/*.csv")))
    return {
        "occupancy": occupancy,
        "neighbourhood_mapping": raw_dir / config.get("neighbourhood_mapping", "shelter_neighbourhoods.csv"),
        "crime": raw_dir / config.get("crime", "major_crime_indicators.csv"),
        "weather": raw_dir / config.get("weather", "weather_daily.csv"),
        "cpi": raw_dir / config.get("cpi", "cpi_monthly.csv"),
        "unemployment": raw_dir / config.get("unemployment", "unemployment_monthly.csv"),
    }
