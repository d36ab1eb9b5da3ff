"""
Table join utilities for the merged shelter dataset.

All joins onto the shelter occupancy table are left joins:
- every join uses validate="many_to_one" so a duplicated lookup key fails
  instead of multiplying shelter rows
- the occupancy row count is checked after every join
- match rates are collected and logged per join
- missing crime counts mean no crime was reported and become 0
"""

import re
from typing import Dict, Optional, Sequence, Tuple

import pandas as pd

from shelter_avail.config import get_section
from shelter_avail.schemas import validate_merge
from shelter_avail.time_utils import add_year_month


class JoinError(Exception):
    """Raised when a join changes the shelter row count or loses its keys."""
    pass


def _load_crime_config() -> dict:
    """Load crime category configuration from params.yml."""
    return get_section("crime")


def crime_column_name(category: str) -> str:
    """'Break and Enter' -> 'crime_break_and_enter'."""
    slug = re.sub(r"[^0-9a-z]+", "_", category.strip().lower()).strip("_")
    return f"crime_{slug}"


# =============================================================================
# Crime pivot
# =============================================================================

def pivot_crime_counts(
    crime: pd.DataFrame,
    categories: Optional[Sequence[str]] = None,
    logger=None,
) -> pd.DataFrame:
    """
    Count offences per (date, neighbourhood, category) and pivot wide.

    Args:
        crime: Output of loaders.load_crime
        categories: MCI categories to keep. Every category gets a column,
                    even one with no offences in the data.
        logger: Optional JSONLLogger

    Returns:
        DataFrame keyed by (occupancy_date, hood_158) with one
        crime_<category> count column per category plus crime_total
    """
    if categories is None:
        categories = _load_crime_config().get("categories", [])
    categories = list(categories)
    count_cols = [crime_column_name(c) for c in categories]

    known = crime["mci_category"].isin(categories)
    if logger and (~known).any():
        logger.warning("Crime records outside configured categories ignored", extra={
            "rows": int((~known).sum()),
            "categories": sorted(crime.loc[~known, "mci_category"].dropna().unique().tolist()),
        })
    crime = crime[known]

    if crime.empty:
        wide = pd.DataFrame(columns=["occupancy_date", "hood_158"] + count_cols)
        wide["occupancy_date"] = pd.to_datetime(wide["occupancy_date"])
        for col in count_cols:
            wide[col] = wide[col].astype("int64")
    else:
        wide = (
            crime.groupby(["crime_date", "hood_158", "mci_category"])
            .size()
            .unstack("mci_category", fill_value=0)
            .reindex(columns=categories, fill_value=0)
        )
        wide.columns = count_cols
        wide = wide.reset_index().rename(columns={"crime_date": "occupancy_date"})
        wide.columns.name = None

    wide["crime_total"] = wide[count_cols].sum(axis=1).astype("int64")
    return wide


# =============================================================================
# Joins
# =============================================================================

def _check_rows(before: int, df: pd.DataFrame, step: str) -> None:
    if len(df) != before:
        raise JoinError(f"Join '{step}' changed row count: {before} -> {len(df)}")


def attach_neighbourhoods(
    occupancy: pd.DataFrame,
    mapping: pd.DataFrame,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Left-join neighbourhood codes onto shelter rows by location_id.

    Shelters missing from the mapping keep hood_158 = NA; they are counted
    here and dropped later by the cleaning step.
    """
    before = len(occupancy)
    merged = validate_merge(
        occupancy.drop(columns=["hood_158", "neighbourhood_158"], errors="ignore"),
        mapping,
        on="location_id",
        how="left",
        validate="many_to_one",
        context="neighbourhood mapping",
    )
    _check_rows(before, merged, "neighbourhood mapping")

    unmatched = merged["hood_158"].isna()
    stats = {
        "rows": before,
        "matched": int((~unmatched).sum()),
        "unmatched": int(unmatched.sum()),
        "unmatched_locations": sorted(
            str(x) for x in merged.loc[unmatched, "location_id"].dropna().unique()
        )[:20],
    }
    return merged, stats


def merge_sources(
    occupancy: pd.DataFrame,
    mapping: pd.DataFrame,
    crime_wide: pd.DataFrame,
    weather: pd.DataFrame,
    cpi: pd.DataFrame,
    unemployment: pd.DataFrame,
    logger=None,
) -> Tuple[pd.DataFrame, Dict]:
    """
    Merge all sources onto the shelter occupancy table.

    Join keys:
        mapping       location_id
        crime         (occupancy_date, hood_158)
        weather       occupancy_date
        CPI           (year, month)
        unemployment  (year, month)

    Returns:
        Tuple of (merged DataFrame, join stats dict keyed by join name)

    Raises:
        ValueError: If a lookup table has duplicate keys
        JoinError: If any join changes the row count
    """
    stats: Dict[str, Dict] = {}
    n_rows = len(occupancy)

    df, stats["neighbourhood"] = attach_neighbourhoods(occupancy, mapping)

    # Crime
    count_cols = [c for c in crime_wide.columns if c.startswith("crime_")]
    df = validate_merge(
        df, crime_wide, on=["occupancy_date", "hood_158"],
        how="left", validate="many_to_one", context="crime",
    )
    _check_rows(n_rows, df, "crime")
    no_crime = df["crime_total"].isna()
    stats["crime"] = {
        "rows": n_rows,
        "matched": int((~no_crime).sum()),
        "filled_zero": int(no_crime.sum()),
    }
    df[count_cols] = df[count_cols].fillna(0).astype("int64")

    # Weather
    in_weather = df["occupancy_date"].isin(weather["occupancy_date"])
    df = validate_merge(
        df, weather, on="occupancy_date",
        how="left", validate="many_to_one", context="weather",
    )
    _check_rows(n_rows, df, "weather")
    stats["weather"] = {
        "rows": n_rows,
        "matched": int(in_weather.sum()),
        "unmatched": int((~in_weather).sum()),
    }

    # Monthly series
    df = add_year_month(df, "occupancy_date")
    for name, series, value_col in [
        ("cpi", cpi, "cpi"),
        ("unemployment", unemployment, "unemployment_rate"),
    ]:
        df = validate_merge(
            df, series, on=["year", "month"],
            how="left", validate="many_to_one", context=name,
        )
        _check_rows(n_rows, df, name)
        missing = df[value_col].isna()
        stats[name] = {
            "rows": n_rows,
            "matched": int((~missing).sum()),
            "unmatched": int(missing.sum()),
        }

    if logger:
        log_join_stats(stats, logger)

    return df, stats


def log_join_stats(stats: Dict, logger=None) -> None:
    """
    Log join statistics through a JSONLLogger, or print them.

    Args:
        stats: Join stats dict from merge_sources
        logger: Optional logger instance
    """
    if logger is not None:
        logger.log_join_stats(stats)
        for name, s in stats.items():
            rate = s["matched"] / s["rows"] if s["rows"] else 0.0
            logger.info(f"Join {name}: {s['matched']}/{s['rows']} matched ({rate:.1%})")
    else:
        print("Join Statistics:")
        for name, s in stats.items():
            print(f"  {name}: {s['matched']}/{s['rows']} matched")

