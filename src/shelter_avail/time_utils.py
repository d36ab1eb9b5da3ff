"""
Date utilities for joining daily and monthly sources.

The yearly shelter occupancy extracts do not agree on a date format
(ISO dates in some years, two-digit years or US month/day in others), so all
date parsing goes through `parse_mixed_dates` with an explicit format list.
Monthly series (CPI, unemployment) are keyed by integer (year, month).
"""

from typing import List, Optional, Sequence, Tuple

import pandas as pd

from shelter_avail.config import get_section


DEFAULT_DATE_FORMATS = ["%Y-%m-%d", "%y-%m-%d", "%m/%d/%Y", "%Y-%m-%dT%H:%M:%S"]

# A "23-01-05" matched by %Y would land in year 23
MIN_YEAR = 1900

SEASONS = {
    12: "Winter", 1: "Winter", 2: "Winter",
    3: "Spring", 4: "Spring", 5: "Spring",
    6: "Summer", 7: "Summer", 8: "Summer",
    9: "Fall", 10: "Fall", 11: "Fall",
}


def _load_date_config() -> dict:
    """Load date format configuration from params.yml."""
    return get_section("dates")


def parse_mixed_dates(
    values: pd.Series,
    formats: Optional[Sequence[str]] = None,
    normalize: bool = True,
) -> pd.Series:
    """
    Parse a Series of date strings that may use several formats.

    Formats are tried in order; each value keeps the first format that parses
    it. Values that are already datetimes pass through.

    Args:
        values: Series of date strings (or datetimes)
        formats: strptime formats to try, in priority order
        normalize: If True, drop the time-of-day component

    Returns:
        datetime64 Series aligned with `values`

    Raises:
        ValueError: If any non-null value matches none of the formats
    """
    if formats is None:
        formats = DEFAULT_DATE_FORMATS

    if pd.api.types.is_datetime64_any_dtype(values):
        parsed = values.copy()
    else:
        text = values.astype("string").str.strip()
        parsed = pd.Series(pd.NaT, index=values.index, dtype="datetime64[ns]")
        for fmt in formats:
            pending = parsed.isna() & text.notna()
            if not pending.any():
                break
            attempt = pd.to_datetime(text[pending], format=fmt, errors="coerce")
            attempt = attempt.where(attempt.dt.year >= MIN_YEAR)
            parsed.loc[pending] = attempt

        unparsed = parsed.isna() & text.notna() & (text != "")
        if unparsed.any():
            samples = text[unparsed].unique()[:5].tolist()
            raise ValueError(
                f"{int(unparsed.sum())} dates matched none of {list(formats)}: {samples}"
            )

    if normalize:
        parsed = parsed.dt.normalize()
    return parsed


def add_year_month(df: pd.DataFrame, date_col: str = "occupancy_date") -> pd.DataFrame:
    """Add integer `year` and `month` columns derived from a datetime column."""
    df = df.copy()
    df["year"] = df[date_col].dt.year.astype("Int64")
    df["month"] = df[date_col].dt.month.astype("Int64")
    return df


def parse_ref_month(values: pd.Series) -> Tuple[pd.Series, pd.Series]:
    """
    Split monthly reference periods into (year, month).

    Accepts "YYYY-MM", "YYYY-MM-DD" and "Mon-YY" (e.g. "Jan-23"), the formats
    used by the monthly statistical releases.

    Returns:
        Tuple of Int64 Series (year, month)

    Raises:
        ValueError: If a value matches none of the formats
    """
    parsed = parse_mixed_dates(values, formats=["%Y-%m", "%Y-%m-%d", "%b-%y", "%B %Y"])
    return parsed.dt.year.astype("Int64"), parsed.dt.month.astype("Int64")


def add_season(df: pd.DataFrame, month_col: str = "month") -> pd.DataFrame:
    """Add a calendar `season` label (Winter = Dec-Feb)."""
    df = df.copy()
    df["season"] = df[month_col].astype(int).map(SEASONS)
    return df


def configured_formats(source: str) -> List[str]:
    """Date formats configured for one source ('occupancy', 'crime', 'weather')."""
    config = _load_date_config()
    return config.get(f"{source}_formats", DEFAULT_DATE_FORMATS)
