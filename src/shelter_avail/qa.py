"""
Data-validation checks for the merged and cleaned shelter tables.

- No NA in required columns after cleaning
- availability_total >= 0 after cleaning
- Row counts preserved across joins
These are hard errors; the cleaning step is where invalid rows are dropped.
"""

from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd


class DataQualityError(Exception):
    """Raised when a data-validation check fails."""
    pass


# =============================================================================
# Assertions
# =============================================================================

def assert_no_missing(
    df: pd.DataFrame,
    columns: Iterable[str],
    context: str = "",
) -> None:
    """
    Assert that none of `columns` contain NA values.

    Raises:
        DataQualityError: Listing each offending column and its NA count
    """
    problems = {}
    for col in columns:
        if col not in df.columns:
            problems[col] = "missing column"
            continue
        n_na = int(df[col].isna().sum())
        if n_na:
            problems[col] = n_na

    if problems:
        msg = f"NA values in required columns: {problems}"
        if context:
            msg = f"{msg} ({context})"
        raise DataQualityError(msg)


def assert_non_negative(
    df: pd.DataFrame,
    columns: Iterable[str],
    context: str = "",
) -> None:
    """
    Assert that `columns` have no negative values (NA is ignored).

    Raises:
        DataQualityError: If any value is below zero
    """
    problems = {}
    for col in columns:
        n_neg = int((df[col] < 0).fillna(False).sum())
        if n_neg:
            problems[col] = n_neg

    if problems:
        msg = f"Negative values: {problems}"
        if context:
            msg = f"{msg} ({context})"
        raise DataQualityError(msg)


def assert_row_count_preserved(before: int, after: int, context: str = "") -> None:
    """Assert that a step kept the row count unchanged."""
    if before != after:
        msg = f"Row count changed from {before} to {after}"
        if context:
            msg = f"{msg} ({context})"
        raise DataQualityError(msg)


def assert_binary(df: pd.DataFrame, column: str, context: str = "") -> None:
    """Assert that `column` only holds 0/1."""
    values = set(pd.unique(df[column].dropna()))
    if not values <= {0, 1}:
        msg = f"Column {column} is not binary: {sorted(values)[:5]}"
        if context:
            msg = f"{msg} ({context})"
        raise DataQualityError(msg)


# =============================================================================
# Data Quality Summaries
# =============================================================================

def compute_na_rates(df: pd.DataFrame) -> dict[str, float]:
    """
    Compute NA rates for all columns in a DataFrame.

    Returns:
        Dictionary of column_name -> NA rate (0-1); empty frames give 0.0
    """
    if len(df) == 0:
        return {col: 0.0 for col in df.columns}
    return {col: float(rate) for col, rate in (df.isna().sum() / len(df)).items()}


def summarise_column(df: pd.DataFrame, column: str) -> dict:
    """
    Coverage and range summary for one column.

    Returns:
        Dictionary with n_total, n_valid, n_missing, coverage_rate, min, max, mean
    """
    values = df[column]
    valid = values.notna()
    has_values = bool(valid.any())
    return {
        "n_total": len(values),
        "n_valid": int(valid.sum()),
        "n_missing": int((~valid).sum()),
        "coverage_rate": float(valid.mean()) if len(values) else 0.0,
        "min": float(values.min()) if has_values else None,
        "max": float(values.max()) if has_values else None,
        "mean": float(values.mean()) if has_values else None,
    }


def describe_covariates(
    df: pd.DataFrame,
    columns: Iterable[str],
    group_col: Optional[str] = None,
) -> pd.DataFrame:
    """
    Descriptive statistics for model covariates.

    Args:
        df: Analysis table
        columns: Numeric columns to describe
        group_col: Optional grouping column (e.g. availability_binary)

    Returns:
        Long table with one row per (group, variable) and columns
        n, mean, std, min, median, max, skew
    """
    columns = list(columns)
    groups = [("all", df)] if group_col is None else [
        (key, frame) for key, frame in df.groupby(group_col)
    ]

    rows: List[Dict] = []
    for key, frame in groups:
        for col in columns:
            values = pd.to_numeric(frame[col], errors="coerce").dropna()
            rows.append({
                "group": key,
                "variable": col,
                "n": int(len(values)),
                "mean": float(values.mean()) if len(values) else np.nan,
                "std": float(values.std()) if len(values) > 1 else np.nan,
                "min": float(values.min()) if len(values) else np.nan,
                "median": float(values.median()) if len(values) else np.nan,
                "max": float(values.max()) if len(values) else np.nan,
                "skew": float(values.skew()) if len(values) > 2 else np.nan,
            })
    return pd.DataFrame(rows)
