"""
Schema validation for input tables and canonical outputs.

- Every loaded source and every written table is validated (columns, dtypes,
  NA rules, value ranges) so schema drift in a yearly extract fails loudly.
- Keys and dtypes are frozen: location_id is pandas nullable Int64,
  hood_158 is a zero-padded 3-character string, year/month are Int64.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Union

import pandas as pd


# =============================================================================
# Schema Definition
# =============================================================================

@dataclass
class ColumnSpec:
    """Specification for a single column."""
    name: str
    dtype: Optional[str] = None  # "Int64", "float64", "numeric", "datetime", "string"
    nullable: bool = True
    unique: bool = False
    allowed_values: Optional[Set[Any]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None


@dataclass
class Schema:
    """Schema specification for a DataFrame."""
    name: str
    columns: List[ColumnSpec]
    required_columns: List[str] = field(default_factory=list)
    min_rows: int = 0

    def __post_init__(self):
        if not self.required_columns:
            self.required_columns = [c.name for c in self.columns if not c.nullable]


class SchemaError(Exception):
    """Raised when schema validation fails."""
    pass


# =============================================================================
# Predefined Schemas
# =============================================================================

SHELTER_OCCUPANCY_SCHEMA = Schema(
    name="shelter_occupancy",
    columns=[
        ColumnSpec("occupancy_date", dtype="datetime", nullable=False),
        ColumnSpec("location_id", dtype="Int64", nullable=True),
        ColumnSpec("program_id", dtype="Int64", nullable=False),
        ColumnSpec("sector", dtype="string", nullable=True),
        ColumnSpec("capacity_type", dtype="string", nullable=True),
        ColumnSpec("capacity_actual_bed", dtype="numeric", nullable=True),
        ColumnSpec("occupied_beds", dtype="numeric", nullable=True),
        ColumnSpec("capacity_actual_room", dtype="numeric", nullable=True),
        ColumnSpec("occupied_rooms", dtype="numeric", nullable=True),
    ],
    min_rows=1,
)

MAPPING_SCHEMA = Schema(
    name="shelter_neighbourhoods",
    columns=[
        ColumnSpec("location_id", dtype="Int64", nullable=False, unique=True),
        ColumnSpec("hood_158", dtype="string", nullable=False),
        ColumnSpec("neighbourhood_158", dtype="string", nullable=True),
    ],
    min_rows=1,
)

CRIME_SCHEMA = Schema(
    name="major_crime_indicators",
    columns=[
        ColumnSpec("crime_date", dtype="datetime", nullable=False),
        ColumnSpec("hood_158", dtype="string", nullable=False),
        ColumnSpec("mci_category", dtype="string", nullable=False),
    ],
)

WEATHER_SCHEMA = Schema(
    name="weather_daily",
    columns=[
        ColumnSpec("occupancy_date", dtype="datetime", nullable=False, unique=True),
        ColumnSpec("mean_temp", dtype="float64", nullable=True, min_value=-60, max_value=60),
        ColumnSpec("total_precip", dtype="float64", nullable=True, min_value=0),
    ],
    min_rows=1,
)

MONTHLY_SERIES_SCHEMA = Schema(
    name="monthly_series",
    columns=[
        ColumnSpec("year", dtype="Int64", nullable=False),
        ColumnSpec("month", dtype="Int64", nullable=False, min_value=1, max_value=12),
    ],
    min_rows=1,
)

MERGED_SCHEMA = Schema(
    name="shelter_merged",
    columns=[
        ColumnSpec("occupancy_date", dtype="datetime", nullable=False),
        ColumnSpec("program_id", dtype="Int64", nullable=False),
        ColumnSpec("year", dtype="Int64", nullable=False),
        ColumnSpec("month", dtype="Int64", nullable=False, min_value=1, max_value=12),
        ColumnSpec("capacity_total", dtype="numeric", nullable=False, min_value=0),
        ColumnSpec("occupied_total", dtype="numeric", nullable=False, min_value=0),
        ColumnSpec("availability_total", dtype="numeric", nullable=False),
        ColumnSpec("availability_binary", dtype="Int64", nullable=False, allowed_values={0, 1}),
        ColumnSpec("crime_total", dtype="numeric", nullable=False, min_value=0),
    ],
    min_rows=1,
)

# Post-cleaning table handed to the model
ANALYSIS_SCHEMA = Schema(
    name="analysis",
    columns=[
        ColumnSpec("hood_158", dtype="string", nullable=False),
        ColumnSpec("sector", dtype="string", nullable=False),
        ColumnSpec("capacity_total", dtype="numeric", nullable=False, min_value=0),
        ColumnSpec("availability_total", dtype="numeric", nullable=False, min_value=0),
        ColumnSpec("availability_binary", dtype="Int64", nullable=False, allowed_values={0, 1}),
        ColumnSpec("availability_rate", dtype="float64", nullable=False, min_value=0, max_value=1),
        ColumnSpec("mean_temp", dtype="float64", nullable=False),
        ColumnSpec("total_precip", dtype="float64", nullable=False, min_value=0),
        ColumnSpec("cpi", dtype="float64", nullable=False, min_value=0),
        ColumnSpec("unemployment_rate", dtype="float64", nullable=False, min_value=0, max_value=100),
    ],
    min_rows=1,
)


# =============================================================================
# Validation
# =============================================================================

_DTYPE_CHECKS: Dict[str, Callable[[pd.Series], bool]] = {
    "Int64": pd.api.types.is_integer_dtype,
    "float64": pd.api.types.is_float_dtype,
    "numeric": lambda s: pd.api.types.is_numeric_dtype(s) and not pd.api.types.is_bool_dtype(s),
    "datetime": pd.api.types.is_datetime64_any_dtype,
    # Raw CSV text arrives as object; pandas 3 infers the str dtype
    "string": lambda s: pd.api.types.is_string_dtype(s) or pd.api.types.is_object_dtype(s),
}


def validate_column(df: pd.DataFrame, spec: ColumnSpec) -> List[str]:
    """
    Check one column against its spec and return the problems found.

    A dtype mismatch is reported alone: the value checks would compare
    strings with numbers.
    """
    if spec.name not in df.columns:
        return [f"Missing column: {spec.name}"]

    col = df[spec.name]
    if spec.dtype is not None:
        if spec.dtype not in _DTYPE_CHECKS:
            raise ValueError(f"Unknown dtype in schema: {spec.dtype}")
        if not _DTYPE_CHECKS[spec.dtype](col):
            return [f"Column {spec.name}: expected {spec.dtype}, got {col.dtype}"]

    present = col.dropna()
    problems = []
    if not spec.nullable and len(present) < len(col):
        problems.append(f"{len(col) - len(present)} NA values not allowed")
    if spec.unique and present.duplicated().any():
        problems.append(f"{int(present.duplicated().sum())} duplicate values not allowed")
    if spec.allowed_values is not None:
        bad = present[~present.isin(spec.allowed_values)]
        if len(bad):
            problems.append(f"invalid values {list(bad.unique()[:5])}")
    if spec.min_value is not None and (present < spec.min_value).any():
        problems.append(f"{int((present < spec.min_value).sum())} values below min {spec.min_value}")
    if spec.max_value is not None and (present > spec.max_value).any():
        problems.append(f"{int((present > spec.max_value).sum())} values above max {spec.max_value}")

    return [f"Column {spec.name}: {p}" for p in problems]


def validate_schema(
    df: pd.DataFrame,
    schema: Schema,
    context: str = "",
    raise_on_error: bool = True,
) -> List[str]:
    """
    Validate a table against `schema`.

    Returns the list of problems. With raise_on_error (the default) a
    non-empty list raises SchemaError naming the schema instead.
    """
    ctx = f" ({context})" if context else ""
    errors = []

    if len(df) < schema.min_rows:
        errors.append(f"Expected at least {schema.min_rows} rows, got {len(df)}{ctx}")

    missing = sorted(set(schema.required_columns) - set(df.columns))
    if missing:
        errors.append(f"Missing required columns: {missing}{ctx}")

    for spec in schema.columns:
        if spec.name not in missing:
            errors.extend(validate_column(df, spec))

    if errors and raise_on_error:
        raise SchemaError(f"Schema validation failed for '{schema.name}':\n" + "\n".join(errors))
    return errors


def ensure_int64(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """
    Copy of `df` with the listed key columns cast to nullable Int64.

    "12.0" style keys from float round-trips are accepted; a genuine
    fraction makes the cast raise. Absent columns are skipped.
    """
    df = df.copy()
    for col in [c for c in columns if c in df.columns]:
        df[col] = pd.to_numeric(df[col], errors="coerce").astype("Int64")
    return df


def validate_merge(
    left: pd.DataFrame,
    right: pd.DataFrame,
    on: Union[str, List[str]],
    how: str = "left",
    validate: str = "many_to_one",
    context: str = "",
) -> pd.DataFrame:
    """
    pd.merge with a cardinality check.

    Lookup tables are joined many_to_one so a duplicated key on the right
    cannot multiply shelter rows; a violation raises ValueError tagged with
    `context`.
    """
    try:
        return pd.merge(left, right, on=on, how=how, validate=validate)
    except pd.errors.MergeError as e:
        raise ValueError(f"Merge validation failed ({context}): {e}") from e


# =============================================================================
# Registry
# =============================================================================

SCHEMAS: Dict[str, Schema] = {
    s.name: s
    for s in [
        SHELTER_OCCUPANCY_SCHEMA,
        MAPPING_SCHEMA,
        CRIME_SCHEMA,
        WEATHER_SCHEMA,
        MONTHLY_SERIES_SCHEMA,
        MERGED_SCHEMA,
        ANALYSIS_SCHEMA,
    ]
}


def get_schema(name: str) -> Schema:
    try:
        return SCHEMAS[name]
    except KeyError:
        raise KeyError(f"Unknown schema: {name}. Available: {sorted(SCHEMAS)}") from None


def register_schema(schema: Schema) -> None:
    SCHEMAS[schema.name] = schema
