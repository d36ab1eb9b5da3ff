"""
Tests for raw input loaders.

Coverage includes:
- Occupancy extracts with different date formats concatenate cleanly
- Neighbourhood codes are normalised to zero-padded strings
- "NSA" crime records and blank MCI categories are excluded
- Environment Canada weather headers are recognised
- Monthly series reject duplicate months
"""

import json

import pandas as pd
import pytest

from shelter_avail.loaders import (
    load_crime,
    load_merged,
    load_monthly_series,
    load_neighbourhood_mapping,
    load_shelter_occupancy,
    load_weather,
    normalise_columns,
    normalise_hood_code,
    resolve_inputs,
)
from shelter_avail.logging_utils import JSONLLogger
from shelter_avail.schemas import SchemaError


def test_normalise_columns():
    df = pd.DataFrame(columns=["_id", "OCCUPANCY_DATE", "Mean Temp (°C)", "Date/Time"])
    assert normalise_columns(df).columns.tolist() == ["id", "occupancy_date", "mean_temp_c", "date_time"]


def test_normalise_hood_code():
    values = pd.Series([79, "79", "079", "79.0", "nsa", "", None], dtype=object)
    out = normalise_hood_code(values).tolist()
    assert out[:5] == ["079", "079", "079", "079", "NSA"]
    assert pd.isna(out[5]) and pd.isna(out[6])


class TestOccupancy:

    def test_years_concatenate(self, raw_inputs):
        df = load_shelter_occupancy(raw_inputs["occupancy"])
        assert len(df) == 120 * 7
        assert df["occupancy_date"].min() == pd.Timestamp("2022-11-01")
        assert df["occupancy_date"].max() == pd.Timestamp("2023-02-28")
        assert str(df["location_id"].dtype) == "Int64"
        assert "id" not in df.columns

    def test_duplicate_program_days_dropped(self, raw_inputs, tmp_path):
        first = raw_inputs["occupancy"][0]
        copy = tmp_path / "copy.csv"
        copy.write_text(first.read_text())
        df = load_shelter_occupancy(raw_inputs["occupancy"] + [copy])
        assert len(df) == 120 * 7

    def test_no_files(self):
        with pytest.raises(FileNotFoundError):
            load_shelter_occupancy([])

    def test_missing_date_column(self, tmp_path):
        path = tmp_path / "bad.csv"
        pd.DataFrame({"PROGRAM_ID": [1]}).to_csv(path, index=False)
        with pytest.raises(SchemaError, match="OCCUPANCY_DATE"):
            load_shelter_occupancy([path])


class TestNeighbourhoodMapping:

    def test_codes_padded(self, raw_inputs):
        mapping = load_neighbourhood_mapping(raw_inputs["neighbourhood_mapping"])
        assert sorted(mapping["hood_158"].unique()) == ["001", "073", "075", "079"]
        assert len(mapping) == 5

    def test_conflicting_locations_raise(self, tmp_path):
        path = tmp_path / "map.csv"
        pd.DataFrame({"LOCATION_ID": [1, 1], "HOOD_158": [79, 73]}).to_csv(path, index=False)
        with pytest.raises(SchemaError, match="more than one neighbourhood"):
            load_neighbourhood_mapping(path)

    def test_exact_duplicates_collapse(self, tmp_path):
        path = tmp_path / "map.csv"
        pd.DataFrame({"LOCATION_ID": [1, 1], "HOOD_158": [79, 79]}).to_csv(path, index=False)
        assert len(load_neighbourhood_mapping(path)) == 1


class TestCrime:

    def test_nsa_excluded_and_dates_normalised(self, raw_inputs):
        crime = load_crime(raw_inputs["crime"], excluded_hoods=["NSA"])
        raw = pd.read_csv(raw_inputs["crime"])
        assert len(crime) == len(raw) - 120
        assert "NSA" not in set(crime["hood_158"])
        assert (crime["crime_date"] == crime["crime_date"].dt.normalize()).all()

    def test_blank_category_dropped_and_logged(self, tmp_path):
        path = tmp_path / "crime.csv"
        pd.DataFrame({
            "OCC_DATE": ["2023-01-01", "2023-01-01", "2023-01-02"],
            "HOOD_158": ["079", "079", "073"],
            "MCI_CATEGORY": ["Assault", None, "   "],
        }).to_csv(path, index=False)
        with JSONLLogger("loader_test", run_id="c", log_dir=tmp_path) as logger:
            crime = load_crime(path, date_formats=["%Y-%m-%d"], excluded_hoods=["NSA"], logger=logger)

        assert crime["mci_category"].tolist() == ["Assault"]
        records = [json.loads(x) for x in (tmp_path / "loader_test_c.jsonl").read_text().splitlines()]
        loaded = next(r for r in records if r["message"] == "Crime data loaded")
        assert loaded["extra"]["rows_dropped_no_category"] == 2
        assert any(r["level"] == "WARNING" and "blank MCI category" in r["message"] for r in records)

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "crime.csv"
        pd.DataFrame({"OCC_DATE": ["2023-01-01"]}).to_csv(path, index=False)
        with pytest.raises(SchemaError):
            load_crime(path)


class TestWeather:

    def test_headers_recognised_and_gaps_kept(self, raw_inputs):
        weather = load_weather(raw_inputs["weather"])
        assert weather.columns.tolist() == ["occupancy_date", "mean_temp", "total_precip"]
        assert len(weather) == 120
        assert weather["mean_temp"].isna().sum() == 3
        assert weather["total_precip"].isna().sum() == 2

    def test_duplicate_days_rejected(self, tmp_path):
        path = tmp_path / "weather.csv"
        pd.DataFrame({
            "Date/Time": ["2023-01-01", "2023-01-01"],
            "Mean Temp (°C)": [1.0, 2.0],
            "Total Precip (mm)": [0.0, 0.0],
        }).to_csv(path, index=False)
        with pytest.raises(SchemaError):
            load_weather(path)


class TestMonthlySeries:

    def test_filters_select_one_series(self, tmp_path):
        path = tmp_path / "cpi.csv"
        pd.DataFrame({
            "REF_DATE": ["2023-01", "2023-01", "2023-02", "2023-02"],
            "GEO": ["Toronto, Ontario", "Canada", "Toronto, Ontario", "Canada"],
            "VALUE": [159.7, 153.9, 160.4, 154.5],
        }).to_csv(path, index=False)

        with pytest.raises(SchemaError, match="duplicate months"):
            load_monthly_series(path, "cpi")

        out = load_monthly_series(path, "cpi", filters={"geo": "Toronto, Ontario"})
        assert out.columns.tolist() == ["year", "month", "cpi"]
        assert out["cpi"].tolist() == [159.7, 160.4]
        assert str(out["month"].dtype) == "Int64"


def test_resolve_inputs(raw_inputs):
    raw_dir = raw_inputs["crime"].parent
    resolved = resolve_inputs(raw_dir, {"occupancy_glob": "shelter_occupancy/*.csv"})
    assert resolved["occupancy"] == raw_inputs["occupancy"]
    assert resolved["cpi"] == raw_dir / "cpi_monthly.csv"


def test_load_merged_restores_dtypes(tmp_path):
    path = tmp_path / "merged.csv"
    pd.DataFrame({
        "occupancy_date": ["2023-01-01"],
        "location_id": [101],
        "program_id": [11],
        "hood_158": ["001"],
        "availability_binary": [1],
    }).to_csv(path, index=False)
    df = load_merged(path)
    assert df["hood_158"].iloc[0] == "001"
    assert pd.api.types.is_datetime64_any_dtype(df["occupancy_date"])
    assert str(df["availability_binary"].dtype) == "Int64"
