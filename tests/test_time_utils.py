"""
Tests for mixed-format date parsing and (year, month) keys.
"""

import pandas as pd
import pytest

from shelter_avail.time_utils import (
    add_season,
    add_year_month,
    configured_formats,
    parse_mixed_dates,
    parse_ref_month,
)


class TestParseMixedDates:

    def test_each_value_keeps_first_matching_format(self):
        values = pd.Series(["2023-01-05", "23-01-06", "01/07/2023", "2023-01-08T05:00:00"])
        parsed = parse_mixed_dates(values)
        assert parsed.tolist() == list(pd.to_datetime(
            ["2023-01-05", "2023-01-06", "2023-01-07", "2023-01-08"]
        ))

    def test_two_digit_year_is_not_read_as_year_23(self):
        parsed = parse_mixed_dates(pd.Series(["23-02-01"]), ["%Y-%m-%d", "%y-%m-%d"])
        assert parsed.iloc[0] == pd.Timestamp("2023-02-01")

    def test_time_of_day_dropped(self):
        parsed = parse_mixed_dates(pd.Series(["2022-11-01T17:45:00"]))
        assert parsed.iloc[0] == pd.Timestamp("2022-11-01")

    def test_keep_time_when_not_normalised(self):
        parsed = parse_mixed_dates(pd.Series(["2022-11-01T17:45:00"]), normalize=False)
        assert parsed.iloc[0].hour == 17

    def test_missing_values_stay_missing(self):
        parsed = parse_mixed_dates(pd.Series(["2022-11-01", None]))
        assert pd.isna(parsed.iloc[1])

    def test_unparseable_value_raises(self):
        with pytest.raises(ValueError, match="not a date"):
            parse_mixed_dates(pd.Series(["2022-11-01", "not a date"]))

    def test_datetimes_pass_through(self):
        values = pd.Series(pd.to_datetime(["2022-11-01 08:00"]))
        assert parse_mixed_dates(values).iloc[0] == pd.Timestamp("2022-11-01")


class TestMonthKeys:

    def test_add_year_month_int64(self):
        df = pd.DataFrame({"occupancy_date": pd.to_datetime(["2022-12-31", "2023-01-01"])})
        out = add_year_month(df)
        assert str(out["year"].dtype) == "Int64"
        assert out[["year", "month"]].values.tolist() == [[2022, 12], [2023, 1]]

    def test_parse_ref_month_formats(self):
        year, month = parse_ref_month(pd.Series(["2022-11", "2022-12-01", "Jan-23", "February 2023"]))
        assert year.tolist() == [2022, 2022, 2023, 2023]
        assert month.tolist() == [11, 12, 1, 2]

    def test_seasons(self):
        df = pd.DataFrame({"month": pd.array([12, 3, 7, 10], dtype="Int64")})
        assert add_season(df)["season"].tolist() == ["Winter", "Spring", "Summer", "Fall"]


def test_configured_formats_read_params():
    assert "%Y-%m-%dT%H:%M:%S" in configured_formats("crime")
    assert configured_formats("unknown_source")[0] == "%Y-%m-%d"
