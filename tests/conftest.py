"""
Shared fixtures: small synthetic versions of every raw input.

The synthetic city has four neighbourhoods, seven shelter programs (one at a
location missing from the neighbourhood mapping) and 120 days spanning two
yearly occupancy extracts that use different date formats.
"""

import numpy as np
import pandas as pd
import pytest

from shelter_avail.config import load_params


HOODS = {
    "079": "University",
    "073": "Moss Park",
    "075": "Church-Wellesley",
    "001": "West Humber-Clairville",
}

# program_id, location_id, sector, bed-based?, capacity
PROGRAMS = [
    (11, 101, "Men", True, 40),
    (12, 102, "Women", True, 30),
    (13, 103, "Families", False, 20),
    (14, 104, "Mixed Adult", True, 50),
    (15, 104, "Youth", True, 25),
    (16, 105, "Men", False, 35),
    (17, 999, "Women", True, 15),  # location not in mapping
]

LOCATION_HOODS = {101: "079", 102: "073", 103: "075", 104: "073", 105: "001"}

MCI_CATEGORIES = ["Assault", "Auto Theft", "Break and Enter", "Robbery", "Theft Over"]

DATES = pd.date_range("2022-11-01", "2023-02-28", freq="D")


def _occupancy_frame(rng: np.random.Generator) -> pd.DataFrame:
    rows = []
    for date in DATES:
        for program_id, location_id, sector, bed_based, capacity in PROGRAMS:
            free = int(rng.choice([-1, 0, 0, 0, 1, 2, 4], p=[0.03, 0.27, 0.15, 0.15, 0.2, 0.1, 0.1]))
            occupied = capacity - free
            rows.append({
                "_id": len(rows) + 1,
                "OCCUPANCY_DATE": date,
                "ORGANIZATION_NAME": "Synthetic Shelters Inc.",
                "LOCATION_ID": location_id,
                "LOCATION_NAME": f"Site {location_id}",
                "PROGRAM_ID": program_id,
                "PROGRAM_NAME": f"Program {program_id}",
                "SECTOR": sector,
                "CAPACITY_TYPE": "Bed Based Capacity" if bed_based else "Room Based Capacity",
                "CAPACITY_ACTUAL_BED": capacity if bed_based else np.nan,
                "OCCUPIED_BEDS": occupied if bed_based else np.nan,
                "CAPACITY_ACTUAL_ROOM": np.nan if bed_based else capacity,
                "OCCUPIED_ROOMS": np.nan if bed_based else occupied,
            })
    return pd.DataFrame(rows)


@pytest.fixture
def raw_inputs(tmp_path):
    """Write synthetic raw CSVs and return paths shaped like resolve_inputs()."""
    rng = np.random.default_rng(42)
    raw = tmp_path / "raw"
    occ_dir = raw / "shelter_occupancy"
    occ_dir.mkdir(parents=True)

    occupancy = _occupancy_frame(rng)
    is_2022 = occupancy["OCCUPANCY_DATE"].dt.year == 2022
    occ_2022 = occupancy[is_2022].copy()
    occ_2022["OCCUPANCY_DATE"] = occ_2022["OCCUPANCY_DATE"].dt.strftime("%Y-%m-%d")
    occ_2023 = occupancy[~is_2022].copy()
    occ_2023["OCCUPANCY_DATE"] = occ_2023["OCCUPANCY_DATE"].dt.strftime("%y-%m-%d")
    occ_2022.to_csv(occ_dir / "daily_shelter_occupancy_2022.csv", index=False)
    occ_2023.to_csv(occ_dir / "daily_shelter_occupancy_2023.csv", index=False)

    mapping = pd.DataFrame({
        "LOCATION_ID": list(LOCATION_HOODS.keys()),
        "HOOD_158": [int(h) for h in LOCATION_HOODS.values()],  # padding lost, as in spreadsheets
        "NEIGHBOURHOOD_158": [HOODS[h] for h in LOCATION_HOODS.values()],
    })
    mapping.to_csv(raw / "shelter_neighbourhoods.csv", index=False)

    crime_rows = []
    for date in DATES:
        for hood in HOODS:
            for _ in range(int(rng.poisson(2.0))):
                crime_rows.append({
                    "OCC_DATE": date.strftime("%Y-%m-%d") + "T05:00:00",
                    "HOOD_158": hood,
                    "NEIGHBOURHOOD_158": HOODS[hood],
                    "MCI_CATEGORY": str(rng.choice(MCI_CATEGORIES)),
                })
        crime_rows.append({
            "OCC_DATE": date.strftime("%Y-%m-%d") + "T05:00:00",
            "HOOD_158": "NSA",
            "NEIGHBOURHOOD_158": "NSA",
            "MCI_CATEGORY": "Assault",
        })
    pd.DataFrame(crime_rows).to_csv(raw / "major_crime_indicators.csv", index=False)

    weather = pd.DataFrame({
        "Date/Time": DATES.strftime("%Y-%m-%d"),
        "Mean Temp (°C)": np.round(rng.normal(-2, 6, len(DATES)), 1),
        "Total Precip (mm)": np.round(rng.exponential(1.5, len(DATES)), 1),
    })
    weather.loc[[5, 6, 40], "Mean Temp (°C)"] = np.nan
    weather.loc[[10, 70], "Total Precip (mm)"] = np.nan
    weather.to_csv(raw / "weather_daily.csv", index=False)

    months = ["2022-11", "2022-12", "2023-01", "2023-02"]
    pd.DataFrame({
        "REF_DATE": months,
        "GEO": "Toronto, Ontario",
        "VALUE": [158.3, 158.9, 159.7, 160.4],
    }).to_csv(raw / "cpi_monthly.csv", index=False)
    pd.DataFrame({
        "REF_DATE": months,
        "GEO": "Toronto, Ontario",
        "VALUE": [6.4, 6.1, 6.6, 6.9],
    }).to_csv(raw / "unemployment_monthly.csv", index=False)

    return {
        "occupancy": sorted(occ_dir.glob("*.csv")),
        "neighbourhood_mapping": raw / "shelter_neighbourhoods.csv",
        "crime": raw / "major_crime_indicators.csv",
        "weather": raw / "weather_daily.csv",
        "cpi": raw / "cpi_monthly.csv",
        "unemployment": raw / "unemployment_monthly.csv",
    }


@pytest.fixture
def params():
    """Project params.yml."""
    return load_params()


@pytest.fixture
def logistic_frame():
    """Synthetic data with a known logistic relationship."""
    rng = np.random.default_rng(7)
    n = 600
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    group = rng.choice(["a", "b", "c"], size=n)
    linear = 0.3 + 1.2 * x1 - 0.8 * x2 + np.where(group == "b", 0.5, 0.0)
    prob = 1.0 / (1.0 + np.exp(-linear))
    y = (rng.uniform(size=n) < prob).astype(int)
    return pd.DataFrame({"y": y, "x1": x1, "x2": x2, "group": group})
