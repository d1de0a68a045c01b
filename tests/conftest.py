import matplotlib
import numpy as np
import pandas as pd
import pytest

matplotlib.use("Agg")

BOROUGHS = ["BRONX", "BROOKLYN", "MANHATTAN", "QUEENS", "STATEN ISLAND"]


def make_raw_incidents(n: int = 400, seed: int = 7) -> pd.DataFrame:
    """Raw NYPD-style export rows, as strings, with gaps and malformed codes."""
    rng = np.random.default_rng(seed)
    dates = pd.Timestamp("2021-01-03") + pd.to_timedelta(rng.integers(0, 365, n), unit="D")
    hours = rng.integers(0, 24, n)
    minutes = rng.integers(0, 60, n)
    murdered = rng.random(n) < 0.25
    return pd.DataFrame(
        {
            "INCIDENT_KEY": np.arange(n) + 100_000,
            "OCCUR_DATE": dates.strftime("%m/%d/%Y"),
            "OCCUR_TIME": [f"{h:02d}:{m:02d}:00" for h, m in zip(hours, minutes)],
            "BORO": rng.choice(BOROUGHS, n),
            "PRECINCT": rng.integers(1, 120, n),
            "JURISDICTION_CODE": 0,
            "LOCATION_DESC": None,
            "STATISTICAL_MURDER_FLAG": np.where(murdered, "true", "false"),
            "PERP_AGE_GROUP": rng.choice(
                ["<18", "18-24", "25-44", "45-64", None, "1020", "224"],
                n,
                p=[0.15, 0.3, 0.3, 0.1, 0.11, 0.02, 0.02],
            ),
            "PERP_SEX": rng.choice(["M", "F", None], n, p=[0.7, 0.1, 0.2]),
            "PERP_RACE": rng.choice(["BLACK", "WHITE HISPANIC", "BLACK HISPANIC", "WHITE", None], n),
            "VIC_AGE_GROUP": rng.choice(["18-24", "25-44"], n),
            "VIC_SEX": rng.choice(["M", "F"], n),
            "VIC_RACE": rng.choice(["BLACK", "WHITE"], n),
            "X_COORD_CD": rng.integers(980_000, 1_050_000, n),
            "Y_COORD_CD": rng.integers(150_000, 260_000, n),
            "Latitude": rng.uniform(40.5, 40.9, n),
            "Longitude": rng.uniform(-74.2, -73.7, n),
            "Lon_Lat": "POINT (-73.9 40.7)",
        }
    )


def wide_series(rows, dates):
    """Build a JHU-style wide table from (province, country, values) rows."""
    records = []
    for province, country, values in rows:
        record = {"Province/State": province, "Country/Region": country, "Lat": 1.0, "Long": 2.0}
        record.update(dict(zip(dates, values)))
        records.append(record)
    return pd.DataFrame(records, columns=["Province/State", "Country/Region", "Lat", "Long", *dates])


@pytest.fixture
def raw_incidents() -> pd.DataFrame:
    return make_raw_incidents()
