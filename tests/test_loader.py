import numpy as np
import pytest

from rentpanel.exceptions import DataIntegrityError, DuplicateKeyError, MissingColumnError
from rentpanel.loader import load_panel_csv


@pytest.fixture
def rent_csv(tmp_path, rent_frame):
    path = tmp_path / "rents.csv"
    rent_frame[["city", "year", "rent", "income", "vacancy"]].to_csv(path, index=False)
    return path


def test_load_panel_csv(rent_csv):
    panel = load_panel_csv(rent_csv, "city", "year")
    assert panel.nobs == 120
    assert panel.is_balanced
    assert panel.columns == ["rent", "income", "vacancy"]


def test_load_with_log_columns(rent_csv):
    panel = load_panel_csv(rent_csv, "city", "year", log_columns=["rent"])
    df = panel.df
    np.testing.assert_allclose(df["log_rent"], np.log(df["rent"]))


def test_load_restricts_columns(rent_csv):
    panel = load_panel_csv(rent_csv, "city", "year", columns=["rent"])
    assert panel.columns == ["rent"]


def test_missing_column(rent_csv):
    with pytest.raises(MissingColumnError):
        load_panel_csv(rent_csv, "city", "year", columns=["rent", "bedrooms"])
    with pytest.raises(MissingColumnError):
        load_panel_csv(rent_csv, "municipality", "year")


def test_years_are_numeric(tmp_path):
    path = tmp_path / "rents.csv"
    path.write_text('city;year;rent\nA;"2001";10\nA;"2002";11\nB;"2001";12\nB;"2002";13\n')
    panel = load_panel_csv(path, "city", "year", sep=";")
    assert panel.periods.tolist() == [2001, 2002]


def test_duplicate_rows_rejected(tmp_path):
    path = tmp_path / "rents.csv"
    path.write_text("city,year,rent\nA,2001,10\nA,2001,11\n")
    with pytest.raises(DuplicateKeyError):
        load_panel_csv(path, "city", "year")


def test_missing_entity_rejected(tmp_path):
    path = tmp_path / "rents.csv"
    path.write_text("city,year,rent\nA,2001,10\n,2002,11\n")
    with pytest.raises(DataIntegrityError):
        load_panel_csv(path, "city", "year")
