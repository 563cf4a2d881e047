import numpy as np
import pandas as pd
import pytest

from rentpanel.exceptions import DataIntegrityError, DuplicateKeyError, MissingColumnError
from rentpanel.panel import PanelDataset


def test_index_is_sorted_multiindex(rent_frame):
    shuffled = rent_frame.sample(frac=1.0, random_state=1)
    panel = PanelDataset(shuffled, "city", "year")
    assert panel.index.names == ["city", "year"]
    assert panel.index.is_monotonic_increasing
    assert panel.nobs == len(rent_frame)
    assert panel.n_entities == 20
    assert panel.n_periods == 6


def test_duplicate_key_raises(tiny_frame):
    frame = pd.concat([tiny_frame, tiny_frame.iloc[[1]]], ignore_index=True)
    with pytest.raises(DuplicateKeyError) as info:
        PanelDataset(frame, "city", "year")
    assert info.value.keys == [("A", 2001)]
    assert isinstance(info.value, DataIntegrityError)


def test_missing_index_column_raises(tiny_frame):
    with pytest.raises(MissingColumnError) as info:
        PanelDataset(tiny_frame, "town", "year")
    assert info.value.columns == ["town"]


def test_balanced_and_unbalanced(rent_frame):
    assert PanelDataset(rent_frame, "city", "year").is_balanced
    unbalanced = PanelDataset(rent_frame.iloc[1:], "city", "year")
    assert not unbalanced.is_balanced
    assert unbalanced.period_counts.min() == 5


def test_select_keeps_index(rent_panel):
    view = rent_panel.select(["rent", "vacancy"])
    assert view.columns == ["rent", "vacancy"]
    assert view.index.equals(rent_panel.index)
    assert "income" in rent_panel.columns
    with pytest.raises(MissingColumnError):
        rent_panel.select(["rent", "nope"])


def test_df_is_a_copy(rent_panel):
    df = rent_panel.df
    df["rent"] = 0.0
    assert (rent_panel.df["rent"] > 0).all()


def test_within_transform_sums_to_zero_per_entity(rent_panel):
    within = rent_panel.within_transform(["log_rent", "vacancy"])
    sums = within.groupby(level=0).sum()
    np.testing.assert_allclose(sums.to_numpy(), 0.0, atol=1e-9)


def test_within_transform_unbalanced(rent_frame):
    panel = PanelDataset(rent_frame.drop(index=[0, 7, 8]), "city", "year")
    sums = panel.within_transform(["rent"]).groupby(level=0).sum()
    np.testing.assert_allclose(sums["rent"].to_numpy(), 0.0, atol=1e-6)


def test_entity_means(tiny_panel):
    means = tiny_panel.entity_means(["y", "x"])
    assert means.loc["A", "y"] == pytest.approx(1.5)
    assert means.loc["B", "x"] == pytest.approx(1.0)


def test_log_transform_returns_new_panel(rent_panel):
    logged = rent_panel.log_transform(["vacancy"])
    assert "log_vacancy" in logged.columns
    assert "log_vacancy" not in rent_panel.columns
    np.testing.assert_allclose(logged.df["log_vacancy"], np.log(rent_panel.df["vacancy"]))


def test_log_transform_rejects_non_positive(tiny_panel):
    with pytest.raises(DataIntegrityError):
        tiny_panel.log_transform(["x"])


def test_subsample_by_column_and_index_level(rent_panel):
    region = rent_panel.df["region"].iloc[0]
    sub = rent_panel.subsample("region", region)
    assert set(sub.df["region"]) == {region}
    first_year = rent_panel.subsample("year", 2010)
    assert first_year.nobs == rent_panel.n_entities
    with pytest.raises(DataIntegrityError):
        rent_panel.subsample("region", "Nowhere")


def test_from_indexed_round_trip(rent_panel):
    again = PanelDataset.from_indexed(rent_panel.df)
    assert again.entity_col == "city"
    assert again.time_col == "year"
    pd.testing.assert_frame_equal(again.df, rent_panel.df)


def test_dropna_drops_rows(tiny_frame):
    frame = tiny_frame.copy()
    frame.loc[0, "y"] = np.nan
    panel = PanelDataset(frame, "city", "year")
    assert panel.dropna(["y"]).nobs == 3
    assert panel.dropna(["x"]).nobs == 4


def test_text_time_column_becomes_ordered_codes(tiny_frame):
    frame = tiny_frame.assign(year=tiny_frame["year"].map({2000: "Y2000", 2001: "Y2001"}))
    panel = PanelDataset(frame, "city", "year")
    assert list(panel.time_labels) == ["Y2000", "Y2001"]
    assert list(panel.periods) == [0, 1]
    assert pd.api.types.is_integer_dtype(panel.index.get_level_values("year"))

    later = panel.subsample("year", "Y2001")
    assert later.nobs == 2
    assert list(later.time_labels) == ["Y2000", "Y2001"]
    np.testing.assert_allclose(later.df["y"].to_numpy(), [2.0, 4.0])


def test_categorical_time_column_keeps_category_order():
    seasons = pd.Categorical(
        ["spring", "summer", "autumn"] * 2, categories=["spring", "summer", "autumn"], ordered=True
    )
    frame = pd.DataFrame({"city": ["A"] * 3 + ["B"] * 3, "season": seasons, "y": range(6)})
    panel = PanelDataset(frame, "city", "season")
    assert list(panel.time_labels) == ["spring", "summer", "autumn"]
    assert panel.df.loc[("A", 2), "y"] == 2


def test_numeric_time_column_has_no_labels(rent_panel):
    assert rent_panel.time_labels is None
    assert rent_panel.select(["rent"]).time_labels is None
