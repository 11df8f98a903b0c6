#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Ensure we can import from src without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from covgrid.covariates import validate as v
from covgrid.covariates.errors import InputShapeError


def test_static_mask_marks_missing_and_labelled_years():
    years = pd.Series([2001, None, "static", " Static ", 2002], dtype=object)
    assert v.static_mask(years).tolist() == [False, True, True, True, False]


def test_static_mask_float_nan():
    years = pd.Series([2001.0, np.nan])
    assert v.static_mask(years).tolist() == [False, True]


def test_check_covariate_data_returns_covariates_in_order():
    df = pd.DataFrame({"Lat": [1.0], "temp": [3.0], "Lon": [2.0], "Year": [2001], "depth": [5.0]})
    assert v.check_covariate_data(df) == ["temp", "depth"]


def test_check_covariate_data_names_missing_columns():
    df = pd.DataFrame({"Lat": [1.0], "Lon": [2.0], "depth": [5.0]})
    with pytest.raises(InputShapeError, match="Year"):
        v.check_covariate_data(df)


def test_check_covariate_data_rejects_non_frames_and_empty():
    with pytest.raises(InputShapeError):
        v.check_covariate_data({"Lat": [1.0]})
    with pytest.raises(InputShapeError):
        v.check_covariate_data(pd.DataFrame(columns=["Lat", "Lon", "Year", "depth"]))


def test_check_covariate_data_needs_a_covariate():
    df = pd.DataFrame({"Lat": [1.0], "Lon": [2.0], "Year": [2001]})
    with pytest.raises(InputShapeError):
        v.check_covariate_data(df)


def test_check_covariate_data_rejects_fractional_years():
    df = pd.DataFrame({"Lat": [1.0], "Lon": [2.0], "Year": [2001.5], "depth": [5.0]})
    with pytest.raises(InputShapeError):
        v.check_covariate_data(df)


def test_check_covariate_data_rejects_missing_coords():
    df = pd.DataFrame({"Lat": [1.0, np.nan], "Lon": [2.0, 3.0], "Year": [2001, 2001], "depth": [5.0, 6.0]})
    with pytest.raises(InputShapeError, match="Lat/Lon"):
        v.check_covariate_data(df)


def test_coerce_sample_locations_resets_index_and_casts_year():
    df = pd.DataFrame({"Year": [2001.0, 2002.0], "Lat": [1, 2], "Lon": [3, 4], "extra": ["a", "b"]}, index=[10, 11])
    out = v.coerce_sample_locations(df)
    assert list(out.columns) == ["Lat", "Lon", "Year"]
    assert out.index.tolist() == [0, 1]
    assert out["Year"].dtype == np.int64
    assert out["Year"].tolist() == [2001, 2002]
    # input untouched
    assert df.index.tolist() == [10, 11]


def test_coerce_sample_locations_rejects_missing_year():
    df = pd.DataFrame({"Lat": [1.0, 2.0], "Lon": [3.0, 4.0], "Year": [2001, None]})
    with pytest.raises(InputShapeError, match="Year"):
        v.coerce_sample_locations(df)


def test_coerce_grid_cells_from_array():
    out = v.coerce_grid_cells(np.array([[10.0, 20.0], [11.0, 21.0]]))
    assert out.to_dict(orient="list") == {"Lat": [10.0, 11.0], "Lon": [20.0, 21.0]}


def test_coerce_grid_cells_rejects_bad_shapes():
    with pytest.raises(InputShapeError):
        v.coerce_grid_cells(np.zeros((3, 3)))
    with pytest.raises(InputShapeError):
        v.coerce_grid_cells(pd.DataFrame(columns=["Lat", "Lon"]))
    with pytest.raises(InputShapeError):
        v.coerce_grid_cells(pd.DataFrame({"x": [1.0], "y": [2.0]}))


def test_coerce_grid_cells_from_geodataframe_centroids():
    gpd = pytest.importorskip("geopandas")
    gdf = gpd.GeoDataFrame(
        {"cell_id": [1, 2]},
        geometry=gpd.points_from_xy(x=[20.0, 21.0], y=[10.0, 11.0]),
    )
    out = v.coerce_grid_cells(gdf)
    assert out["Lat"].tolist() == [10.0, 11.0]
    assert out["Lon"].tolist() == [20.0, 21.0]
