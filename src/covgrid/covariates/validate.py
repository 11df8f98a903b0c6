#!/usr/bin/env python3
"""covgrid.covariates.validate

Input checks and coercion for covariate resolution.

Everything that enters make_covariates() passes through here first, so the
rest of the pipeline can assume:
- covariate_data has Lat, Lon, Year and at least one covariate column
- sample locations carry an integer Year and finite coordinates
- grid cells are a plain (Lat, Lon) frame, whatever form they arrived in

Nothing in this module mutates its inputs; coercions return fresh frames.
"""

from __future__ import annotations

from typing import Any, List

import numpy as np
import pandas as pd

from covgrid.covariates.errors import InputShapeError


REQUIRED_COLUMNS = ("Lat", "Lon", "Year")
COORD_COLUMNS = ["Lat", "Lon"]

# Year values that mark a record as valid for every year
STATIC_MARKER = "static"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def static_mask(years: pd.Series) -> np.ndarray:
    """Boolean mask of static records (Year missing or the string 'static')."""
    missing = years.isna().to_numpy()
    labelled = years.astype(str).str.strip().str.lower().eq(STATIC_MARKER).to_numpy()
    return missing | labelled


def _require_frame(obj: Any, name: str) -> pd.DataFrame:
    if not isinstance(obj, pd.DataFrame):
        raise InputShapeError(f"Please ensure that `{name}` is a data frame (got {type(obj).__name__})")
    if obj.empty:
        raise InputShapeError(f"`{name}` has zero rows")
    return obj


def _check_coords(df: pd.DataFrame, name: str) -> pd.DataFrame:
    """Return Lat/Lon as a float frame, rejecting non-numeric or non-finite values."""
    try:
        coords = df[COORD_COLUMNS].astype(float)
    except (TypeError, ValueError) as e:
        raise InputShapeError(f"`{name}` Lat/Lon must be numeric: {e}") from e
    bad = ~np.isfinite(coords.to_numpy()).all(axis=1)
    if bad.any():
        rows = np.flatnonzero(bad)[:10].tolist()
        raise InputShapeError(f"`{name}` has missing or non-finite Lat/Lon in rows {rows}")
    return coords


# -----------------------------------------------------------------------------
# Public checks
# -----------------------------------------------------------------------------

def check_covariate_data(covariate_data: Any) -> List[str]:
    """Validate covariate_data and return its covariate column names.

    Covariate names are every column except Lat, Lon and Year, in input order.
    """
    df = _require_frame(covariate_data, "covariate_data")
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InputShapeError(
            f"`covariate_data` must include columns `Lat`, `Lon`, and `Year` (missing: {missing})"
        )
    covariate_names = [c for c in df.columns if c not in REQUIRED_COLUMNS]
    if not covariate_names:
        raise InputShapeError("`covariate_data` has no covariate columns besides Lat, Lon, Year")
    _check_coords(df, "covariate_data")

    # Non-static years must be integers
    years = df["Year"][~static_mask(df["Year"])]
    numeric = pd.to_numeric(years, errors="coerce")
    if numeric.isna().any() or not np.all(np.mod(numeric.to_numpy(dtype=float), 1) == 0):
        raise InputShapeError(
            "`covariate_data` Year must be an integer, or NA/'static' for year-invariant rows"
        )
    return covariate_names


def coerce_sample_locations(sample_locations: Any) -> pd.DataFrame:
    """Return sample locations as a fresh (Lat, Lon, Year) frame indexed 0..n-1."""
    df = _require_frame(sample_locations, "sample_locations")
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InputShapeError(f"`sample_locations` must include columns Lat, Lon, Year (missing: {missing})")

    coords = _check_coords(df, "sample_locations")
    years = pd.to_numeric(df["Year"], errors="coerce").to_numpy(dtype=float)
    if np.isnan(years).any() or not np.all(np.mod(years, 1) == 0):
        raise InputShapeError("`sample_locations` Year must be a non-missing integer for every observation")

    out = coords.reset_index(drop=True)
    out["Year"] = years.astype(np.int64)
    return out[["Lat", "Lon", "Year"]]


def coerce_grid_cells(grid_cells: Any) -> pd.DataFrame:
    """Return grid cells as a fresh (Lat, Lon) frame indexed 0..n-1.

    Accepts:
    - a DataFrame with Lat and Lon columns
    - a GeoDataFrame without them (centroids supply Lon=x, Lat=y)
    - an (n, 2) array ordered (Lat, Lon)
    """
    if isinstance(grid_cells, pd.DataFrame):
        df = grid_cells
        if not all(c in df.columns for c in COORD_COLUMNS) and "geometry" in df.columns:
            centroids = df.geometry.centroid
            df = pd.DataFrame({"Lat": centroids.y.to_numpy(), "Lon": centroids.x.to_numpy()})
        df = _require_frame(df, "grid_cells")
        if not all(c in df.columns for c in COORD_COLUMNS):
            raise InputShapeError("`grid_cells` must include columns Lat and Lon (or a geometry column)")
    else:
        arr = np.asarray(grid_cells, dtype=float)
        if arr.ndim != 2 or arr.shape[1] != 2:
            raise InputShapeError(f"`grid_cells` array must have shape (n, 2) as (Lat, Lon); got {arr.shape}")
        df = _require_frame(pd.DataFrame(arr, columns=COORD_COLUMNS), "grid_cells")

    return _check_coords(df, "grid_cells").reset_index(drop=True)
