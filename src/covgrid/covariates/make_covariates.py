#!/usr/bin/env python3
"""covgrid.covariates.make_covariates

Resolve spatial covariates onto sample locations and an extrapolation grid.

This is the entry point of the covariates subsystem. Given covariate
records (Lat, Lon, Year + covariate columns), a formula, the sample
locations and the grid cells, it returns:

- x_itp: [n_samples, n_years, n_predictors]
- x_gtp: [n_grid_cells, n_years, n_predictors]

for every year between the first and last sample year.

Pipeline:
1. Validate inputs                   (validate)
2. YearSet from sample years         (partition)
3. Nearest-neighbor match per year   (table, nearest)
4. Expand formula, no intercept      (design)
5. Reshape into tensors              (assemble)
6. Finite check, scale diagnostic    (assemble)

Asymmetry worth knowing:
Samples are matched ONCE, under their own year, and that row is copied into
every year slice of x_itp. The grid is re-matched for EVERY year, so x_gtp
slices differ whenever the yearly records differ.

Example:
    >>> arrays = make_covariates("~ depth", covariate_data, samples, grid)
    >>> arrays.x_itp.shape
    (n_samples, n_years, 1)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import numpy as np
import pandas as pd

from covgrid.covariates.assemble import (
    DEFAULT_SD_THRESHOLD,
    assemble_grid_tensor,
    assemble_sample_tensor,
    check_finite,
    check_scale,
)
from covgrid.covariates.design import Expander, PatsyExpander, expand_design
from covgrid.covariates.partition import year_set
from covgrid.covariates.table import build_covariate_tables
from covgrid.covariates.validate import (
    check_covariate_data,
    coerce_grid_cells,
    coerce_sample_locations,
)


logger = logging.getLogger(__name__)


@dataclass
class CovariateArrays:
    """Resolved covariate tensors and their axis labels."""

    x_itp: np.ndarray
    x_gtp: np.ndarray
    years: np.ndarray
    predictor_names: List[str]
    covariate_names: List[str]

    @property
    def n_predictors(self) -> int:
        return len(self.predictor_names)


def make_covariates(
    formula: str,
    covariate_data: pd.DataFrame,
    sample_locations: pd.DataFrame,
    grid_cells: Any,
    *,
    expander: Optional[Expander] = None,
    sd_threshold: float = DEFAULT_SD_THRESHOLD,
) -> CovariateArrays:
    """Build sample and grid covariate tensors.

    Args:
        formula: Model formula over covariate names (e.g. "~ depth + temp").
            Any intercept is dropped.
        covariate_data: Lat, Lon, Year and covariate columns. Year NA or
            'static' marks records valid for all years (e.g. depth).
        sample_locations: Lat, Lon, Year per observation, in observation order.
        grid_cells: Lat/Lon frame, GeoDataFrame, or (n, 2) array of (Lat, Lon).
        expander: Design expander; PatsyExpander() if None.
        sd_threshold: Standard deviation above which a CovariateScaleWarning
            is emitted.

    Returns:
        CovariateArrays with x_itp, x_gtp, years, predictor_names, covariate_names.

    Raises:
        CovariateError subclasses; see covgrid.covariates.errors.
    """
    # --- Validate ---
    covariate_names = check_covariate_data(covariate_data)
    samples = coerce_sample_locations(sample_locations)
    grid = coerce_grid_cells(grid_cells)
    if expander is None:
        expander = PatsyExpander()

    # --- Match ---
    years = year_set(samples["Year"])
    tables = build_covariate_tables(covariate_data, samples, grid, covariate_names, years)

    # --- Expand ---
    x_samples, x_grid, predictor_names = expand_design(tables.samples, tables.grid, formula, expander)

    # --- Assemble ---
    x_itp = assemble_sample_tensor(x_samples, len(years))
    x_gtp = assemble_grid_tensor(x_grid, tables.n_grid_cells, len(years))
    check_finite("x_itp", x_itp)
    check_finite("x_gtp", x_gtp)
    check_scale({"x_gtp": x_gtp, "x_itp": x_itp}, predictor_names, threshold=sd_threshold)

    logger.info(
        "Resolved %d covariate(s) into %d predictor(s) for %d samples and %d grid cells over years %d-%d",
        len(covariate_names), len(predictor_names), len(samples), len(grid), years[0], years[-1],
    )
    return CovariateArrays(
        x_itp=x_itp,
        x_gtp=x_gtp,
        years=years,
        predictor_names=predictor_names,
        covariate_names=covariate_names,
    )
