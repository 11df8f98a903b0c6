#!/usr/bin/env python3
"""covgrid.covariates.table

Build the flat, long-format covariate tables that feed the design expander.

For each year t in the YearSet (ascending):
1. Take that year's reference records (yearly rows plus static rows)
2. Build one nearest-neighbor matcher over them
3. Match the sample locations observed in year t
4. Match every grid cell

Each year's results land in their own pre-allocated slot, so no year
depends on another having run first. Samples are matched once, under their
own year; the grid is matched once per year.

Outputs:
- samples: one row per sample location, in sample order
- grid: |grid| x |YearSet| rows, year-major then grid-cell order
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from covgrid.covariates.errors import UnresolvedObservation
from covgrid.covariates.nearest import NearestNeighborMatcher
from covgrid.covariates.partition import records_for_year


logger = logging.getLogger(__name__)


@dataclass
class CovariateTables:
    """Matched covariates for samples and grid cells, ready for expansion."""

    samples: pd.DataFrame
    grid: pd.DataFrame
    years: np.ndarray
    n_grid_cells: int

    @property
    def n_samples(self) -> int:
        return len(self.samples)


# -----------------------------------------------------------------------------
# Per-year work
# -----------------------------------------------------------------------------

def _match_year(
    covariate_data: pd.DataFrame,
    year: int,
    samples: pd.DataFrame,
    grid: pd.DataFrame,
    covariate_names: Sequence[str],
) -> Tuple[Optional[Tuple[np.ndarray, pd.DataFrame]], pd.DataFrame]:
    """Resolve one year. Returns (sample slot or None, grid block)."""
    reference = records_for_year(covariate_data, year)
    matcher = NearestNeighborMatcher(reference)

    # Samples observed this year; years without samples only feed the grid
    which = np.flatnonzero(samples["Year"].to_numpy() == year)
    sample_slot = None
    if which.size > 0:
        sample_slot = (which, matcher.match(samples.iloc[which], covariate_names))

    block = grid[["Lat", "Lon"]].reset_index(drop=True)
    block.insert(0, "Year", int(year))
    block = pd.concat([block, matcher.match(grid, covariate_names)], axis=1)

    logger.debug(
        "Year %d: %d reference records, %d samples, %d grid cells",
        year, len(matcher), which.size, len(block),
    )
    return sample_slot, block


# -----------------------------------------------------------------------------
# Orchestration
# -----------------------------------------------------------------------------

def build_covariate_tables(
    covariate_data: pd.DataFrame,
    samples: pd.DataFrame,
    grid: pd.DataFrame,
    covariate_names: Sequence[str],
    years: Sequence[int],
) -> CovariateTables:
    """Match covariates onto samples and grid cells for every year in `years`.

    `samples` must be a (Lat, Lon, Year) frame indexed 0..n-1 and `grid` a
    (Lat, Lon) frame, as returned by the validate module.

    Raises:
        MissingYearCoverage: a year has no usable records.
        UnresolvedObservation: a sample's Year is not in `years`.
    """
    years = np.asarray(years, dtype=np.int64)
    covariate_names = list(covariate_names)

    # --- One slot per year, filled independently ---
    sample_slots: List[Optional[Tuple[np.ndarray, pd.DataFrame]]] = [None] * len(years)
    grid_slots: List[Optional[pd.DataFrame]] = [None] * len(years)
    for t, year in enumerate(years):
        sample_slots[t], grid_slots[t] = _match_year(covariate_data, int(year), samples, grid, covariate_names)

    # --- Samples: every location needs exactly one match ---
    filled = [s for s in sample_slots if s is not None]
    resolved = np.zeros(len(samples), dtype=bool)
    for which, _ in filled:
        resolved[which] = True
    if not resolved.all():
        raise UnresolvedObservation(np.flatnonzero(~resolved))

    values = pd.concat([v for _, v in filled], ignore_index=True)
    values.index = np.concatenate([w for w, _ in filled])
    values = values.sort_index()
    sample_table = pd.concat(
        [samples[["Year", "Lat", "Lon"]].reset_index(drop=True), values.reset_index(drop=True)],
        axis=1,
    )

    # --- Grid: year-major blocks ---
    grid_table = pd.concat(grid_slots, ignore_index=True)

    logger.debug(
        "Built covariate tables: %d sample rows, %d grid rows over %d years",
        len(sample_table), len(grid_table), len(years),
    )
    return CovariateTables(
        samples=sample_table,
        grid=grid_table,
        years=years,
        n_grid_cells=len(grid),
    )
