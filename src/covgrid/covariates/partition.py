#!/usr/bin/env python3
"""covgrid.covariates.partition

Split covariate records by year.

A record belongs to year t if its Year equals t or if it is static
(Year missing or 'static'). Every year between the first and last sample
year must resolve to at least one record, even years with no samples:
the extrapolation grid still needs covariates for them.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np
import pandas as pd

from covgrid.covariates.errors import MissingYearCoverage
from covgrid.covariates.validate import static_mask


def year_set(sample_years: Iterable[int]) -> np.ndarray:
    """Contiguous inclusive range of years from the first to the last sample year."""
    years = np.asarray(list(sample_years), dtype=np.int64)
    if years.size == 0:
        raise ValueError("year_set() needs at least one sample year")
    return np.arange(years.min(), years.max() + 1, dtype=np.int64)


def _year_values(covariate_data: pd.DataFrame) -> np.ndarray:
    """Numeric Year column with static rows as NaN."""
    years = pd.to_numeric(covariate_data["Year"], errors="coerce").to_numpy(dtype=float, copy=True)
    years[static_mask(covariate_data["Year"])] = np.nan
    return years


def records_for_year(covariate_data: pd.DataFrame, year: int) -> pd.DataFrame:
    """Return the records usable for `year` (that year's rows plus static rows).

    Raises MissingYearCoverage if there are none.
    """
    years = _year_values(covariate_data)
    keep = (years == year) | np.isnan(years)
    subset = covariate_data.loc[keep]
    if subset.empty:
        raise MissingYearCoverage(year)
    return subset


def year_coverage(covariate_data: pd.DataFrame, years: Iterable[int]) -> pd.DataFrame:
    """Per-year record counts, for reporting.

    Columns: Year, n_yearly, n_static, ok. Unlike records_for_year() this
    never raises; a year with ok=False would fail resolution.
    """
    values = _year_values(covariate_data)
    n_static = int(np.isnan(values).sum())
    rows = []
    for year in years:
        n_yearly = int((values == year).sum())
        rows.append({
            "Year": int(year),
            "n_yearly": n_yearly,
            "n_static": n_static,
            "ok": (n_yearly + n_static) > 0,
        })
    return pd.DataFrame(rows, columns=["Year", "n_yearly", "n_static", "ok"])
