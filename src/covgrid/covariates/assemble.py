#!/usr/bin/env python3
"""covgrid.covariates.assemble

Reshape the split design matrices into [location, year, predictor] tensors.

- Samples: one design row per sample location, replicated across every
  year slice. Samples are matched once under their own year, not
  re-matched per output year. Downstream models index the slice of the
  sample's actual year themselves.
- Grid: |grid| x |YearSet| design rows in year-major blocks; block t
  becomes slice t.
"""

from __future__ import annotations

import logging
import warnings
from typing import Dict, List, Sequence

import numpy as np

from covgrid.covariates.errors import (
    CovariateScaleWarning,
    GridBlockSizeMismatch,
    IncompleteAssembly,
)


logger = logging.getLogger(__name__)

DEFAULT_SD_THRESHOLD = 10.0


def assemble_sample_tensor(x_samples: np.ndarray, n_years: int) -> np.ndarray:
    """Tile sample design rows across years: out[i, t, p] = x_samples[i, p]."""
    x_samples = np.asarray(x_samples, dtype=float)
    n, p = x_samples.shape
    return np.broadcast_to(x_samples[:, None, :], (n, n_years, p)).copy()


def assemble_grid_tensor(x_grid: np.ndarray, n_cells: int, n_years: int) -> np.ndarray:
    """Stack contiguous per-year blocks of grid rows: out[g, t, p] = block_t[g, p]."""
    x_grid = np.asarray(x_grid, dtype=float)
    n_rows, p = x_grid.shape
    out = np.empty((n_cells, n_years, p), dtype=float)
    for t in range(n_years):
        block = x_grid[t * n_cells:(t + 1) * n_cells]
        if block.shape[0] != n_cells:
            raise GridBlockSizeMismatch(
                f"Year block {t} has {block.shape[0]} rows; expected {n_cells} grid cells"
            )
        out[:, t, :] = block
    if n_rows != n_cells * n_years:
        raise GridBlockSizeMismatch(
            f"Grid design has {n_rows} rows; expected {n_cells} cells x {n_years} years = {n_cells * n_years}"
        )
    return out


def check_finite(name: str, tensor: np.ndarray) -> None:
    """Raise IncompleteAssembly if `tensor` holds any NaN or infinite value."""
    bad = ~np.isfinite(tensor)
    if bad.any():
        raise IncompleteAssembly(f"Problem with `{name}`: {int(bad.sum())} non-finite value(s) after assembly")


def _wide_predictors(tensor: np.ndarray, names: Sequence[str], threshold: float) -> List[str]:
    # sd across locations for every (year, predictor); undefined for < 2 locations
    if tensor.shape[0] < 2:
        return []
    sd = tensor.std(axis=0, ddof=1)
    wide = (sd > threshold).any(axis=0)
    return [names[j] for j in np.flatnonzero(wide)]


def check_scale(
    tensors: Dict[str, np.ndarray],
    predictor_names: Sequence[str],
    threshold: float = DEFAULT_SD_THRESHOLD,
) -> List[str]:
    """Warn when a predictor's per-year spread across locations exceeds `threshold`.

    Advisory only: emits CovariateScaleWarning and returns the offending
    predictor names (empty if none).
    """
    flagged: List[str] = []
    for name, tensor in tensors.items():
        for pred in _wide_predictors(tensor, predictor_names, threshold):
            if pred not in flagged:
                flagged.append(pred)
    if flagged:
        logger.warning("Predictors with standard deviation > %s: %s", threshold, flagged)
        warnings.warn(
            f"Predictor(s) {flagged} have standard deviation > {threshold} within a year. "
            "Consider rescaling covariates in `covariate_data` to have mean 0 and standard deviation 1.0",
            CovariateScaleWarning,
            stacklevel=2,
        )
    return flagged
