#!/usr/bin/env python3
"""covgrid.covariates.nearest

Nearest-neighbor assignment of covariate values.

One KD-tree is built per reference set (one per year in practice) and then
queried with every point that needs values for that year.

Distance note:
Lat/Lon are treated as planar coordinates and compared with straight-line
Euclidean distance in degrees. No great-circle correction is applied. At
high latitudes or over large extents this is an approximation (a degree of
longitude shrinks with latitude), but it is what the downstream models were
fitted with, so changing it would change match results.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd
from scipy.spatial import cKDTree

from covgrid.covariates.errors import EmptyReferenceSet


logger = logging.getLogger(__name__)

COORD_COLUMNS = ["Lat", "Lon"]


class NearestNeighborMatcher:
    """Match query points to their closest reference record.

    The tree is built once in __init__; match() can be called repeatedly.
    When several references are equally close, the one with the lowest
    position in the reference set wins.
    """

    def __init__(self, reference: pd.DataFrame):
        if reference is None or len(reference) == 0:
            raise EmptyReferenceSet("No reference points supplied to the nearest-neighbor matcher")
        self.reference = reference.reset_index(drop=True)
        self._coords = self.reference[COORD_COLUMNS].to_numpy(dtype=float)
        self._tree = cKDTree(self._coords)

    def __len__(self) -> int:
        return len(self.reference)

    def _lowest_tied(self, point: np.ndarray, radius: float) -> int:
        # Every reference within the nearest distance, then the first of the closest
        candidates = np.asarray(
            self._tree.query_ball_point(point, r=radius * (1 + 1e-9) + 1e-12), dtype=np.int64
        )
        d = np.sqrt(((self._coords[candidates] - point) ** 2).sum(axis=1))
        return int(candidates[np.isclose(d, d.min(), rtol=1e-12, atol=0.0)].min())

    def query_index(self, query: pd.DataFrame) -> np.ndarray:
        """Positional index into the reference set of each query point's nearest record."""
        if len(query) == 0:
            return np.empty(0, dtype=np.int64)
        points = query[COORD_COLUMNS].to_numpy(dtype=float)
        if len(self) == 1:
            return np.zeros(len(points), dtype=np.int64)

        # k=2 exposes ties: the runner-up is as close as the winner
        dist, idx = self._tree.query(points, k=2)
        best = np.array(idx[:, 0], dtype=np.int64)
        for i in np.flatnonzero(dist[:, 1] <= dist[:, 0]):
            best[i] = self._lowest_tied(points[i], dist[i, 0])
        return best

    def match(self, query: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
        """Covariate values of the nearest reference record, one row per query point."""
        idx = self.query_index(query)
        matched = self.reference.iloc[idx][list(columns)].reset_index(drop=True)
        logger.debug("Matched %d query points against %d references", len(idx), len(self))
        return matched
