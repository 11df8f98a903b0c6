#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest

# Ensure we can import from src without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from covgrid.covariates.errors import EmptyReferenceSet
from covgrid.covariates.nearest import NearestNeighborMatcher


@pytest.fixture
def reference():
    # Non-default index on purpose: matching is positional
    return pd.DataFrame(
        {"Lat": [0.0, 0.0, 10.0], "Lon": [0.0, 10.0, 0.0], "depth": [1.0, 2.0, 3.0], "habitat": ["a", "b", "c"]},
        index=[7, 8, 9],
    )


def test_empty_reference_set():
    with pytest.raises(EmptyReferenceSet):
        NearestNeighborMatcher(pd.DataFrame(columns=["Lat", "Lon", "depth"]))


def test_query_index_picks_closest(reference):
    m = NearestNeighborMatcher(reference)
    query = pd.DataFrame({"Lat": [1.0, 0.5, 9.0], "Lon": [9.0, 0.5, 1.0]})
    assert m.query_index(query).tolist() == [1, 0, 2]


def test_match_returns_values_in_query_order(reference):
    m = NearestNeighborMatcher(reference)
    query = pd.DataFrame({"Lat": [9.0, 1.0], "Lon": [1.0, 9.0]}, index=[100, 200])
    out = m.match(query, ["habitat", "depth"])
    assert list(out.columns) == ["habitat", "depth"]
    assert out.index.tolist() == [0, 1]
    assert out["habitat"].tolist() == ["c", "b"]
    assert out["depth"].tolist() == [3.0, 2.0]


def test_zero_distance_match_is_exact(reference):
    m = NearestNeighborMatcher(reference)
    out = m.match(pd.DataFrame({"Lat": [10.0], "Lon": [0.0]}), ["depth"])
    assert out["depth"].tolist() == [3.0]


def test_distance_is_planar_in_degrees():
    # On a sphere the high-latitude point is closer in km; planar degrees say otherwise
    ref = pd.DataFrame({"Lat": [80.0, 60.0], "Lon": [30.0, 0.0], "v": [1.0, 2.0]})
    m = NearestNeighborMatcher(ref)
    out = m.match(pd.DataFrame({"Lat": [80.0], "Lon": [0.0]}), ["v"])
    assert out["v"].tolist() == [2.0]


def test_one_tree_serves_many_queries(reference):
    m = NearestNeighborMatcher(reference)
    tree = m._tree
    for lat in (0.0, 5.0, 10.0):
        m.query_index(pd.DataFrame({"Lat": [lat], "Lon": [0.0]}))
    assert m._tree is tree
    assert len(m) == 3


def test_empty_query():
    m = NearestNeighborMatcher(pd.DataFrame({"Lat": [0.0], "Lon": [0.0], "v": [1.0]}))
    assert m.query_index(pd.DataFrame(columns=["Lat", "Lon"])).tolist() == []


def test_equidistant_references_resolve_to_lowest_position():
    # Four references at distance 1 from the origin, listed five times over
    ring = [(1.0, 0.0), (0.0, 1.0), (-1.0, 0.0), (0.0, -1.0)] * 5
    ref = pd.DataFrame({"Lat": [p[0] for p in ring], "Lon": [p[1] for p in ring]})
    ref["v"] = range(len(ref))
    origin = pd.DataFrame({"Lat": [0.0, 0.0], "Lon": [0.0, 0.0]})

    m = NearestNeighborMatcher(ref)
    assert m.query_index(origin).tolist() == [0, 0]
    assert m.query_index(origin).tolist() == [0, 0]
    assert NearestNeighborMatcher(ref).query_index(origin).tolist() == [0, 0]
    assert m.match(origin, ["v"])["v"].tolist() == [0, 0]


def test_tie_follows_reference_order():
    ref = pd.DataFrame({"Lat": [0.0, 0.0], "Lon": [-1.0, 1.0], "v": ["west", "east"]})
    origin = pd.DataFrame({"Lat": [0.0], "Lon": [0.0]})
    assert NearestNeighborMatcher(ref).match(origin, ["v"])["v"].tolist() == ["west"]
    flipped = ref.iloc[::-1]
    assert NearestNeighborMatcher(flipped).match(origin, ["v"])["v"].tolist() == ["east"]


def test_duplicate_locations_resolve_to_first_listed():
    ref = pd.DataFrame({"Lat": [5.0, 0.0, 0.0], "Lon": [5.0, 0.0, 0.0], "v": [1.0, 2.0, 3.0]})
    out = NearestNeighborMatcher(ref).match(pd.DataFrame({"Lat": [0.1], "Lon": [0.1]}), ["v"])
    assert out["v"].tolist() == [2.0]


def test_single_reference_matches_everything():
    m = NearestNeighborMatcher(pd.DataFrame({"Lat": [3.0], "Lon": [4.0], "v": [1.0]}))
    assert m.query_index(pd.DataFrame({"Lat": [0.0, 100.0], "Lon": [0.0, -50.0]})).tolist() == [0, 0]
