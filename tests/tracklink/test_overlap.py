r"""
Tests for ``tracklink._overlap``.
"""

from __future__ import annotations

import networkx as nx
import pytest

from tracklink import (
    Overlap,
    OverlapMatcher,
    filter_low_jaccard,
    filter_low_overlap,
    filter_low_overlap_proportion,
)

SIZES = {"A": 10.0, "B": 10.0, "C": 4.0, "D": 5.0}
OVERLAPS = {("A", "B"): 8.0, ("A", "C"): 2.0, ("D", "C"): 1.0}


def overlap(a: str, b: str) -> float:
    return OVERLAPS.get((a, b), 0.0)


def test_get_overlaps():
    matcher = OverlapMatcher(overlap)

    res = matcher.get_overlaps(["A", "D"], ["B", "C"])

    assert [(o.first, o.second, o.overlap) for o in res] == [("A", "B", 8.0), ("A", "C", 2.0), ("D", "C", 1.0)]
    assert matcher.get_overlaps([], ["B"]) == []


def test_max_overlap_graph():
    graph = nx.Graph()

    count = OverlapMatcher(overlap).add_max_overlap_graph(["A"], ["B", "C"], graph)

    assert count == 1
    assert list(graph.edges(data="weight")) == [("A", "B", 8.0)]


def test_max_overlap_maps():
    a_to_b, b_to_a = {}, {}

    OverlapMatcher(overlap).add_max_overlap(["A", "D"], ["B", "C"], a_to_b, b_to_a)

    assert {a: o.second for a, o in a_to_b.items()} == {"A": "B", "D": "C"}
    assert {b: o.first for b, o in b_to_a.items()} == {"B": "A", "C": "A"}


def test_max_overlap_maps_optional():
    a_to_b = {}

    OverlapMatcher(overlap).add_max_overlap(["A"], ["B", "C"], a_to_b, None)

    assert a_to_b["A"].overlap == 8.0


def test_filters():
    matcher = OverlapMatcher(overlap).add_filter(filter_low_overlap(1.5))

    assert [(o.first, o.second) for o in matcher.get_overlaps(["A", "D"], ["B", "C"])] == [("A", "B"), ("A", "C")]

    matcher.add_filter(filter_low_overlap_proportion(SIZES.get, 0.6))
    assert [(o.first, o.second) for o in matcher.get_overlaps(["A", "D"], ["B", "C"])] == [("A", "B")]


def test_jaccard():
    o = Overlap("A", "B", 8.0)

    assert o.jaccard_index(SIZES.get) == pytest.approx(8.0 / 12.0)

    matcher = OverlapMatcher(overlap).add_filter(filter_low_jaccard(SIZES.get, 0.5))
    assert [(o.first, o.second) for o in matcher.get_overlaps(["A", "D"], ["B", "C"])] == [("A", "B")]
