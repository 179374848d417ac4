r"""
Tests for ``tracklink.stages.segments``.
"""

from __future__ import annotations

import pytest

from tracklink import ObjectGraph, SettingsError, Spot, SpotCollection, consts, stages


def segment_settings(
    gap_closing: bool = False,
    max_frame_gap: int = 2,
    merging: bool = False,
    splitting: bool = False,
    max_distance: float = 5.0,
    cutoff_percentile: float = 1.0,
):
    return {
        consts.KEY_ALLOW_GAP_CLOSING: gap_closing,
        consts.KEY_GAP_CLOSING_MAX_DISTANCE: max_distance,
        consts.KEY_GAP_CLOSING_MAX_FRAME_GAP: max_frame_gap,
        consts.KEY_ALLOW_TRACK_MERGING: merging,
        consts.KEY_MERGING_MAX_DISTANCE: max_distance,
        consts.KEY_ALLOW_TRACK_SPLITTING: splitting,
        consts.KEY_SPLITTING_MAX_DISTANCE: max_distance,
        consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: 1.05,
        consts.KEY_CUTOFF_PERCENTILE: cutoff_percentile,
    }


def graph_of(*spots: Spot, edges=()) -> ObjectGraph:
    graph = ObjectGraph()
    for s in spots:
        graph.add_vertex(s)
    for s, t in edges:
        graph.add_edge(s, t, graph_cost(s, t))
    return graph


def graph_cost(s: Spot, t: Spot) -> float:
    return s.square_distance_to(t)


def test_splitter():
    a, b, c, d = Spot(0, 0, 0), Spot(1, 0, 0), Spot(2, 0, 0), Spot(1, 5, 0)
    graph = graph_of(a, b, c, d, edges=[(a, b), (b, c)])

    splitter = stages.GraphSegmentSplitter(graph, find_middle_points=False)

    assert splitter.starts == [a, d]
    assert splitter.ends == [d, c]
    assert splitter.middles == [b]
    assert splitter.middle_points == []
    assert splitter.segments() == [[a, b, c], [d]]

    splitter = stages.GraphSegmentSplitter(graph, find_middle_points=True)
    assert splitter.middle_points == [a, b, d, c]


def test_splitter_branches():
    a, b, c = Spot(0, 0, 0), Spot(1, 0, 0), Spot(1, 1, 0)
    graph = graph_of(a, b, c, edges=[(a, b), (a, c)])

    splitter = stages.GraphSegmentSplitter(graph, find_middle_points=False)

    assert splitter.segments() == [[a], [b], [c]]


def test_nothing_enabled():
    a, b = Spot(0, 0, 0), Spot(2, 0, 0)
    builder = stages.SegmentCostMatrixBuilder(segment_settings())

    assert builder.build(graph_of(a, b)) is None


def test_non_positive_distance_disables():
    a, b = Spot(0, 0, 0), Spot(2, 0, 0)
    builder = stages.SegmentCostMatrixBuilder(segment_settings(gap_closing=True, max_distance=0.0))

    assert not builder.do_gap_closing
    assert builder.build(graph_of(a, b)) is None


def test_gap_closing_candidates():
    a, b = Spot(0, 0, 0), Spot(2, 1, 0)
    graph = graph_of(a, b)

    matrix = stages.SegmentCostMatrixBuilder(segment_settings(gap_closing=True, max_frame_gap=2)).build(graph)
    assert matrix is not None
    assert matrix.sources == [a]
    assert matrix.targets == [b]
    assert matrix.costs.tolist() == [1.0]

    matrix = stages.SegmentCostMatrixBuilder(segment_settings(gap_closing=True, max_frame_gap=1)).build(graph)
    assert matrix is None


def test_gap_closing_threshold():
    a, b = Spot(0, 0, 0), Spot(2, 6, 0)

    builder = stages.SegmentCostMatrixBuilder(segment_settings(gap_closing=True))

    assert builder.build(graph_of(a, b)) is None


@pytest.mark.parametrize(
    ["percentile", "expected"],
    [
        (1.0, 1.05 * 4.0),
        (0.5, 1.05 * 2.5),
        (0.0, 1.05 * 1.0),
    ],
)
def test_alternative_cost(percentile, expected):
    a, b, c = Spot(0, 0, 0), Spot(1, 1, 0), Spot(1, 2, 0)
    builder = stages.SegmentCostMatrixBuilder(
        segment_settings(gap_closing=True, max_frame_gap=1, cutoff_percentile=percentile)
    )

    matrix = builder.build(graph_of(a, b, c))

    assert matrix.nnz == 2
    assert builder.alternative_cost == pytest.approx(expected)
    assert matrix.alt_rows.tolist() == pytest.approx([expected])
    assert matrix.alt_cols.tolist() == pytest.approx([expected, expected])


def test_alternative_cost_fallback():
    a, b = Spot(0, 0, 0), Spot(1, 0, 0)
    builder = stages.SegmentCostMatrixBuilder(segment_settings(gap_closing=True, max_frame_gap=1))

    matrix = builder.build(graph_of(a, b))

    assert matrix.costs.tolist() == [0.0]
    assert builder.alternative_cost == 1.05


def test_candidates_deduplicated():
    a, b = Spot(0, 0, 0), Spot(1, 1, 0)
    builder = stages.SegmentCostMatrixBuilder(
        segment_settings(gap_closing=True, max_frame_gap=1, merging=True, splitting=True)
    )

    matrix = builder.build(graph_of(a, b))

    assert matrix.nnz == 1
    assert matrix.cost_of(0, 0) == 1.0


def test_invalid_settings():
    settings = segment_settings()
    del settings[consts.KEY_CUTOFF_PERCENTILE]

    with pytest.raises(SettingsError):
        stages.SegmentCostMatrixBuilder(settings)
    with pytest.raises(SettingsError, match="threads"):
        stages.SegmentCostMatrixBuilder(segment_settings(), num_threads=0)


def test_gap_closing(solver):
    a, b = Spot(0, 0, 0), Spot(2, 1, 0)
    graph = graph_of(a, b)

    count = stages.SegmentLinking(segment_settings(gap_closing=True), solver)(graph)

    assert count == 1
    assert graph.edges() == [(a, b, 1.0)]


def test_splitting(solver):
    a, b, c = Spot(0, 0, 0), Spot(1, 1, 0), Spot(1, -1, 0)
    graph = graph_of(a, b, c, edges=[(a, b)])

    count = stages.SegmentLinking(segment_settings(splitting=True), solver)(graph)

    assert count == 1
    assert graph.get_all_nexts(a) == [b, c]


def test_merging(solver):
    a, c, b = Spot(0, 0, 0), Spot(0, 1, 0), Spot(1, 0, 0)
    graph = graph_of(a, c, b, edges=[(a, b)])

    count = stages.SegmentLinking(segment_settings(merging=True), solver)(graph)

    assert count == 1
    assert graph.get_all_previous(b) == [a, c]


def test_spots_added_as_vertices(solver):
    a, b = Spot(0, 0, 0), Spot(2, 1, 0)
    graph = ObjectGraph()

    stages.SegmentLinking(segment_settings(gap_closing=True), solver)(graph, SpotCollection([a, b]))

    assert graph.edges() == [(a, b, 1.0)]


def test_existing_edges_kept(solver):
    a, b, c = Spot(0, 0, 0), Spot(1, 0, 0), Spot(3, 0, 0)
    graph = graph_of(a, b, c, edges=[(a, b)])

    stages.SegmentLinking(segment_settings(gap_closing=True), solver)(graph)

    assert graph.edges() == [(a, b, 0.0), (b, c, 0.0)]


def test_no_candidates(solver):
    a, b = Spot(0, 0, 0), Spot(1, 0, 0)
    graph = graph_of(a, b, edges=[(a, b)])

    stage = stages.SegmentLinking(segment_settings(gap_closing=True), solver)

    assert stage(graph) == 0
    assert stage.processing_time >= 0.0
