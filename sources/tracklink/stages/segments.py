r"""
Segment linking: closes gaps between track segments and detects merge and split
events by solving a single assignment problem over all segment extremities.

A *segment* is a maximal chain of spots joined by one-to-one links. Its first
spot (no predecessor) is a segment start, its last spot (no successor) a
segment end.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import typing as T

import numpy as np
import torch
import typing_extensions as TX

from tracklink import consts
from tracklink._errors import SettingsError
from tracklink._graph import ObjectGraph
from tracklink._settings import SegmentSettings
from tracklink._spot import Spot, SpotCollection
from tracklink.assignment import SparseCostMatrix
from tracklink.costs import Cost, build_cost

from .base_stage import Link, Stage, run_tasks

if T.TYPE_CHECKING:
    from tracklink.assignment import Assignment

__all__ = ["GraphSegmentSplitter", "SegmentCostMatrixBuilder", "SegmentLinking"]

logger = logging.getLogger(__name__)


class GraphSegmentSplitter:
    """
    Classifies the vertices of a graph by their position in track segments.

    Attributes
    ----------
    starts
        Spots without predecessor, in spot order.
    ends
        Spots without successor, in spot order.
    middles
        Spots with both a predecessor and a successor.
    middle_points
        Candidate middle points of merge and split events. When requested these
        are all vertices, otherwise none.
    """

    def __init__(self, graph: ObjectGraph, find_middle_points: bool):
        vertices = graph.vertices()
        prev = {s: bool(graph.get_all_previous(s)) for s in vertices}
        nxt = {s: bool(graph.get_all_nexts(s)) for s in vertices}

        self.graph = graph
        self.starts = [s for s in vertices if not prev[s]]
        self.ends = [s for s in vertices if not nxt[s]]
        self.middles = [s for s in vertices if prev[s] and nxt[s]]
        self.middle_points = vertices if find_middle_points else []

    def segments(self) -> list[list[Spot]]:
        """
        All track segments, each sorted by frame, ordered by their first spot.
        """
        res = []
        for s in self.graph.vertices():
            if self.graph.get_track_head(s) is not s:
                continue
            seg = [s]
            while True:
                n = self.graph.get_next(seg[-1])
                if n is None or self.graph.get_previous(n) is not seg[-1]:
                    break
                seg.append(n)
            res.append(seg)
        return res


class SegmentCostMatrixBuilder:
    """
    Gathers the gap-closing, merging and splitting candidates of a graph into a
    sparse cost matrix.

    Candidates are:

    - gap-closing: segment end to a segment start between 1 and
      ``max_frame_gap`` frames later;
    - merging: segment end to a middle point one frame later;
    - splitting: middle point to a segment start one frame later.

    A pair is a candidate only when its cost does not exceed the square of the
    maximal distance of its link type. Disabled link types, and types with a
    non-positive maximal distance, produce no candidates.
    """

    def __init__(
        self,
        settings: SegmentSettings | T.Mapping[str, T.Any],
        *,
        num_threads: int | None = None,
        timeout: float = consts.DEFAULT_TIMEOUT,
    ):
        if not isinstance(settings, SegmentSettings):
            settings = SegmentSettings.from_mapping(settings)
        if num_threads is not None and num_threads < 1:
            msg = f"Number of threads must be at least 1, got {num_threads}"
            raise SettingsError("num_threads", msg)

        self.settings = settings
        self.num_threads = num_threads if num_threads is not None else (os.cpu_count() or 1)
        self.timeout = timeout
        self.gap_closing_cost = build_cost(settings.gap_closing_feature_penalties)
        self.merging_cost = build_cost(settings.merging_feature_penalties)
        self.splitting_cost = build_cost(settings.splitting_feature_penalties)
        self.alternative_cost = 0.0
        self.processing_time = 0.0

    @property
    def do_gap_closing(self) -> bool:
        s = self.settings
        return s.allow_gap_closing and s.gap_closing_max_distance > 0 and s.max_frame_gap >= 1

    @property
    def do_merging(self) -> bool:
        return self.settings.allow_merging and self.settings.merging_max_distance > 0

    @property
    def do_splitting(self) -> bool:
        return self.settings.allow_splitting and self.settings.splitting_max_distance > 0

    def __call__(self, graph: ObjectGraph) -> SparseCostMatrix | None:
        return self.build(graph)

    def build(self, graph: ObjectGraph) -> SparseCostMatrix | None:
        """
        Build the cost matrix of the graph's segments.

        Returns
        -------
        SparseCostMatrix | None
            ``None`` when no link type is enabled or no candidate was found.

        Raises
        ------
        TrackingInterrupted
            When candidate generation does not complete in time.
        """
        start = time.perf_counter()
        self.processing_time = 0.0
        if not (self.do_gap_closing or self.do_merging or self.do_splitting):
            logger.debug("segment linking: no link type enabled")
            return None

        splitter = GraphSegmentSplitter(graph, self.do_merging or self.do_splitting)
        starts_by_frame = _group(splitter.starts)
        middles_by_frame = _group(splitter.middle_points)

        lock = threading.Lock()
        candidates: list[Link] = []

        def record(links: list[Link]) -> int:
            with lock:
                candidates.extend(links)
            return len(links)

        def from_end(end: Spot) -> int:
            links = []
            if self.do_gap_closing:
                targets = [
                    t
                    for offset in range(1, self.settings.max_frame_gap + 1)
                    for t in starts_by_frame.get(end.frame + offset, ())
                ]
                links += self._within(self.gap_closing_cost, end, targets, self.settings.gap_closing_max_distance)
            if self.do_merging:
                targets = middles_by_frame.get(end.frame + 1, [])
                links += self._within(self.merging_cost, end, targets, self.settings.merging_max_distance)
            return record(links)

        def from_middle(middle: Spot) -> int:
            targets = starts_by_frame.get(middle.frame + 1, [])
            return record(self._within(self.splitting_cost, middle, targets, self.settings.splitting_max_distance))

        num_ends = sum(run_tasks(from_end, [(e,) for e in splitter.ends], self.num_threads, self.timeout))
        num_middles = 0
        if self.do_splitting:
            num_middles = sum(
                run_tasks(from_middle, [(m,) for m in splitter.middle_points], self.num_threads, self.timeout)
            )

        links = _deduplicate(candidates)
        self.processing_time = time.perf_counter() - start
        logger.debug(
            "segment candidates: %d from segment ends, %d from middle points, %d unique, %.3fs",
            num_ends,
            num_middles,
            len(links),
            self.processing_time,
        )
        if not links:
            return None

        self.alternative_cost = self.compute_alternative_cost([c for _, _, c in links])
        return SparseCostMatrix.from_links(links, self.alternative_cost)

    def compute_alternative_cost(self, costs: T.Sequence[float]) -> float:
        """
        The alternative cost is the cutoff percentile of all candidate costs,
        scaled by the alternative cost factor. Falls back to the factor when
        this is not positive.
        """
        factor = self.settings.alternative_cost_factor
        value = factor * float(np.percentile(np.asarray(costs, dtype=np.float64), 100.0 * self.settings.cutoff_percentile))
        if value <= 0:
            return factor
        return value

    @staticmethod
    def _within(cost: Cost, source: Spot, targets: T.Sequence[Spot], max_distance: float) -> list[Link]:
        if not targets:
            return []
        targets = list(targets)
        costs = cost.cost_matrix([source], targets)[0]
        keep = torch.nonzero(costs <= max_distance**2, as_tuple=True)[0].tolist()
        return [(source, targets[j], float(costs[j])) for j in keep if targets[j] is not source]


def _group(spots: T.Iterable[Spot]) -> dict[int, list[Spot]]:
    res: dict[int, list[Spot]] = {}
    for s in spots:
        res.setdefault(s.frame, []).append(s)
    return res


def _deduplicate(links: T.Iterable[Link]) -> list[Link]:
    best: dict[tuple[Spot, Spot], float] = {}
    for s, t, c in links:
        if (s, t) not in best or c < best[(s, t)]:
            best[(s, t)] = c
    return [(s, t, best[(s, t)]) for s, t in sorted(best)]


class SegmentLinking(Stage):
    """
    Links track segments: builds the segment cost matrix of the graph, solves
    it, and inserts every accepted pair as a new edge.
    """

    def __init__(
        self,
        settings: SegmentSettings | T.Mapping[str, T.Any],
        assignment: Assignment | None = None,
        *,
        num_threads: int | None = None,
        timeout: float = consts.DEFAULT_TIMEOUT,
    ):
        super().__init__(assignment)

        self.builder = SegmentCostMatrixBuilder(settings, num_threads=num_threads, timeout=timeout)

    @property
    def settings(self) -> SegmentSettings:
        return self.builder.settings

    @TX.override
    def extra_repr(self) -> str:
        s = self.settings
        return (
            f"gap_closing={self.builder.do_gap_closing}, merging={self.builder.do_merging}, "
            f"splitting={self.builder.do_splitting}, max_frame_gap={s.max_frame_gap}"
        )

    @TX.override
    def forward(self, graph: ObjectGraph, spots: SpotCollection | None = None) -> int:
        start = time.perf_counter()
        if spots is not None:
            with graph.lock:
                for s in spots:
                    if s not in graph:
                        graph.add_vertex(s)

        matrix = self.builder.build(graph)
        if matrix is None:
            self.processing_time = time.perf_counter() - start
            return 0

        matches, _, _ = self.assignment(matrix)
        accepted = [
            (matrix.sources[i], matrix.targets[j], matrix.cost_of(i, j))
            for i, j in matches.tolist()
        ]
        count = self.commit(graph, accepted)
        self.processing_time = time.perf_counter() - start
        logger.debug(
            "segment linking: %d edges from a %dx%d matrix with %d links in %.3fs",
            count,
            *matrix.shape,
            matrix.nnz,
            self.processing_time,
        )
        return count
