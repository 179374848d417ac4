r"""
Frame-to-frame linking: spots of each frame are linked to the spots of the next
frame by solving one assignment problem per pair of adjacent frames.
"""

from __future__ import annotations

import logging
import time
import typing as T

import torch
import typing_extensions as TX

from tracklink import consts
from tracklink._errors import SettingsError, SolverError
from tracklink._graph import ObjectGraph
from tracklink._settings import LinkingSettings
from tracklink._spot import Spot, SpotCollection
from tracklink.assignment import SparseCostMatrix
from tracklink.costs import Cost, build_cost

from .base_stage import Link, Stage, run_tasks

if T.TYPE_CHECKING:
    from tracklink.assignment import Assignment

__all__ = ["FrameToFrame", "adjacent_frame_pairs"]

logger = logging.getLogger(__name__)


def adjacent_frame_pairs(frames: T.Iterable[int]) -> list[tuple[int, int]]:
    """
    Ascending pairs of present frames that are exactly one frame apart.
    """
    frames = sorted(set(frames))
    return [(a, b) for a, b in zip(frames, frames[1:]) if b - a == 1]


class FrameToFrame(Stage):
    r"""
    Links spots between adjacent frames.

    For each frame pair, spots of the first frame are sources and spots of the
    second frame are targets. Sources that already have a forward edge and
    targets that already have a backward edge are left out. Pairs costing more
    than the squared maximal distance are never linked, and each source or
    target may stay unlinked at the alternative cost
    :math:`(f \cdot d_{max})^2`.
    """

    def __init__(
        self,
        settings: LinkingSettings | T.Mapping[str, T.Any],
        assignment: Assignment | None = None,
        *,
        cost: Cost | None = None,
        num_threads: int = 1,
        timeout: float = consts.DEFAULT_TIMEOUT,
    ):
        """
        Parameters
        ----------
        settings
            Settings of the pass, either validated or as a mapping keyed by
            :mod:`tracklink.consts`.
        assignment
            Solver of the per-frame-pair problems.
        cost
            Cost module. By default selected from the feature penalties of the
            settings.
        num_threads
            Number of frame pairs processed concurrently.
        timeout
            Seconds to wait for all frame pairs before the pass is aborted.
        """
        super().__init__(assignment)

        if not isinstance(settings, LinkingSettings):
            settings = LinkingSettings.from_mapping(settings)
        if num_threads < 1:
            msg = f"Number of threads must be at least 1, got {num_threads}"
            raise SettingsError("num_threads", msg)

        self.settings = settings
        self.cost = cost if cost is not None else build_cost(settings.feature_penalties)
        self.num_threads = num_threads
        self.timeout = timeout

    @TX.override
    def extra_repr(self) -> str:
        return f"max_distance={self.settings.max_distance:g}, num_threads={self.num_threads}"

    @property
    def threshold(self) -> float:
        return self.settings.max_distance**2

    @property
    def alternative_cost(self) -> float:
        return (self.settings.alternative_cost_factor * self.settings.max_distance) ** 2

    @TX.override
    def forward(
        self,
        graph: ObjectGraph,
        spots: SpotCollection | None = None,
        frame_pair: tuple[int, int] | None = None,
    ) -> int:
        """
        Link adjacent frames.

        Parameters
        ----------
        graph
            Graph receiving the edges. Its vertices are candidates as well.
        spots
            Additional candidate spots.
        frame_pair
            Restrict the pass to a single ``(first, second)`` pair of frames.

        Returns
        -------
        int
            Number of edges added.
        """
        start = time.perf_counter()
        if self.settings.max_distance <= 0:
            logger.debug("maximal linking distance is %g: no frame-to-frame links", self.settings.max_distance)
            self.processing_time = time.perf_counter() - start
            return 0

        by_frame = self._group_by_frame(graph, spots)
        if frame_pair is not None:
            f0, f1 = frame_pair
            if f0 >= f1:
                msg = f"Frame pair must be ascending, got {frame_pair}"
                raise SettingsError("frame_pair", msg)
            pairs = [(f0, f1)]
        else:
            pairs = adjacent_frame_pairs(by_frame)

        exclude = graph.edge_count() > 0
        problems = []
        for f0, f1 in pairs:
            sources = sorted(by_frame.get(f0, ()))
            targets = sorted(by_frame.get(f1, ()))
            if exclude:
                sources = [s for s in sources if not graph.get_all_nexts(s)]
                targets = [t for t in targets if not graph.get_all_previous(t)]
            if sources and targets:
                problems.append((sources, targets))

        counts = run_tasks(
            self._link_frames,
            [(graph, s, t) for s, t in problems],
            self.num_threads,
            self.timeout,
        )

        self.processing_time = time.perf_counter() - start
        total = sum(counts)
        logger.debug(
            "frame-to-frame: %d edges over %d frame pairs in %.3fs",
            total,
            len(problems),
            self.processing_time,
        )
        return total

    @staticmethod
    def _group_by_frame(graph: ObjectGraph, spots: SpotCollection | None) -> dict[int, set[Spot]]:
        by_frame: dict[int, set[Spot]] = {}
        if spots is not None:
            for s in spots:
                by_frame.setdefault(s.frame, set()).add(s)
        for s in graph.vertices():
            by_frame.setdefault(s.frame, set()).add(s)
        return by_frame

    def candidate_links(self, sources: list[Spot], targets: list[Spot]) -> list[Link]:
        """
        All pairs within the maximal distance, in row-major order.
        """
        costs = self.cost.cost_matrix(sources, targets)
        rows, cols = torch.nonzero(costs <= self.threshold, as_tuple=True)
        return [(sources[i], targets[j], float(costs[i, j])) for i, j in zip(rows.tolist(), cols.tolist())]

    def _link_frames(self, graph: ObjectGraph, sources: list[Spot], targets: list[Spot]) -> int:
        links = self.candidate_links(sources, targets)
        if not links:
            return 0
        matrix = SparseCostMatrix.from_links(links, self.alternative_cost)
        try:
            matches, _, _ = self.assignment(matrix)
        except SolverError as err:
            msg = f"At frame {sources[0].frame} to {targets[0].frame}: {err}"
            raise SolverError(msg) from err
        accepted = [
            (matrix.sources[i], matrix.targets[j], matrix.cost_of(i, j))
            for i, j in matches.tolist()
        ]
        return self.commit(graph, accepted)
