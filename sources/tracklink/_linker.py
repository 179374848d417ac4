r"""
The linker ties the passes together: it owns the spots of a tracking run and
their graph, runs frame-to-frame and segment linking on it, and finally projects
the graph onto the domain objects.

.. code-block:: python

    linker = LAPLinker()
    linker.add_objects(objects_by_frame)
    linker.process_ftf(5.0)
    linker.process_segments(5.0, max_frame_gap=1, allow_splitting=True, allow_merging=True)
    additional = linker.set_track_links(objects_by_frame, SimpleLinkEditor())
"""

from __future__ import annotations

import enum
import logging
import math
import time
import typing as T

from . import consts
from ._errors import TrackingError
from ._graph import ObjectGraph, TrackLinkEditor
from ._mapper import GraphObjectMapper
from ._objects import SimpleLinkEditor
from ._spot import DefaultSpotFactory, Spot, SpotCollection, SpotFactory
from .assignment import Assignment, Jonker
from .costs import SquareDistance
from .stages import FrameToFrame, SegmentLinking

__all__ = ["LAPLinker", "LinkerState"]

logger = logging.getLogger(__name__)


class LinkerState(enum.IntEnum):
    """
    Progress of a linker through a tracking run. States only move forward.
    """

    EMPTY = 0
    POPULATED = 1
    LINKED_FTF = 2
    LINKED_FULL = 3
    FINALIZED = 4


class LAPLinker(ObjectGraph):
    """
    Links objects into tracks by solving linear assignment problems.

    Parameters
    ----------
    factory
        Converts domain objects to spots.
    num_threads
        Number of worker threads of each pass.
    assignment
        Solver shared by all passes.
    timeout
        Seconds a pass waits for its workers before it is aborted.
    """

    def __init__(
        self,
        factory: SpotFactory | None = None,
        num_threads: int = 1,
        assignment: Assignment | None = None,
        timeout: float = consts.DEFAULT_TIMEOUT,
    ):
        super().__init__(GraphObjectMapper())

        self.factory = factory if factory is not None else DefaultSpotFactory()
        self.num_threads = num_threads
        self.assignment = assignment if assignment is not None else Jonker()
        self.timeout = timeout
        self.spot_collection = SpotCollection()
        self.error_message: str | None = None
        self.state = LinkerState.EMPTY

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(state={self.state.name}, spots={len(self.spot_collection)}, "
            f"edges={self.edge_count()})"
        )

    def _advance(self, state: LinkerState) -> None:
        if state > self.state:
            self.state = state

    # ------------------------------------------------------------------ #
    # Objects
    # ------------------------------------------------------------------ #

    def add_object(self, obj: T.Any, frame: int) -> Spot | None:
        """
        Convert an object into a spot and register it. Objects for which the
        factory returns no spot are skipped.
        """
        spot = self.factory(obj, frame)
        if spot is None:
            return None
        self.mapper.add(obj, spot)
        self.spot_collection.add(spot)
        self._advance(LinkerState.POPULATED)
        return spot

    def add_objects(self, objects_by_frame: T.Mapping[int, T.Iterable[T.Any]]) -> None:
        for frame in sorted(objects_by_frame):
            for obj in objects_by_frame[frame]:
                self.add_object(obj, frame)

    def add_spot(self, spot: Spot) -> None:
        """
        Register a spot that stands for no domain object.
        """
        self.spot_collection.add(spot)
        self._advance(LinkerState.POPULATED)

    def remove_object(self, obj: T.Any) -> Spot | None:
        spot = super().remove_object(obj)
        if spot is not None:
            self.spot_collection.remove(spot)
        return spot

    # ------------------------------------------------------------------ #
    # Passes
    # ------------------------------------------------------------------ #

    def _run(self, step: str, fn: T.Callable[[], int], state: LinkerState) -> bool:
        start = time.perf_counter()
        try:
            fn()
        except TrackingError as err:
            self.error_message = str(err)
            logger.error("%s failed: %s", step, err)
            return False
        self.error_message = None
        self._advance(state)
        self.log_graph_status(step, time.perf_counter() - start)
        return True

    def process_ftf(
        self,
        distance_threshold: float,
        frame_pair: tuple[int, int] | None = None,
        feature_penalties: T.Mapping[str, float] | None = None,
    ) -> bool:
        """
        Link spots of adjacent frames.

        Parameters
        ----------
        distance_threshold
            Maximal distance between linked spots.
        frame_pair
            Link only these two frames, in which case they need not be adjacent.
        feature_penalties
            Weights of features that penalize links between dissimilar spots.

        Returns
        -------
        bool
            Whether the pass succeeded. On failure, :attr:`error_message` holds
            the reason.
        """
        settings = {
            consts.KEY_LINKING_MAX_DISTANCE: float(distance_threshold),
            consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: consts.DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR,
        }
        if feature_penalties:
            settings[consts.KEY_LINKING_FEATURE_PENALTIES] = dict(feature_penalties)

        def run() -> int:
            stage = FrameToFrame(
                settings,
                self.assignment,
                num_threads=1 if frame_pair is not None else self.num_threads,
                timeout=self.timeout,
            )
            return stage(self, self.spot_collection, frame_pair)

        return self._run("FTF", run, LinkerState.LINKED_FTF)

    def process_segments(
        self,
        distance_threshold: float,
        max_frame_gap: int,
        allow_splitting: bool,
        allow_merging: bool,
        feature_penalties: T.Mapping[str, float] | None = None,
    ) -> bool:
        """
        Close gaps between track segments and link merge and split events.

        Parameters
        ----------
        distance_threshold
            Maximal distance of every link type.
        max_frame_gap
            Number of missing frames a gap-closing link may bridge. Gap-closing
            is disabled when this is below 1.
        allow_splitting
            Whether a segment may split into two.
        allow_merging
            Whether two segments may merge into one.
        feature_penalties
            Weights of features that penalize links between dissimilar spots.

        Returns
        -------
        bool
            Whether the pass succeeded.
        """
        settings: dict[str, T.Any] = {
            consts.KEY_ALLOW_GAP_CLOSING: max_frame_gap >= 1,
            consts.KEY_GAP_CLOSING_MAX_DISTANCE: float(distance_threshold),
            consts.KEY_GAP_CLOSING_MAX_FRAME_GAP: int(max_frame_gap) + 1,
            consts.KEY_ALLOW_TRACK_SPLITTING: bool(allow_splitting),
            consts.KEY_SPLITTING_MAX_DISTANCE: float(distance_threshold),
            consts.KEY_ALLOW_TRACK_MERGING: bool(allow_merging),
            consts.KEY_MERGING_MAX_DISTANCE: float(distance_threshold),
            consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: consts.DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR,
            consts.KEY_CUTOFF_PERCENTILE: consts.DEFAULT_CUTOFF_PERCENTILE,
        }
        if feature_penalties:
            for key in (
                consts.KEY_GAP_CLOSING_FEATURE_PENALTIES,
                consts.KEY_SPLITTING_FEATURE_PENALTIES,
                consts.KEY_MERGING_FEATURE_PENALTIES,
            ):
                settings[key] = dict(feature_penalties)

        def run() -> int:
            stage = SegmentLinking(
                settings,
                self.assignment,
                num_threads=self.num_threads,
                timeout=self.timeout,
            )
            return stage(self, self.spot_collection)

        return self._run("segment linking", run, LinkerState.LINKED_FULL)

    def link_objects(
        self,
        prev: T.Iterable[Spot],
        next: T.Iterable[Spot],
        allow_splitting: bool,
        allow_merging: bool,
    ) -> bool:
        """
        Link the spots of two frames regardless of distance, and add the
        resulting edges to this graph.

        Parameters
        ----------
        prev
            Spots of a single frame.
        next
            Spots of another single frame. Both sets are swapped when ``next``
            precedes ``prev``.
        allow_splitting, allow_merging
            Whether to also link split and merge events between both frames.

        Returns
        -------
        bool
            Whether linking succeeded.
        """
        prev, next = list(prev), list(next)
        if not prev or not next:
            return True
        prev_frame, next_frame = prev[0].frame, next[0].frame
        if any(s.frame != prev_frame for s in prev) or any(s.frame != next_frame for s in next):
            msg = "All spots of a set must belong to the same frame"
            raise ValueError(msg)
        if prev_frame == next_frame:
            msg = f"Cannot link two sets of the same frame {prev_frame}"
            raise ValueError(msg)
        if next_frame < prev_frame:
            return self.link_objects(next, prev, allow_splitting, allow_merging)

        local = LAPLinker(num_threads=1, assignment=self.assignment, timeout=self.timeout)
        for s in (*prev, *next):
            local.add_spot(s)

        # bound every pairwise cost, so that no pair is rejected by distance
        max_cost = float(SquareDistance().cost_matrix(prev, next).max())
        distance = math.sqrt(max_cost) * consts.DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR + 1.0

        ok = local.process_ftf(distance, frame_pair=(prev_frame, next_frame))
        if ok and (allow_splitting or allow_merging):
            ok = local.process_segments(distance, 0, allow_splitting, allow_merging)
        if not ok:
            self.error_message = local.error_message
            return False
        for p in prev:
            for n in local.get_all_nexts(p):
                self.add_edge(p, n, local.get_weight(p, n))
        self._advance(LinkerState.LINKED_FTF)
        return True

    def remove_crossing_links(self, tolerance: float) -> int:
        count = super().remove_crossing_links(tolerance)
        self.log_graph_status("crossing links removal")
        return count

    # ------------------------------------------------------------------ #
    # Projection
    # ------------------------------------------------------------------ #

    def set_track_links(
        self,
        objects_by_frame: T.Mapping[int, T.Iterable[T.Any]],
        editor: TrackLinkEditor | None = None,
        set_track_head: bool = True,
        propagate_track_head: bool = True,
    ) -> set[tuple[T.Any, T.Any]]:
        """
        Write the links of the graph onto the domain objects and return the
        links that cannot be written as previous/next, as ``(earlier, later)``
        object pairs.
        """
        if editor is None:
            editor = SimpleLinkEditor()
        additional = super().set_track_links(objects_by_frame, editor, set_track_head, propagate_track_head)
        self._advance(LinkerState.FINALIZED)
        logger.debug("track links set: %d additional links", len(additional))
        return additional
