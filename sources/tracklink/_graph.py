r"""
The track graph: a weighted simple graph over spots.

Edges always join spots of different frames. The graph itself is undirected,
and the temporal direction of an edge is read from the frames of its
endpoints: the *source* is the endpoint at the earlier frame.
"""

from __future__ import annotations

import logging
import threading
import typing as T

import networkx as nx

from ._mapper import GraphObjectMapper
from ._spot import Spot

__all__ = ["Edge", "ObjectGraph", "TrackLinkEditor"]

logger = logging.getLogger(__name__)

Edge: T.TypeAlias = tuple[Spot, Spot]


@T.runtime_checkable
class TrackLinkEditor(T.Protocol):
    """
    Mutates the previous/next/track-head links of domain objects.

    Domain objects are expected to expose ``previous``, ``next`` and
    ``track_head`` attributes that the editor writes to.
    """

    def set_track_links(
        self,
        prev: T.Any,
        next: T.Any,
        set_prev: bool,
        set_next: bool,
        set_track_head: bool,
    ) -> None: ...

    def reset_track_links(
        self, obj: T.Any, reset_prev: bool, reset_next: bool, propagate: bool
    ) -> None: ...

    def set_track_head(self, obj: T.Any, head: T.Any, propagate: bool) -> None: ...


def _canonical(s: Spot, t: Spot) -> Edge:
    return (s, t) if s.frame < t.frame else (t, s)


def _crosses(a_prev: float, a_next: float, b_prev: float, b_next: float, tolerance: float) -> bool:
    d1 = a_prev - b_prev
    d2 = a_next - b_next
    return d1 * d2 <= 0 or abs(d1) <= tolerance or abs(d2) <= tolerance


class ObjectGraph:
    """
    Weighted simple graph over spots, with the queries needed to read tracks
    from it and to project it onto domain objects.

    All mutations take :attr:`lock`, so several workers may commit edges
    concurrently. Readers are expected to run once writers have finished.
    """

    def __init__(self, mapper: GraphObjectMapper | None = None):
        self.mapper = mapper if mapper is not None else GraphObjectMapper()
        self.graph = nx.Graph()
        self.lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #

    def add_vertex(self, s: Spot) -> None:
        with self.lock:
            self.graph.add_node(s)

    def add_edge(self, s: Spot, t: Spot, weight: float | None = None) -> Edge:
        """
        Add an edge between two spots, adding them as vertices if needed. The
        edge is stored from the earlier to the later frame.
        """
        if s is t or s.frame == t.frame:
            msg = f"Cannot link spots of the same frame: {s} and {t}"
            raise ValueError(msg)
        source, target = _canonical(s, t)
        with self.lock:
            if weight is None:
                weight = self.graph.edges[source, target]["weight"] if self.graph.has_edge(source, target) else 1.0
            self.graph.add_edge(source, target, weight=float(weight))
        return source, target

    def remove_edge(self, s: Spot, t: Spot) -> bool:
        with self.lock:
            if not self.graph.has_edge(s, t):
                return False
            self.graph.remove_edge(s, t)
            return True

    def remove_edges(self, edges: T.Iterable[Edge], remove_unlinked: bool = False) -> None:
        """
        Remove edges, and optionally the endpoints left without any edge.
        """
        with self.lock:
            touched: set[Spot] = set()
            for s, t in edges:
                if self.graph.has_edge(s, t):
                    self.graph.remove_edge(s, t)
                touched.update((s, t))
            if remove_unlinked:
                for s in sorted(touched):
                    if s in self.graph and self.graph.degree(s) == 0:
                        self.graph.remove_node(s)

    def remove_all_edges(self, s: Spot, previous: bool, next: bool) -> None:
        """
        Remove the backward and/or forward edges of a spot. Spots that end up
        without any edge are removed from the graph.
        """
        with self.lock:
            if s not in self.graph:
                return
            others = []
            if previous:
                others += self.get_all_previous(s)
            if next:
                others += self.get_all_nexts(s)
            for other in others:
                self.graph.remove_edge(s, other)
                if self.graph.degree(other) == 0:
                    self.graph.remove_node(other)
            if self.graph.degree(s) == 0:
                self.graph.remove_node(s)

    def remove_spots(self, spots: T.Iterable[Spot]) -> None:
        with self.lock:
            for s in spots:
                if s in self.graph:
                    self.graph.remove_node(s)

    def remove_object(self, obj: T.Any) -> Spot | None:
        """
        Forget a domain object: drop its spot from the mapper and from the graph.
        """
        spot = self.mapper.remove(obj)
        if spot is not None:
            self.remove_spots([spot])
        return spot

    def reset_edges(self) -> None:
        """
        Drop every edge and vertex, so that linking can start over. The mapper
        is kept.
        """
        with self.lock:
            self.graph = nx.Graph()

    def switch_links(self, e1: Edge, e2: Edge) -> None:
        """
        Replace ``s1 -> t1`` and ``s2 -> t2`` by ``s1 -> t2`` and ``s2 -> t1``.
        Each source keeps the weight of its former edge.
        """
        (s1, t1), (s2, t2) = _canonical(*e1), _canonical(*e2)
        with self.lock:
            w1 = self.graph.edges[s1, t1]["weight"]
            w2 = self.graph.edges[s2, t2]["weight"]
            self.graph.remove_edge(s1, t1)
            self.graph.remove_edge(s2, t2)
            self.add_edge(s1, t2, w1)
            self.add_edge(s2, t1, w2)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def __contains__(self, s: object) -> bool:
        return s in self.graph

    def vertices(self) -> list[Spot]:
        return sorted(self.graph.nodes)

    def vertex_count(self) -> int:
        return self.graph.number_of_nodes()

    def edge_count(self) -> int:
        return self.graph.number_of_edges()

    def edges(self) -> list[tuple[Spot, Spot, float]]:
        """
        All edges as ``(source, target, weight)`` with ``source.frame <
        target.frame``, sorted by source then target.
        """
        res = [(*_canonical(u, v), w) for u, v, w in self.graph.edges(data="weight")]
        res.sort(key=lambda e: (e[0], e[1]))
        return res

    def has_edge(self, s: Spot, t: Spot) -> bool:
        return self.graph.has_edge(s, t)

    def get_weight(self, s: Spot, t: Spot) -> float | None:
        if not self.graph.has_edge(s, t):
            return None
        return self.graph.edges[s, t]["weight"]

    def get_all_previous(self, t: Spot) -> list[Spot]:
        if t not in self.graph:
            return []
        return sorted(n for n in self.graph.neighbors(t) if n.frame < t.frame)

    def get_all_nexts(self, s: Spot) -> list[Spot]:
        if s not in self.graph:
            return []
        return sorted(n for n in self.graph.neighbors(s) if n.frame > s.frame)

    def get_previous(self, t: Spot) -> Spot | None:
        """
        The predecessor of a spot if it has exactly one, otherwise ``None``.
        """
        prevs = self.get_all_previous(t)
        return prevs[0] if len(prevs) == 1 else None

    def get_next(self, s: Spot) -> Spot | None:
        """
        The successor of a spot if it has exactly one, otherwise ``None``.
        """
        nexts = self.get_all_nexts(s)
        return nexts[0] if len(nexts) == 1 else None

    def get_track_head(self, s: Spot) -> Spot:
        """
        First spot of the unambiguous chain ``s`` belongs to: walks backward as
        long as each step is a one-to-one link.
        """
        head = s
        while True:
            prev = self.get_previous(head)
            if prev is None or self.get_next(prev) is not head:
                return head
            head = prev

    def get_track(self, s: Spot, next: bool = True, previous: bool = True) -> list[Spot]:
        """
        Spots reachable from ``s`` through unique successors and/or unique
        predecessors, sorted by frame. With merges or splits this is one of
        the possible tracks.
        """
        track = [s]
        if next:
            n = self.get_next(s)
            while n is not None:
                track.append(n)
                n = self.get_next(n)
        if previous:
            p = self.get_previous(s)
            while p is not None:
                track.append(p)
                p = self.get_previous(p)
        track.sort()
        return track

    def get_previous_at_frame(self, s: Spot, frame: int) -> Spot | None:
        if frame == s.frame:
            return s
        if frame > s.frame:
            return None
        prev = self.get_previous(s)
        while prev is not None and prev.frame > frame:
            prev = self.get_previous(prev)
        return prev

    def get_next_at_frame(self, s: Spot, frame: int) -> Spot | None:
        if frame == s.frame:
            return s
        if frame < s.frame:
            return None
        nxt = self.get_next(s)
        while nxt is not None and nxt.frame < frame:
            nxt = self.get_next(nxt)
        return nxt

    # ------------------------------------------------------------------ #
    # Crossing links
    # ------------------------------------------------------------------ #

    def _intersect(self, e1: Edge, e2: Edge, tolerance: float) -> bool:
        (s1, t1), (s2, t2) = e1, e2
        if s1 is s2 or t1 is t2 or s1 is t2 or s2 is t1:
            return False
        if not max(s1.frame, s2.frame) < min(t1.frame, t2.frame):
            return False
        return all(
            _crosses(s1.get_feature(f), t1.get_feature(f), s2.get_feature(f), t2.get_feature(f), tolerance)
            for f in ("x", "y", "z")
        )

    def get_crossing_links(self, tolerance: float) -> list[tuple[Edge, Edge]]:
        """
        Pairs of edges that overlap in time and whose endpoints swap order (or
        come within ``tolerance`` of each other) along every coordinate.
        """
        edges = [(s, t) for s, t, _ in self.edges()]
        edges.sort(key=lambda e: (e[0].frame, e[0], e[1]))
        res = []
        for i, e1 in enumerate(edges):
            for e2 in edges[i + 1 :]:
                if e2[0].frame >= e1[1].frame:
                    break
                if self._intersect(e1, e2, tolerance):
                    res.append((e1, e2))
        return res

    def remove_crossing_links(self, tolerance: float) -> int:
        """
        Remove both edges of every crossing pair. Spots are kept.

        Returns
        -------
        int
            Number of edges removed.
        """
        crossing = self.get_crossing_links(tolerance)
        to_remove = {e for pair in crossing for e in pair}
        self.remove_edges(to_remove, remove_unlinked=False)
        logger.debug(
            "removed %d crossing links: %d edges, %d vertices remain",
            len(to_remove),
            self.edge_count(),
            self.vertex_count(),
        )
        return len(to_remove)

    # ------------------------------------------------------------------ #
    # Projection onto domain objects
    # ------------------------------------------------------------------ #

    @staticmethod
    def _flatten(objects_by_frame: T.Mapping[int, T.Iterable[T.Any]]) -> list[tuple[int, T.Any]]:
        return [(f, o) for f in sorted(objects_by_frame) for o in objects_by_frame[f]]

    def reset_track_links(
        self,
        objects_by_frame: T.Mapping[int, T.Iterable[T.Any]],
        editor: TrackLinkEditor,
        propagate_track_head: bool = True,
    ) -> None:
        """
        Reset the links of every object. Backward links of the first frame and
        forward links of the last frame are left untouched, as they point
        outside of the given frame range.
        """
        items = self._flatten(objects_by_frame)
        if not items:
            return
        min_frame, max_frame = items[0][0], items[-1][0]
        logger.debug("reset track links between %d & %d", min_frame, max_frame)
        for frame, obj in items:
            editor.reset_track_links(obj, frame > min_frame, frame < max_frame, propagate_track_head)

    def set_track_links(
        self,
        objects_by_frame: T.Mapping[int, T.Iterable[T.Any]],
        editor: TrackLinkEditor,
        set_track_head: bool = True,
        propagate_track_head: bool = True,
    ) -> set[tuple[T.Any, T.Any]]:
        """
        Project the graph onto domain objects.

        Unique backward and forward edges are written as previous/next links
        through the editor. Directions with several edges cannot be encoded that
        way and are returned as additional links.

        Parameters
        ----------
        objects_by_frame
            Domain objects per frame. Every object must have been mapped to a
            spot by :attr:`mapper`; unmapped objects keep reset links.
        editor
            Mutator of the domain objects' links.
        set_track_head
            Whether to compute track heads once links are written.
        propagate_track_head
            Passed on to the editor.

        Returns
        -------
        set[tuple]
            Additional links as ``(earlier, later)`` object pairs.
        """
        items = self._flatten(objects_by_frame)
        if not items:
            return set()
        self.reset_track_links(objects_by_frame, editor, propagate_track_head)

        included = {id(o) for _, o in items}
        additional: set[tuple[T.Any, T.Any]] = set()
        self._set_links(items, included, True, set_track_head, editor, additional)
        self._set_links(items, included, False, set_track_head, editor, additional)

        if set_track_head:
            for _, obj in sorted(items, key=self._item_order):
                prev = getattr(obj, "previous", None)
                if prev is not None and getattr(prev, "next", None) is obj:
                    editor.set_track_head(obj, prev.track_head, propagate_track_head)
                else:
                    editor.set_track_head(obj, obj, propagate_track_head)
        return additional

    def _item_order(self, item: tuple[int, T.Any]) -> tuple[int, int]:
        frame, obj = item
        spot = self.mapper.get_spot(obj)
        return (frame, spot.id if spot is not None else -1)

    def _set_links(
        self,
        items: list[tuple[int, T.Any]],
        included: set[int],
        backward: bool,
        set_track_head: bool,
        editor: TrackLinkEditor,
        additional: set[tuple[T.Any, T.Any]],
    ) -> None:
        for _, obj in items:
            spot = self.mapper.get_spot(obj)
            if spot is None or spot not in self.graph:
                continue
            others = self.get_all_previous(spot) if backward else self.get_all_nexts(spot)
            other_objs = [self.mapper.get_object(s) for s in others]
            other_objs = [o for o in other_objs if o is not None and id(o) in included]
            if len(others) == 1:
                if not other_objs:
                    continue
                other = other_objs[0]
                if backward:
                    current = getattr(obj, "previous", None)
                    if current is not None and current is not other:
                        logger.warning(
                            "%s already has a previous object assigned: %s, cannot assign: %s",
                            obj,
                            current,
                            other,
                        )
                    else:
                        editor.set_track_links(other, obj, True, False, set_track_head)
                else:
                    current = getattr(obj, "next", None)
                    if current is not None and current is not other:
                        logger.warning(
                            "%s already has a next object assigned: %s, cannot assign: %s",
                            obj,
                            current,
                            other,
                        )
                    else:
                        editor.set_track_links(obj, other, False, True, set_track_head)
            elif len(others) > 1:
                for other in other_objs:
                    additional.add((other, obj) if backward else (obj, other))

    # ------------------------------------------------------------------ #
    # Diagnostics
    # ------------------------------------------------------------------ #

    def log_graph_status(self, step: str, processing_time: float = 0.0) -> None:
        if processing_time > 0:
            logger.debug(
                "number of edges after %s: %d, nb of vertices: %d, processing time: %.3fs",
                step,
                self.edge_count(),
                self.vertex_count(),
                processing_time,
            )
        else:
            logger.debug(
                "number of edges after %s: %d, nb of vertices: %d",
                step,
                self.edge_count(),
                self.vertex_count(),
            )
