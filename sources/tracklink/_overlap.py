r"""
Matching of objects by overlap, without global optimization.

Every object is matched to the counterpart it overlaps most. This is used where
an optimal assignment is not needed, e.g. to relate the regions of two
segmentations of the same frame.
"""

from __future__ import annotations

import dataclasses
import logging
import typing as T

import networkx as nx

__all__ = [
    "Overlap",
    "OverlapMatcher",
    "filter_low_overlap",
    "filter_low_overlap_proportion",
    "filter_low_jaccard",
]

logger = logging.getLogger(__name__)

_O = T.TypeVar("_O")


@dataclasses.dataclass(frozen=True, eq=False)
class Overlap(T.Generic[_O]):
    """
    Overlap between an object of the first list and one of the second list.
    """

    first: _O
    second: _O
    overlap: float

    def jaccard_index(self, size_fn: T.Callable[[_O], float]) -> float:
        """
        Intersection over union, given the size of each object.
        """
        union = size_fn(self.first) + size_fn(self.second) - self.overlap
        return self.overlap / union

    def __repr__(self) -> str:
        return f"{self.first}+{self.second} overlap={self.overlap:.3f}"


OverlapFilter: T.TypeAlias = T.Callable[[Overlap], bool]


def filter_low_overlap(min_overlap: float) -> OverlapFilter:
    """
    Keep overlaps strictly larger than ``min_overlap``.
    """
    return lambda o: o.overlap > min_overlap


def filter_low_overlap_proportion(size_fn: T.Callable[[T.Any], float], min_proportion: float) -> OverlapFilter:
    """
    Keep overlaps covering strictly more than ``min_proportion`` of the smaller
    object.
    """
    return lambda o: o.overlap / min(size_fn(o.first), size_fn(o.second)) > min_proportion


def filter_low_jaccard(size_fn: T.Callable[[T.Any], float], min_jaccard: float) -> OverlapFilter:
    """
    Keep overlaps with a Jaccard index of at least ``min_jaccard``.
    """
    return lambda o: o.jaccard_index(size_fn) >= min_jaccard


class OverlapMatcher(T.Generic[_O]):
    """
    Matches objects of two lists by maximal overlap.

    Parameters
    ----------
    overlap_fn
        Computes the overlap of two objects. Pairs with zero overlap are never
        matched.
    """

    def __init__(self, overlap_fn: T.Callable[[_O, _O], float]):
        self.overlap_fn = overlap_fn
        self.filters: list[OverlapFilter] = []

    def add_filter(self, predicate: OverlapFilter) -> OverlapMatcher[_O]:
        """
        Only keep overlaps verifying ``predicate``, in addition to previously
        added filters.
        """
        self.filters.append(predicate)
        return self

    def _accept(self, o: Overlap) -> bool:
        return all(f(o) for f in self.filters)

    def get_overlaps(self, a_list: T.Sequence[_O], b_list: T.Sequence[_O]) -> list[Overlap[_O]]:
        """
        All nonzero overlaps between both lists that pass the filters, in list
        order.
        """
        if not a_list or not b_list:
            return []
        res = []
        for a in a_list:
            for b in b_list:
                value = float(self.overlap_fn(a, b))
                if value == 0:
                    continue
                o = Overlap(a, b, value)
                if self._accept(o):
                    res.append(o)
        return res

    @staticmethod
    def _max_by(overlaps: T.Iterable[Overlap], key: T.Callable[[Overlap], T.Any]) -> dict[int, Overlap]:
        # first maximum wins, so that ties resolve in list order
        best: dict[int, Overlap] = {}
        for o in overlaps:
            k = id(key(o))
            if k not in best or o.overlap > best[k].overlap:
                best[k] = o
        return best

    def add_max_overlap(
        self,
        a_list: T.Sequence[_O],
        b_list: T.Sequence[_O],
        a_to_b: T.MutableMapping[T.Any, Overlap] | None,
        b_to_a: T.MutableMapping[T.Any, Overlap] | None,
    ) -> None:
        """
        Record the maximal overlap of each object with the other list.

        Parameters
        ----------
        a_list, b_list
            Objects to match.
        a_to_b
            Receives, for each object of ``a_list`` that overlaps any object of
            ``b_list``, its maximal overlap.
        b_to_a
            Same, from ``b_list`` to ``a_list``.
        """
        overlaps = self.get_overlaps(a_list, b_list)
        if not overlaps:
            return
        if a_to_b is not None:
            best = self._max_by(overlaps, lambda o: o.first)
            for a in a_list:
                if id(a) in best:
                    a_to_b[a] = best[id(a)]
        if b_to_a is not None:
            best = self._max_by(overlaps, lambda o: o.second)
            for b in b_list:
                if id(b) in best:
                    b_to_a[b] = best[id(b)]

    def add_max_overlap_graph(
        self,
        a_list: T.Sequence[_O],
        b_list: T.Sequence[_O],
        graph: nx.Graph,
    ) -> int:
        """
        Insert every mutually maximal pair as an edge weighted by its overlap:
        ``a`` and ``b`` are joined when ``b`` is the object ``a`` overlaps most
        and ``a`` the object ``b`` overlaps most.

        Returns
        -------
        int
            Number of edges inserted.
        """
        overlaps = self.get_overlaps(a_list, b_list)
        if not overlaps:
            return 0
        best_a = self._max_by(overlaps, lambda o: o.first)
        best_b = self._max_by(overlaps, lambda o: o.second)
        count = 0
        for a in a_list:
            o = best_a.get(id(a))
            if o is None or best_b.get(id(o.second)) is not o:
                continue
            graph.add_edge(o.first, o.second, weight=o.overlap)
            count += 1
        logger.debug("max overlap: %d mutual matches out of %d overlaps", count, len(overlaps))
        return count
