from __future__ import annotations

import concurrent.futures
import logging
import typing as T
from abc import abstractmethod

import torch
import typing_extensions as TX

from tracklink._errors import TrackingInterrupted
from tracklink._graph import ObjectGraph
from tracklink._spot import Spot, SpotCollection

if T.TYPE_CHECKING:
    from tracklink.assignment import Assignment

__all__ = ["Stage", "Link", "wait_all", "run_tasks"]

logger = logging.getLogger(__name__)

Link: T.TypeAlias = tuple[Spot, Spot, float]


def wait_all(futures: T.Sequence[concurrent.futures.Future], timeout: float) -> list[T.Any]:
    """
    Wait for every future to complete and collect their results in submission
    order.

    Raises
    ------
    TrackingInterrupted
        When some futures are still running after ``timeout`` seconds.
    Exception
        The first exception raised by a task, in submission order.
    """
    _, not_done = concurrent.futures.wait(futures, timeout=timeout)
    if not_done:
        for f in not_done:
            f.cancel()
        msg = f"{len(not_done)} of {len(futures)} tasks did not complete within {timeout:g}s"
        raise TrackingInterrupted(msg)
    return [f.result() for f in futures]


def run_tasks(
    fn: T.Callable[..., T.Any],
    tasks: T.Iterable[tuple],
    num_threads: int | None,
    timeout: float,
) -> list[T.Any]:
    """
    Run ``fn(*args)`` for every argument tuple on a thread pool and return the
    results in task order. The pool is not joined when the wait times out.
    """
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=num_threads)
    try:
        futures = [pool.submit(fn, *args) for args in tasks]
        return wait_all(futures, timeout)
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


class Stage(torch.nn.Module):
    """
    Base class for linking passes over an :class:`ObjectGraph`.

    A stage reads spots (from a collection and/or from the graph), proposes
    links and commits the links accepted by its assignment as weighted edges.
    Edges present before the pass are never removed.
    """

    processing_time: float

    def __init__(self, assignment: Assignment | None = None):
        super().__init__()

        if assignment is None:
            from tracklink.assignment import Jonker

            assignment = Jonker()
        self.assignment = assignment
        self.processing_time = 0.0

    @abstractmethod
    @TX.override
    def forward(self, graph: ObjectGraph, spots: SpotCollection | None = None) -> int:
        """
        Run the pass.

        Returns
        -------
        int
            Number of edges added to the graph.
        """
        raise NotImplementedError

    @staticmethod
    def commit(graph: ObjectGraph, links: T.Iterable[Link]) -> int:
        """
        Insert links as edges, atomically with respect to other committers.
        """
        count = 0
        with graph.lock:
            for s, t, c in links:
                graph.add_edge(s, t, c)
                count += 1
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug("link: %s -> %s (cost: %g)", s, t, c)
        return count
