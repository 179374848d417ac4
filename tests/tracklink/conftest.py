r"""
Common set-up for all tests.

Defines fixtures that build spots, objects and linkers.
"""

from __future__ import annotations

import typing as T

import pytest

from tracklink import LAPLinker, ObjectGraph, TrackedObject, assignment


@pytest.fixture(
    params=[
        assignment.Jonker,
        assignment.Hungarian,
        assignment.SparseJonker,
    ],
    ids=(
        "alg:jonker",
        "alg:hungarian",
        "alg:sparse",
    ),
)
def solver(request) -> assignment.Assignment:
    mod = request.param()
    assert isinstance(mod, assignment.Assignment)
    return mod


@pytest.fixture()
def graph() -> ObjectGraph:
    return ObjectGraph()


@pytest.fixture()
def linker(solver) -> LAPLinker:
    return LAPLinker(assignment=solver)


@pytest.fixture()
def make_objects() -> T.Callable[..., dict[int, list[TrackedObject]]]:
    """
    Build objects per frame from ``{frame: [(x, y), ...]}``. Objects are named
    ``f{frame}.{index}``.
    """

    def _make(layout: T.Mapping[int, T.Sequence[T.Sequence[float]]]) -> dict[int, list[TrackedObject]]:
        return {
            frame: [
                TrackedObject(center=tuple(c), frame=frame, name=f"f{frame}.{i}")
                for i, c in enumerate(centers)
            ]
            for frame, centers in layout.items()
        }

    return _make

