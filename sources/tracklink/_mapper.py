from __future__ import annotations

import typing as T

from ._spot import Spot

__all__ = ["GraphObjectMapper"]


class GraphObjectMapper:
    """
    Bidirectional one-to-one map between domain objects and the spots that
    stand in for them during one tracking run.
    """

    def __init__(self) -> None:
        self._spots: dict[int, Spot] = {}
        self._objects: dict[Spot, T.Any] = {}

    def add(self, obj: T.Any, spot: Spot) -> None:
        previous = self._spots.get(id(obj))
        if previous is not None and previous is not spot:
            del self._objects[previous]
        if spot in self._objects and self._objects[spot] is not obj:
            msg = f"{spot} is already mapped to another object"
            raise ValueError(msg)
        self._spots[id(obj)] = spot
        self._objects[spot] = obj

    def remove(self, obj: T.Any) -> Spot | None:
        spot = self._spots.pop(id(obj), None)
        if spot is not None:
            del self._objects[spot]
        return spot

    def get_spot(self, obj: T.Any) -> Spot | None:
        return self._spots.get(id(obj))

    def get_object(self, spot: Spot) -> T.Any | None:
        return self._objects.get(spot)

    def spots(self) -> list[Spot]:
        return sorted(self._objects)

    def objects(self) -> list[T.Any]:
        return [self._objects[s] for s in self.spots()]

    def __contains__(self, obj: object) -> bool:
        return id(obj) in self._spots

    def __len__(self) -> int:
        return len(self._objects)
