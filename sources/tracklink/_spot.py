r"""
Spots are the point proxies of domain objects that the linking passes work on.

A :class:`Spot` carries a frame index, a position, a radius, a quality and an
open set of named numeric features. Spots of a tracking run are gathered per
frame in a :class:`SpotCollection`, and are collated into a
:class:`~tensordict.TensorDict` whenever costs have to be computed for many of
them at once.
"""

from __future__ import annotations

import itertools
import math
import threading
import typing as T

import torch
from tensordict import TensorDict

from . import consts

__all__ = [
    "Spot",
    "SpotFactory",
    "DefaultSpotFactory",
    "SpotCollection",
    "collate_spots",
]

_spot_ids = itertools.count()
_spot_ids_lock = threading.Lock()


def _next_id() -> int:
    with _spot_ids_lock:
        return next(_spot_ids)


class Spot:
    """
    A vertex of the track graph: one object at one frame.

    Equality and hashing use object identity. Spots are totally ordered by
    ``(frame, id)``, where ``id`` is assigned in creation order, so sorting a
    collection of spots is reproducible across runs.
    """

    __slots__ = ("id", "frame", "x", "y", "z", "radius", "quality", "features", "name")

    def __init__(
        self,
        frame: int,
        x: float,
        y: float,
        z: float = 0.0,
        *,
        radius: float = 1.0,
        quality: float = 1.0,
        features: T.Mapping[str, float] | None = None,
        name: str | None = None,
    ):
        self.id = _next_id()
        self.frame = int(frame)
        self.x = float(x)
        self.y = float(y)
        self.z = float(z)
        self.radius = float(radius)
        self.quality = float(quality)
        self.features: dict[str, float] = dict(features or {})
        self.name = name

    @property
    def position(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def get_feature(self, name: str) -> float:
        """
        Read a position coordinate or a named feature. Missing features read as
        ``nan``.
        """
        if name in consts.POSITION_FEATURES:
            return getattr(self, name)
        if name == "radius":
            return self.radius
        if name == "quality":
            return self.quality
        return self.features.get(name, math.nan)

    def square_distance_to(self, other: Spot) -> float:
        return (
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )

    def normalize_diff_to(self, other: Spot, feature: str) -> float:
        """
        Absolute difference of a feature, normalized by the mean of both values.
        """
        a = self.get_feature(feature)
        b = other.get_feature(feature)
        if a == -b:
            return 0.0
        return abs(a - b) / ((a + b) / 2)

    def _key(self) -> tuple[int, int]:
        return (self.frame, self.id)

    def __lt__(self, other: Spot) -> bool:
        return self._key() < other._key()

    def __le__(self, other: Spot) -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: Spot) -> bool:
        return self._key() > other._key()

    def __ge__(self, other: Spot) -> bool:
        return self._key() >= other._key()

    def __repr__(self) -> str:
        name = f"{self.name!r}, " if self.name is not None else ""
        return f"Spot({name}id={self.id}, frame={self.frame}, x={self.x:g}, y={self.y:g}, z={self.z:g})"


@T.runtime_checkable
class SpotFactory(T.Protocol):
    """
    Converts a domain object observed at some frame into a spot. May return
    ``None`` when no spot can be derived for the object.
    """

    def __call__(self, obj: T.Any, frame: int) -> Spot | None: ...


class DefaultSpotFactory:
    """
    Creates a spot at the object's ``center``. Radius and quality default to 1.
    The object's ``size`` is stored as the ``size`` feature when available.
    """

    def __init__(self, radius: float = 1.0, quality: float = 1.0):
        self.radius = radius
        self.quality = quality

    def __call__(self, obj: T.Any, frame: int) -> Spot | None:
        center = getattr(obj, "center", None)
        if center is None:
            return None
        center = [float(c) for c in center]
        if len(center) < 2:
            msg = f"Object center must have at least 2 coordinates, got {center}"
            raise ValueError(msg)
        features = {}
        size = getattr(obj, "size", None)
        if size is not None:
            features["size"] = float(size)
        return Spot(
            frame,
            center[0],
            center[1],
            center[2] if len(center) > 2 else 0.0,
            radius=self.radius,
            quality=self.quality,
            features=features,
        )


class SpotCollection:
    """
    Spots of a tracking run, grouped by frame. Iteration is in spot order.
    """

    def __init__(self, spots: T.Iterable[Spot] = ()):
        self._frames: dict[int, list[Spot]] = {}
        for spot in spots:
            self.add(spot)

    def add(self, spot: Spot, frame: int | None = None) -> None:
        frame = spot.frame if frame is None else frame
        if frame != spot.frame:
            msg = f"Cannot add {spot} at frame {frame}"
            raise ValueError(msg)
        bucket = self._frames.setdefault(frame, [])
        if spot not in bucket:
            bucket.append(spot)
            bucket.sort()

    def remove(self, spot: Spot) -> bool:
        bucket = self._frames.get(spot.frame)
        if bucket is None or spot not in bucket:
            return False
        bucket.remove(spot)
        if not bucket:
            del self._frames[spot.frame]
        return True

    def frames(self) -> list[int]:
        return sorted(self._frames)

    def get(self, frame: int) -> list[Spot]:
        return list(self._frames.get(frame, ()))

    def count(self, frame: int | None = None) -> int:
        if frame is not None:
            return len(self._frames.get(frame, ()))
        return sum(len(b) for b in self._frames.values())

    def __iter__(self) -> T.Iterator[Spot]:
        for frame in self.frames():
            yield from self._frames[frame]

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, spot: object) -> bool:
        return isinstance(spot, Spot) and spot in self._frames.get(spot.frame, ())

    def __bool__(self) -> bool:
        return bool(self._frames)


def collate_spots(
    spots: T.Sequence[Spot],
    features: T.Iterable[str] = (),
    *,
    dtype: torch.dtype = torch.float64,
) -> TensorDict:
    """
    Collate spots into a TensorDict with batch size ``[len(spots)]``.

    Parameters
    ----------
    spots
        Spots to collate, in the order of the resulting rows.
    features
        Names of additional features to gather. Spots missing a feature hold
        ``nan`` for it.
    dtype
        Floating point type of the position and feature entries.

    Returns
    -------
    TensorDict
        Entries ``KEY_POSITION`` (N x 3), ``KEY_FRAME``, ``KEY_RADIUS``,
        ``KEY_QUALITY``, ``KEY_INDEX`` and one (N,) entry per feature.
    """
    num = len(spots)
    data = {
        consts.KEY_POSITION: torch.tensor(
            [s.position for s in spots], dtype=dtype
        ).reshape(num, 3),
        consts.KEY_FRAME: torch.tensor([s.frame for s in spots], dtype=torch.long),
        consts.KEY_RADIUS: torch.tensor([s.radius for s in spots], dtype=dtype),
        consts.KEY_QUALITY: torch.tensor([s.quality for s in spots], dtype=dtype),
        consts.KEY_INDEX: torch.arange(num, dtype=torch.long),
    }
    for name in features:
        data[name] = torch.tensor([s.get_feature(name) for s in spots], dtype=dtype)
    return TensorDict(data, batch_size=[num])
