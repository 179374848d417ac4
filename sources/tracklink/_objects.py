r"""
A minimal domain model: objects with a center and a size that carry
previous/next/track-head links, and an editor writing those links.
"""

from __future__ import annotations

import dataclasses
import typing as T

__all__ = ["TrackedObject", "SimpleLinkEditor"]


@dataclasses.dataclass(eq=False)
class TrackedObject:
    """
    Detected object of a single frame.

    Equality is identity, so that objects can be used in sets and as keys even
    when two detections share the same geometry.
    """

    center: tuple[float, ...]
    size: float = 1.0
    frame: int = 0
    name: str | None = None
    previous: TrackedObject | None = dataclasses.field(default=None, repr=False)
    next: TrackedObject | None = dataclasses.field(default=None, repr=False)
    track_head: TrackedObject | None = dataclasses.field(default=None, repr=False)

    def __post_init__(self):
        if self.track_head is None:
            self.track_head = self

    @property
    def is_track_head(self) -> bool:
        return self.track_head is self


class SimpleLinkEditor:
    """
    Writes links directly onto :class:`TrackedObject` instances (or any object
    with ``previous``, ``next`` and ``track_head`` attributes).
    """

    def set_track_links(
        self,
        prev: T.Any,
        next: T.Any,
        set_prev: bool,
        set_next: bool,
        set_track_head: bool,
    ) -> None:
        if set_prev:
            next.previous = prev
        if set_next:
            prev.next = next
        if set_track_head:
            if prev.next is next and next.previous is prev:
                self.set_track_head(next, prev.track_head, True)
            else:
                self.set_track_head(next, next, True)

    def reset_track_links(
        self, obj: T.Any, reset_prev: bool, reset_next: bool, propagate: bool
    ) -> None:
        if reset_prev:
            prev = obj.previous
            if prev is not None and prev.next is obj:
                prev.next = None
            obj.previous = None
        if reset_next:
            nxt = obj.next
            if nxt is not None and nxt.previous is obj:
                nxt.previous = None
                self.set_track_head(nxt, nxt, propagate)
            obj.next = None
        if reset_prev:
            self.set_track_head(obj, obj, propagate)

    def set_track_head(self, obj: T.Any, head: T.Any, propagate: bool) -> None:
        obj.track_head = head
        if not propagate:
            return
        # follow the unambiguous chain forward
        cur = obj
        while cur.next is not None and cur.next.previous is cur:
            cur = cur.next
            if cur.track_head is head:
                break
            cur.track_head = head
