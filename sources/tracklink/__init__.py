r"""
TrackLink
=========

This module links objects detected independently in successive frames into
tracks.

.. math::

    Linker: Spots_{t} \times Spots_{t+1} \rightarrow Edges

Objects are represented by spots. Spots of adjacent frames are first linked
frame-to-frame, after which the resulting track segments are linked to each
other to bridge missed detections and to capture merge and split events.

Terminology
-----------

- **Spot**: Point proxy of an object at one frame, and vertex of the track graph.

- **Track segment**: Maximal chain of spots joined by one-to-one links.

- **Gap-closing**: Linking a segment end to a later segment start across missing
    frames.

- **Track head**: First spot of the one-to-one chain a spot belongs to.

- **Alternative cost**: The cost of leaving a spot unlinked in an assignment.
"""

from __future__ import annotations

__version__ = "1.0.0"

from . import assignment, consts, costs, stages
from ._errors import *
from ._graph import *
from ._linker import *
from ._mapper import *
from ._objects import *
from ._overlap import *
from ._settings import *
from ._spot import *
