"""
This package implements modules that solve a Linear Assignment Problem (LAP)
over a sparse linking cost matrix, where rows and columns may be left
unassigned at an alternative cost.
"""

from __future__ import annotations

from ._base import *
from ._hungarian import *
from ._jonker import *
from ._matrix import *
from ._sparse import *
from ._utils import *
