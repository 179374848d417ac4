"""
This module defines cost functions that yield a linking cost matrix between
source spots and target spots.
"""

from .base_cost import *
from .distance import *
