"""
Linking passes over a track graph.
"""

from .base_stage import *
from .frame_to_frame import *
from .segments import *
