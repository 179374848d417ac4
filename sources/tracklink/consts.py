from __future__ import annotations

from typing import Final

# Spot fields, as collated into a TensorDict
KEY_POSITION: Final = "_position"
KEY_FRAME: Final = "_frame"
KEY_RADIUS: Final = "_radius"
KEY_QUALITY: Final = "_quality"
KEY_INDEX: Final = "_index"

POSITION_FEATURES: Final = ("x", "y", "z")

# Frame-to-frame linking
KEY_LINKING_MAX_DISTANCE: Final = "linking_max_distance"
KEY_LINKING_FEATURE_PENALTIES: Final = "linking_feature_penalties"

# Gap-closing
KEY_ALLOW_GAP_CLOSING: Final = "allow_gap_closing"
KEY_GAP_CLOSING_MAX_DISTANCE: Final = "gap_closing_max_distance"
KEY_GAP_CLOSING_MAX_FRAME_GAP: Final = "gap_closing_max_frame_gap"
KEY_GAP_CLOSING_FEATURE_PENALTIES: Final = "gap_closing_feature_penalties"

# Merging
KEY_ALLOW_TRACK_MERGING: Final = "allow_track_merging"
KEY_MERGING_MAX_DISTANCE: Final = "merging_max_distance"
KEY_MERGING_FEATURE_PENALTIES: Final = "merging_feature_penalties"

# Splitting
KEY_ALLOW_TRACK_SPLITTING: Final = "allow_track_splitting"
KEY_SPLITTING_MAX_DISTANCE: Final = "splitting_max_distance"
KEY_SPLITTING_FEATURE_PENALTIES: Final = "splitting_feature_penalties"

# Alternative (non-linking) costs
KEY_ALTERNATIVE_LINKING_COST_FACTOR: Final = "alternative_linking_cost_factor"
KEY_CUTOFF_PERCENTILE: Final = "cutoff_percentile"

DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR: Final = 1.05
DEFAULT_CUTOFF_PERCENTILE: Final = 1.0
DEFAULT_TIMEOUT: Final = 24 * 60 * 60.0
