r"""
Validation of the settings mappings that configure each linking pass.

Settings are plain mappings keyed by the constants in :mod:`tracklink.consts`.
They are checked before any cost is computed, and converted into frozen
dataclasses that the passes read from.
"""

from __future__ import annotations

import dataclasses
import numbers
import typing as T

from . import consts
from ._errors import SettingsError

__all__ = [
    "FeaturePenalties",
    "check_settings",
    "LinkingSettings",
    "SegmentSettings",
]

FeaturePenalties: T.TypeAlias = T.Mapping[str, float]


class _FeatureMap:
    """
    Marker type for a mapping of feature names to penalty weights.
    """


def _check_type(key: str, value: T.Any, kind: type) -> None:
    if kind is bool:
        ok = isinstance(value, bool)
        name = "a boolean"
    elif kind is int:
        ok = isinstance(value, numbers.Integral) and not isinstance(value, bool)
        name = "an integer"
    elif kind is float:
        ok = isinstance(value, numbers.Real) and not isinstance(value, bool)
        name = "a real number"
    elif kind is _FeatureMap:
        ok = isinstance(value, T.Mapping) and all(
            isinstance(k, str)
            and isinstance(v, numbers.Real)
            and not isinstance(v, bool)
            for k, v in value.items()
        )
        name = "a mapping of feature names to real numbers"
    else:
        raise TypeError(kind)
    if not ok:
        msg = f"Value for parameter {key!r} must be {name}, got {type(value).__name__}: {value!r}"
        raise SettingsError(key, msg)


def check_settings(
    settings: T.Mapping[str, T.Any] | None,
    mandatory: T.Mapping[str, type],
    optional: T.Mapping[str, type] | None = None,
) -> None:
    """
    Check that a settings mapping holds every mandatory key with the expected
    type, that optional keys (when present and not ``None``) are well typed,
    and that no unknown key is present.

    Parameters
    ----------
    settings
        The settings mapping to check.
    mandatory
        Mapping of required keys to their expected type (``bool``, ``int``,
        ``float`` or ``dict`` for feature penalty maps).
    optional
        Mapping of optional keys to their expected type.

    Raises
    ------
    SettingsError
        On the first offending key.
    """
    if settings is None:
        raise SettingsError("", "Settings map is None.")
    optional = optional or {}

    for key, kind in mandatory.items():
        if key not in settings:
            msg = f"Mandatory parameter {key!r} is missing from the settings."
            raise SettingsError(key, msg)
        _check_type(key, settings[key], _normalize_kind(kind))
    for key, kind in optional.items():
        value = settings.get(key)
        if value is not None:
            _check_type(key, value, _normalize_kind(kind))
    for key in settings:
        if key not in mandatory and key not in optional:
            msg = f"Settings map contains unknown parameter {key!r}."
            raise SettingsError(key, msg)


def _normalize_kind(kind: type) -> type:
    return _FeatureMap if kind is dict else kind


def _penalties(value: T.Mapping[str, float] | None) -> dict[str, float]:
    if not value:
        return {}
    return {str(k): float(v) for k, v in value.items()}


@dataclasses.dataclass(frozen=True)
class LinkingSettings:
    """
    Settings of the frame-to-frame pass.
    """

    max_distance: float
    alternative_cost_factor: float = consts.DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR
    feature_penalties: dict[str, float] = dataclasses.field(default_factory=dict)

    MANDATORY: T.ClassVar[dict[str, type]] = {
        consts.KEY_LINKING_MAX_DISTANCE: float,
        consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: float,
    }
    OPTIONAL: T.ClassVar[dict[str, type]] = {
        consts.KEY_LINKING_FEATURE_PENALTIES: dict,
    }

    @classmethod
    def from_mapping(cls, settings: T.Mapping[str, T.Any]) -> LinkingSettings:
        check_settings(settings, cls.MANDATORY, cls.OPTIONAL)
        return cls(
            max_distance=float(settings[consts.KEY_LINKING_MAX_DISTANCE]),
            alternative_cost_factor=float(
                settings[consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR]
            ),
            feature_penalties=_penalties(
                settings.get(consts.KEY_LINKING_FEATURE_PENALTIES)
            ),
        )

    def to_mapping(self) -> dict[str, T.Any]:
        return {
            consts.KEY_LINKING_MAX_DISTANCE: self.max_distance,
            consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: self.alternative_cost_factor,
            consts.KEY_LINKING_FEATURE_PENALTIES: dict(self.feature_penalties),
        }


@dataclasses.dataclass(frozen=True)
class SegmentSettings:
    """
    Settings of the segment (gap-closing, merging, splitting) pass.

    ``max_frame_gap`` is the largest frame interval a gap-closing link may span,
    i.e. ``1`` only allows links between adjacent frames.
    """

    allow_gap_closing: bool
    gap_closing_max_distance: float
    max_frame_gap: int
    allow_merging: bool
    merging_max_distance: float
    allow_splitting: bool
    splitting_max_distance: float
    alternative_cost_factor: float = consts.DEFAULT_ALTERNATIVE_LINKING_COST_FACTOR
    cutoff_percentile: float = consts.DEFAULT_CUTOFF_PERCENTILE
    gap_closing_feature_penalties: dict[str, float] = dataclasses.field(default_factory=dict)
    merging_feature_penalties: dict[str, float] = dataclasses.field(default_factory=dict)
    splitting_feature_penalties: dict[str, float] = dataclasses.field(default_factory=dict)

    MANDATORY: T.ClassVar[dict[str, type]] = {
        consts.KEY_ALLOW_GAP_CLOSING: bool,
        consts.KEY_GAP_CLOSING_MAX_DISTANCE: float,
        consts.KEY_GAP_CLOSING_MAX_FRAME_GAP: int,
        consts.KEY_ALLOW_TRACK_MERGING: bool,
        consts.KEY_MERGING_MAX_DISTANCE: float,
        consts.KEY_ALLOW_TRACK_SPLITTING: bool,
        consts.KEY_SPLITTING_MAX_DISTANCE: float,
        consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: float,
        consts.KEY_CUTOFF_PERCENTILE: float,
    }
    OPTIONAL: T.ClassVar[dict[str, type]] = {
        consts.KEY_GAP_CLOSING_FEATURE_PENALTIES: dict,
        consts.KEY_MERGING_FEATURE_PENALTIES: dict,
        consts.KEY_SPLITTING_FEATURE_PENALTIES: dict,
    }

    @classmethod
    def from_mapping(cls, settings: T.Mapping[str, T.Any]) -> SegmentSettings:
        check_settings(settings, cls.MANDATORY, cls.OPTIONAL)
        percentile = float(settings[consts.KEY_CUTOFF_PERCENTILE])
        if not 0.0 <= percentile <= 1.0:
            msg = (
                f"Parameter {consts.KEY_CUTOFF_PERCENTILE!r} must lie in [0, 1], "
                f"got {percentile}"
            )
            raise SettingsError(consts.KEY_CUTOFF_PERCENTILE, msg)
        return cls(
            allow_gap_closing=settings[consts.KEY_ALLOW_GAP_CLOSING],
            gap_closing_max_distance=float(settings[consts.KEY_GAP_CLOSING_MAX_DISTANCE]),
            max_frame_gap=int(settings[consts.KEY_GAP_CLOSING_MAX_FRAME_GAP]),
            allow_merging=settings[consts.KEY_ALLOW_TRACK_MERGING],
            merging_max_distance=float(settings[consts.KEY_MERGING_MAX_DISTANCE]),
            allow_splitting=settings[consts.KEY_ALLOW_TRACK_SPLITTING],
            splitting_max_distance=float(settings[consts.KEY_SPLITTING_MAX_DISTANCE]),
            alternative_cost_factor=float(
                settings[consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR]
            ),
            cutoff_percentile=percentile,
            gap_closing_feature_penalties=_penalties(
                settings.get(consts.KEY_GAP_CLOSING_FEATURE_PENALTIES)
            ),
            merging_feature_penalties=_penalties(
                settings.get(consts.KEY_MERGING_FEATURE_PENALTIES)
            ),
            splitting_feature_penalties=_penalties(
                settings.get(consts.KEY_SPLITTING_FEATURE_PENALTIES)
            ),
        )

    def to_mapping(self) -> dict[str, T.Any]:
        return {
            consts.KEY_ALLOW_GAP_CLOSING: self.allow_gap_closing,
            consts.KEY_GAP_CLOSING_MAX_DISTANCE: self.gap_closing_max_distance,
            consts.KEY_GAP_CLOSING_MAX_FRAME_GAP: self.max_frame_gap,
            consts.KEY_ALLOW_TRACK_MERGING: self.allow_merging,
            consts.KEY_MERGING_MAX_DISTANCE: self.merging_max_distance,
            consts.KEY_ALLOW_TRACK_SPLITTING: self.allow_splitting,
            consts.KEY_SPLITTING_MAX_DISTANCE: self.splitting_max_distance,
            consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: self.alternative_cost_factor,
            consts.KEY_CUTOFF_PERCENTILE: self.cutoff_percentile,
            consts.KEY_GAP_CLOSING_FEATURE_PENALTIES: dict(self.gap_closing_feature_penalties),
            consts.KEY_MERGING_FEATURE_PENALTIES: dict(self.merging_feature_penalties),
            consts.KEY_SPLITTING_FEATURE_PENALTIES: dict(self.splitting_feature_penalties),
        }

    @property
    def any_enabled(self) -> bool:
        return self.allow_gap_closing or self.allow_merging or self.allow_splitting
