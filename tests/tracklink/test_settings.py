r"""
Tests for ``tracklink._settings``.
"""

from __future__ import annotations

import pytest

from tracklink import LinkingSettings, SegmentSettings, SettingsError, check_settings, consts


def linking_settings(**overrides):
    settings = {
        consts.KEY_LINKING_MAX_DISTANCE: 5.0,
        consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: 1.05,
    }
    settings.update(overrides)
    return settings


def segment_settings(**overrides):
    settings = {
        consts.KEY_ALLOW_GAP_CLOSING: True,
        consts.KEY_GAP_CLOSING_MAX_DISTANCE: 5.0,
        consts.KEY_GAP_CLOSING_MAX_FRAME_GAP: 2,
        consts.KEY_ALLOW_TRACK_MERGING: False,
        consts.KEY_MERGING_MAX_DISTANCE: 5.0,
        consts.KEY_ALLOW_TRACK_SPLITTING: False,
        consts.KEY_SPLITTING_MAX_DISTANCE: 5.0,
        consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR: 1.05,
        consts.KEY_CUTOFF_PERCENTILE: 1.0,
    }
    settings.update(overrides)
    return settings


def test_linking_settings_from_mapping():
    s = LinkingSettings.from_mapping(linking_settings(**{consts.KEY_LINKING_FEATURE_PENALTIES: {"size": 1}}))

    assert s.max_distance == 5.0
    assert s.alternative_cost_factor == 1.05
    assert s.feature_penalties == {"size": 1.0}
    assert LinkingSettings.from_mapping(s.to_mapping()) == s


def test_integer_accepted_for_float():
    s = LinkingSettings.from_mapping(linking_settings(**{consts.KEY_LINKING_MAX_DISTANCE: 3}))

    assert s.max_distance == 3.0


def test_missing_key():
    settings = linking_settings()
    del settings[consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR]

    with pytest.raises(SettingsError) as exc:
        LinkingSettings.from_mapping(settings)
    assert exc.value.key == consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR
    assert consts.KEY_ALTERNATIVE_LINKING_COST_FACTOR in str(exc.value)


@pytest.mark.parametrize(
    ["key", "value"],
    [
        (consts.KEY_ALLOW_GAP_CLOSING, 1),
        (consts.KEY_GAP_CLOSING_MAX_FRAME_GAP, 2.0),
        (consts.KEY_GAP_CLOSING_MAX_FRAME_GAP, True),
        (consts.KEY_MERGING_MAX_DISTANCE, "5"),
        (consts.KEY_SPLITTING_MAX_DISTANCE, False),
        (consts.KEY_MERGING_FEATURE_PENALTIES, {"size": "1"}),
        (consts.KEY_MERGING_FEATURE_PENALTIES, [1.0]),
    ],
)
def test_wrong_type(key, value):
    with pytest.raises(SettingsError) as exc:
        SegmentSettings.from_mapping(segment_settings(**{key: value}))
    assert exc.value.key == key


def test_unknown_key():
    with pytest.raises(SettingsError) as exc:
        LinkingSettings.from_mapping(linking_settings(foo=1.0))
    assert exc.value.key == "foo"


def test_settings_error_is_value_error():
    with pytest.raises(ValueError):
        check_settings(None, {})


@pytest.mark.parametrize("percentile", [-0.1, 1.5])
def test_cutoff_percentile_range(percentile):
    with pytest.raises(SettingsError):
        SegmentSettings.from_mapping(segment_settings(**{consts.KEY_CUTOFF_PERCENTILE: percentile}))


def test_segment_settings():
    s = SegmentSettings.from_mapping(segment_settings())

    assert s.allow_gap_closing
    assert s.max_frame_gap == 2
    assert s.any_enabled
    assert s.gap_closing_feature_penalties == {}
    assert SegmentSettings.from_mapping(s.to_mapping()) == s

    s = SegmentSettings.from_mapping(segment_settings(**{consts.KEY_ALLOW_GAP_CLOSING: False}))
    assert not s.any_enabled
