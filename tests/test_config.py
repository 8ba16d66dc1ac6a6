"""
Tests for detection configuration.
"""
import pytest

from dartcam.config import DETECTION_COOLDOWN_MS, MOTION_THRESHOLD, DetectionConfig


def test_defaults():
    config = DetectionConfig()
    assert config.motion_threshold == MOTION_THRESHOLD == 2.5
    assert config.cooldown_ms == DETECTION_COOLDOWN_MS == 1000
    assert config.cooldown_seconds == 1.0
    assert config.diff_intensity_cutoff == 15
    assert (config.min_dart_area, config.max_dart_area) == (500, 2000)
    assert config.tip_strategy == "centroid_distance"


def test_env_overrides():
    config = DetectionConfig.from_env({
        "DARTCAM_MOTION_THRESHOLD": "4.0",
        "DARTCAM_COOLDOWN_MS": "250",
        "DARTCAM_TIP_STRATEGY": "lowest_point",
        "DARTCAM_ADVANCE_BASELINE_ON_MISS": "false",
        "DARTCAM_STILL_RUN_LENGTH": "2",
        "UNRELATED": "x",
    })
    assert config.motion_threshold == 4.0
    assert config.cooldown_ms == 250
    assert config.tip_strategy == "lowest_point"
    assert config.advance_baseline_on_miss is False
    assert config.still_run_length == 2


def test_empty_env_gives_defaults():
    assert DetectionConfig.from_env({}) == DetectionConfig()


@pytest.mark.parametrize("overrides", [
    {"motion_threshold": 0},
    {"cooldown_ms": -1},
    {"diff_intensity_cutoff": 300},
    {"min_dart_area": 2000, "max_dart_area": 500},
    {"tip_strategy": "guess"},
    {"still_run_length": 0},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        DetectionConfig(**overrides)


def test_bad_boolean_rejected():
    with pytest.raises(ValueError):
        DetectionConfig.from_env({"DARTCAM_ADVANCE_BASELINE_ON_MISS": "maybe"})
