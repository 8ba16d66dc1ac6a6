"""
Detection configuration.

Defaults are the values the detector was tuned with on a 500x500 canonical
board. Every one of them can be overridden with a DARTCAM_* environment
variable.
"""
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

# Mean absolute grey-level difference between consecutive canonical frames
# below which the board counts as still
MOTION_THRESHOLD = 2.5

# Motion evaluation is suspended this long after a detection
DETECTION_COOLDOWN_MS = 1000

# Per-pixel grey-level cutoff for the before/after difference mask
DIFF_INTENSITY_CUTOFF = 15

# Plausible area of a dart's difference blob, canonical px^2
MIN_DART_AREA = 500.0
MAX_DART_AREA = 2000.0

TIP_STRATEGIES = ("centroid_distance", "lowest_point")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


@dataclass
class DetectionConfig:
    """Tunable thresholds for stillness and dart isolation."""
    motion_threshold: float = MOTION_THRESHOLD
    cooldown_ms: int = DETECTION_COOLDOWN_MS
    diff_intensity_cutoff: int = DIFF_INTENSITY_CUTOFF
    min_dart_area: float = MIN_DART_AREA
    max_dart_area: float = MAX_DART_AREA
    tip_strategy: str = "centroid_distance"
    # Whether a stillness edge that finds no dart still moves the
    # pre-throw baseline forward
    advance_baseline_on_miss: bool = True
    # Consecutive quiet observations needed for Moving -> Still
    still_run_length: int = 1

    def __post_init__(self):
        if self.motion_threshold <= 0:
            raise ValueError("motion_threshold must be positive")
        if self.cooldown_ms < 0:
            raise ValueError("cooldown_ms must not be negative")
        if not 0 <= self.diff_intensity_cutoff <= 255:
            raise ValueError("diff_intensity_cutoff must be within 0-255")
        if not 0 <= self.min_dart_area < self.max_dart_area:
            raise ValueError("dart area bounds must satisfy 0 <= min < max")
        if self.tip_strategy not in TIP_STRATEGIES:
            raise ValueError(f"tip_strategy must be one of {TIP_STRATEGIES}")
        if self.still_run_length < 1:
            raise ValueError("still_run_length must be at least 1")

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_ms / 1000.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DetectionConfig":
        """Build a config, taking DARTCAM_<FIELD_NAME> overrides from the environment."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(f"DARTCAM_{f.name.upper()}")
            if raw is None:
                continue
            if f.type in (bool, "bool"):
                overrides[f.name] = _parse_bool(raw)
            elif f.type in (int, "int"):
                overrides[f.name] = int(raw)
            elif f.type in (float, "float"):
                overrides[f.name] = float(raw)
            else:
                overrides[f.name] = raw
        return cls(**overrides)


# Service settings
BOARD_ID = os.environ.get("DARTCAM_BOARD_ID", "default")
LEDGER_URL = os.environ.get("DARTCAM_LEDGER_URL") or None
