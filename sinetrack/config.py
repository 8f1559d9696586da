"""
Configuration for the partial tracker.

TrackingConfig holds the per-stream tracking parameters. It is immutable so
the tracker can compare successive configs cheaply; build a new one with
dataclasses.replace() to change a parameter mid-stream.
"""

import math
import os
from dataclasses import dataclass
from enum import Enum

from sinetrack.exceptions import InvalidParameterError
from sinetrack.thresholds import ToleranceCache


class AssignmentMethod(Enum):
    GREEDY = "greedy"
    OPTIMAL = "optimal"

    @classmethod
    def parse(cls, value) -> "AssignmentMethod":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        # numeric selectors as used by host parameter surfaces
        aliases = {"0": cls.GREEDY, "1": cls.OPTIMAL, "munkres": cls.OPTIMAL, "hungarian": cls.OPTIMAL}
        if text in aliases:
            return aliases[text]
        try:
            return cls(text)
        except ValueError:
            raise InvalidParameterError("method", value, "expected 'greedy' or 'optimal'") from None


@dataclass(frozen=True)
class TrackingConfig:
    """Tracking parameters for one stream."""
    # Assignment strategy
    method: AssignmentMethod = AssignmentMethod.GREEDY

    # Confirmation latency (frames)
    min_track_length: int = 15

    # Birth threshold bounds (dB relative to frame maximum)
    birth_low_threshold: float = -24.0
    birth_high_threshold: float = -60.0

    # Matching tolerances
    zeta_a: float = 15.0    # amplitude tolerance (dB)
    zeta_f: float = 50.0    # frequency tolerance (Hz)
    delta: float = 0.2      # false-alarm probability

    def __post_init__(self):
        if not isinstance(self.method, AssignmentMethod):
            object.__setattr__(self, "method", AssignmentMethod.parse(self.method))

    @property
    def birth_range(self) -> float:
        return self.birth_low_threshold - self.birth_high_threshold

    def validate(self):
        if not isinstance(self.method, AssignmentMethod):
            raise InvalidParameterError("method", self.method, "expected an AssignmentMethod")
        if isinstance(self.min_track_length, bool) or not isinstance(self.min_track_length, int) \
                or self.min_track_length < 1:
            raise InvalidParameterError("min_track_length", self.min_track_length,
                                        "must be an integer >= 1")
        for name in ("birth_low_threshold", "birth_high_threshold"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidParameterError(name, value, "must be finite")
        if self.birth_low_threshold < self.birth_high_threshold:
            raise InvalidParameterError("birth_low_threshold", self.birth_low_threshold,
                                        "must not be below birth_high_threshold")
        ToleranceCache.validate(self.zeta_a, self.zeta_f, self.delta)

    @classmethod
    def from_env(cls, prefix: str = "SINETRACK_", **overrides) -> "TrackingConfig":
        """Build a config from environment variables, falling back to defaults."""
        defaults = cls()
        env = os.environ

        def _get(key, cast, default):
            raw = env.get(prefix + key)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise InvalidParameterError(prefix + key, raw, f"cannot parse as {cast.__name__}") from None

        values = dict(
            method=env.get(prefix + "METHOD") or defaults.method,
            min_track_length=_get("MIN_TRACK_LENGTH", int, defaults.min_track_length),
            birth_low_threshold=_get("BIRTH_LOW", float, defaults.birth_low_threshold),
            birth_high_threshold=_get("BIRTH_HIGH", float, defaults.birth_high_threshold),
            zeta_a=_get("ZETA_A", float, defaults.zeta_a),
            zeta_f=_get("ZETA_F", float, defaults.zeta_f),
            delta=_get("DELTA", float, defaults.delta),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(**values)
        config.validate()
        return config
