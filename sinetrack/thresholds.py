"""
Matching Tolerances and Adaptive Birth Threshold
================================================

Two small pieces of arithmetic shared by both assignment strategies:

1. Tolerance -> variance mapping. A physically meaningful tolerance zeta
   (Hz for frequency, dB for amplitude) and a false-alarm probability delta
   are turned into the variance of the Gaussian kernel used for the
   frame-to-frame cost:

       var = -zeta^2 * ln((delta - 1) / (delta - 2))

   With this choice a continuation is preferred over a spurious match
   exactly when (df/zeta_f)^2 + (da/zeta_a)^2 < ln((delta-1)/(delta-2))^2.

2. Birth threshold. The level a new peak must exceed to seed a track,
   relative to the loudest peak of its frame. It tapers downward with
   frequency so quiet high partials are born more readily than quiet low
   ones:

       maxAmp + low - range + range * 0.0075^(freq / 20000)

Usage:
    cache = ToleranceCache()
    cache.update(zeta_a=15.0, zeta_f=50.0, delta=0.2)
    cost = cache.useful_cost(df, da)
"""

import logging
import math
from typing import Optional, Tuple

import numpy as np

from sinetrack.exceptions import InvalidParameterError

logger = logging.getLogger(__name__)

BIRTH_TAPER_BASE = 0.0075
BIRTH_TAPER_FREQ = 20000.0


def validate_tolerance(name: str, zeta: float):
    if not math.isfinite(zeta) or zeta <= 0:
        raise InvalidParameterError(name, zeta, "tolerance must be a positive finite number")


def validate_false_alarm(delta: float):
    # (delta-1)/(delta-2) must lie in (0, 1) for a positive, finite variance
    if not math.isfinite(delta) or not 0.0 <= delta < 1.0:
        raise InvalidParameterError("delta", delta, "false-alarm probability must lie in [0, 1)")


def kernel_variance(zeta: float, delta: float) -> float:
    """Gaussian-kernel variance for tolerance zeta and false-alarm probability delta."""
    return -zeta ** 2 * math.log((delta - 1.0) / (delta - 2.0))


def birth_threshold(freq, max_amp: float, birth_low: float, birth_high: float):
    """
    Level a peak of frequency freq must exceed to start a track.

    freq may be a scalar or a numpy array of frequencies.
    """
    birth_range = birth_low - birth_high
    taper = np.power(BIRTH_TAPER_BASE, np.asarray(freq, dtype=float) / BIRTH_TAPER_FREQ)
    threshold = max_amp + birth_low - birth_range + birth_range * taper
    if np.ndim(threshold) == 0:
        return float(threshold)
    return threshold


class ToleranceCache:
    """
    Memoized kernel variances.

    The variances are recomputed only when one of (zeta_a, zeta_f, delta)
    changes. Parameters are validated first; a rejected update leaves the
    cached state untouched.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.zeta_a: Optional[float] = None
        self.zeta_f: Optional[float] = None
        self.delta: Optional[float] = None
        self.var_a = 0.0
        self.var_f = 0.0
        self.recompute_count = 0

    @property
    def _key(self) -> Tuple:
        return (self.zeta_a, self.zeta_f, self.delta)

    @staticmethod
    def validate(zeta_a: float, zeta_f: float, delta: float):
        validate_tolerance("zeta_a", zeta_a)
        validate_tolerance("zeta_f", zeta_f)
        validate_false_alarm(delta)

    def update(self, zeta_a: float, zeta_f: float, delta: float) -> bool:
        """Returns True when the variances were recomputed."""
        if (zeta_a, zeta_f, delta) == self._key:
            return False
        self.validate(zeta_a, zeta_f, delta)

        self.zeta_a, self.zeta_f, self.delta = zeta_a, zeta_f, delta
        self.var_a = kernel_variance(zeta_a, delta)
        self.var_f = kernel_variance(zeta_f, delta)
        self.recompute_count += 1
        logger.info(
            f"Kernel variances updated: zeta_a={zeta_a} zeta_f={zeta_f} delta={delta} "
            f"-> var_a={self.var_a:.4f} var_f={self.var_f:.4f}"
        )
        return True

    def useful_cost(self, d_freq, d_amp):
        """Gaussian dissimilarity 1 - exp(-df^2/varF - da^2/varA), scalar or array."""
        return 1.0 - np.exp(-np.square(d_freq) / self.var_f - np.square(d_amp) / self.var_a)

    def spurious_cost(self, useful):
        """Cost of explaining the same pair as a coincidental match."""
        return 1.0 - (1.0 - self.delta) * useful

    def is_useful(self, useful):
        """True where continuation beats the spurious explanation, scalar or array."""
        return useful < self.spurious_cost(useful)
