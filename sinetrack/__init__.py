"""
Core algorithms for online sinusoidal partial tracking.

This package contains the partial tracker, the Hungarian assignment solver
used by its optimal strategy, and the peak/track data model.
"""

from sinetrack.config import AssignmentMethod, TrackingConfig
from sinetrack.exceptions import InvalidParameterError
from sinetrack.hungarian_matcher import UNMATCHED, HungarianMatcher, MatchResult
from sinetrack.partial_tracking import PartialTracker
from sinetrack.track import UNSET, ActivePartial, MatchingContext, SinePeak, SineTrack

__all__ = [
    'AssignmentMethod',
    'TrackingConfig',
    'InvalidParameterError',
    'HungarianMatcher',
    'MatchResult',
    'UNMATCHED',
    'PartialTracker',
    'ActivePartial',
    'MatchingContext',
    'SinePeak',
    'SineTrack',
    'UNSET',
]
