"""
Stream drivers for the partial tracker.

This module contains the JSON-lines frame reader and event publisher, and
the command-line service that runs one tracker per input stream.
"""

from sinetrack_services.stream_utils import EventPublisher, FrameReader, PartialEventBuilder
from sinetrack_services.partial_tracker_service import PartialTrackerService, ServiceConfig

__all__ = [
    'EventPublisher',
    'FrameReader',
    'PartialEventBuilder',
    'PartialTrackerService',
    'ServiceConfig',
]
