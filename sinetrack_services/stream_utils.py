# stream_utils.py
# JSON-lines utilities for the partial tracker service
#
# Frames come in as one JSON object per line, confirmed partials go out the
# same way. Keeping both formats here lets other drivers (file batch jobs,
# pipes from a peak picker) share one encoding.

import json
import logging
from dataclasses import dataclass, field
from typing import IO, Iterator, List

from sinetrack.track import ActivePartial, SinePeak

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """One decoded input frame."""
    index: int
    peaks: List[SinePeak] = field(default_factory=list)
    max_amp: float = 0.0


def _decode_peak(item) -> SinePeak:
    if isinstance(item, dict):
        return SinePeak(float(item['freq']), float(item['mag']))
    freq, mag = item
    return SinePeak(float(freq), float(mag))


def decode_frame(line: str, index: int) -> Frame:
    """
    Decode one input line.

    Accepted forms:
        {"peaks": [[440.0, -12.0], ...], "max_amp": -6.0}
        {"peaks": [{"freq": 440.0, "mag": -12.0}, ...]}

    max_amp defaults to the loudest peak, or 0.0 for an empty frame.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("frame must be a JSON object")
    peaks = [_decode_peak(p) for p in data.get('peaks', [])]
    if data.get('max_amp') is not None:
        max_amp = float(data['max_amp'])
    elif peaks:
        max_amp = max(p.log_mag for p in peaks)
    else:
        max_amp = 0.0
    return Frame(index=index, peaks=peaks, max_amp=max_amp)


class FrameReader:
    """
    Iterates frames from a JSON-lines stream, skipping lines that fail to decode.

    Usage:
        reader = FrameReader(sys.stdin)
        for frame in reader:
            tracker.process_frame(frame.peaks, frame.max_amp)
    """

    def __init__(self, stream: IO[str]):
        self.stream = stream
        self.read_count = 0
        self.skipped_count = 0
        self.last_error = None

    def __iter__(self) -> Iterator[Frame]:
        for line_no, line in enumerate(self.stream, start=1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            try:
                frame = decode_frame(line, self.read_count)
            except (json.JSONDecodeError, ValueError, KeyError, TypeError) as e:
                self.skipped_count += 1
                self.last_error = f"line {line_no}: {e}"
                logger.warning(f"Skipping malformed frame on line {line_no}: {e}")
                continue
            self.read_count += 1
            yield frame

    def get_stats(self):
        return {
            'read': self.read_count,
            'skipped': self.skipped_count,
            'last_error': self.last_error,
        }


class PartialEventBuilder:
    """Builds output events with one consistent layout."""

    @staticmethod
    def build_active_partials(frame: int, partials: List[ActivePartial]) -> dict:
        return {
            "frame": int(frame),
            "partials": [
                {
                    "track_id": int(p.track_id),
                    "freq": float(p.peak.freq),
                    "mag": float(p.peak.log_mag),
                }
                for p in partials
            ],
        }

    @staticmethod
    def build_summary(stats: dict) -> dict:
        return {"event_type": "SUMMARY", "stats": stats}


class EventPublisher:
    """
    Writes events as JSON lines to a text stream.

    Usage:
        publisher = EventPublisher(sys.stdout)
        publisher.publish_event(event)
    """

    def __init__(self, stream: IO[str], flush_every: int = 1):
        self.stream = stream
        self.flush_every = max(1, flush_every)
        self.published_count = 0

    def publish_event(self, event_data: dict):
        self.stream.write(json.dumps(event_data) + "\n")
        self.published_count += 1
        if self.published_count % self.flush_every == 0:
            self.stream.flush()

    def close(self):
        self.stream.flush()

    def get_stats(self) -> dict:
        return {'published': self.published_count}
