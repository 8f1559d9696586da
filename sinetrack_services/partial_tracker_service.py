# partial_tracker_service.py
# Runs one PartialTracker over a JSON-lines stream of peak frames.
#
# Input:  one frame per line, {"peaks": [[freq, mag], ...], "max_amp": ...}
# Output: one line per frame once the latency window is filled,
#         {"frame": n, "partials": [{"track_id", "freq", "mag"}, ...]}
#
# Each stream gets its own tracker; run several processes for several
# channels.

import logging
import os
import sys
from dataclasses import dataclass
from typing import IO, Optional

from sinetrack.config import AssignmentMethod, TrackingConfig
from sinetrack.partial_tracking import PartialTracker
from sinetrack_services.stream_utils import EventPublisher, FrameReader, PartialEventBuilder

logger = logging.getLogger(__name__)


# ============================================
# Service Configuration
# ============================================
@dataclass
class ServiceConfig:
    """Configuration for the tracking service."""
    # I/O ('-' means stdin/stdout)
    input_path: str = '-'
    output_path: str = '-'
    flush_every: int = 1

    # Eviction
    prune_interval: int = 1  # prune every N frames

    # Feed empty frames at EOF until the last input frame leaves the latency window
    drain_on_eof: bool = True

    # Append a SUMMARY event with final statistics
    emit_summary: bool = False

    # Logging
    log_level: str = 'INFO'


def service_config_from_env(prefix: str = 'SINETRACK_') -> ServiceConfig:
    env = os.environ
    return ServiceConfig(
        input_path=env.get(prefix + 'INPUT', '-'),
        output_path=env.get(prefix + 'OUTPUT', '-'),
        flush_every=int(env.get(prefix + 'FLUSH_EVERY', 1)),
        prune_interval=int(env.get(prefix + 'PRUNE_INTERVAL', 1)),
        drain_on_eof=env.get(prefix + 'DRAIN_ON_EOF', 'true').lower() == 'true',
        emit_summary=env.get(prefix + 'EMIT_SUMMARY', 'false').lower() == 'true',
        log_level=env.get(prefix + 'LOG_LEVEL', 'INFO'),
    )


class PartialTrackerService:
    """
    Drives a PartialTracker from a frame reader and publishes confirmed partials.
    """

    def __init__(self, tracking_config: TrackingConfig, service_config: Optional[ServiceConfig] = None):
        self.tracking_config = tracking_config
        self.config = service_config or ServiceConfig()
        self.tracker = PartialTracker(tracking_config)
        self.tracker.init()
        self.frames_published = 0

    def _step(self, peaks, max_amp, publisher: EventPublisher):
        self.tracker.process_frame(peaks, max_amp, self.tracking_config)
        if self.config.prune_interval > 0 and self.tracker.current_frame % self.config.prune_interval == 0:
            self.tracker.prune()
        if self.tracker.latency_frame() >= 0:
            partials = self.tracker.get_active_partials()
            publisher.publish_event(
                PartialEventBuilder.build_active_partials(self.tracker.latency_frame(), partials)
            )
            self.frames_published += 1

    def run(self, in_stream: IO[str], out_stream: IO[str]) -> dict:
        reader = FrameReader(in_stream)
        publisher = EventPublisher(out_stream, flush_every=self.config.flush_every)

        for frame in reader:
            self._step(frame.peaks, frame.max_amp, publisher)

        if self.config.drain_on_eof:
            # the first empty frame ends every track; the rest shift the latency
            # window up to the last input frame
            for _ in range(self.tracker.min_track_length() - 1):
                self._step([], 0.0, publisher)

        stats = self.get_stats(reader)
        if self.config.emit_summary:
            publisher.publish_event(PartialEventBuilder.build_summary(stats))
        publisher.close()
        return stats

    def get_stats(self, reader: Optional[FrameReader] = None) -> dict:
        stats = {
            'tracker': self.tracker.get_stats(),
            'frames_published': self.frames_published,
        }
        if reader is not None:
            stats['input'] = reader.get_stats()
        return stats


def _open(path: str, mode: str, default: IO[str]) -> IO[str]:
    if path == '-':
        return default
    return open(path, mode, encoding='utf-8')


def main(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description='Sinusoidal partial tracker over JSON-lines peak frames')
    parser.add_argument('-i', '--input', help="input path ('-' for stdin)")
    parser.add_argument('-o', '--output', help="output path ('-' for stdout)")
    parser.add_argument('--method', choices=[m.value for m in AssignmentMethod],
                        help='assignment strategy')
    parser.add_argument('--min-track-length', type=int, help='confirmation latency in frames')
    parser.add_argument('--birth-low', type=float, help='birth threshold low bound (dB)')
    parser.add_argument('--birth-high', type=float, help='birth threshold high bound (dB)')
    parser.add_argument('--zeta-a', type=float, help='amplitude tolerance (dB)')
    parser.add_argument('--zeta-f', type=float, help='frequency tolerance (Hz)')
    parser.add_argument('--delta', type=float, help='false-alarm probability')
    parser.add_argument('--prune-interval', type=int, help='prune every N frames')
    parser.add_argument('--no-drain', action='store_true', help='do not flush the latency window at EOF')
    parser.add_argument('--summary', action='store_true', help='append a SUMMARY event')
    parser.add_argument('--log-level', help='logging level')
    args = parser.parse_args(argv)

    service_config = service_config_from_env()
    if args.input:
        service_config.input_path = args.input
    if args.output:
        service_config.output_path = args.output
    if args.prune_interval is not None:
        service_config.prune_interval = args.prune_interval
    if args.no_drain:
        service_config.drain_on_eof = False
    if args.summary:
        service_config.emit_summary = True
    if args.log_level:
        service_config.log_level = args.log_level

    logging.basicConfig(
        level=getattr(logging, service_config.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
        stream=sys.stderr,
    )

    tracking_config = TrackingConfig.from_env(
        method=args.method,
        min_track_length=args.min_track_length,
        birth_low_threshold=args.birth_low,
        birth_high_threshold=args.birth_high,
        zeta_a=args.zeta_a,
        zeta_f=args.zeta_f,
        delta=args.delta,
    )
    logger.info(f"Partial tracker service starting: {tracking_config}")

    service = PartialTrackerService(tracking_config, service_config)
    in_stream = _open(service_config.input_path, 'r', sys.stdin)
    out_stream = _open(service_config.output_path, 'w', sys.stdout)
    try:
        stats = service.run(in_stream, out_stream)
    finally:
        if in_stream is not sys.stdin:
            in_stream.close()
        if out_stream is not sys.stdout:
            out_stream.close()

    logger.info(f"Final stats: {stats}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
