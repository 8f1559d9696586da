"""
Partial Tracker Service Tests
=============================

Covers the JSON-lines reader/publisher and the service loop, including the
end-of-stream drain of the latency window.

Usage:
    python -m pytest tests/test_service.py -v
"""

import io
import json
import os
import sys
import tempfile
import unittest
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sinetrack.config import AssignmentMethod, TrackingConfig
from sinetrack_services.partial_tracker_service import (
    PartialTrackerService,
    ServiceConfig,
    main,
    service_config_from_env,
)
from sinetrack_services.stream_utils import EventPublisher, FrameReader, decode_frame

CONFIG = TrackingConfig(method=AssignmentMethod.GREEDY, min_track_length=2, zeta_f=10.0)


def frame_line(peaks, max_amp=None):
    data = {"peaks": peaks}
    if max_amp is not None:
        data["max_amp"] = max_amp
    return json.dumps(data)


class TestFrameDecoding(unittest.TestCase):

    def test_pair_and_dict_forms(self):
        frame = decode_frame('{"peaks": [[440, -10], {"freq": 880, "mag": -14}]}', 0)
        self.assertEqual([(p.freq, p.log_mag) for p in frame.peaks], [(440.0, -10.0), (880.0, -14.0)])
        self.assertEqual(frame.max_amp, -10.0)

    def test_explicit_and_default_max_amp(self):
        self.assertEqual(decode_frame('{"peaks": [[440, -10]], "max_amp": -3}', 0).max_amp, -3.0)
        self.assertEqual(decode_frame('{"peaks": []}', 0).max_amp, 0.0)

    def test_reader_skips_malformed_lines(self):
        stream = io.StringIO("\n".join([
            frame_line([[440, -10]]),
            "not json",
            "# comment",
            "[1, 2, 3]",
            '{"peaks": [[440]]}',
            "",
            frame_line([]),
        ]))
        reader = FrameReader(stream)
        with self.assertLogs('sinetrack_services.stream_utils', level='WARNING'):
            frames = list(reader)

        self.assertEqual([f.index for f in frames], [0, 1])
        stats = reader.get_stats()
        self.assertEqual(stats['read'], 2)
        self.assertEqual(stats['skipped'], 3)
        self.assertIn('line 5', stats['last_error'])


class TestEventPublisher(unittest.TestCase):

    def test_writes_json_lines(self):
        out = io.StringIO()
        publisher = EventPublisher(out)
        publisher.publish_event({"frame": 0, "partials": []})
        publisher.publish_event({"frame": 1, "partials": []})
        publisher.close()

        lines = out.getvalue().splitlines()
        self.assertEqual([json.loads(line)["frame"] for line in lines], [0, 1])
        self.assertEqual(publisher.get_stats()['published'], 2)


class TestServiceLoop(unittest.TestCase):

    def run_service(self, lines, service_config=None):
        out = io.StringIO()
        service = PartialTrackerService(CONFIG, service_config or ServiceConfig())
        with self.assertLogs('sinetrack_services.stream_utils', level='WARNING'):
            stats = service.run(io.StringIO("\n".join(lines)), out)
        return [json.loads(line) for line in out.getvalue().splitlines()], stats

    def test_tone_with_drain(self):
        lines = [frame_line([[440.0 + k, -10.0]]) for k in range(4)]
        lines.insert(2, "garbage")
        events, stats = self.run_service(lines)

        self.assertEqual([e["frame"] for e in events], [0, 1, 2, 3])
        for k, event in enumerate(events):
            self.assertEqual(len(event["partials"]), 1)
            self.assertEqual(event["partials"][0]["track_id"], 1)
            self.assertEqual(event["partials"][0]["freq"], 440.0 + k)

        self.assertEqual(stats['input']['skipped'], 1)
        self.assertEqual(stats['frames_published'], 4)
        self.assertEqual(stats['tracker']['births'], 1)

    def test_without_drain_latency_window_stays_hidden(self):
        lines = [frame_line([[440.0 + k, -10.0]]) for k in range(4)] + ["garbage"]
        events, _ = self.run_service(lines, ServiceConfig(drain_on_eof=False))
        self.assertEqual([e["frame"] for e in events], [0, 1, 2])

    def test_summary_event(self):
        lines = [frame_line([[440.0, -10.0]])] * 3 + ["garbage"]
        events, _ = self.run_service(lines, ServiceConfig(emit_summary=True))
        self.assertEqual(events[-1]["event_type"], "SUMMARY")
        self.assertEqual(events[-1]["stats"]["tracker"]["births"], 1)


class TestCommandLine(unittest.TestCase):

    def test_main_file_to_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            in_path = os.path.join(tmp, "peaks.jsonl")
            out_path = os.path.join(tmp, "partials.jsonl")
            with open(in_path, "w", encoding="utf-8") as f:
                for k in range(5):
                    f.write(frame_line([[1000.0 + k, -6.0], [3000.0, -9.0]]) + "\n")

            code = main(["-i", in_path, "-o", out_path, "--method", "optimal",
                         "--min-track-length", "3", "--log-level", "WARNING"])
            self.assertEqual(code, 0)

            with open(out_path, encoding="utf-8") as f:
                events = [json.loads(line) for line in f]

        self.assertEqual([e["frame"] for e in events], [0, 1, 2, 3, 4])
        self.assertEqual([len(e["partials"]) for e in events], [2, 2, 2, 2, 2])
        self.assertEqual(events[0]["partials"][0]["freq"], 1000.0)

    def test_service_config_from_env(self):
        with patch.dict(os.environ, {'SINETRACK_PRUNE_INTERVAL': '8',
                                     'SINETRACK_DRAIN_ON_EOF': 'false'}, clear=False):
            config = service_config_from_env()
        self.assertEqual(config.prune_interval, 8)
        self.assertFalse(config.drain_on_eof)


if __name__ == "__main__":
    unittest.main(verbosity=2)
