"""
Partial Tracking Core
=====================

Online sinusoidal partial tracking. Each frame the tracker receives the
spectral peaks found by an external peak picker and links them to the
tracks (partials) built over previous frames.

Two assignment strategies share one Gaussian cost kernel:

- GREEDY: candidate (track, peak) pairs sorted by cost and accepted while
  both sides are free and continuation beats the spurious alternative.
  A single loud-enough unmatched peak starts a track.
- OPTIMAL: previous-frame peaks are matched against current-frame peaks with
  the Hungarian method. Two consecutive agreeing peaks are needed to start
  a track.

Tracks that go unmatched die. Consumers read the state of
`current_frame - min_track_length`, so tracks that die before reaching
min_track_length frames are never exposed.

Usage:
    tracker = PartialTracker()
    tracker.init()
    for peaks, max_amp in frames:
        tracker.process_frame(peaks, max_amp, config)
        tracker.prune()
        confirmed = tracker.get_active_peaks()
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from sinetrack.config import AssignmentMethod, TrackingConfig
from sinetrack.exceptions import InvalidParameterError
from sinetrack.hungarian_matcher import HungarianMatcher
from sinetrack.thresholds import ToleranceCache, birth_threshold
from sinetrack.track import ActivePartial, MatchingContext, SinePeak, SineTrack

logger = logging.getLogger(__name__)

PeakLike = Union[SinePeak, Sequence[float]]


def _to_peak(item: PeakLike) -> SinePeak:
    if isinstance(item, SinePeak):
        peak = SinePeak(float(item.freq), float(item.log_mag))
    else:
        freq, log_mag = item
        peak = SinePeak(float(freq), float(log_mag))
    if not (math.isfinite(peak.freq) and math.isfinite(peak.log_mag)):
        raise InvalidParameterError("peak", (peak.freq, peak.log_mag), "frequency and magnitude must be finite")
    return peak


class PartialTracker:
    """Owns all track state for one stream. Not thread-safe; use one instance per stream."""

    def __init__(self, config: Optional[TrackingConfig] = None, matcher: Optional[HungarianMatcher] = None):
        self.config = config or TrackingConfig()
        self.matcher = matcher or HungarianMatcher()
        self._tolerance = ToleranceCache()
        self._initialized = False
        self._min_track_length = self.config.min_track_length
        self._current_frame = 0
        self._tracks: List[SineTrack] = []
        self._context: Optional[MatchingContext] = None
        self._last_track_id = 0
        self._reset_stats()

    def _reset_stats(self):
        self.stats = {
            'frames': 0,
            'peaks': 0,
            'births': 0,
            'deaths': 0,
            'pruned': 0,
            'greedy_frames': 0,
            'optimal_frames': 0,
        }

    def init(self):
        """Reset to an empty tracker at frame 0. Must be called before the first frame."""
        self._current_frame = 0
        self._tracks = []
        self._context = None
        self._tolerance.reset()
        self._last_track_id = 0
        self._min_track_length = self.config.min_track_length
        self._reset_stats()
        self._initialized = True

    def _require_init(self):
        if not self._initialized:
            raise RuntimeError("PartialTracker.init() must be called before processing frames")

    def min_track_length(self) -> int:
        return self._min_track_length

    @property
    def current_frame(self) -> int:
        return self._current_frame

    @property
    def variances(self):
        return self._tolerance.var_a, self._tolerance.var_f

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def process_frame(self, peaks: Iterable[PeakLike], max_amp: float,
                      config: Optional[TrackingConfig] = None):
        """
        Advance the tracker by one frame.

        Args:
            peaks: unordered peaks of this frame, SinePeak or (freq, log_mag)
            max_amp: maximum amplitude of the frame, reference for births
            config: tracking parameters; defaults to the tracker's config

        Raises:
            InvalidParameterError: invalid config, max_amp or peak; nothing
                is modified in that case
        """
        self._require_init()
        config = config or self.config
        try:
            config.validate()
        except InvalidParameterError as e:
            logger.warning(f"Rejected tracking parameters at frame {self._current_frame}: {e}")
            raise
        if not math.isfinite(max_amp):
            raise InvalidParameterError("max_amp", max_amp, "must be finite")
        frame_peaks = [_to_peak(p) for p in peaks]

        self.config = config
        self._min_track_length = config.min_track_length
        self._tolerance.update(config.zeta_a, config.zeta_f, config.delta)

        for track in self._tracks:
            track.assigned = False

        births_before = self.stats['births']
        deaths_before = self.stats['deaths']
        if config.method is AssignmentMethod.GREEDY:
            self._assign_greedy(frame_peaks, max_amp, config)
            self.stats['greedy_frames'] += 1
        else:
            self._assign_optimal(frame_peaks, max_amp, config)
            self.stats['optimal_frames'] += 1

        logger.debug(
            f"Frame {self._current_frame}: {len(frame_peaks)} peaks, "
            f"{self.stats['births'] - births_before} born, "
            f"{self.stats['deaths'] - deaths_before} died"
        )
        self.stats['frames'] += 1
        self.stats['peaks'] += len(frame_peaks)
        self._current_frame += 1

    def _qualifies_for_birth(self, peaks: List[SinePeak], max_amp: float, config: TrackingConfig) -> np.ndarray:
        if not peaks:
            return np.zeros(0, dtype=bool)
        freqs = np.array([p.freq for p in peaks])
        mags = np.array([p.log_mag for p in peaks])
        thresholds = birth_threshold(freqs, max_amp, config.birth_low_threshold, config.birth_high_threshold)
        return mags > thresholds

    def _spawn(self, peaks: List[SinePeak], start_frame: int) -> SineTrack:
        self._last_track_id += 1
        track = SineTrack(peaks=peaks, start_frame=start_frame, track_id=self._last_track_id)
        self._tracks.append(track)
        self.stats['births'] += 1
        return track

    def _retire_unassigned(self):
        for track in self._tracks:
            if track.active and not track.assigned:
                track.kill(self._current_frame)
                self.stats['deaths'] += 1

    def _assign_greedy(self, peaks: List[SinePeak], max_amp: float, config: TrackingConfig):
        # bindings from an earlier optimal frame no longer describe the previous frame
        self._context = None

        active = [t for t in self._tracks if t.active]
        if active and peaks:
            freqs = np.array([p.freq for p in peaks])
            mags = np.array([p.log_mag for p in peaks])
            last_freqs = np.array([t.last_peak.freq for t in active])
            last_mags = np.array([t.last_peak.log_mag for t in active])

            useful = self._tolerance.useful_cost(last_freqs[:, None] - freqs[None, :],
                                                 last_mags[:, None] - mags[None, :])
            # stable: equal costs keep track-major, then peak order
            order = np.argsort(useful, axis=None, kind="stable")
            n_peaks = len(peaks)
            for flat in order:
                # acceptance is monotone in cost, nothing later can pass
                if not self._tolerance.is_useful(useful.flat[flat]):
                    break
                ti, pj = divmod(int(flat), n_peaks)
                track, peak = active[ti], peaks[pj]
                if track.assigned or peak.assigned:
                    continue
                track.peaks.append(peak)
                track.assigned = True
                peak.assigned = True

        qualifies = self._qualifies_for_birth(peaks, max_amp, config)
        for peak, ok in zip(peaks, qualifies):
            if not peak.assigned and ok:
                self._spawn([peak], self._current_frame)

        self._retire_unassigned()

    def _assign_optimal(self, peaks: List[SinePeak], max_amp: float, config: TrackingConfig):
        context = self._context
        bindings: List[Optional[int]] = [None] * len(peaks)

        if context is not None and len(context) and peaks:
            prev_freqs = np.array([p.freq for p in context.peaks])
            prev_mags = np.array([p.log_mag for p in context.peaks])
            freqs = np.array([p.freq for p in peaks])
            mags = np.array([p.log_mag for p in peaks])

            useful = self._tolerance.useful_cost(prev_freqs[:, None] - freqs[None, :],
                                                 prev_mags[:, None] - mags[None, :])
            spurious = self._tolerance.spurious_cost(useful)
            useful_mask = self._tolerance.is_useful(useful)
            cost = np.where(useful_mask, np.abs(useful), spurious)

            self.matcher.init(*cost.shape)
            result = self.matcher.match(cost)

            prev_qualifies = self._qualifies_for_birth(context.peaks, context.max_amp, config)
            # a track bound last frame was assigned then, so it is still active here
            live: Dict[int, SineTrack] = {t.track_id: t for t in self._tracks if t.active}

            for i, j in result.matches:
                if not useful_mask[i, j]:
                    continue
                peak = peaks[j]
                bound_id = context.track_ids[i]
                if bound_id is not None:
                    track = live[bound_id]
                    track.peaks.append(peak)
                    track.assigned = True
                elif prev_qualifies[i]:
                    track = self._spawn([context.peaks[i].copy(), peak], self._current_frame - 1)
                else:
                    continue
                peak.assigned = True
                bindings[j] = track.track_id

        self._retire_unassigned()
        self._context = MatchingContext(peaks, bindings, max_amp)

    # ------------------------------------------------------------------
    # Eviction and the latency-delayed view
    # ------------------------------------------------------------------

    def prune(self):
        """Drop tracks that died long enough ago to never be queried again."""
        self._require_init()
        horizon = self._current_frame - self._min_track_length
        kept = [t for t in self._tracks if not (t.is_dead and t.end_frame <= horizon)]
        removed = len(self._tracks) - len(kept)
        if removed:
            self._tracks = kept
            self.stats['pruned'] += removed
            logger.debug(f"Pruned {removed} tracks at frame {self._current_frame}")

    def latency_frame(self) -> int:
        return self._current_frame - self._min_track_length

    def _confirmed_at(self, frame: int) -> List[SineTrack]:
        if frame < 0:
            return []
        confirmed = []
        for track in self._tracks:
            if track.start_frame > frame:
                continue
            if track.is_dead and track.end_frame <= frame:
                continue
            if track.is_dead and track.end_frame - track.start_frame < self._min_track_length:
                continue
            confirmed.append(track)
        return confirmed

    def get_active_peaks(self) -> List[SinePeak]:
        """Copies of the peaks of all confirmed tracks at the latency frame."""
        self._require_init()
        frame = self.latency_frame()
        return [t.peak_at(frame).copy() for t in self._confirmed_at(frame)]

    def get_active_partials(self) -> List[ActivePartial]:
        """Like get_active_peaks, tagged with track id and frame."""
        self._require_init()
        frame = self.latency_frame()
        return [ActivePartial(t.track_id, frame, t.peak_at(frame).copy()) for t in self._confirmed_at(frame)]

    def tracks(self) -> List[SineTrack]:
        """Deep copies of every stored track, live and dead-but-unpruned."""
        return [t.copy() for t in self._tracks]

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'current_frame': self._current_frame,
            'stored_tracks': len(self._tracks),
            'active_tracks': sum(1 for t in self._tracks if t.active),
            'last_track_id': self._last_track_id,
            'method': self.config.method.value,
            'variance_updates': self._tolerance.recompute_count,
        }
