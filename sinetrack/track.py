"""
Peak and track records for the partial tracker.
"""

from dataclasses import dataclass, field
from typing import List, Optional

# end_frame of a track that is still alive
UNSET = -1


@dataclass
class SinePeak:
    """One spectral peak of one frame."""
    freq: float
    log_mag: float
    assigned: bool = False

    def copy(self) -> "SinePeak":
        return SinePeak(self.freq, self.log_mag, self.assigned)


@dataclass
class SineTrack:
    """Accumulated history of one partial, one peak per frame."""
    peaks: List[SinePeak]
    start_frame: int
    track_id: int
    end_frame: int = UNSET
    active: bool = True
    assigned: bool = True

    @property
    def is_dead(self) -> bool:
        return self.end_frame != UNSET

    @property
    def last_peak(self) -> SinePeak:
        return self.peaks[-1]

    def lifespan(self, current_frame: int) -> int:
        end = self.end_frame if self.is_dead else current_frame
        return end - self.start_frame

    def peak_at(self, frame: int) -> SinePeak:
        return self.peaks[frame - self.start_frame]

    def kill(self, frame: int):
        self.active = False
        self.end_frame = frame

    def copy(self) -> "SineTrack":
        return SineTrack(
            peaks=[p.copy() for p in self.peaks],
            start_frame=self.start_frame,
            track_id=self.track_id,
            end_frame=self.end_frame,
            active=self.active,
            assigned=self.assigned,
        )


@dataclass
class MatchingContext:
    """
    Previous-frame state carried between optimal-strategy frames.

    track_ids[i] is the id of the track previous peak i was bound to,
    or None when it was left unmatched.
    """
    peaks: List[SinePeak] = field(default_factory=list)
    track_ids: List[Optional[int]] = field(default_factory=list)
    max_amp: float = 0.0

    def __len__(self):
        return len(self.peaks)


@dataclass(frozen=True)
class ActivePartial:
    """A confirmed track's peak at the latency frame."""
    track_id: int
    frame: int
    peak: SinePeak
