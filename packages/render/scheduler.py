"""
Scheduler - Map output frame indices to (clip, local source time).
"""

from dataclasses import dataclass
from typing import Iterator, List, Tuple

from packages.core.utils import clamp, seconds_to_frames

from .models import ClipDescriptor, Sequence

# Keeps seeks strictly inside the media so the decoder never hits end-of-stream
LOCAL_TIME_EPSILON = 0.01


@dataclass(frozen=True)
class FrameSlot:
    """A scheduled output frame."""
    index: int
    global_time: float
    clip_index: int
    clip: ClipDescriptor
    local_time: float

    @property
    def clip_id(self) -> str:
        return self.clip.id


@dataclass(frozen=True)
class Segment:
    """The part of the output timeline owned by one clip."""
    clip_index: int
    clip: ClipDescriptor
    start: float
    end: float
    frame_count: int

    @property
    def duration(self) -> float:
        return self.end - self.start


class FrameScheduler:
    """
    Resolve every output frame of a sequence to a source position.

    The scheduler is pure: the same sequence and fps always yield the
    same slots.

    Usage:
        scheduler = FrameScheduler(sequence, fps=30)
        for slot in scheduler.slots():
            print(slot.index, slot.clip_id, slot.local_time)
    """

    def __init__(self, sequence: Sequence, fps: int):
        if fps <= 0:
            raise ValueError("fps must be positive")
        self.sequence = sequence
        self.fps = fps
        self._starts = sequence.cumulative_starts
        self._durations = sequence.effective_durations

    @property
    def total_duration(self) -> float:
        return self.sequence.total_duration

    @property
    def total_frames(self) -> int:
        return seconds_to_frames(self.total_duration, self.fps)

    def frame_time(self, index: int) -> float:
        return index / self.fps

    def locate(self, global_time: float) -> Tuple[int, float]:
        """
        Find the clip owning ``global_time`` and its cumulative start.

        Segments are half-open so a boundary instant belongs to the later
        clip; times at or past the end belong to the last clip.
        """
        for i, (start, duration) in enumerate(zip(self._starts, self._durations)):
            if start <= global_time < start + duration:
                return i, start
        last = len(self._starts) - 1
        return last, self._starts[last]

    def resolve(self, index: int) -> FrameSlot:
        """
        Resolve an output frame index.

        Raises:
            IndexError: If index is outside [0, total_frames)
        """
        if not 0 <= index < self.total_frames:
            raise IndexError(f"frame {index} outside 0..{self.total_frames - 1}")

        global_time = self.frame_time(index)
        clip_index, start = self.locate(global_time)
        clip = self.sequence[clip_index]

        local_time = (global_time - start) * clip.effects.speed
        local_time = clamp(local_time, 0.0, max(0.0, clip.duration - LOCAL_TIME_EPSILON))

        return FrameSlot(
            index=index,
            global_time=global_time,
            clip_index=clip_index,
            clip=clip,
            local_time=local_time,
        )

    def slots(self) -> Iterator[FrameSlot]:
        """Iterate over every output frame in order."""
        for index in range(self.total_frames):
            yield self.resolve(index)

    def segments(self) -> List[Segment]:
        """The timeline partition, with the number of frames each clip owns."""
        counts = [0] * len(self.sequence)
        for slot in self.slots():
            counts[slot.clip_index] += 1

        return [
            Segment(
                clip_index=i,
                clip=clip,
                start=start,
                end=start + duration,
                frame_count=counts[i],
            )
            for i, (clip, start, duration) in enumerate(
                zip(self.sequence, self._starts, self._durations)
            )
        ]
