"""
Capture - Frame-by-frame rendering into a sink.

Each output frame is resolved by the scheduler, its source is positioned
by the seek controller, composited into one shared surface and handed to
the sink before the next frame is drawn.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Set

from packages.core.protocols import FrameSink

from .compositor import EffectCompositor
from .media import SourcePool
from .models import ExportSettings, Sequence
from .scheduler import FrameScheduler
from .seek import SeekController

logger = logging.getLogger(__name__)


@dataclass
class CaptureStats:
    """Counters for one frame-capture run."""
    frame_count: int = 0
    blank_frames: int = 0
    seek_shortfalls: int = 0
    blank_clips: Set[str] = field(default_factory=set)


class FrameCaptureBackend:
    """
    Drives scheduler, seek controller and compositor for every frame.

    Usage:
        backend = FrameCaptureBackend(SeekController(policy))
        stats = await backend.render(sequence, settings, pool, sink, on_fraction)
        data = await sink.finish()
    """

    def __init__(self, seek_controller: Optional[SeekController] = None):
        self.seeker = seek_controller or SeekController()

    async def render(
        self,
        sequence: Sequence,
        settings: ExportSettings,
        pool: SourcePool,
        sink: FrameSink,
        progress: Optional[Callable[[float], None]] = None,
    ) -> CaptureStats:
        """
        Render every frame of ``sequence`` into ``sink``.

        The sink is started here; finishing it is left to the caller. If
        rendering fails or is cancelled the sink is aborted.
        """
        scheduler = FrameScheduler(sequence, settings.fps)
        compositor = EffectCompositor(settings.width, settings.height)
        surface = compositor.new_surface()
        total = scheduler.total_frames
        stats = CaptureStats()

        logger.info("Capturing %d frames at %d fps", total, settings.fps)
        await sink.start()

        completed = False
        try:
            for slot in scheduler.slots():
                source = pool.get(slot.clip_id)
                seek = await self.seeker.seek(source, slot.local_time)
                if not seek.settled:
                    stats.seek_shortfalls += 1

                result = await asyncio.to_thread(
                    compositor.composite, surface, source.frame, slot.clip.effects
                )
                if result.blank:
                    stats.blank_frames += 1
                    if slot.clip_id not in stats.blank_clips:
                        stats.blank_clips.add(slot.clip_id)
                        logger.warning(
                            "Frame %d of clip %s rendered blank at %.3fs",
                            slot.index, slot.clip_id, slot.local_time,
                        )

                await sink.add_frame(surface.pixels, slot.index)
                stats.frame_count += 1

                if progress is not None:
                    progress((slot.index + 1) / total)

                # Let other tasks run between frames
                await asyncio.sleep(0)
            completed = True
        finally:
            if not completed:
                await sink.abort()

        if stats.blank_frames:
            logger.warning("%d of %d frames were blank", stats.blank_frames, total)
        if stats.seek_shortfalls:
            logger.info("%d seeks finished outside tolerance", stats.seek_shortfalls)
        return stats
