"""
GIF - Animated-image sink for the frame-capture backend.

Frames are queued as copies while rendering; encoding runs afterwards on
a small thread pool (one palette quantization per frame) and the whole
encode is bounded by the configured timeout.
"""

import asyncio
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import numpy as np
from PIL import Image

from packages.core.config import SpliceConfig, get_config
from packages.core.errors import CaptureError, EncodeTimeoutError
from packages.core.protocols import ProgressCallback
from packages.core.utils import clamp

from .models import ExportSettings

logger = logging.getLogger(__name__)


def palette_size(quality: int) -> int:
    """Palette colours for a quality value; 8 at the bottom, 256 at 100."""
    return int(clamp(round(256 * quality / 100), 8, 256))


def quantize_frame(pixels: np.ndarray, colors: int) -> Image.Image:
    return Image.fromarray(pixels).quantize(colors=colors, method=Image.Quantize.MEDIANCUT)


def assemble_gif(frames: List[Image.Image], delay_ms: int) -> bytes:
    """
    Write a looping GIF with a fixed per-frame delay.

    Pillow stores a run of identical frames once, with the run's delays
    summed, so playback time is always ``len(frames) * delay_ms``.
    """
    buffer = io.BytesIO()
    frames[0].save(
        buffer,
        format="GIF",
        save_all=True,
        append_images=frames[1:],
        duration=delay_ms,
        loop=0,
    )
    return buffer.getvalue()


class GifSink:
    """
    Collects composited frames and encodes them to an animated GIF.

    Usage:
        sink = GifSink(settings)
        await sink.start()
        await sink.add_frame(surface.pixels, 0)
        data = await sink.finish(on_fraction)
    """

    def __init__(self, settings: ExportSettings, config: Optional[SpliceConfig] = None):
        config = config or get_config()
        self.delay_ms = settings.frame_delay_ms
        self.colors = palette_size(settings.quality)
        self.workers = config.gif_workers
        self.timeout = config.encode_timeout
        self._frames: List[np.ndarray] = []

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    async def start(self) -> None:
        self._frames = []

    async def add_frame(self, pixels: np.ndarray, index: int) -> None:
        # The surface is redrawn for the next frame, so keep a copy
        self._frames.append(pixels.copy())

    async def finish(self, progress: Optional[ProgressCallback] = None) -> bytes:
        """
        Encode every queued frame.

        Raises:
            CaptureError: If no frame was added
            EncodeTimeoutError: If encoding exceeds the timeout
        """
        if not self._frames:
            raise CaptureError("no frames to encode")

        logger.info(
            "Encoding GIF: %d frames, %d colours, %dms delay, %d workers",
            len(self._frames), self.colors, self.delay_ms, self.workers,
        )
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="gif")
        try:
            return await asyncio.wait_for(self._encode(executor, progress), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise EncodeTimeoutError("GIF encoding", self.timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
            self._frames = []

    async def _encode(
        self,
        executor: ThreadPoolExecutor,
        progress: Optional[ProgressCallback],
    ) -> bytes:
        loop = asyncio.get_running_loop()
        total = len(self._frames)
        futures = [
            loop.run_in_executor(executor, quantize_frame, pixels, self.colors)
            for pixels in self._frames
        ]

        done = 0
        for future in asyncio.as_completed(futures):
            await future
            done += 1
            if progress is not None:
                # The last step is assembling the file
                progress(done / (total + 1))

        images = [future.result() for future in futures]
        data = await loop.run_in_executor(executor, assemble_gif, images, self.delay_ms)

        if progress is not None:
            progress(1.0)
        logger.info("GIF encoded: %d bytes", len(data))
        return data

    async def abort(self) -> None:
        self._frames = []
