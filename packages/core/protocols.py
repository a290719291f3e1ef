"""Protocol definitions for Splice interfaces.

Protocols define interfaces for duck typing, allowing the export engine
to depend on behaviors rather than concrete implementations.

Usage:
    from packages.core import MediaSource

    def first_frame(source: MediaSource):
        source.seek(0.0)
        if source.poll():
            return source.frame
"""

from typing import Callable, Optional, Protocol, runtime_checkable

import numpy as np

ProgressCallback = Callable[[float], None]


@runtime_checkable
class MediaSource(Protocol):
    """Protocol for a seekable, decodable source media handle.

    A handle is positioned with ``seek`` and becomes ready once a frame
    at (or near) the requested time has been decoded. Decoding happens in
    ``poll``, which may block and should be called off the event loop.

    Example:
        class StillSource:
            path = "still.png"
            duration = 1.0
            width, height = 320, 240
            current_time = 0.0
            frame = ...

            def seek(self, time: float) -> None: ...
            def poll(self) -> bool: return True
            def release(self) -> None: ...
    """

    path: str
    duration: float
    width: int
    height: int

    @property
    def current_time(self) -> float:
        """Presentation time of the decoded frame, in seconds."""
        ...

    @property
    def frame(self) -> Optional[np.ndarray]:
        """Decoded RGB frame (height, width, 3), or None when not ready."""
        ...

    def seek(self, time: float) -> None:
        """Request the handle to move to ``time`` seconds."""
        ...

    def poll(self) -> bool:
        """Advance decoding and report whether a frame is ready."""
        ...

    def release(self) -> None:
        """Free decoder resources."""
        ...


@runtime_checkable
class FrameSink(Protocol):
    """Protocol for consumers of composited frames.

    The frame-capture backend calls ``start`` once, ``add_frame`` for
    every output frame in order, then ``finish`` which returns the
    encoded binary.
    """

    async def start(self) -> None:
        """Prepare the encoder before the first frame."""
        ...

    async def add_frame(self, pixels: np.ndarray, index: int) -> None:
        """Consume one composited frame. ``pixels`` is reused by the caller."""
        ...

    async def finish(self, progress: Optional[ProgressCallback] = None) -> bytes:
        """Flush and encode, reporting fractional progress in [0, 1]."""
        ...

    async def abort(self) -> None:
        """Discard everything after a failure."""
        ...

