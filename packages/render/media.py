"""
Media - Open, seek and decode source clips, and preload them per export.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Optional

import cv2
import numpy as np

from packages.core.errors import MediaLoadError, MediaNotFoundError
from packages.core.protocols import MediaSource
from packages.core.types import MediaInfo

from .models import ClipDescriptor, Sequence

logger = logging.getLogger(__name__)

SourceOpener = Callable[[Path], MediaSource]


class VideoSource:
    """
    A seekable OpenCV decoder over one video file.

    ``seek`` only records the target; the (blocking) decode happens in
    ``poll`` so callers can run it in a worker thread.
    """

    def __init__(self, path: Path, capture: "cv2.VideoCapture"):
        self.path = str(path)
        self._cap = capture
        self.fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        self.frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        self.width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        self.height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        self.duration = self.frame_count / self.fps if self.fps > 0 else 0.0

        self._pending: Optional[float] = None
        self._frame: Optional[np.ndarray] = None
        self._time = 0.0

    @classmethod
    def open(cls, path: Path) -> "VideoSource":
        """
        Open a video file for decoding.

        Raises:
            MediaNotFoundError: If the file does not exist
            MediaLoadError: If OpenCV cannot open it
        """
        path = Path(path)
        if not path.exists():
            raise MediaNotFoundError(str(path))

        cap = cv2.VideoCapture(str(path))
        if not cap.isOpened():
            cap.release()
            raise MediaLoadError(str(path), "could not open video")

        return cls(path, cap)

    @property
    def current_time(self) -> float:
        return self._time

    @property
    def frame(self) -> Optional[np.ndarray]:
        return self._frame

    @property
    def info(self) -> MediaInfo:
        return MediaInfo(
            path=self.path,
            duration=self.duration,
            width=self.width,
            height=self.height,
            fps=self.fps,
            frame_count=self.frame_count,
        )

    def seek(self, time: float) -> None:
        self._pending = max(0.0, time)
        self._frame = None

    def poll(self) -> bool:
        """Decode the frame at the pending position, if any."""
        if self._pending is not None:
            self._cap.set(cv2.CAP_PROP_POS_MSEC, self._pending * 1000)
            self._pending = None
            position = self._cap.get(cv2.CAP_PROP_POS_MSEC) / 1000

            ret, frame = self._cap.read()
            if not ret or frame is None:
                return False

            # Convert BGR to RGB
            self._frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            self._time = position
            if self.height == 0 or self.width == 0:
                self.height, self.width = self._frame.shape[:2]

        return self._frame is not None

    def release(self) -> None:
        self._cap.release()
        self._frame = None


def probe_media(path: Path) -> MediaInfo:
    """
    Read duration, size and frame rate of a video file.

    Raises:
        MediaNotFoundError: If the file does not exist
        MediaLoadError: If the file cannot be decoded
    """
    source = VideoSource.open(Path(path))
    try:
        return source.info
    finally:
        source.release()


class SourcePool:
    """
    Opens every clip's source up front and releases them together.

    One handle per clip id; clips sharing a file still get their own
    handle so their positions never interfere.

    Usage:
        with SourcePool(sequence) as pool:
            source = pool.get(clip.id)
    """

    def __init__(self, sequence: Sequence, opener: Optional[SourceOpener] = None):
        self.sequence = sequence
        self.opener = opener or VideoSource.open
        self._sources: Dict[str, MediaSource] = {}

    def preload(self) -> Dict[str, MediaSource]:
        """
        Open all clips and make sure each can decode its first frame.

        Raises:
            MediaLoadError: If any clip cannot be made decodable; handles
                opened so far are released first
        """
        try:
            for clip in self.sequence:
                self._sources[clip.id] = self._open_clip(clip)
        except Exception:
            self.release()
            raise

        logger.info("Preloaded %d source clip(s)", len(self._sources))
        return dict(self._sources)

    def _open_clip(self, clip: ClipDescriptor) -> MediaSource:
        try:
            source = self.opener(clip.source)
        except MediaNotFoundError:
            raise MediaLoadError(str(clip.source), "file not found", clip_id=clip.id)
        except MediaLoadError as e:
            raise MediaLoadError(str(clip.source), e.reason, clip_id=clip.id) from e
        except (OSError, cv2.error) as e:
            raise MediaLoadError(str(clip.source), str(e), clip_id=clip.id) from e

        source.seek(0.0)
        if not source.poll():
            source.release()
            raise MediaLoadError(str(clip.source), "no decodable frame", clip_id=clip.id)

        logger.debug(
            "Loaded clip %s: %s (%dx%d, %.2fs)",
            clip.id, clip.source, source.width, source.height, source.duration,
        )
        return source

    def get(self, clip_id: str) -> MediaSource:
        return self._sources[clip_id]

    def __contains__(self, clip_id: str) -> bool:
        return clip_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def release(self) -> None:
        """Release every handle; errors are logged, never raised."""
        for clip_id, source in self._sources.items():
            try:
                source.release()
            except Exception as e:  # best-effort cleanup
                logger.warning("Failed to release source for clip %s: %s", clip_id, e)
        self._sources.clear()

    def __enter__(self) -> "SourcePool":
        self.preload()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
