"""Shared type definitions for Splice.

Contains canonical type definitions used across packages.
Domain-specific types should remain in their respective packages.

Core Types (shared across packages):
- ExportFormat: Output container/image format
- RegionShape: Shape of a selective blur region
- ExportState: Lifecycle states of one export call
- ExportBackend: Which backend produced an export
- MediaInfo: Source media properties

Domain-Specific Types (remain in packages):
- render.ClipDescriptor: One clip in a sequence
- render.Sequence: Ordered clips with derived timing
- render.FrameSlot: Scheduled output frame
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


# ============ Enums ============


class ExportFormat(Enum):
    """Supported export formats."""

    GIF = "gif"
    MP4 = "mp4"
    WEBM = "webm"

    @property
    def media_type(self) -> str:
        """MIME type of the exported binary."""
        if self == ExportFormat.GIF:
            return "image/gif"
        return f"video/{self.value}"

    @property
    def extension(self) -> str:
        """File extension including the dot."""
        return f".{self.value}"

    @property
    def is_video(self) -> bool:
        """True for the encoded video formats."""
        return self != ExportFormat.GIF


class RegionShape(Enum):
    """Clip path shape of a selective blur region."""

    RECT = "rect"
    CIRCLE = "circle"


class ExportState(Enum):
    """Export lifecycle.

    IDLE -> INITIALIZING -> RENDERING -> ENCODING -> COMPLETE | FAILED.
    The batch path skips RENDERING; a failed webm batch encode may go
    back from ENCODING to RENDERING once.
    """

    IDLE = "idle"
    INITIALIZING = "initializing"
    RENDERING = "rendering"
    ENCODING = "encoding"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_final(self) -> bool:
        return self in (ExportState.COMPLETE, ExportState.FAILED)


class ExportBackend(Enum):
    """Backend that produced an export."""

    BATCH = "batch"
    FRAME_CAPTURE = "frame_capture"


# ============ Dataclasses ============


@dataclass
class MediaInfo:
    """Properties of a source media file.

    Stores what a decoder reports without holding frames in memory.
    """

    path: str
    duration: float = 0.0
    width: int = 0
    height: int = 0
    fps: float = 0.0
    frame_count: int = 0

    @property
    def resolution(self) -> tuple[int, int]:
        """Get resolution as (width, height) tuple."""
        return (self.width, self.height)

    @property
    def aspect_ratio(self) -> float:
        """Width divided by height, 0 for unknown dimensions."""
        if self.height == 0:
            return 0.0
        return self.width / self.height

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": self.path,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "frame_count": self.frame_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MediaInfo":
        """Create from dictionary."""
        return cls(
            path=data.get("path", ""),
            duration=float(data.get("duration", 0.0)),
            width=int(data.get("width", 0)),
            height=int(data.get("height", 0)),
            fps=float(data.get("fps", 0.0)),
            frame_count=int(data.get("frame_count", 0)),
        )
