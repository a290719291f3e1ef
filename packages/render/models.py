"""
Models - Clips, effects, sequences and export settings.

Everything here is immutable: the editor builds these values before an
export starts and the engine only reads them.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from packages.core.errors import InvalidSequenceError, InvalidSettingsError
from packages.core.types import ExportFormat, RegionShape


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key (snake_case or editor camelCase)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class BlurRegion:
    """Area blurred independently of the rest of the frame.

    Coordinates are percentages (0-100) of the fitted content box, so a
    region keeps its relative coverage at any output resolution.
    """
    x_pct: float
    y_pct: float
    width_pct: float
    height_pct: float
    shape: RegionShape = RegionShape.RECT
    intensity: float = 10.0

    def validate(self) -> List[str]:
        errors = []
        if self.width_pct <= 0 or self.height_pct <= 0:
            errors.append("blur region must have a positive size")
        if self.intensity < 0:
            errors.append("blur region intensity must be >= 0")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x_pct,
            "y": self.y_pct,
            "width": self.width_pct,
            "height": self.height_pct,
            "shape": self.shape.value,
            "intensity": self.intensity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlurRegion":
        return cls(
            x_pct=float(_pick(data, "x_pct", "x", default=0.0)),
            y_pct=float(_pick(data, "y_pct", "y", default=0.0)),
            width_pct=float(_pick(data, "width_pct", "width", default=0.0)),
            height_pct=float(_pick(data, "height_pct", "height", default=0.0)),
            shape=RegionShape(str(_pick(data, "shape", default="rect")).lower()),
            intensity=float(_pick(data, "intensity", default=10.0)),
        )


@dataclass(frozen=True)
class ClipEffects:
    """Visual effects of one clip."""
    speed: float = 1.0
    blur: float = 0.0
    selective_blur: Tuple[BlurRegion, ...] = ()

    @property
    def has_selective_blur(self) -> bool:
        return len(self.selective_blur) > 0

    @property
    def effective_blur(self) -> float:
        """Global blur radius; selective regions replace it entirely."""
        return 0.0 if self.has_selective_blur else self.blur

    def validate(self) -> List[str]:
        errors = []
        if not self.speed > 0:
            errors.append("speed must be > 0")
        if self.blur < 0:
            errors.append("blur must be >= 0")
        for region in self.selective_blur:
            errors.extend(region.validate())
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speed": self.speed,
            "blur": self.blur,
            "selective_blur": [r.to_dict() for r in self.selective_blur],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClipEffects":
        regions = _pick(data, "selective_blur", "selectiveBlur", default=[])
        return cls(
            speed=float(_pick(data, "speed", "speedMultiplier", default=1.0)),
            blur=float(_pick(data, "blur", "blurRadius", default=0.0)),
            selective_blur=tuple(BlurRegion.from_dict(r) for r in regions),
        )


@dataclass(frozen=True)
class ClipDescriptor:
    """One source video placed in the sequence."""
    id: str
    source: Path
    duration: float  # natural duration in seconds
    effects: ClipEffects = field(default_factory=ClipEffects)

    @property
    def effective_duration(self) -> float:
        """Contribution to the output timeline after the speed change."""
        return self.duration / self.effects.speed

    def validate(self) -> List[str]:
        errors = []
        if not self.id:
            errors.append("id must not be empty")
        if not self.duration > 0:
            errors.append("duration must be > 0")
        errors.extend(self.effects.validate())
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": str(self.source),
            "duration": self.duration,
            "effects": self.effects.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "ClipDescriptor":
        source = Path(str(_pick(data, "source", "path", "url", default="")))
        if base_dir is not None and not source.is_absolute():
            source = base_dir / source
        return cls(
            id=str(_pick(data, "id", default="")),
            source=source,
            duration=float(_pick(data, "duration", default=0.0)),
            effects=ClipEffects.from_dict(_pick(data, "effects", default={})),
        )


@dataclass(frozen=True)
class Sequence:
    """
    Ordered clips whose effective durations partition the output timeline.

    Clip i covers ``[cumulative_starts[i], cumulative_starts[i] +
    effective_durations[i])``; segments are contiguous with no gaps.

    Usage:
        seq = Sequence.from_dict(json.load(open("sequence.json")))
        print(seq.total_duration)
    """
    clips: Tuple[ClipDescriptor, ...]

    def __post_init__(self):
        # Accept lists for convenience but store a tuple
        object.__setattr__(self, "clips", tuple(self.clips))
        self.validate()

    def validate(self) -> None:
        """Raise InvalidSequenceError if the sequence cannot be exported."""
        if not self.clips:
            raise InvalidSequenceError(["sequence has no clips"])

        seen = set()
        for clip in self.clips:
            errors = clip.validate()
            if errors:
                raise InvalidSequenceError(errors, clip_id=clip.id or None)
            if clip.id in seen:
                raise InvalidSequenceError([f"duplicate clip id '{clip.id}'"])
            seen.add(clip.id)

    def __len__(self) -> int:
        return len(self.clips)

    def __iter__(self):
        return iter(self.clips)

    def __getitem__(self, index: int) -> ClipDescriptor:
        return self.clips[index]

    @property
    def effective_durations(self) -> List[float]:
        return [clip.effective_duration for clip in self.clips]

    @property
    def cumulative_starts(self) -> List[float]:
        starts = []
        cumulative = 0.0
        for clip in self.clips:
            starts.append(cumulative)
            cumulative += clip.effective_duration
        return starts

    @property
    def total_duration(self) -> float:
        total = 0.0
        for clip in self.clips:
            total += clip.effective_duration
        return total

    def to_dict(self) -> Dict[str, Any]:
        return {"clips": [clip.to_dict() for clip in self.clips]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "Sequence":
        """
        Build a sequence from the editor's JSON document.

        Items carrying a start time are stably sorted by it; relative
        source paths are resolved against ``base_dir``.
        """
        items = _pick(data, "clips", "videos", "items", default=[])
        if not isinstance(items, list):
            raise InvalidSequenceError(["'clips' must be a list"])

        indexed = list(enumerate(items))
        indexed.sort(key=lambda pair: (
            float(_pick(pair[1], "start_time", "startTime", default=0.0)),
            pair[0],
        ))
        try:
            clips = tuple(ClipDescriptor.from_dict(item, base_dir) for _, item in indexed)
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidSequenceError([f"malformed clip entry: {e}"]) from e
        return cls(clips=clips)


@dataclass(frozen=True)
class ExportSettings:
    """Output raster size, frame rate, format and quality."""
    width: int = 1280
    height: int = 720
    fps: int = 30
    format: ExportFormat = ExportFormat.MP4
    quality: int = 80  # 0-100, higher means more bits

    def __post_init__(self):
        errors = []
        for name in ("width", "height", "fps"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                errors.append(f"{name} must be a positive integer")
        if not 0 <= self.quality <= 100:
            errors.append("quality must be within 0-100")
        if not isinstance(self.format, ExportFormat):
            errors.append(f"unsupported format: {self.format}")
        if errors:
            raise InvalidSettingsError(errors)

    @property
    def resolution(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def frame_delay_ms(self) -> int:
        """Per-frame display time of an animated image."""
        return round(1000 / self.fps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "format": self.format.value,
            "quality": self.quality,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportSettings":
        fmt = str(_pick(data, "format", default="mp4")).lower()
        try:
            export_format = ExportFormat(fmt)
        except ValueError:
            raise InvalidSettingsError([f"unsupported format: {fmt}"])
        return cls(
            width=int(_pick(data, "width", default=1280)),
            height=int(_pick(data, "height", default=720)),
            fps=int(_pick(data, "fps", default=30)),
            format=export_format,
            quality=int(_pick(data, "quality", default=80)),
        )


def estimate_output_bytes(settings: ExportSettings, duration: float) -> int:
    """
    Rough size of the exported file.

    GIFs scale with frame count and pixel count; videos with a nominal
    bitrate (5 Mbps for mp4, 3 Mbps for webm), both scaled by quality.
    """
    quality = settings.quality / 100
    if settings.format == ExportFormat.GIF:
        frames = duration * settings.fps
        return int(frames * settings.pixel_count * 3 * quality)

    bitrate = 5_000_000 if settings.format == ExportFormat.MP4 else 3_000_000
    return int(bitrate * quality * duration / 8)
