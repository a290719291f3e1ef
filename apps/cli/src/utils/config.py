"""Input loading utilities for CLI."""

from pathlib import Path
from typing import Any, Dict, Optional

from packages.core import ExportFormat, InvalidSettingsError, load_json
from packages.render import ExportSettings, Sequence, probe_media


def _needs_duration(item: Dict[str, Any]) -> bool:
    duration = item.get("duration")
    return duration is None or float(duration) <= 0


def load_sequence(path: Path) -> Sequence:
    """Load a sequence document, probing sources for missing durations.

    Relative source paths are resolved against the document's directory.

    Raises:
        FileNotFoundError: If the document does not exist
        ValueError: If it is not valid JSON
        InvalidSequenceError: If the clips are invalid
        MediaError: If a source without a duration cannot be probed
    """
    path = Path(path)
    data = load_json(path)
    if isinstance(data, list):
        data = {"clips": data}

    base_dir = path.parent
    for key in ("clips", "videos", "items"):
        items = data.get(key)
        if not isinstance(items, list):
            continue
        for item in items:
            if isinstance(item, dict) and _needs_duration(item):
                source = Path(str(item.get("source") or item.get("path") or item.get("url") or ""))
                if not source.is_absolute():
                    source = base_dir / source
                item["duration"] = probe_media(source).duration
        break

    return Sequence.from_dict(data, base_dir=base_dir)


def resolve_format(output: Path, format_name: Optional[str] = None) -> ExportFormat:
    """Pick the export format from an explicit name or the output extension.

    Raises:
        InvalidSettingsError: If neither names a supported format
    """
    name = (format_name or output.suffix.lstrip(".")).lower()
    try:
        return ExportFormat(name)
    except ValueError:
        supported = ", ".join(f.value for f in ExportFormat)
        raise InvalidSettingsError([f"unsupported format '{name}' (use {supported})"])


def build_settings(
    export_format: ExportFormat,
    width: int = 1280,
    height: int = 720,
    fps: int = 30,
    quality: int = 80,
) -> ExportSettings:
    """Create export settings from command-line values."""
    return ExportSettings(
        width=width,
        height=height,
        fps=fps,
        format=export_format,
        quality=quality,
    )
