"""Rich display utilities for CLI output."""

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from packages.core import ExportFormat, MediaInfo, format_bytes, format_duration
from packages.render import (
    ExportResult,
    ExportSettings,
    FrameScheduler,
    Sequence,
    estimate_output_bytes,
)

console = Console()


def effects_summary(effects) -> str:
    """Short description of a clip's effects."""
    parts = []
    if effects.speed != 1:
        parts.append(f"{effects.speed:g}x")
    if effects.has_selective_blur:
        parts.append(f"{len(effects.selective_blur)} blur region(s)")
    elif effects.blur > 0:
        parts.append(f"blur {effects.blur:g}")
    return ", ".join(parts) or "-"


def print_plan(sequence: Sequence, fps: int) -> None:
    """Print the timeline partition and estimated output sizes."""
    scheduler = FrameScheduler(sequence, fps)

    table = Table(title=f"Timeline ({fps} fps)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Clip", style="bold")
    table.add_column("Source")
    table.add_column("Effects")
    table.add_column("Duration", justify="right")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Frames", justify="right")

    for segment in scheduler.segments():
        clip = segment.clip
        table.add_row(
            str(segment.clip_index + 1),
            clip.id,
            clip.source.name,
            effects_summary(clip.effects),
            f"{segment.duration:.2f}s",
            f"{segment.start:.2f}s",
            f"{segment.end:.2f}s",
            str(segment.frame_count),
        )

    console.print(table)
    console.print(
        f"[bold]Total:[/] {format_duration(scheduler.total_duration)}, "
        f"{scheduler.total_frames} frames"
    )

    sizes = Table(title="Estimated size (1280x720, quality 80)")
    sizes.add_column("Format", style="bold")
    sizes.add_column("Size", justify="right")
    for export_format in ExportFormat:
        settings = ExportSettings(fps=fps, format=export_format)
        sizes.add_row(
            export_format.value,
            format_bytes(estimate_output_bytes(settings, scheduler.total_duration)),
        )
    console.print(sizes)


def print_media_info(info: MediaInfo) -> None:
    """Print probed media details."""
    lines = [
        f"[dim]Duration:[/] {format_duration(info.duration)} ({info.duration:.3f}s)",
        f"[dim]Resolution:[/] {info.width}x{info.height}",
        f"[dim]Frame rate:[/] {info.fps:.2f} fps",
        f"[dim]Frames:[/] {info.frame_count}",
    ]
    console.print(Panel("\n".join(lines), title=f"[bold]{info.path}[/bold]", expand=False))


def print_result(result: ExportResult, output: Optional[str] = None) -> None:
    """Print a summary of a finished export."""
    lines = [
        f"[dim]Format:[/] {result.format.value} ({result.media_type})",
        f"[dim]Size:[/] {format_bytes(result.size)}",
        f"[dim]Frames:[/] {result.frame_count} over {format_duration(result.duration)}",
        f"[dim]Backend:[/] {result.backend.value}",
    ]
    if result.fell_back:
        lines.append("[yellow]Batch encoding failed; recorded with frame capture[/]")
    if result.blank_frames:
        lines.append(f"[yellow]Blank frames:[/] {result.blank_frames}")

    console.print(Panel("\n".join(lines), title=output or "Export", expand=False))


def print_error(error: Exception) -> None:
    """Print an error in red."""
    console.print(f"[red]Error:[/] {escape(str(error))}")
