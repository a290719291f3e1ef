"""Export a clip sequence to gif, mp4 or webm."""

from pathlib import Path
from typing import Optional

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from packages.core import SpliceError
from packages.render import export_sequence

from ..utils.config import build_settings, load_sequence, resolve_format
from ..utils.display import console, print_error, print_result


def export(
    sequence_file: Path = typer.Argument(..., help="Sequence JSON document"),
    output: Path = typer.Option(..., "--output", "-o", help="Output file path"),
    format: Optional[str] = typer.Option(
        None, "--format", "-f", help="Output format: gif, mp4, webm (default: from extension)"
    ),
    width: int = typer.Option(1280, "--width", "-W", help="Output width in pixels"),
    height: int = typer.Option(720, "--height", "-H", help="Output height in pixels"),
    fps: int = typer.Option(30, "--fps", help="Output frame rate"),
    quality: int = typer.Option(80, "--quality", "-q", help="Quality 0-100"),
) -> None:
    """Render a sequence into a single output file.

    Example:
        splice export sequence.json -o out.mp4
        splice export sequence.json -o preview.gif --width 480 --height 270 --fps 12
    """
    try:
        sequence = load_sequence(sequence_file)
        settings = build_settings(resolve_format(output, format), width, height, fps, quality)
    except (SpliceError, FileNotFoundError, ValueError) as e:
        print_error(e)
        raise typer.Exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"Exporting {settings.format.value}...", total=100)
        try:
            result = export_sequence(
                sequence,
                settings,
                on_progress=lambda percent: progress.update(task, completed=percent),
            )
        except SpliceError as e:
            progress.stop()
            print_error(e)
            raise typer.Exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.data)

    print_result(result, str(output))
    console.print(f"[green]Saved to {output}[/]")
