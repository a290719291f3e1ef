"""Show how a sequence maps onto the output timeline."""

from pathlib import Path

import typer

from packages.core import SpliceError

from ..utils.config import load_sequence
from ..utils.display import print_error, print_plan


def plan(
    sequence_file: Path = typer.Argument(..., help="Sequence JSON document"),
    fps: int = typer.Option(30, "--fps", help="Output frame rate"),
) -> None:
    """Print clip segments, frame counts and size estimates.

    Example:
        splice plan sequence.json
        splice plan sequence.json --fps 60
    """
    if fps <= 0:
        print_error(ValueError("fps must be positive"))
        raise typer.Exit(1)

    try:
        sequence = load_sequence(sequence_file)
    except (SpliceError, FileNotFoundError, ValueError) as e:
        print_error(e)
        raise typer.Exit(1)

    print_plan(sequence, fps)
