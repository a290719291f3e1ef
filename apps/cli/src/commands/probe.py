"""Inspect a source video."""

from pathlib import Path

import typer

from packages.core import MediaError
from packages.render import probe_media

from ..utils.display import print_error, print_media_info


def probe(
    path: Path = typer.Argument(..., help="Video file to inspect"),
) -> None:
    """Print duration, resolution and frame rate of a video.

    Example:
        splice probe clip.mp4
    """
    try:
        info = probe_media(path)
    except MediaError as e:
        print_error(e)
        raise typer.Exit(1)

    print_media_info(info)
