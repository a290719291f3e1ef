"""Splice CLI - Command-line tools for exporting video sequences.

Usage:
    splice <command> [options]

Commands:
    export      Render a sequence to gif, mp4 or webm
    plan        Show the timeline partition and size estimates
    probe       Show media info for a video file
"""

import typer

from packages.core import configure_logging, get_config

from . import __version__
from .commands.export import export
from .commands.plan import plan
from .commands.probe import probe
from .utils.display import console

# Create the main app
app = typer.Typer(
    name="splice",
    help="Splice CLI - Video sequence export tools",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"Splice CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Splice CLI - Command-line tools for exporting video sequences."""
    level = "DEBUG" if verbose else get_config().log_level.value
    configure_logging(level)


# Register commands
app.command("export")(export)
app.command("plan")(plan)
app.command("probe")(probe)


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
