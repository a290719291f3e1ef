"""Shared fixtures for CLI tests."""

import json

import pytest
from typer.testing import CliRunner

from packages.core import ExportBackend, ExportFormat, MediaInfo
from packages.render import ExportResult


@pytest.fixture
def cli_runner():
    """Create a CliRunner instance for testing CLI commands."""
    return CliRunner()


@pytest.fixture
def sequence_file(tmp_path):
    """A two-clip sequence document: 1.5 s then 2.0 s at double speed."""
    path = tmp_path / "sequence.json"
    path.write_text(json.dumps({
        "clips": [
            {"id": "intro", "source": "intro.mp4", "duration": 1.5},
            {
                "id": "main",
                "source": "main.mp4",
                "duration": 4.0,
                "effects": {"speedMultiplier": 2, "blurRadius": 3},
            },
        ],
    }))
    return path


@pytest.fixture
def gif_result():
    """A finished gif export."""
    return ExportResult(
        data=b"GIF89a-fake",
        format=ExportFormat.GIF,
        backend=ExportBackend.FRAME_CAPTURE,
        frame_count=105,
        duration=3.5,
    )


@pytest.fixture
def media_info():
    """Probed properties of a 2.5 s 640x360 clip."""
    return MediaInfo(
        path="clip.mp4",
        duration=2.5,
        width=640,
        height=360,
        fps=30.0,
        frame_count=75,
    )
