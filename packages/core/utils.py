"""Common utility functions for Splice.

Provides helper functions used across multiple packages.
"""

from __future__ import annotations

import json
import logging
import math
import shutil
import sys
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


# ============ Logging ============


def configure_logging(level: str = "INFO", logger_name: str = "packages") -> logging.Logger:
    """Attach a single stream handler to the Splice logger tree.

    Calling this more than once replaces the level but never stacks
    handlers.

    Args:
        level: Level name (DEBUG/INFO/WARNING/ERROR)
        logger_name: Root of the logger tree to configure

    Returns:
        The configured logger
    """
    root = logging.getLogger(logger_name)
    root.setLevel(level.upper())

    if not any(getattr(h, "_splice_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._splice_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    return root


# ============ Numeric Utilities ============


def clamp(value: float, low: float, high: float) -> float:
    """Clamp ``value`` into ``[low, high]``.

    Examples:
        >>> clamp(12, 0, 10)
        10
        >>> clamp(-1.5, 0, 10)
        0
    """
    return max(low, min(value, high))


def seconds_to_frames(seconds: float, fps: float) -> int:
    """Number of frames needed to cover ``seconds`` at ``fps``.

    The product is rounded to 9 decimals before ``ceil`` so float noise
    (``0.3 * 10 == 3.0000000000000004``) does not add a frame.

    Args:
        seconds: Duration in seconds
        fps: Frames per second

    Returns:
        Frame count (0 for an empty duration, at least 1 otherwise)
    """
    if seconds <= 0:
        return 0
    return max(1, math.ceil(round(seconds * fps, 9)))


# ============ Formatting Utilities ============


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable duration.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "1.5s", "2m 30s")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    remaining_seconds = seconds % 60
    return f"{minutes}m {remaining_seconds:.0f}s"


def format_bytes(num_bytes: float) -> str:
    """Format a byte count (e.g., "512 B", "1.5 MB")."""
    if num_bytes < 1024:
        return f"{int(num_bytes)} B"
    for unit in ("KB", "MB", "GB"):
        num_bytes /= 1024
        if num_bytes < 1024 or unit == "GB":
            return f"{num_bytes:.1f} {unit}"
    return f"{num_bytes:.1f} GB"


# ============ File Utilities ============


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists, creating if necessary.

    Args:
        path: Directory path

    Returns:
        The path (for chaining)
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def remove_tree(path: Path) -> bool:
    """Remove a directory tree, logging instead of raising on failure.

    Args:
        path: Directory to remove

    Returns:
        True if the directory is gone afterwards
    """
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning("Could not remove temporary directory %s: %s", path, e)
        return False
    return True


def load_json(path: Path) -> Any:
    """Load a JSON document.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the content is not valid JSON
    """
    with open(path, encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e

