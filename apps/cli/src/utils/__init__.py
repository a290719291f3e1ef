"""CLI utilities."""

from .config import build_settings, load_sequence, resolve_format
from .display import console, print_error, print_media_info, print_plan, print_result

__all__ = [
    "build_settings",
    "load_sequence",
    "resolve_format",
    "console",
    "print_error",
    "print_media_info",
    "print_plan",
    "print_result",
]
