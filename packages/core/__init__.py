"""Core package - shared utilities, types, and configuration.

This package provides common functionality used across all Splice packages:
- Configuration management
- Shared type definitions
- Protocol interfaces
- Custom exceptions
- Utility functions

Example usage:
    from packages.core import get_config, ExportFormat, MediaLoadError

    config = get_config()
    print(f"Encoder timeout: {config.encode_timeout}s")

    if not source.poll():
        raise MediaLoadError(source.path, "no decodable frame")
"""

# Configuration
from .config import (
    Environment,
    LogLevel,
    SpliceConfig,
    clear_config_cache,
    get_config,
)

# Types
from .types import (
    ExportBackend,
    ExportFormat,
    ExportState,
    MediaInfo,
    RegionShape,
)

# Protocols
from .protocols import (
    FrameSink,
    MediaSource,
    ProgressCallback,
)

# Errors
from .errors import (
    CaptureError,
    ConfigurationError,
    EncodeTimeoutError,
    ExportError,
    ExportStateError,
    InvalidSequenceError,
    InvalidSettingsError,
    MediaError,
    MediaLoadError,
    MediaNotFoundError,
    SequenceError,
    SpliceError,
    TranscodeError,
)

# Utilities
from .utils import (
    clamp,
    configure_logging,
    ensure_dir,
    format_bytes,
    format_duration,
    load_json,
    remove_tree,
    seconds_to_frames,
)

__all__ = [
    # Config
    "Environment",
    "LogLevel",
    "SpliceConfig",
    "get_config",
    "clear_config_cache",
    # Types
    "ExportFormat",
    "RegionShape",
    "ExportState",
    "ExportBackend",
    "MediaInfo",
    # Protocols
    "MediaSource",
    "FrameSink",
    "ProgressCallback",
    # Errors
    "SpliceError",
    "ConfigurationError",
    "SequenceError",
    "InvalidSequenceError",
    "InvalidSettingsError",
    "MediaError",
    "MediaNotFoundError",
    "MediaLoadError",
    "ExportError",
    "TranscodeError",
    "EncodeTimeoutError",
    "CaptureError",
    "ExportStateError",
    # Utils
    "clamp",
    "configure_logging",
    "seconds_to_frames",
    "format_duration",
    "format_bytes",
    "ensure_dir",
    "remove_tree",
    "load_json",
]
