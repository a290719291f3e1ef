"""Custom exception classes for Splice.

Exception Hierarchy:
    SpliceError (base)
    ├── ConfigurationError
    ├── SequenceError
    │   ├── InvalidSequenceError
    │   └── InvalidSettingsError
    ├── MediaError
    │   ├── MediaNotFoundError
    │   └── MediaLoadError
    └── ExportError
        ├── TranscodeError
        ├── EncodeTimeoutError
        ├── CaptureError
        └── ExportStateError
"""

from typing import Any, Optional


class SpliceError(Exception):
    """Base exception for all Splice errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display or JSON output."""
        result: dict[str, Any] = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ============ Configuration Errors ============


class ConfigurationError(SpliceError):
    """Error in application configuration."""

    pass


# ============ Sequence Errors ============


class SequenceError(SpliceError):
    """Base class for errors in export inputs."""

    pass


class InvalidSequenceError(SequenceError):
    """Clip sequence failed validation."""

    def __init__(self, errors: list[str], clip_id: Optional[str] = None):
        prefix = f"Clip '{clip_id}' is invalid" if clip_id else "Sequence is invalid"
        super().__init__(
            message=f"{prefix}: {'; '.join(errors)}",
            code="invalid_sequence",
            details={"clip_id": clip_id, "validation_errors": errors},
        )
        self.clip_id = clip_id
        self.validation_errors = errors


class InvalidSettingsError(SequenceError):
    """Export settings failed validation."""

    def __init__(self, errors: list[str]):
        super().__init__(
            message=f"Export settings are invalid: {'; '.join(errors)}",
            code="invalid_settings",
            details={"validation_errors": errors},
        )
        self.validation_errors = errors


# ============ Media Errors ============


class MediaError(SpliceError):
    """Base class for source media errors."""

    pass


class MediaNotFoundError(MediaError):
    """Source media file does not exist."""

    def __init__(self, path: str, clip_id: Optional[str] = None):
        message = f"Media not found: {path}"
        if clip_id:
            message = f"Media not found for clip '{clip_id}': {path}"
        super().__init__(
            message=message,
            code="media_not_found",
            details={"path": path, "clip_id": clip_id},
        )


class MediaLoadError(MediaError):
    """Source media could not be made decodable."""

    def __init__(self, path: str, reason: str, clip_id: Optional[str] = None):
        super().__init__(
            message=f"Failed to load video '{path}': {reason}",
            code="media_load_error",
            details={"path": path, "reason": reason, "clip_id": clip_id},
        )
        self.path = path
        self.reason = reason
        self.clip_id = clip_id


# ============ Export Errors ============


class ExportError(SpliceError):
    """Base class for export failures."""

    pass


class TranscodeError(ExportError):
    """The delegated ffmpeg pipeline failed."""

    def __init__(self, reason: str, returncode: Optional[int] = None):
        super().__init__(
            message=f"Video encoding failed: {reason}",
            code="transcode_error",
            details={"reason": reason, "returncode": returncode},
        )
        self.reason = reason
        self.returncode = returncode


class EncodeTimeoutError(ExportError):
    """An encoder did not finish within the allowed time."""

    def __init__(self, stage: str, timeout: float):
        super().__init__(
            message=f"{stage} did not finish within {timeout:g}s",
            code="encode_timeout",
            details={"stage": stage, "timeout": timeout},
        )
        self.stage = stage
        self.timeout = timeout


class CaptureError(ExportError):
    """The live frame recorder failed."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Frame capture failed: {reason}",
            code="capture_error",
            details={"reason": reason},
        )
        self.reason = reason


class ExportStateError(ExportError):
    """An export attempted an illegal state transition."""

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Illegal export transition: {current} -> {target}",
            code="export_state_error",
            details={"current": current, "target": target},
        )
