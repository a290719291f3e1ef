"""CLI commands."""

from .export import export
from .plan import plan
from .probe import probe

__all__ = [
    "export",
    "plan",
    "probe",
]
