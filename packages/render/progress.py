"""
Progress - One monotonic percentage callback per export.
"""

import logging
from typing import Callable, Optional

from packages.core.protocols import ProgressCallback
from packages.core.utils import clamp

logger = logging.getLogger(__name__)


class ProgressReporter:
    """
    Forward progress to a caller's callback with three guarantees.

    Values never decrease, the last value of a successful export is
    exactly 100, and nothing is reported once the export is finalized.

    Usage:
        reporter = ProgressReporter(print)
        render = reporter.band(30, 80)
        render(0.5)          # reports 55.0
        reporter.complete()  # reports 100.0
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._value = 0.0
        self._started = False
        self._closed = False

    @property
    def value(self) -> float:
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    def report(self, percent: float) -> None:
        if self._closed:
            return

        percent = clamp(float(percent), 0.0, 100.0)
        # Never move backwards, and the final 100 is reserved for complete()
        percent = min(max(percent, self._value), 99.99)
        if self._started and percent <= self._value:
            return

        self._started = True

        self._value = percent
        self._emit(percent)

    def band(self, start: float, end: float) -> Callable[[float], None]:
        """Map fractions in [0, 1] onto ``[start, end]`` percent."""
        def report_fraction(fraction: float) -> None:
            self.report(start + (end - start) * clamp(fraction, 0.0, 1.0))
        return report_fraction

    def remaining_band(self, start: float, share: float) -> Callable[[float], None]:
        """
        A band starting at ``max(start, value)`` covering ``share`` of what
        is left to 100. Used after a fallback, when earlier phases already
        advanced the bar.
        """
        begin = max(start, self._value)
        return self.band(begin, begin + (100.0 - begin) * share)

    def complete(self) -> None:
        if self._closed:
            return
        self._value = 100.0
        self._emit(100.0)
        self._closed = True

    def fail(self) -> None:
        self._closed = True

    def _emit(self, percent: float) -> None:
        if self._callback is None:
            return
        try:
            self._callback(percent)
        except Exception:
            # A broken progress display must not fail the export
            logger.exception("Progress callback raised")
