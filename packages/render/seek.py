"""
Seek - Position source handles before capture, with bounded retries.

The retry loop is expressed as a pure transition function (``advance``)
driven by ``SeekController``; running out of attempts is not an error,
the export continues with whatever the handle decoded.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from packages.core.config import SpliceConfig
from packages.core.protocols import MediaSource

logger = logging.getLogger(__name__)


class SeekAction(Enum):
    """What the controller does next."""
    SETTLED = "settled"      # position reached and frame ready
    POLL = "poll"            # wait poll_interval, check again
    RESEEK = "reseek"        # wait retry_delay, issue the seek again
    EXHAUSTED = "exhausted"  # give up, proceed with best effort


@dataclass(frozen=True)
class SeekPolicy:
    """Tolerance and retry bounds for one seek."""
    tolerance: float = 0.1
    max_attempts: int = 3
    polls_per_attempt: int = 3
    poll_interval: float = 0.05
    retry_delay: float = 0.1

    @classmethod
    def from_config(cls, config: SpliceConfig) -> "SeekPolicy":
        return cls(
            tolerance=config.seek_tolerance,
            max_attempts=config.seek_max_attempts,
            polls_per_attempt=config.seek_polls_per_attempt,
            poll_interval=config.seek_poll_interval,
            retry_delay=config.seek_retry_delay,
        )


@dataclass(frozen=True)
class SeekState:
    """Progress of one seek: attempt number (1-based) and polls in it."""
    target: float
    attempt: int = 1
    polls: int = 0


def advance(
    state: SeekState,
    position: float,
    ready: bool,
    policy: SeekPolicy,
) -> Tuple[SeekAction, SeekState]:
    """
    Decide the next step after polling a handle.

    Args:
        state: Current seek state (before counting this poll)
        position: Time of the frame the handle reports
        ready: Whether a decoded frame is available
        policy: Retry bounds

    Returns:
        The action to take and the updated state
    """
    state = replace(state, polls=state.polls + 1)

    if ready and abs(position - state.target) < policy.tolerance:
        return SeekAction.SETTLED, state

    if state.polls < policy.polls_per_attempt:
        return SeekAction.POLL, state

    if state.attempt < policy.max_attempts:
        return SeekAction.RESEEK, SeekState(target=state.target, attempt=state.attempt + 1)

    return SeekAction.EXHAUSTED, state


@dataclass(frozen=True)
class SeekResult:
    """Outcome of one seek."""
    target: float
    position: float
    ready: bool
    settled: bool
    attempts: int


class SeekController:
    """
    Serializes seeks across every source of an export.

    Only one seek is ever outstanding: source handles may share decoder
    resources and are read in place.

    Usage:
        controller = SeekController(SeekPolicy())
        result = await controller.seek(source, 1.25)
        if result.ready:
            frame = source.frame
    """

    def __init__(self, policy: Optional[SeekPolicy] = None):
        self.policy = policy or SeekPolicy()
        self._lock = asyncio.Lock()
        self.shortfalls = 0

    async def seek(self, source: MediaSource, target: float) -> SeekResult:
        async with self._lock:
            return await self._seek(source, target)

    async def _seek(self, source: MediaSource, target: float) -> SeekResult:
        state = SeekState(target=target)
        source.seek(target)

        while True:
            await asyncio.sleep(self.policy.poll_interval)
            ready = await asyncio.to_thread(source.poll)
            position = source.current_time

            action, state = advance(state, position, ready, self.policy)

            if action == SeekAction.SETTLED:
                return SeekResult(target, position, ready, True, state.attempt)

            if action == SeekAction.RESEEK:
                await asyncio.sleep(self.policy.retry_delay)
                source.seek(target)
                continue

            if action == SeekAction.EXHAUSTED:
                self.shortfalls += 1
                logger.debug(
                    "Seek on %s gave up after %d attempts: wanted %.3fs, at %.3fs (ready=%s)",
                    source.path, state.attempt, target, position, ready,
                )
                return SeekResult(target, position, ready, False, state.attempt)
