"""
Exporter - Run one export end to end.

Dispatch by format:
    gif   frame capture into the GIF sink
    mp4   batch transcoder; failures are fatal
    webm  batch transcoder, then one fallback to frame capture into the
          live recorder

Usage:
    from packages.render import export_sequence

    result = export_sequence(sequence, ExportSettings(format=ExportFormat.WEBM))
    Path("out.webm").write_bytes(result.data)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from packages.core.config import SpliceConfig, get_config
from packages.core.errors import ExportStateError, TranscodeError
from packages.core.protocols import FrameSink, ProgressCallback
from packages.core.types import ExportBackend, ExportFormat, ExportState
from packages.core.utils import format_bytes

from .capture import FrameCaptureBackend
from .gif import GifSink
from .media import SourceOpener, SourcePool
from .models import ExportSettings, Sequence
from .progress import ProgressReporter
from .recorder import LiveRecorder
from .scheduler import FrameScheduler
from .seek import SeekController, SeekPolicy
from .transcoder import BatchTranscoder

logger = logging.getLogger(__name__)

SinkFactory = Callable[[ExportSettings, SpliceConfig], FrameSink]

# Progress checkpoints (percent)
PRELOADED = 20.0
RENDER_START = 30.0
ENCODE_START = 85.0
BATCH_END = 95.0
# Share of the remaining bar given to frame rendering in the capture path
RENDER_SHARE = 5 / 7

TRANSITIONS = {
    ExportState.IDLE: {ExportState.INITIALIZING},
    ExportState.INITIALIZING: {ExportState.RENDERING, ExportState.ENCODING, ExportState.FAILED},
    ExportState.RENDERING: {ExportState.ENCODING, ExportState.FAILED},
    ExportState.ENCODING: {ExportState.RENDERING, ExportState.COMPLETE, ExportState.FAILED},
    ExportState.COMPLETE: set(),
    ExportState.FAILED: set(),
}


class ExportStateMachine:
    """
    Tracks the lifecycle of one export.

    ENCODING -> RENDERING is only legal once, for a webm export whose
    batch transcode failed.
    """

    def __init__(self, export_format: ExportFormat):
        self.format = export_format
        self.state = ExportState.IDLE
        self.history: List[ExportState] = [ExportState.IDLE]
        self.fell_back = False

    def transition(self, target: ExportState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise ExportStateError(self.state.value, target.value)

        if self.state == ExportState.ENCODING and target == ExportState.RENDERING:
            if self.format != ExportFormat.WEBM or self.fell_back:
                raise ExportStateError(self.state.value, target.value)
            self.fell_back = True

        logger.debug("Export state: %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def fail(self) -> None:
        if not self.state.is_final:
            self.transition(ExportState.FAILED)


@dataclass
class ExportResult:
    """
    Encoded output of a successful export.

    ``frame_count`` counts rendered frames. A GIF may hold fewer, since
    identical consecutive frames are stored once with a longer delay.
    """
    data: bytes
    format: ExportFormat
    backend: ExportBackend
    frame_count: int
    duration: float
    fell_back: bool = False
    blank_frames: int = 0

    @property
    def media_type(self) -> str:
        return self.format.media_type

    @property
    def size(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format.value,
            "media_type": self.media_type,
            "backend": self.backend.value,
            "size": self.size,
            "frame_count": self.frame_count,
            "duration": self.duration,
            "fell_back": self.fell_back,
            "blank_frames": self.blank_frames,
        }


def _gif_sink(settings: ExportSettings, config: SpliceConfig) -> FrameSink:
    return GifSink(settings, config)


def _live_recorder(settings: ExportSettings, config: SpliceConfig) -> FrameSink:
    return LiveRecorder(settings, config)


class SequenceExporter:
    """
    Exports a sequence to gif, mp4 or webm.

    Every collaborator can be replaced: ``source_opener`` opens clip
    media, ``transcoder`` runs the batch path and the two factories
    build the capture sinks.

    Usage:
        exporter = SequenceExporter()
        result = await exporter.export(sequence, settings, print)
    """

    def __init__(
        self,
        config: Optional[SpliceConfig] = None,
        source_opener: Optional[SourceOpener] = None,
        transcoder: Optional[BatchTranscoder] = None,
        gif_sink_factory: Optional[SinkFactory] = None,
        recorder_factory: Optional[SinkFactory] = None,
        seek_policy: Optional[SeekPolicy] = None,
    ):
        self.config = config or get_config()
        self.source_opener = source_opener
        self.transcoder = transcoder or BatchTranscoder(self.config)
        self.gif_sink_factory = gif_sink_factory or _gif_sink
        self.recorder_factory = recorder_factory or _live_recorder
        self.seek_policy = seek_policy or SeekPolicy.from_config(self.config)
        self.state_machine: Optional[ExportStateMachine] = None

    @property
    def state(self) -> ExportState:
        if self.state_machine is None:
            return ExportState.IDLE
        return self.state_machine.state

    async def export(
        self,
        sequence: Sequence,
        settings: ExportSettings,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExportResult:
        """
        Render ``sequence`` with ``settings``.

        Args:
            sequence: Clips to export
            settings: Output size, fps, format and quality
            on_progress: Called with a non-decreasing percentage; the last
                value of a successful export is 100

        Returns:
            ExportResult with the encoded bytes

        Raises:
            MediaLoadError: If any clip cannot be loaded
            TranscodeError: If an mp4 transcode fails
            EncodeTimeoutError: If an encoder exceeds the timeout
            CaptureError: If the live recorder fails
        """
        machine = ExportStateMachine(settings.format)
        self.state_machine = machine
        reporter = ProgressReporter(on_progress)
        started = time.perf_counter()

        machine.transition(ExportState.INITIALIZING)
        reporter.report(0)
        logger.info(
            "Exporting %d clip(s), %.2fs, as %s %dx%d@%d (quality %d)",
            len(sequence), sequence.total_duration, settings.format.value,
            settings.width, settings.height, settings.fps, settings.quality,
        )

        pool = SourcePool(sequence, self.source_opener)
        preload = asyncio.ensure_future(asyncio.to_thread(pool.preload))
        try:
            await asyncio.shield(preload)
            reporter.report(PRELOADED)

            if settings.format == ExportFormat.GIF:
                sink = self.gif_sink_factory(settings, self.config)
                result = await self._capture(sequence, settings, pool, sink, machine, reporter)
            else:
                result = await self._encode_video(sequence, settings, pool, machine, reporter)

            machine.transition(ExportState.COMPLETE)
            reporter.complete()
        except (Exception, asyncio.CancelledError) as e:
            machine.fail()
            reporter.fail()
            if isinstance(e, asyncio.CancelledError):
                logger.info("Export cancelled")
            else:
                logger.error("Export failed: %s", e)
            raise
        finally:
            await self._join_preload(preload)
            pool.release()

        logger.info(
            "Export complete: %s via %s in %.1fs",
            format_bytes(result.size), result.backend.value, time.perf_counter() - started,
        )
        return result

    @staticmethod
    async def _join_preload(preload: asyncio.Future) -> None:
        # A cancelled export leaves the loading thread running; it may still
        # open handles, so the pool is released only after it returns
        if preload.done():
            return
        await asyncio.wait([preload])
        if not preload.cancelled() and preload.exception() is not None:
            logger.debug("Preload finished after cancellation with: %s", preload.exception())

    async def _encode_video(
        self,
        sequence: Sequence,
        settings: ExportSettings,
        pool: SourcePool,
        machine: ExportStateMachine,
        reporter: ProgressReporter,
    ) -> ExportResult:
        machine.transition(ExportState.ENCODING)
        source_sizes = {}
        for clip in sequence:
            source = pool.get(clip.id)
            if source.width > 0 and source.height > 0:
                source_sizes[clip.id] = (source.width, source.height)

        try:
            data = await self.transcoder.transcode(
                sequence, settings, reporter.band(RENDER_START, BATCH_END), source_sizes
            )
        except TranscodeError as e:
            if settings.format != ExportFormat.WEBM:
                raise
            logger.warning("Batch transcode failed, falling back to frame capture: %s", e)
            machine.transition(ExportState.RENDERING)
            sink = self.recorder_factory(settings, self.config)
            return await self._capture(sequence, settings, pool, sink, machine, reporter)

        return ExportResult(
            data=data,
            format=settings.format,
            backend=ExportBackend.BATCH,
            frame_count=FrameScheduler(sequence, settings.fps).total_frames,
            duration=sequence.total_duration,
        )

    async def _capture(
        self,
        sequence: Sequence,
        settings: ExportSettings,
        pool: SourcePool,
        sink: FrameSink,
        machine: ExportStateMachine,
        reporter: ProgressReporter,
    ) -> ExportResult:
        if machine.state != ExportState.RENDERING:
            machine.transition(ExportState.RENDERING)

        backend = FrameCaptureBackend(SeekController(self.seek_policy))
        stats = await backend.render(
            sequence, settings, pool, sink,
            reporter.remaining_band(RENDER_START, RENDER_SHARE),
        )

        machine.transition(ExportState.ENCODING)
        data = await sink.finish(reporter.remaining_band(ENCODE_START, 1.0))

        return ExportResult(
            data=data,
            format=settings.format,
            backend=ExportBackend.FRAME_CAPTURE,
            frame_count=stats.frame_count,
            duration=sequence.total_duration,
            fell_back=machine.fell_back,
            blank_frames=stats.blank_frames,
        )


def export_sequence(
    sequence: Sequence,
    settings: ExportSettings,
    on_progress: Optional[ProgressCallback] = None,
    config: Optional[SpliceConfig] = None,
    **collaborators: Any,
) -> ExportResult:
    """Synchronous wrapper around ``SequenceExporter.export``."""
    exporter = SequenceExporter(config, **collaborators)
    return asyncio.run(exporter.export(sequence, settings, on_progress))
