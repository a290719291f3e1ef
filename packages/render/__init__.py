# Render package - sequence scheduling, compositing and export

from .capture import CaptureStats, FrameCaptureBackend
from .compositor import ContentBox, CompositeResult, EffectCompositor, RasterSurface, fit_content
from .exporter import ExportResult, ExportStateMachine, SequenceExporter, export_sequence
from .gif import GifSink
from .media import SourcePool, VideoSource, probe_media
from .models import (
    BlurRegion,
    ClipDescriptor,
    ClipEffects,
    ExportSettings,
    Sequence,
    estimate_output_bytes,
)
from .progress import ProgressReporter
from .recorder import LiveRecorder
from .scheduler import FrameScheduler, FrameSlot, Segment
from .seek import SeekAction, SeekController, SeekPolicy, SeekResult, SeekState, advance
from .transcoder import BatchTranscoder, build_filter_graph, target_bitrate_kbps

__all__ = [
    # Sequence model
    "BlurRegion",
    "ClipEffects",
    "ClipDescriptor",
    "Sequence",
    "ExportSettings",
    "estimate_output_bytes",
    # Scheduling
    "FrameScheduler",
    "FrameSlot",
    "Segment",
    # Media
    "VideoSource",
    "SourcePool",
    "probe_media",
    # Seeking
    "SeekAction",
    "SeekPolicy",
    "SeekState",
    "SeekResult",
    "SeekController",
    "advance",
    # Compositing
    "RasterSurface",
    "ContentBox",
    "CompositeResult",
    "EffectCompositor",
    "fit_content",
    # Backends and sinks
    "BatchTranscoder",
    "build_filter_graph",
    "target_bitrate_kbps",
    "FrameCaptureBackend",
    "CaptureStats",
    "GifSink",
    "LiveRecorder",
    # Export
    "ProgressReporter",
    "ExportStateMachine",
    "ExportResult",
    "SequenceExporter",
    "export_sequence",
]
