"""
Shared fixtures for render package tests.
"""

from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pytest

from packages.core.config import Environment, LogLevel, SpliceConfig
from packages.core.types import RegionShape
from packages.render.models import BlurRegion, ClipDescriptor, ClipEffects, Sequence
from packages.render.seek import SeekPolicy


class FakeSource:
    """
    In-memory media handle.

    Frames are solid ``value`` images; ``lag`` offsets the decoded
    position from the requested one and ``ready_after`` delays readiness
    by that many polls after each seek.
    """

    def __init__(
        self,
        path: str = "clip.mp4",
        duration: float = 2.0,
        width: int = 160,
        height: int = 90,
        value: int = 200,
        lag: float = 0.0,
        ready_after: int = 0,
        decodable: bool = True,
    ):
        self.path = path
        self.duration = duration
        self.width = width
        self.height = height
        self.value = value
        self.lag = lag
        self.ready_after = ready_after
        self.decodable = decodable

        self.seeks: List[float] = []
        self.polls = 0
        self.released = False
        self._target = 0.0
        self._time = 0.0
        self._frame: Optional[np.ndarray] = None
        self._pending_polls = 0

    @property
    def current_time(self) -> float:
        return self._time

    @property
    def frame(self) -> Optional[np.ndarray]:
        return self._frame

    def seek(self, time: float) -> None:
        self.seeks.append(time)
        self._target = time
        self._frame = None
        self._pending_polls = self.ready_after

    def poll(self) -> bool:
        self.polls += 1
        if not self.decodable:
            return False
        if self._pending_polls > 0:
            self._pending_polls -= 1
            return False
        self._time = self._target + self.lag
        self._frame = np.full((self.height, self.width, 3), self.value, dtype=np.uint8)
        return True

    def release(self) -> None:
        self.released = True


class FakeSink:
    """Frame sink that keeps copies of everything it receives."""

    def __init__(self, data: bytes = b"encoded", fail_on: Optional[int] = None):
        self.data = data
        self.fail_on = fail_on
        self.started = False
        self.aborted = False
        self.finished = False
        self.frames: List[np.ndarray] = []
        self.indices: List[int] = []

    async def start(self) -> None:
        self.started = True

    async def add_frame(self, pixels: np.ndarray, index: int) -> None:
        if self.fail_on is not None and index == self.fail_on:
            raise RuntimeError(f"sink rejected frame {index}")
        self.frames.append(pixels.copy())
        self.indices.append(index)

    async def finish(self, progress=None) -> bytes:
        if progress is not None:
            progress(0.5)
            progress(1.0)
        self.finished = True
        return self.data

    async def abort(self) -> None:
        self.aborted = True


class FakeOpener:
    """Source opener returning a FakeSource per path."""

    def __init__(self, **source_kwargs):
        self.source_kwargs = source_kwargs
        self.overrides: Dict[str, dict] = {}
        self.opened: Dict[str, FakeSource] = {}

    def __call__(self, path: Path) -> FakeSource:
        kwargs = dict(self.source_kwargs)
        kwargs.update(self.overrides.get(Path(path).name, {}))
        source = FakeSource(path=str(path), **kwargs)
        self.opened[Path(path).name] = source
        return source


def make_clip(
    clip_id: str,
    duration: float = 2.0,
    speed: float = 1.0,
    blur: float = 0.0,
    regions=(),
) -> ClipDescriptor:
    return ClipDescriptor(
        id=clip_id,
        source=Path(f"/media/{clip_id}.mp4"),
        duration=duration,
        effects=ClipEffects(speed=speed, blur=blur, selective_blur=tuple(regions)),
    )


@pytest.fixture
def splice_config(tmp_path) -> SpliceConfig:
    """Configuration with no waits and a private temp dir."""
    return SpliceConfig(
        env=Environment.TESTING,
        log_level=LogLevel.DEBUG,
        debug=True,
        temp_dir=tmp_path / "splice",
        ffmpeg_path="ffmpeg",
        encode_timeout=5.0,
        settle_delay=0.0,
        gif_workers=2,
        seek_poll_interval=0.0,
        seek_retry_delay=0.0,
    )


@pytest.fixture
def fast_policy() -> SeekPolicy:
    """Seek policy with default bounds and no delays."""
    return SeekPolicy(poll_interval=0.0, retry_delay=0.0)


@pytest.fixture
def fake_opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def fake_sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def single_clip_sequence() -> Sequence:
    """One 2 s clip at normal speed."""
    return Sequence([make_clip("a", duration=2.0)])


@pytest.fixture
def two_clip_sequence() -> Sequence:
    """1.5 s clip then 2.0 s clip, both at normal speed."""
    return Sequence([make_clip("a", duration=1.5), make_clip("b", duration=2.0)])


@pytest.fixture
def effects_sequence() -> Sequence:
    """A fast clip with global blur and a clip with a circular blur region."""
    region = BlurRegion(25, 25, 50, 50, shape=RegionShape.CIRCLE, intensity=4.0)
    return Sequence([
        make_clip("fast", duration=2.0, speed=2.0, blur=3.0),
        make_clip("masked", duration=1.0, regions=[region]),
    ])


@pytest.fixture
def clip_factory():
    """``make_clip(id, duration, speed, blur, regions)``."""
    return make_clip


@pytest.fixture
def source_factory():
    """The FakeSource class, for tests that build handles directly."""
    return FakeSource


@pytest.fixture
def sink_factory():
    """The FakeSink class, for tests that need a failing sink."""
    return FakeSink
