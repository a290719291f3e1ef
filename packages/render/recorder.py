"""
Recorder - Live-capture webm sink used when the batch transcoder fails.

Frames are presented onto the recorder's own surface and streamed as raw
RGB to an ffmpeg process at the target frame rate; the encoded webm is
read back from its stdout.
"""

import asyncio
import logging
import time
from typing import List, Optional

import numpy as np

from packages.core.config import SpliceConfig, get_config
from packages.core.errors import CaptureError, EncodeTimeoutError
from packages.core.protocols import ProgressCallback
from packages.core.utils import clamp

from .compositor import RasterSurface
from .models import ExportSettings

logger = logging.getLogger(__name__)

# Preferred first
PREFERRED_CODECS = ("libvpx", "libvpx-vp9")

READ_CHUNK = 64 * 1024


def recorder_bitrate(settings: ExportSettings) -> int:
    """Recorder bitrate in bit/s."""
    base = clamp(settings.pixel_count * 2, 2_000_000, 8_000_000)
    return max(1, int(base * settings.quality / 100))


def parse_encoders(output: str) -> List[str]:
    """Names of the video encoders in ``ffmpeg -encoders`` output."""
    names = []
    for line in output.splitlines():
        parts = line.split()
        # Capability flags first, e.g. " V....D libvpx  libvpx VP8";
        # the legend lines read " V..... = Video"
        if len(parts) >= 2 and len(parts[0]) == 6 and parts[0].startswith("V") and parts[1] != "=":
            names.append(parts[1])
    return names


def choose_codec(available: List[str]) -> Optional[str]:
    for codec in PREFERRED_CODECS:
        if codec in available:
            return codec
    return None


async def probe_encoders(ffmpeg_path: str = "ffmpeg") -> List[str]:
    """
    List the video encoders the local ffmpeg offers.

    Raises:
        CaptureError: If ffmpeg cannot be run
    """
    try:
        process = await asyncio.create_subprocess_exec(
            ffmpeg_path, "-hide_banner", "-encoders",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CaptureError(f"could not run ffmpeg: {e}") from e

    stdout, _ = await process.communicate()
    return parse_encoders(stdout.decode("utf-8", errors="replace"))


class LiveRecorder:
    """
    Records presented frames into a webm stream in real time.

    If ffmpeg exits with an error before writing any output, the
    configured bitrate was refused: the recorder restarts once with the
    encoder's default options and replays the frames sent so far.

    Usage:
        recorder = LiveRecorder(settings)
        await recorder.start()
        await recorder.add_frame(surface.pixels, 0)
        data = await recorder.finish()
    """

    def __init__(
        self,
        settings: ExportSettings,
        config: Optional[SpliceConfig] = None,
        realtime: bool = True,
    ):
        self.config = config or get_config()
        self.settings = settings
        self.realtime = realtime
        self.codec: Optional[str] = None
        self.degraded = False
        self.frames_written = 0

        self._surface = RasterSurface(settings.width, settings.height)
        self._interval = 1.0 / settings.fps
        self._next_deadline: Optional[float] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._chunks: List[bytes] = []
        self._replay: Optional[List[bytes]] = None
        self._reader: Optional[asyncio.Task] = None
        self._stderr: Optional[asyncio.Task] = None

    def build_command(self, with_options: bool = True) -> List[str]:
        s = self.settings
        cmd = [
            self.config.ffmpeg_path, "-hide_banner", "-loglevel", "error",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", f"{s.width}x{s.height}",
            "-r", str(s.fps),
            "-i", "pipe:0",
            "-an",
            "-c:v", self.codec or PREFERRED_CODECS[0],
        ]
        if with_options:
            cmd.extend(["-b:v", str(recorder_bitrate(s))])
        cmd.extend(["-f", "webm", "pipe:1"])
        return cmd

    async def start(self) -> None:
        """
        Pick an encoder and launch the recorder process.

        Raises:
            CaptureError: If no supported webm encoder is available
        """
        available = await probe_encoders(self.config.ffmpeg_path)
        self.codec = choose_codec(available)
        if self.codec is None:
            raise CaptureError("no webm encoder available (need libvpx or libvpx-vp9)")

        logger.info("Live recorder using %s at %dx%d", self.codec, self.settings.width, self.settings.height)
        await self._launch(with_options=True)
        self._replay = []

    async def _launch(self, with_options: bool) -> None:
        self._chunks = []
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.build_command(with_options),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CaptureError(f"could not start recorder: {e}") from e

        self._reader = asyncio.create_task(self._collect(self._process.stdout))
        self._stderr = asyncio.create_task(self._process.stderr.read())
        self._next_deadline = None

    async def _collect(self, stream: asyncio.StreamReader) -> None:
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            self._chunks.append(chunk)

    async def add_frame(self, pixels: np.ndarray, index: int) -> None:
        """Present a frame and write it when its slot in real time arrives."""
        if self._process is None:
            raise CaptureError("recorder not started")

        np.copyto(self._surface.pixels, pixels)
        await self._pace()

        data = self._surface.pixels.tobytes()
        self._remember(data)
        try:
            await self._write(data)
        except (BrokenPipeError, ConnectionResetError) as e:
            if not await self._refused():
                raise CaptureError(f"recorder stopped accepting frames: {e}") from e
            await self._restart_with_defaults()

        self.frames_written += 1

    def _remember(self, data: bytes) -> None:
        # ffmpeg opens the encoder only after reading the first frame, and
        # the webm header follows at once; until output appears the options
        # may still be refused and the frames sent so far must be replayed
        if self._replay is None:
            return
        if self._chunks or len(self._replay) >= self.settings.fps:
            self._replay = None
        else:
            self._replay.append(data)

    async def _refused(self) -> bool:
        """Whether the recorder exited with an error before writing any output."""
        if self._replay is None:
            return False
        await self._stop()
        return self._process.returncode != 0 and not self._chunks

    async def _restart_with_defaults(self) -> None:
        logger.warning("Recorder refused its options, restarting with defaults")
        frames, self._replay = self._replay or [], None
        self.degraded = True
        await self._shutdown()
        await self._launch(with_options=False)
        try:
            for data in frames:
                await self._write(data)
        except (BrokenPipeError, ConnectionResetError) as e:
            raise CaptureError(f"recorder stopped accepting frames: {e}") from e

    async def _pace(self) -> None:
        if not self.realtime:
            return
        now = time.perf_counter()
        if self._next_deadline is not None and self._next_deadline > now:
            await asyncio.sleep(self._next_deadline - now)
        self._next_deadline = max(now, self._next_deadline or now) + self._interval

    async def _write(self, data: bytes) -> None:
        self._process.stdin.write(data)
        await self._process.stdin.drain()

    async def _stop(self) -> None:
        """Close the recorder's input and wait for it to exit."""
        process = self._process
        timeout = self.config.encode_timeout
        try:
            process.stdin.close()
            await asyncio.wait_for(
                asyncio.gather(process.wait(), self._reader),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise EncodeTimeoutError("Live recording", timeout)
        finally:
            if process.returncode is None:
                await self._shutdown()

    async def finish(self, progress: Optional[ProgressCallback] = None) -> bytes:
        """
        Stop recording after the settle delay and return the webm bytes.

        Raises:
            CaptureError: If the recorder fails or produced nothing
            EncodeTimeoutError: If it does not stop within the timeout
        """
        if self._process is None:
            raise CaptureError("recorder not started")

        await asyncio.sleep(self.config.settle_delay)
        if progress is not None:
            progress(0.5)

        await self._stop()
        if self._process.returncode != 0 and self._replay and not self._chunks:
            await self._restart_with_defaults()
            await self._stop()

        process = self._process
        stderr = (await self._stderr).decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            raise CaptureError(stderr or f"recorder exited with code {process.returncode}")

        data = b"".join(self._chunks)
        if not data:
            raise CaptureError("recorder produced no output")

        if progress is not None:
            progress(1.0)
        logger.info("Live recording finished: %d frames, %d bytes", self.frames_written, len(data))
        return data

    async def abort(self) -> None:
        await self._shutdown()

    async def _shutdown(self) -> None:
        """Kill the recorder process and stop its reader tasks."""
        process = self._process
        if process is not None and process.returncode is None:
            process.kill()
            await process.wait()
        for task in (self._reader, self._stderr):
            if task is not None and not task.done():
                task.cancel()
