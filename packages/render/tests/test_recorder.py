"""Tests for the live webm recorder."""

import asyncio
import dataclasses

import numpy as np
import pytest

from packages.core.errors import CaptureError, EncodeTimeoutError
from packages.core.types import ExportFormat
from packages.render.models import ExportSettings
from packages.render.recorder import (
    LiveRecorder,
    choose_codec,
    parse_encoders,
    probe_encoders,
    recorder_bitrate,
)

SETTINGS = ExportSettings(width=8, height=6, fps=10, format=ExportFormat.WEBM, quality=80)
FRAME_BYTES = 8 * 6 * 3

ENCODERS_OUTPUT = """Encoders:
 V..... = Video
 A..... = Audio
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC
 V....D libvpx               libvpx VP8 (codec vp8)
 V....D libvpx-vp9           libvpx VP9 (codec vp9)
 A....D aac                  AAC (Advanced Audio Coding)
"""


class FakeStdin:
    def __init__(self, process):
        self._process = process

    def write(self, data: bytes) -> None:
        self._process.received.append(data)

    async def drain(self) -> None:
        process = self._process
        if process.returncode is not None or len(process.received) > process.break_after:
            raise BrokenPipeError("pipe closed")
        if process.refuse:
            # The encoder is opened on the first frame and rejects its options
            process.exit(1)

    def close(self) -> None:
        self._process.stdin_closed = True
        if not self._process.hang:
            self._process.done.set()


class FakeStdout:
    def __init__(self, process):
        self._process = process
        self._sent = False

    async def read(self, n: int = -1) -> bytes:
        await self._process.done.wait()
        if self._sent or self._process.killed:
            return b""
        self._sent = True
        return self._process.output


class FakeStderr:
    def __init__(self, data: bytes):
        self._data = data

    async def read(self) -> bytes:
        return self._data


class FakeRecorderProcess:
    """ffmpeg reading raw frames on stdin and writing webm on stdout."""

    def __init__(self, cmd, refuse=False, break_after=10_000, returncode=0,
                 output=b"webm-bytes", stderr=b"", hang=False):
        self.cmd = list(cmd)
        self.refuse = refuse
        self.break_after = break_after
        self.hang = hang
        self.output = output
        self.received = []
        self.stdin_closed = False
        self.killed = False
        self.returncode = None
        self.done = asyncio.Event()
        self._exit_code = returncode

        self.stdin = FakeStdin(self)
        self.stdout = FakeStdout(self)
        self.stderr = FakeStderr(stderr)

    async def wait(self):
        await self.done.wait()
        if self.returncode is None:
            self.returncode = -9 if self.killed else self._exit_code
        return self.returncode

    def exit(self, code: int) -> None:
        self.returncode = code
        self.output = b""
        self.done.set()

    def kill(self):
        self.killed = True
        self.done.set()


@pytest.fixture
def encoders(mocker):
    """Pretend the local ffmpeg offers libx264 and libvpx-vp9."""
    return mocker.patch(
        "packages.render.recorder.probe_encoders",
        new=mocker.AsyncMock(return_value=["libx264", "libvpx-vp9"]),
    )


@pytest.fixture
def launch(mocker):
    """
    Patch process creation; ``launch(**kwargs)`` configures every
    process, or pass ``refuse_options=True`` to refuse the first launch
    that sets a bitrate.
    """
    processes = []

    def install(refuse_options=False, **kwargs):
        def create(*cmd, **_):
            refuse = refuse_options and "-b:v" in cmd
            process = FakeRecorderProcess(cmd, refuse=refuse, **kwargs)
            processes.append(process)
            return process

        mocker.patch(
            "packages.render.recorder.asyncio.create_subprocess_exec",
            new=mocker.AsyncMock(side_effect=create),
        )
        return processes

    return install


def frame(value: int = 100) -> np.ndarray:
    return np.full((6, 8, 3), value, dtype=np.uint8)


class TestHelpers:
    """Tests for the module-level helpers."""

    @pytest.mark.parametrize("width,height,quality,expected", [
        (1280, 720, 80, 1_600_000),
        (1920, 1080, 100, 4_147_200),
        (3840, 2160, 100, 8_000_000),
        (640, 360, 0, 1),
    ])
    def test_recorder_bitrate(self, width, height, quality, expected):
        """Test 2 bits per pixel clamped to 2-8 Mbps, scaled by quality."""
        settings = ExportSettings(width=width, height=height, quality=quality)

        assert recorder_bitrate(settings) == expected

    def test_parse_encoders(self):
        """Test only video encoder names are returned."""
        assert parse_encoders(ENCODERS_OUTPUT) == ["libx264", "libvpx", "libvpx-vp9"]

    @pytest.mark.parametrize("available,expected", [
        (["libx264", "libvpx-vp9", "libvpx"], "libvpx"),
        (["libvpx-vp9"], "libvpx-vp9"),
        (["libx264"], None),
        ([], None),
    ])
    def test_choose_codec(self, available, expected):
        """Test libvpx is preferred over libvpx-vp9."""
        assert choose_codec(available) == expected

    @pytest.mark.asyncio
    async def test_probe_encoders(self, mocker):
        """Test probing runs ffmpeg -encoders and parses its output."""
        process = mocker.Mock()
        process.communicate = mocker.AsyncMock(return_value=(ENCODERS_OUTPUT.encode(), b""))
        spawn = mocker.patch(
            "packages.render.recorder.asyncio.create_subprocess_exec",
            new=mocker.AsyncMock(return_value=process),
        )

        names = await probe_encoders("/opt/ffmpeg")

        assert "libvpx" in names
        assert spawn.await_args.args == ("/opt/ffmpeg", "-hide_banner", "-encoders")

    @pytest.mark.asyncio
    async def test_probe_without_ffmpeg(self, mocker):
        """Test a missing binary raises CaptureError."""
        mocker.patch(
            "packages.render.recorder.asyncio.create_subprocess_exec",
            new=mocker.AsyncMock(side_effect=FileNotFoundError("ffmpeg")),
        )

        with pytest.raises(CaptureError, match="could not run ffmpeg"):
            await probe_encoders()


class TestLiveRecorder:
    """Tests for LiveRecorder."""

    def test_build_command(self, splice_config):
        """Test raw RGB input and webm output on pipes."""
        recorder = LiveRecorder(SETTINGS, splice_config)
        recorder.codec = "libvpx-vp9"

        cmd = recorder.build_command()

        assert cmd[cmd.index("-f") + 1] == "rawvideo"
        assert cmd[cmd.index("-pix_fmt") + 1] == "rgb24"
        assert cmd[cmd.index("-s") + 1] == "8x6"
        assert cmd[cmd.index("-r") + 1] == "10"
        assert cmd[cmd.index("-i") + 1] == "pipe:0"
        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"
        assert cmd[cmd.index("-b:v") + 1] == "1600000"
        assert cmd[-3:] == ["-f", "webm", "pipe:1"]

    def test_build_command_without_options(self, splice_config):
        """Test the degraded command has no bitrate."""
        recorder = LiveRecorder(SETTINGS, splice_config)

        assert "-b:v" not in recorder.build_command(with_options=False)

    @pytest.mark.asyncio
    async def test_no_codec(self, mocker, splice_config):
        """Test start fails when neither libvpx encoder exists."""
        mocker.patch(
            "packages.render.recorder.probe_encoders",
            new=mocker.AsyncMock(return_value=["libx264"]),
        )

        with pytest.raises(CaptureError, match="no webm encoder"):
            await LiveRecorder(SETTINGS, splice_config).start()

    @pytest.mark.asyncio
    async def test_not_started(self, splice_config):
        """Test frames cannot be added before start."""
        with pytest.raises(CaptureError, match="not started"):
            await LiveRecorder(SETTINGS, splice_config).add_frame(frame(), 0)

    @pytest.mark.asyncio
    async def test_record(self, encoders, launch, splice_config):
        """Test frames are streamed as raw RGB and webm is read back."""
        processes = launch()
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=False)
        fractions = []

        await recorder.start()
        for index in range(3):
            await recorder.add_frame(frame(index * 10), index)
        data = await recorder.finish(fractions.append)

        assert data == b"webm-bytes"
        assert recorder.codec == "libvpx-vp9"
        assert recorder.frames_written == 3
        assert recorder.degraded is False
        assert [len(chunk) for chunk in processes[0].received] == [FRAME_BYTES] * 3
        assert processes[0].stdin_closed is True
        assert fractions == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_restarts_with_defaults(self, encoders, launch, splice_config):
        """Test a recorder that exits after the first frame is restarted without options."""
        processes = launch(refuse_options=True)
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=False)

        await recorder.start()
        await recorder.add_frame(frame(10), 0)
        await recorder.add_frame(frame(20), 1)
        await recorder.add_frame(frame(30), 2)
        data = await recorder.finish()

        assert data == b"webm-bytes"
        assert recorder.degraded is True
        assert recorder.frames_written == 3
        assert len(processes) == 2
        assert processes[0].returncode == 1
        assert "-b:v" not in processes[1].cmd
        assert processes[1].received == [frame(v).tobytes() for v in (10, 20, 30)]

    @pytest.mark.asyncio
    async def test_refusal_seen_at_finish(self, encoders, launch, splice_config):
        """Test a single-frame recording refused by the encoder is replayed on finish."""
        processes = launch(refuse_options=True)
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=False)

        await recorder.start()
        await recorder.add_frame(frame(), 0)
        data = await recorder.finish()

        assert data == b"webm-bytes"
        assert recorder.degraded is True
        assert len(processes) == 2
        assert len(processes[1].received) == 1

    @pytest.mark.asyncio
    async def test_no_restart_after_output(self, encoders, launch, splice_config):
        """Test a pipe closing once output has appeared is fatal."""
        processes = launch(break_after=1, returncode=1, output=b"partial")
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=False)

        await recorder.start()
        await recorder.add_frame(frame(), 0)

        with pytest.raises(CaptureError, match="stopped accepting frames"):
            await recorder.add_frame(frame(), 1)

        assert len(processes) == 1
        assert recorder.degraded is False
        await recorder.abort()

    @pytest.mark.asyncio
    async def test_failure_after_first_frame(self, encoders, launch, splice_config):
        """Test a pipe closing mid-recording is fatal."""
        launch(break_after=1)
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=False)

        await recorder.start()
        await recorder.add_frame(frame(), 0)

        with pytest.raises(CaptureError, match="stopped accepting frames"):
            await recorder.add_frame(frame(), 1)

        await recorder.abort()

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, encoders, launch, splice_config):
        """Test the recorder's stderr becomes the error after one restart."""
        processes = launch(returncode=1, stderr=b"encoder exploded\n", output=b"")
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=False)

        await recorder.start()
        await recorder.add_frame(frame(), 0)

        with pytest.raises(CaptureError) as exc_info:
            await recorder.finish()

        assert exc_info.value.reason == "encoder exploded"
        assert len(processes) == 2
        assert recorder.degraded is True

    @pytest.mark.asyncio
    async def test_empty_output(self, encoders, launch, splice_config):
        """Test a recording with no bytes is an error."""
        launch(output=b"")
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=False)

        await recorder.start()
        await recorder.add_frame(frame(), 0)

        with pytest.raises(CaptureError, match="no output"):
            await recorder.finish()

    @pytest.mark.asyncio
    async def test_timeout(self, encoders, launch, splice_config):
        """Test a recorder that never exits is killed."""
        processes = launch(hang=True)
        config = dataclasses.replace(splice_config, encode_timeout=0.05)
        recorder = LiveRecorder(SETTINGS, config, realtime=False)

        await recorder.start()
        await recorder.add_frame(frame(), 0)

        with pytest.raises(EncodeTimeoutError) as exc_info:
            await recorder.finish()

        assert exc_info.value.stage == "Live recording"
        assert processes[0].killed is True

    @pytest.mark.asyncio
    async def test_realtime_pacing(self, encoders, launch, splice_config, mocker):
        """Test frames after the first wait for their slot."""
        launch()
        sleep = mocker.patch("packages.render.recorder.asyncio.sleep", new=mocker.AsyncMock())
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=True)

        await recorder.start()
        await recorder.add_frame(frame(), 0)
        await recorder.add_frame(frame(), 1)
        await recorder.add_frame(frame(), 2)

        assert sleep.await_count == 2
        assert 0 < sleep.await_args_list[0].args[0] <= 0.1

        await recorder.abort()

    @pytest.mark.asyncio
    async def test_abort_kills_process(self, encoders, launch, splice_config):
        """Test abort stops the recorder process."""
        processes = launch()
        recorder = LiveRecorder(SETTINGS, splice_config, realtime=False)

        await recorder.start()
        await recorder.abort()

        assert processes[0].killed is True
        assert processes[0].returncode == -9
