"""
Transcoder - Render a whole sequence with one ffmpeg invocation.

The filter graph mirrors the compositor: aspect fit with black bars,
optional global blur, selective blur regions and a constant frame rate,
then every clip is concatenated into a single video stream.
"""

import asyncio
import logging
import math
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from packages.core.config import SpliceConfig, get_config
from packages.core.errors import TranscodeError
from packages.core.types import ExportFormat, RegionShape
from packages.core.utils import clamp, ensure_dir, remove_tree

from .compositor import ContentBox, fit_content, region_bounds
from .models import BlurRegion, ClipDescriptor, ExportSettings, Sequence

logger = logging.getLogger(__name__)

SourceSizes = Dict[str, Tuple[int, int]]

CODEC_ARGS = {
    ExportFormat.MP4: ["-c:v", "libx264", "-pix_fmt", "yuv420p"],
    ExportFormat.WEBM: ["-c:v", "libvpx-vp9"],
}

CODEC_TUNING = {
    ExportFormat.MP4: ["-preset", "fast", "-movflags", "+faststart"],
    ExportFormat.WEBM: ["-crf", "30", "-speed", "4"],
}

# Circle mask for a cropped patch: opaque inside the inscribed circle
CIRCLE_ALPHA = "if(lte(hypot(X-W/2,Y-H/2),min(W,H)/2),255,0)"


def target_bitrate_kbps(settings: ExportSettings) -> int:
    """Video bitrate for the delegated encoder, in kbit/s."""
    base = clamp(math.floor(settings.pixel_count * 2 / 1000), 2000, 8000)
    return max(1, math.floor(base * settings.quality / 100))


def _num(value: float) -> str:
    return f"{value:g}"


def _region_rect(
    region: BlurRegion,
    box: ContentBox,
) -> Optional[Tuple[int, int, int, int]]:
    """Pixel rect of a region clipped to the content box, or None if empty."""
    rx, ry, rw, rh = region_bounds(region, box)
    bx, by, bw, bh = box.pixel_rect()

    x0 = max(int(round(rx)), bx)
    y0 = max(int(round(ry)), by)
    x1 = min(int(round(rx + rw)), bx + bw)
    y1 = min(int(round(ry + rh)), by + bh)
    if x1 - x0 < 2 or y1 - y0 < 2:
        return None
    return x0, y0, x1 - x0, y1 - y0


def clip_filter(
    index: int,
    clip: ClipDescriptor,
    settings: ExportSettings,
    source_size: Optional[Tuple[int, int]] = None,
) -> str:
    """
    Filter chain for one input, ending in the ``[v<index>]`` label.

    Global blur is applied between scale and pad so the bars stay black.
    Selective regions need the source size to place them inside the
    content box; without it the content box is assumed to fill the frame.
    """
    w, h = settings.width, settings.height
    effects = clip.effects

    chain = []
    if effects.speed != 1:
        chain.append(f"setpts={_num(1 / effects.speed)}*PTS")
    chain.append(f"scale={w}:{h}:force_original_aspect_ratio=decrease")
    if effects.effective_blur > 0:
        blur = _num(effects.effective_blur)
        chain.append(f"boxblur={blur}:{blur}")
    chain.append(f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:color=black")
    chain.append("setsar=1")
    chain.append(f"fps={settings.fps}")

    if source_size is not None:
        box = fit_content(source_size[0], source_size[1], w, h)
    else:
        box = ContentBox(0.0, 0.0, float(w), float(h))

    rects = []
    for region in effects.selective_blur:
        rect = _region_rect(region, box)
        if rect is not None and region.intensity > 0:
            rects.append((region, rect))

    if not rects:
        return f"[{index}:v]" + ",".join(chain) + f"[v{index}]"

    base = f"c{index}"
    splits = "".join(f"[{base}r{n}]" for n in range(len(rects)))
    graph = [f"[{index}:v]" + ",".join(chain) + f",split={len(rects) + 1}[{base}]{splits}"]

    current = base
    for n, (region, (x, y, rw, rh)) in enumerate(rects):
        patch = f"crop={rw}:{rh}:{x}:{y},gblur=sigma={_num(region.intensity)}"
        if region.shape == RegionShape.CIRCLE:
            patch += (
                ",format=yuva420p"
                f",geq=lum='p(X,Y)':cb='p(X,Y)':cr='p(X,Y)':a='{CIRCLE_ALPHA}'"
            )
        graph.append(f"[{base}r{n}]{patch}[{base}b{n}]")

        out = f"v{index}" if n == len(rects) - 1 else f"{base}o{n}"
        graph.append(f"[{current}][{base}b{n}]overlay={x}:{y}[{out}]")
        current = out

    return ";".join(graph)


def build_filter_graph(
    sequence: Sequence,
    settings: ExportSettings,
    source_sizes: Optional[SourceSizes] = None,
) -> str:
    """The complete ``-filter_complex`` argument, ending in ``[vout]``."""
    sizes = source_sizes or {}
    parts = [
        clip_filter(i, clip, settings, sizes.get(clip.id))
        for i, clip in enumerate(sequence)
    ]
    labels = "".join(f"[v{i}]" for i in range(len(sequence)))
    parts.append(f"{labels}concat=n={len(sequence)}:v=1:a=0[vout]")
    return ";".join(parts)


def build_command(
    sequence: Sequence,
    settings: ExportSettings,
    output_path: Path,
    ffmpeg_path: str = "ffmpeg",
    source_sizes: Optional[SourceSizes] = None,
) -> List[str]:
    """
    Full ffmpeg argument list for a batch export.

    Raises:
        TranscodeError: If the format is not a video format
    """
    if not settings.format.is_video:
        raise TranscodeError(f"format '{settings.format.value}' is not a video format")

    cmd = [ffmpeg_path, "-y", "-hide_banner"]
    for clip in sequence:
        cmd.extend(["-t", _num(clip.duration), "-i", str(clip.source)])

    cmd.extend([
        "-filter_complex", build_filter_graph(sequence, settings, source_sizes),
        "-map", "[vout]",
        "-an",
    ])
    cmd.extend(CODEC_ARGS[settings.format])
    cmd.extend(["-b:v", f"{target_bitrate_kbps(settings)}k"])
    cmd.extend(CODEC_TUNING[settings.format])
    cmd.extend(["-progress", "pipe:1", "-nostats"])
    cmd.append(str(output_path))
    return cmd


def parse_progress_line(line: str) -> Optional[float]:
    """Seconds of output written, from one ``-progress`` line."""
    key, _, value = line.strip().partition("=")
    # ffmpeg reports out_time_ms in microseconds as well
    if key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        return int(value) / 1_000_000
    except ValueError:
        return None


class BatchTranscoder:
    """
    Delegated whole-pipeline export through ffmpeg.

    Usage:
        transcoder = BatchTranscoder()
        data = await transcoder.transcode(sequence, settings, on_fraction)
    """

    def __init__(self, config: Optional[SpliceConfig] = None):
        self.config = config or get_config()

    async def transcode(
        self,
        sequence: Sequence,
        settings: ExportSettings,
        progress: Optional[Callable[[float], None]] = None,
        source_sizes: Optional[SourceSizes] = None,
    ) -> bytes:
        """
        Encode the sequence and return the output file's bytes.

        Args:
            sequence: Clips to render
            settings: Output size, fps, format and quality
            progress: Called with the encoded fraction in [0, 1]
            source_sizes: (width, height) of each clip's source by clip id

        Raises:
            TranscodeError: If ffmpeg is missing, fails, times out or
                produces no output
        """
        try:
            work_dir = Path(tempfile.mkdtemp(prefix="batch-", dir=ensure_dir(self.config.temp_dir)))
        except OSError as e:
            raise TranscodeError(f"could not create work directory: {e}") from e
        output_path = work_dir / f"output{settings.format.extension}"

        try:
            cmd = build_command(
                sequence, settings, output_path,
                ffmpeg_path=self.config.ffmpeg_path,
                source_sizes=source_sizes,
            )
            logger.debug("ffmpeg filter graph: %s", cmd[cmd.index("-filter_complex") + 1])
            logger.info(
                "Transcoding %d clip(s) to %s at %dx%d",
                len(sequence), settings.format.value, settings.width, settings.height,
            )

            await self._run(cmd, sequence.total_duration, progress)

            try:
                data = output_path.read_bytes()
            except FileNotFoundError:
                data = b""
            except OSError as e:
                raise TranscodeError(f"could not read ffmpeg output: {e}") from e
            if not data:
                raise TranscodeError("ffmpeg produced no output")

            logger.info("Transcode finished: %d bytes", len(data))
            return data
        finally:
            remove_tree(work_dir)

    async def _run(
        self,
        cmd: List[str],
        total_duration: float,
        progress: Optional[Callable[[float], None]],
    ) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TranscodeError(f"ffmpeg not found at '{cmd[0]}'") from e
        except OSError as e:
            raise TranscodeError(f"could not start ffmpeg: {e}") from e

        stderr_task = asyncio.create_task(process.stderr.read())

        async def follow() -> None:
            async for raw_line in process.stdout:
                seconds = parse_progress_line(raw_line.decode("utf-8", errors="replace"))
                if seconds is not None and progress is not None and total_duration > 0:
                    progress(clamp(seconds / total_duration, 0.0, 1.0))
            await process.wait()

        timeout = self.config.encode_timeout
        try:
            await asyncio.wait_for(follow(), timeout=timeout)
        except asyncio.TimeoutError:
            raise TranscodeError(f"ffmpeg did not finish within {timeout:g}s")
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
                stderr_task.cancel()

        stderr = (await stderr_task).decode("utf-8", errors="replace")
        if process.returncode != 0:
            tail = "\n".join(stderr.strip().splitlines()[-5:])
            logger.error("ffmpeg exited with code %s: %s", process.returncode, tail)
            raise TranscodeError(tail or "ffmpeg exited with an error", returncode=process.returncode)
