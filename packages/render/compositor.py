"""
Compositor - Draw source frames onto the export raster with effects.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from packages.core.types import RegionShape

from .models import BlurRegion, ClipEffects


class RasterSurface:
    """
    A mutable RGB pixel buffer (height, width, 3) reused across frames.

    A surface has one owner at a time; the pipeline passes it by
    reference from stage to stage and redraws it completely every frame.
    """

    def __init__(self, width: int, height: int, background: Tuple[int, int, int] = (0, 0, 0)):
        self.width = width
        self.height = height
        self.background = background
        self.pixels = np.zeros((height, width, 3), dtype=np.uint8)
        self.clear()

    @property
    def size(self) -> Tuple[int, int]:
        """Returns (width, height)."""
        return (self.width, self.height)

    def clear(self) -> None:
        self.pixels[:] = self.background

    def has_content(self) -> bool:
        """True if any pixel differs from the background."""
        return bool(np.any(self.pixels != np.asarray(self.background, dtype=np.uint8)))


@dataclass(frozen=True)
class ContentBox:
    """Where the aspect-fitted frame lands inside the target raster."""
    x: float
    y: float
    width: float
    height: float

    def pixel_rect(self) -> Tuple[int, int, int, int]:
        """Integer (x, y, width, height), at least one pixel in each direction."""
        x = int(round(self.x))
        y = int(round(self.y))
        w = max(1, int(round(self.x + self.width)) - x)
        h = max(1, int(round(self.y + self.height)) - y)
        return x, y, w, h


@dataclass(frozen=True)
class CompositeResult:
    """Outcome of drawing one frame."""
    drawn: bool
    content_box: Optional[ContentBox] = None
    blank: bool = False


def fit_content(src_width: int, src_height: int, dst_width: int, dst_height: int) -> ContentBox:
    """
    Fit a source frame inside the target while preserving its aspect ratio.

    Wider sources fill the width (bars top and bottom); others fill the
    height (bars left and right). The box is centred.
    """
    src_aspect = src_width / src_height
    dst_aspect = dst_width / dst_height

    if src_aspect > dst_aspect:
        width = float(dst_width)
        height = dst_width / src_aspect
    else:
        width = dst_height * src_aspect
        height = float(dst_height)

    return ContentBox(
        x=(dst_width - width) / 2,
        y=(dst_height - height) / 2,
        width=width,
        height=height,
    )


def region_bounds(region: BlurRegion, box: ContentBox) -> Tuple[float, float, float, float]:
    """Absolute (x, y, width, height) of a region inside the content box."""
    return (
        box.x + region.x_pct / 100 * box.width,
        box.y + region.y_pct / 100 * box.height,
        region.width_pct / 100 * box.width,
        region.height_pct / 100 * box.height,
    )


def region_mask(
    region: BlurRegion,
    box: ContentBox,
    width: int,
    height: int,
) -> np.ndarray:
    """
    Boolean clip mask of a region, limited to the content box.

    Circles are inscribed in the region box: centred, with radius half
    its shorter side.
    """
    rx, ry, rw, rh = region_bounds(region, box)
    mask = np.zeros((height, width), dtype=np.uint8)

    if region.shape == RegionShape.CIRCLE:
        center = (int(round(rx + rw / 2)), int(round(ry + rh / 2)))
        radius = int(round(min(rw, rh) / 2))
        cv2.circle(mask, center, radius, 255, thickness=-1)
    else:
        x0, y0 = int(round(rx)), int(round(ry))
        x1, y1 = int(round(rx + rw)), int(round(ry + rh))
        mask[max(0, y0):max(0, y1), max(0, x0):max(0, x1)] = 255

    bx, by, bw, bh = box.pixel_rect()
    limit = np.zeros_like(mask)
    limit[by:by + bh, bx:bx + bw] = 255

    return (mask > 0) & (limit > 0)


def gaussian_blur(pixels: np.ndarray, radius: float) -> np.ndarray:
    """Blur with a Gaussian whose standard deviation is ``radius`` pixels."""
    if radius <= 0:
        return pixels
    return cv2.GaussianBlur(pixels, (0, 0), sigmaX=radius, sigmaY=radius)


class EffectCompositor:
    """
    Composite one decoded frame into a raster surface.

    Steps per frame: black fill, aspect fit, then either a global blur
    or the selective blur regions (regions replace the global blur).

    Usage:
        compositor = EffectCompositor(1280, 720)
        surface = compositor.new_surface()
        result = compositor.composite(surface, frame, clip.effects)
    """

    def __init__(self, width: int, height: int, background: Tuple[int, int, int] = (0, 0, 0)):
        self.width = width
        self.height = height
        self.background = background
        # Secondary buffer for selective blur, reused across frames
        self._scratch = RasterSurface(width, height, background)

    def new_surface(self) -> RasterSurface:
        return RasterSurface(self.width, self.height, self.background)

    def composite(
        self,
        surface: RasterSurface,
        frame: Optional[np.ndarray],
        effects: ClipEffects,
    ) -> CompositeResult:
        """
        Redraw ``surface`` from ``frame``.

        A missing or zero-sized frame leaves only the background; the
        surface is still a valid output frame.
        """
        surface.clear()

        if frame is None or frame.ndim < 2 or frame.shape[0] == 0 or frame.shape[1] == 0:
            return CompositeResult(drawn=False, blank=True)

        src_height, src_width = frame.shape[:2]
        box = fit_content(src_width, src_height, self.width, self.height)

        self._draw(surface, frame, box, effects.effective_blur)

        for region in effects.selective_blur:
            self._apply_region(surface, frame, box, region)

        return CompositeResult(drawn=True, content_box=box, blank=not surface.has_content())

    def _draw(self, surface: RasterSurface, frame: np.ndarray, box: ContentBox, blur: float) -> None:
        x, y, w, h = box.pixel_rect()
        # Clip to the raster in case rounding pushed the box one pixel out
        w = min(w, self.width - x)
        h = min(h, self.height - y)

        interpolation = cv2.INTER_AREA if w < frame.shape[1] else cv2.INTER_LINEAR
        content = cv2.resize(_as_rgb(frame), (w, h), interpolation=interpolation)
        content = gaussian_blur(content, blur)

        surface.pixels[y:y + h, x:x + w] = content

    def _apply_region(
        self,
        surface: RasterSurface,
        frame: np.ndarray,
        box: ContentBox,
        region: BlurRegion,
    ) -> None:
        mask = region_mask(region, box, self.width, self.height)
        if not mask.any():
            return

        self._scratch.clear()
        self._draw(self._scratch, frame, box, 0.0)
        blurred = gaussian_blur(self._scratch.pixels, region.intensity)

        np.copyto(surface.pixels, blurred, where=mask[..., None])


def _as_rgb(frame: np.ndarray) -> np.ndarray:
    """Coerce grey or RGBA frames to 3-channel uint8 RGB."""
    if frame.ndim == 2:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGB)
    elif frame.shape[2] == 4:
        frame = cv2.cvtColor(frame, cv2.COLOR_RGBA2RGB)
    if frame.dtype != np.uint8:
        frame = np.clip(frame, 0, 255).astype(np.uint8)
    return frame
