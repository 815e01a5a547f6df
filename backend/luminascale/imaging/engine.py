"""
Transform & adjustment engine.

Pipeline order is fixed:
1. geometry (rotate by quarter turns, flip, centered aspect-ratio crop)
2. fast tonal pass (whole-image brightness/exposure, contrast, saturation, warmth)
3. slow detail pass (sharpen, highlights, clarity), only for a full render
"""
from __future__ import annotations

import logging
import math
import time

import numpy as np

from luminascale.imaging.models import AdjustmentState, AspectRatio, RasterImage

logger = logging.getLogger("luminascale.engine")

# Rec. 601 luma weights
LUMA_WEIGHTS = (0.299, 0.587, 0.114)
HIGHLIGHT_LUMA_THRESHOLD = 128.0
HIGHLIGHT_STRENGTH = 50.0
CLARITY_STRENGTH = 0.5
MID_GRAY = 128.0
# Warmth is approximated as sepia(warmth * 0.5 %) followed by hue-rotate(-warmth * 0.1 deg)
WARMTH_SEPIA_PER_UNIT = 0.5
WARMTH_HUE_DEGREES_PER_UNIT = -0.1


# ---------- Geometry ----------

def crop_box(width: int, height: int, aspect_ratio: AspectRatio) -> tuple[int, int, int, int]:
    """
    Largest centered (left, top, crop_width, crop_height) of the given ratio inside width x height.
    The full frame for AspectRatio.ORIGINAL.
    """
    ratio = AspectRatio(aspect_ratio).ratio
    if ratio is None:
        return 0, 0, width, height
    if width / height > ratio:
        # frame is wider than the target: height constrains
        crop_h = height
        crop_w = int(height * ratio + 1e-9)
    else:
        crop_w = width
        crop_h = int(width / ratio + 1e-9)
    crop_w = max(1, min(crop_w, width))
    crop_h = max(1, min(crop_h, height))
    return (width - crop_w) // 2, (height - crop_h) // 2, crop_w, crop_h


def apply_geometry(image: RasterImage, state: AdjustmentState) -> RasterImage:
    """Rotate clockwise about the center, mirror left-right if set, then crop. Always a new buffer."""
    px = np.rot90(image.pixels, k=-(state.rotation // 90))
    if state.flip_horizontal:
        px = px[:, ::-1]
    left, top, w, h = crop_box(px.shape[1], px.shape[0], state.aspect_ratio)
    return RasterImage(px[top:top + h, left:left + w].copy())


# ---------- Fast tonal pass ----------

def _saturation_matrix(s: float) -> np.ndarray:
    return np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ], dtype=np.float32)


def _sepia_matrix(amount: float) -> np.ndarray:
    a = 1.0 - min(1.0, max(0.0, amount))
    return np.array([
        [0.393 + 0.607 * a, 0.769 - 0.769 * a, 0.189 - 0.189 * a],
        [0.349 - 0.349 * a, 0.686 + 0.314 * a, 0.168 - 0.168 * a],
        [0.272 - 0.272 * a, 0.534 - 0.534 * a, 0.131 + 0.869 * a],
    ], dtype=np.float32)


def _hue_rotate_matrix(degrees: float) -> np.ndarray:
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return np.array([
        [0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928],
        [0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283],
        [0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072],
    ], dtype=np.float32)


def tonal_operations(state: AdjustmentState) -> list[tuple[str, object]]:
    """Non-neutral fast-pass operations for a state, in application order."""
    ops: list[tuple[str, object]] = []
    brightness = state.brightness * (state.exposure / 100) / 100
    if brightness != 1:
        ops.append(("scale", brightness))
    if state.contrast != 100:
        ops.append(("contrast", state.contrast / 100))
    if state.saturation != 100:
        ops.append(("matrix", _saturation_matrix(state.saturation / 100)))
    if state.warmth > 0:
        ops.append(("matrix", _sepia_matrix(state.warmth * WARMTH_SEPIA_PER_UNIT / 100)))
        ops.append(("matrix", _hue_rotate_matrix(state.warmth * WARMTH_HUE_DEGREES_PER_UNIT)))
    return ops


def apply_fast_pass(image: RasterImage, state: AdjustmentState) -> RasterImage:
    """Whole-image tonal filters. Returns the input untouched when every slider is neutral."""
    ops = tonal_operations(state)
    if not ops:
        return image
    rgb = image.pixels[..., :3].astype(np.float32)
    for kind, value in ops:
        if kind == "scale":
            rgb *= value
        elif kind == "contrast":
            rgb = (rgb - 127.5) * value + 127.5
        else:
            rgb = rgb @ value.T
        np.clip(rgb, 0, 255, out=rgb)
    out = image.pixels.copy()
    out[..., :3] = np.rint(rgb)
    return RasterImage(out)


# ---------- Slow detail pass ----------

def laplacian(rgb: np.ndarray) -> np.ndarray:
    """4-neighbour edge value for interior pixels: 4*center - up - down - left - right."""
    return (
        4 * rgb[1:-1, 1:-1]
        - rgb[:-2, 1:-1]
        - rgb[2:, 1:-1]
        - rgb[1:-1, :-2]
        - rgb[1:-1, 2:]
    )


def apply_detail_pass(image: RasterImage, state: AdjustmentState) -> RasterImage:
    """
    Per-pixel sharpen, highlights and clarity in a single pass over the buffer.
    Sharpening reads from an unmodified snapshot and skips the outer rows and columns.
    """
    if not state.has_detail_adjustments:
        return image
    started = time.perf_counter()
    rgb = image.pixels[..., :3].astype(np.float32)
    h, w = rgb.shape[:2]

    if state.sharpness > 0 and h > 2 and w > 2:
        snapshot = rgb.copy()
        rgb[1:-1, 1:-1] += laplacian(snapshot) * (state.sharpness / 100)

    if state.highlights != 0:
        lum = rgb[..., 0] * LUMA_WEIGHTS[0] + rgb[..., 1] * LUMA_WEIGHTS[1] + rgb[..., 2] * LUMA_WEIGHTS[2]
        bright = lum > HIGHLIGHT_LUMA_THRESHOLD
        adjust = np.where(
            bright,
            (state.highlights / 100) * HIGHLIGHT_STRENGTH * ((lum - HIGHLIGHT_LUMA_THRESHOLD) / 127),
            0.0,
        ).astype(np.float32)
        rgb += adjust[..., np.newaxis]

    if state.clarity != 0:
        rgb += (rgb - MID_GRAY) * (state.clarity / 100) * CLARITY_STRENGTH

    out = image.pixels.copy()
    out[..., :3] = np.clip(np.rint(rgb), 0, 255)
    logger.debug("Detail pass on %sx%s took %.1fms", w, h, (time.perf_counter() - started) * 1000)
    return RasterImage(out)


def render(image: RasterImage, state: AdjustmentState, full_process: bool = True) -> RasterImage:
    """Render the source through the fixed pipeline. The source buffer is never modified."""
    out = apply_geometry(image, state)
    out = apply_fast_pass(out, state)
    if full_process:
        out = apply_detail_pass(out, state)
    return out
