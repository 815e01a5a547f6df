"""Raster, adjustment and device models."""
import base64
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

import numpy as np
from PIL import Image

from luminascale.config import (
    DEVICE_PROFILES,
    MOBILE_USER_AGENT_PATTERN,
    MOBILE_VIEWPORT_MAX_WIDTH,
)


@dataclass(eq=False)
class RasterImage:
    """Mutable RGBA buffer, shape (height, width, 4), uint8, row-major.

    Owned by whichever component currently holds it. Callers that need to
    keep a buffer while handing it on must ``copy()`` it first.
    """

    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(f"Expected an (h, w, 4) buffer, got shape {self.pixels.shape}")
        if self.pixels.dtype != np.uint8:
            self.pixels = np.clip(self.pixels, 0, 255).astype(np.uint8)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @classmethod
    def blank(cls, width: int, height: int, color=(0, 0, 0, 255)) -> "RasterImage":
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = color
        return cls(pixels)

    @classmethod
    def from_pil(cls, img: Image.Image) -> "RasterImage":
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        return cls(np.array(img, dtype=np.uint8))

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.pixels, mode="RGBA")

    def copy(self) -> "RasterImage":
        return RasterImage(self.pixels.copy())


class AspectRatio(str, Enum):
    ORIGINAL = "original"
    SQUARE = "1:1"
    WIDESCREEN = "16:9"
    STANDARD = "4:3"
    CLASSIC = "3:2"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.strip().lower() == "square":
            return cls.SQUARE
        return None

    @property
    def ratio(self) -> Optional[float]:
        """Width / height, or None for the original frame."""
        if self is AspectRatio.ORIGINAL:
            return None
        w, h = self.value.split(":")
        return int(w) / int(h)


# name -> (min, max, default)
SLIDER_RANGES = {
    "brightness": (0, 200, 100),
    "contrast": (0, 200, 100),
    "saturation": (0, 200, 100),
    "exposure": (0, 200, 100),
    "warmth": (0, 100, 0),
    "sharpness": (0, 100, 0),
    "clarity": (0, 100, 0),
    "highlights": (-100, 100, 0),
}
DETAIL_SLIDERS = ("sharpness", "clarity", "highlights")


@dataclass(frozen=True)
class AdjustmentState:
    """Immutable set of transform and tonal parameters for one render.

    Replace it wholesale (``dataclasses.replace`` or the helpers below) on
    every user action; never mutate through an alias.
    """

    rotation: int = 0
    flip_horizontal: bool = False
    aspect_ratio: AspectRatio = AspectRatio.ORIGINAL
    brightness: float = 100
    contrast: float = 100
    saturation: float = 100
    exposure: float = 100
    warmth: float = 0
    sharpness: float = 0
    clarity: float = 0
    highlights: float = 0

    def __post_init__(self):
        if self.rotation % 90 != 0:
            raise ValueError(f"Rotation must be a multiple of 90 degrees, got {self.rotation}")
        object.__setattr__(self, "rotation", self.rotation % 360)
        object.__setattr__(self, "aspect_ratio", AspectRatio(self.aspect_ratio))
        for name, (low, high, _) in SLIDER_RANGES.items():
            value = getattr(self, name)
            if not low <= value <= high:
                raise ValueError(f"{name} must be within [{low}, {high}], got {value}")

    @property
    def detail_values(self) -> tuple[float, float, float]:
        return tuple(getattr(self, name) for name in DETAIL_SLIDERS)

    @property
    def has_detail_adjustments(self) -> bool:
        return self.sharpness > 0 or self.clarity != 0 or self.highlights != 0

    def rotated_right(self) -> "AdjustmentState":
        return replace(self, rotation=(self.rotation + 90) % 360)

    def flipped(self) -> "AdjustmentState":
        return replace(self, flip_horizontal=not self.flip_horizontal)

    def reset_adjustments(self) -> "AdjustmentState":
        """Restore every slider default, keep rotation, flip and crop ratio."""
        return replace(self, **{name: default for name, (_, _, default) in SLIDER_RANGES.items()})


@dataclass(frozen=True)
class DeviceProfile:
    """Safety ceilings and quality tier for one device class."""

    tag: str
    max_safe_pixel_count: int
    target_long_edge: int
    jpeg_quality: float

    @classmethod
    def for_tag(cls, tag: str) -> "DeviceProfile":
        if tag not in DEVICE_PROFILES:
            raise ValueError(f"Unknown device class: {tag}")
        max_pixels, long_edge, quality = DEVICE_PROFILES[tag]
        return cls(tag=tag, max_safe_pixel_count=max_pixels, target_long_edge=long_edge, jpeg_quality=quality)

    @classmethod
    def mobile(cls) -> "DeviceProfile":
        return cls.for_tag("mobile")

    @classmethod
    def desktop(cls) -> "DeviceProfile":
        return cls.for_tag("desktop")

    @classmethod
    def detect(cls, user_agent: Optional[str] = None, viewport_width: Optional[int] = None) -> "DeviceProfile":
        """Classify from a user agent and/or viewport width. Desktop when nothing is known."""
        if user_agent and re.search(MOBILE_USER_AGENT_PATTERN, user_agent, re.I):
            return cls.mobile()
        if viewport_width is not None and viewport_width < MOBILE_VIEWPORT_MAX_WIDTH:
            return cls.mobile()
        return cls.desktop()


@dataclass(frozen=True)
class EncodedImage:
    """Encoded image bytes plus their mime type."""

    data: bytes = field(repr=False)
    mime_type: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"

    @classmethod
    def from_data_url(cls, data_url: str) -> "EncodedImage":
        """Parse ``data:<mime>;base64,<payload>``. Raises ValueError when malformed."""
        m = re.match(r"data:([\w.+/-]+);base64,(.*)$", data_url.strip(), re.S)
        if not m:
            raise ValueError("Not a base64 data URL")
        return cls(data=base64.b64decode(m.group(2), validate=True), mime_type=m.group(1))


@dataclass(frozen=True)
class CompressedPayload:
    """Image prepared for transmission to the enhancement endpoint."""

    base64: str = field(repr=False)
    mime_type: str
    width: int
    height: int

    def to_json(self) -> dict:
        return {
            "base64": self.base64,
            "mimeType": self.mime_type,
            "width": self.width,
            "height": self.height,
        }
