"""Adaptive resize/compress for upload and for display of enhancement results."""
import base64
import io
import logging
import math
from typing import Optional, Union

from PIL import Image

from luminascale.config import UPLOAD_PIXEL_CEILING
from luminascale.imaging.io import encode_png, open_image
from luminascale.imaging.models import CompressedPayload, DeviceProfile, EncodedImage, RasterImage

logger = logging.getLogger("luminascale.resize")


def scale_to_pixel_budget(img: Image.Image, max_pixels: int) -> Image.Image:
    """
    Downscale so width * height fits max_pixels, keeping aspect ratio.
    Scale factor is sqrt(max_pixels / pixel_count). Returns the image unchanged when it already fits.
    """
    w, h = img.size
    pixels = w * h
    if pixels <= max_pixels:
        return img
    scale = math.sqrt(max_pixels / pixels)
    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))
    logger.info("Downscaling %sx%s -> %sx%s (budget %s px)", w, h, new_w, new_h, max_pixels)
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def resize_long_edge(img: Image.Image, target_long_edge: int) -> Image.Image:
    """Scale so the longer side equals target_long_edge, maintaining aspect ratio."""
    w, h = img.size
    scale = target_long_edge / max(w, h)
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def prepare_for_upload(
    image: RasterImage,
    device_profile: DeviceProfile,
    pixel_ceiling: int = UPLOAD_PIXEL_CEILING,
) -> CompressedPayload:
    """
    Shrink a decoded source for transmission and re-encode it losslessly as PNG.
    - The absolute pixel ceiling applies first, whatever the device.
    - The device's safe pixel count then caps the result.
    """
    img = image.to_pil()
    img = scale_to_pixel_budget(img, pixel_ceiling)
    img = scale_to_pixel_budget(img, device_profile.max_safe_pixel_count)
    data = encode_png(img)
    logger.info(
        "Prepared upload %sx%s -> %sx%s, %.2fMB PNG (%s)",
        image.width, image.height, img.width, img.height,
        len(data) / 1024 / 1024, device_profile.tag,
    )
    return CompressedPayload(
        base64=base64.b64encode(data).decode("ascii"),
        mime_type="image/png",
        width=img.width,
        height=img.height,
    )


def _upscale_for_display(encoded: EncodedImage, device_profile: DeviceProfile) -> Optional[EncodedImage]:
    """Returns None when the result should be passed through unchanged."""
    img = open_image(encoded.data)
    w, h = img.size
    if w * h > device_profile.max_safe_pixel_count:
        logger.info("Result %sx%s exceeds safe pixel count for %s, keeping as is", w, h, device_profile.tag)
        return None
    if max(w, h) >= device_profile.target_long_edge:
        return None
    scale = device_profile.target_long_edge / max(w, h)
    if round(w * scale) * round(h * scale) > device_profile.max_safe_pixel_count:
        logger.info("Upscaled result would exceed safe pixel count for %s, keeping as is", device_profile.tag)
        return None
    resized = resize_long_edge(img, device_profile.target_long_edge)
    if resized.mode != "RGB":
        resized = resized.convert("RGB")
    buf = io.BytesIO()
    quality = int(round(device_profile.jpeg_quality * 100))
    resized.save(buf, format="JPEG", quality=quality)
    logger.info("Upscaled result %sx%s -> %sx%s at quality %s", w, h, resized.width, resized.height, quality)
    return EncodedImage(data=buf.getvalue(), mime_type="image/jpeg")


def prepare_for_display(
    encoded: Union[EncodedImage, str],
    device_profile: DeviceProfile,
) -> Union[EncodedImage, str]:
    """
    Upscale a returned result to the device's target long edge for display/export.
    Never raises: any decode/encode failure returns the input unchanged.
    Accepts and returns either an EncodedImage or a data URL string.
    """
    try:
        source = EncodedImage.from_data_url(encoded) if isinstance(encoded, str) else encoded
        result = _upscale_for_display(source, device_profile)
    except Exception as e:
        logger.warning("Display resize failed, passing result through: %s", e)
        return encoded
    if result is None:
        return encoded
    return result.data_url if isinstance(encoded, str) else result
