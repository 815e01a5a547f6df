from .engine import render
from .models import AdjustmentState, AspectRatio, CompressedPayload, DeviceProfile, EncodedImage, RasterImage
from .resize import prepare_for_display, prepare_for_upload

__all__ = [
    "AdjustmentState",
    "AspectRatio",
    "CompressedPayload",
    "DeviceProfile",
    "EncodedImage",
    "RasterImage",
    "prepare_for_display",
    "prepare_for_upload",
    "render",
]
