"""
Tests for upload compression and display upscaling.
"""
import base64
import io

import pytest
from PIL import Image

from luminascale.imaging.models import DeviceProfile, EncodedImage, RasterImage
from luminascale.imaging.resize import prepare_for_display, prepare_for_upload, scale_to_pixel_budget
from conftest import data_url, decoded_size, encode


def png(width, height):
    return EncodedImage(data=encode(width, height, "PNG"), mime_type="image/png")


class TestPrepareForUpload:
    """Pre-upload pixel ceiling and PNG re-encode."""

    def test_large_source_is_downscaled_to_ceiling(self):
        """3000x2000 on mobile scales by sqrt(4M / 6M), rounding down."""
        src = RasterImage.blank(3000, 2000, (10, 20, 30, 255))
        payload = prepare_for_upload(src, DeviceProfile.mobile(), pixel_ceiling=4_000_000)
        assert (payload.width, payload.height) == (2449, 1632)
        assert payload.width * payload.height <= 4_000_000
        assert payload.mime_type == "image/png"
        assert decoded_size(base64.b64decode(payload.base64)) == (2449, 1632)

    def test_small_source_keeps_dimensions(self):
        """An image already under every ceiling is only re-encoded."""
        src = RasterImage.blank(320, 200)
        payload = prepare_for_upload(src, DeviceProfile.desktop())
        assert (payload.width, payload.height) == (320, 200)
        data = base64.b64decode(payload.base64)
        assert data.startswith(b"\x89PNG")

    def test_device_ceiling_applies_after_global_ceiling(self):
        """A tighter device profile caps the payload further."""
        tiny = DeviceProfile(tag="tiny", max_safe_pixel_count=10_000, target_long_edge=100, jpeg_quality=0.5)
        payload = prepare_for_upload(RasterImage.blank(400, 100), tiny)
        assert payload.width * payload.height <= 10_000
        assert payload.width / payload.height == pytest.approx(4, rel=0.05)

    def test_payload_json_shape(self):
        """The wire form uses camelCase keys."""
        payload = prepare_for_upload(RasterImage.blank(8, 8), DeviceProfile.desktop())
        assert set(payload.to_json()) == {"base64", "mimeType", "width", "height"}

    def test_budget_keeps_fitting_image(self):
        """scale_to_pixel_budget returns the same object when it fits."""
        img = Image.new("RGB", (10, 10))
        assert scale_to_pixel_budget(img, 100) is img


class TestPrepareForDisplay:
    """Device-aware upscaling of enhancement results."""

    def test_mobile_upscales_to_target_long_edge(self):
        """1024x768 on mobile becomes a 2048x1536 JPEG at quality 85."""
        source = png(1024, 768)
        result = prepare_for_display(source, DeviceProfile.mobile())
        assert result.mime_type == "image/jpeg"
        assert decoded_size(result.data) == (2048, 1536)

        expected = io.BytesIO()
        with Image.open(io.BytesIO(source.data)) as img:
            img.resize((2048, 1536), Image.Resampling.LANCZOS).convert("RGB").save(expected, format="JPEG", quality=85)
        assert result.data == expected.getvalue()

    def test_desktop_upscales_further(self):
        """Desktop targets a 4096 long edge."""
        result = prepare_for_display(png(1024, 768), DeviceProfile.desktop())
        assert decoded_size(result.data) == (4096, 3072)

    def test_large_enough_result_passes_through(self):
        """A long edge already at the target is left alone."""
        source = png(2048, 1000)
        assert prepare_for_display(source, DeviceProfile.mobile()) is source

    def test_result_over_safe_pixel_count_passes_through(self):
        """More pixels than the device allows means no resize at all."""
        source = png(2040, 2000)
        assert prepare_for_display(source, DeviceProfile.mobile()) is source

    def test_upscale_that_would_exceed_safe_count_is_skipped(self):
        """Upscaling 2000x1990 to 2048 would pass 4M pixels on mobile."""
        source = png(2000, 1990)
        assert prepare_for_display(source, DeviceProfile.mobile()) is source

    def test_garbage_is_returned_unchanged(self):
        """Undecodable bytes never raise."""
        source = EncodedImage(data=b"not an image", mime_type="image/png")
        assert prepare_for_display(source, DeviceProfile.mobile()) is source

    def test_malformed_data_url_is_returned_unchanged(self):
        """A broken data URL string is passed straight back."""
        assert prepare_for_display("data:nope", DeviceProfile.desktop()) == "data:nope"

    def test_data_url_in_data_url_out(self):
        """String input gives a resized data URL back."""
        result = prepare_for_display(data_url(512, 256), DeviceProfile.mobile())
        assert isinstance(result, str)
        decoded = EncodedImage.from_data_url(result)
        assert decoded.mime_type == "image/jpeg"
        assert decoded_size(decoded.data) == (2048, 1024)
