"""Unit tests for image utilities.

Tests cover:
- Dimension extraction and hashing
- Thumbnail generation (max 512px, aspect preserved, JPEG alpha flattening)
- High-resolution re-render (longer edge 2048px, PNG output)
- Media type sniffing
"""

import io

import pytest
from PIL import Image

from draftstage.services.image_utils import (
    compute_sha256,
    generate_thumbnail,
    get_image_dimensions,
    render_high_resolution,
    scaled_size,
    sniff_media_type,
)


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


class TestDimensions:
    def test_dimensions(self, make_image):
        assert get_image_dimensions(make_image(width=120, height=80)) == (120, 80)

    def test_invalid_bytes(self):
        with pytest.raises(ValueError):
            get_image_dimensions(b"not an image")

    def test_sha256(self):
        assert compute_sha256(b"abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )


class TestThumbnail:
    def test_large_image_shrinks(self, make_image):
        thumb, media_type = generate_thumbnail(make_image(width=1024, height=512))
        assert _open(thumb).size == (512, 256)
        assert media_type == "image/png"

    def test_small_image_kept(self, make_image):
        thumb, _ = generate_thumbnail(make_image(width=100, height=50))
        assert _open(thumb).size == (100, 50)

    def test_jpeg_from_rgba(self):
        img = Image.new("RGBA", (600, 600), (255, 0, 0, 128))
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")

        thumb, media_type = generate_thumbnail(buffer.getvalue(), output_format="jpg")

        assert media_type == "image/jpeg"
        assert _open(thumb).mode == "RGB"

    def test_invalid_bytes(self):
        with pytest.raises(ValueError):
            generate_thumbnail(b"junk")


class TestHighResolution:
    def test_landscape(self, make_image):
        data, media_type, size = render_high_resolution(make_image(width=512, height=256, format="JPEG"))

        assert media_type == "image/png"
        assert size == (2048, 1024)
        img = _open(data)
        assert img.format == "PNG"
        assert img.size == (2048, 1024)

    def test_portrait(self, make_image):
        _, _, size = render_high_resolution(make_image(width=300, height=600))
        assert size == (1024, 2048)

    def test_custom_target(self, make_image):
        _, _, size = render_high_resolution(make_image(width=100, height=100), target=256)
        assert size == (256, 256)

    def test_invalid_bytes(self):
        with pytest.raises(ValueError):
            render_high_resolution(b"junk")

    def test_scaled_size_rejects_empty(self):
        with pytest.raises(ValueError):
            scaled_size(0, 10, 2048)


class TestSniff:
    def test_png(self, make_image):
        assert sniff_media_type(make_image()) == "image/png"

    def test_jpeg(self, make_image):
        assert sniff_media_type(make_image(format="JPEG")) == "image/jpeg"

    def test_unreadable_uses_default(self):
        assert sniff_media_type(b"junk", default="application/octet-stream") == "application/octet-stream"
