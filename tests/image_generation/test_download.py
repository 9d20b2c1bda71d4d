"""Download re-encoding with real Pillow images (in memory)."""
import base64
import io
import unittest
from unittest.mock import patch

from PIL import Image

from fusion.services.image_generation.base import DownloadError
from fusion.services.image_generation.download import _jpeg_quality, reencode_image


def _png_data_url(mode: str = "RGBA", size=(8, 6)) -> str:
    buf = io.BytesIO()
    Image.new(mode, size, (255, 0, 0, 128) if mode == "RGBA" else (255, 0, 0)).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


class TestReencodeImage(unittest.TestCase):
    def test_png_to_jpeg(self):
        artifact = reencode_image(_png_data_url(), "jpeg", 0.8)
        self.assertEqual(artifact.media_type, "image/jpeg")
        self.assertEqual(artifact.filename, "fused-image.jpeg")
        with Image.open(io.BytesIO(artifact.content)) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (8, 6))

    def test_png_keeps_alpha(self):
        artifact = reencode_image(_png_data_url("RGBA"), "png")
        with Image.open(io.BytesIO(artifact.content)) as img:
            self.assertEqual(img.format, "PNG")
            self.assertEqual(img.mode, "RGBA")

    def test_palette_transparency_survives_png(self):
        src = Image.new("P", (4, 4), 0)
        src.putpalette([0, 0, 0, 255, 0, 0] + [0, 0, 0] * 254)
        src.putpixel((1, 1), 1)
        buf = io.BytesIO()
        src.save(buf, format="PNG", transparency=0)

        artifact = reencode_image(buf.getvalue(), "png")
        with Image.open(io.BytesIO(artifact.content)) as img:
            self.assertEqual(img.mode, "RGBA")
            self.assertEqual(img.getpixel((0, 0))[3], 0)
            self.assertEqual(img.getpixel((1, 1)), (255, 0, 0, 255))

    def test_decompression_bomb_is_download_error(self):
        with patch.object(Image, "MAX_IMAGE_PIXELS", 10):
            with self.assertRaises(DownloadError):
                reencode_image(_png_data_url(), "png")

    def test_raw_bytes_and_jpg_alias(self):
        raw = base64.b64decode(_png_data_url("RGB").split(",", 1)[1])
        artifact = reencode_image(raw, "JPG")
        self.assertEqual(artifact.filename, "fused-image.jpeg")

    def test_unknown_format(self):
        with self.assertRaises(DownloadError):
            reencode_image(_png_data_url(), "gif")

    def test_undecodable_base64(self):
        with self.assertRaises(DownloadError):
            reencode_image("data:image/png;base64,%%%")

    def test_not_an_image(self):
        with self.assertRaises(DownloadError):
            reencode_image(b"definitely not an image", "png")

    def test_quality_mapping(self):
        self.assertEqual(_jpeg_quality(0.92), 92)
        self.assertEqual(_jpeg_quality(1.0), 95)
        self.assertEqual(_jpeg_quality(0.0), 1)
        self.assertEqual(_jpeg_quality(5), 95)
