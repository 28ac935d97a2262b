import numpy as np
import pytest
from PIL import Image

from imagediff.core.types import BoundingBox
from imagediff.utils.image_io import (
    DATA_URL_PREFIX,
    RasterBuffer,
    decode_data_url,
    encode_png_data_url,
    load_raster,
    save_raster,
)
from imagediff.utils.image_ops import DEFAULT_CONTENT_COLOR, dominant_color, render_line_preview


def test_raster_from_bytes_validates_length():
    data = bytes(range(2 * 3 * 4))

    buffer = RasterBuffer.from_bytes(2, 3, data)

    assert buffer.size == (2, 3)
    assert buffer.to_bytes() == data
    with pytest.raises(ValueError):
        RasterBuffer.from_bytes(2, 3, data[:-1])


def test_raster_rejects_wrong_shape():
    with pytest.raises(ValueError):
        RasterBuffer(np.zeros((4, 4, 3), dtype=np.uint8))


def test_load_converts_to_rgba(tmp_path):
    path = tmp_path / "rgb.png"
    Image.new("RGB", (8, 6), (10, 20, 30)).save(path)

    buffer = load_raster(path)

    assert buffer.size == (8, 6)
    assert tuple(buffer.pixels[0, 0]) == (10, 20, 30, 255)


def test_save_creates_parent_directories(tmp_path):
    target = tmp_path / "nested" / "out.png"

    save_raster(RasterBuffer.solid(5, 4, (1, 2, 3)), target)

    with Image.open(target) as image:
        assert image.size == (5, 4)


def test_data_url_encoding():
    buffer = RasterBuffer.solid(3, 2, (200, 100, 50, 255))

    encoded = encode_png_data_url(buffer)

    assert encoded.startswith(DATA_URL_PREFIX)
    assert np.array_equal(decode_data_url(encoded).pixels, buffer.pixels)
    assert np.array_equal(load_raster(encoded).pixels, buffer.pixels)
    with pytest.raises(ValueError):
        decode_data_url("data:text/plain,hello")


def test_line_preview_clamps_box_to_image():
    pixels = np.full((10, 20, 4), 255, dtype=np.uint8)
    pixels[3, 18, :3] = (0, 0, 0)
    mask = np.zeros((10, 20, 4), dtype=np.uint8)
    mask[3, 18, :3] = 255

    preview, color = render_line_preview(RasterBuffer(pixels), mask, BoundingBox(15, 2, 10, 4), padding=2)

    assert preview.size == (14, 8)
    assert tuple(preview.pixels[3, 5]) == (0, 0, 0, 255)
    assert (preview.pixels[:, 8:] == 255).all()
    assert color == (0, 0, 0)


def test_line_preview_keeps_only_differing_pixels():
    pixels = np.full((30, 40, 4), 255, dtype=np.uint8)
    pixels[10:12, 5:15, :3] = (255, 0, 0)
    pixels[20, 20, :3] = (0, 0, 255)
    original = RasterBuffer(pixels)
    mask = np.zeros((30, 40, 4), dtype=np.uint8)
    mask[10:12, 5:15, :3] = 255
    mask[..., 3] = 255

    preview, color = render_line_preview(original, mask, BoundingBox(5, 10, 10, 2), padding=3)

    assert preview.size == (16, 8)
    assert tuple(preview.pixels[3, 3]) == (255, 0, 0, 255)
    assert tuple(preview.pixels[0, 0]) == (255, 255, 255, 255)
    assert color == (240, 0, 0)


def test_line_preview_without_differences_is_blank():
    original = RasterBuffer.solid(10, 10, (0, 0, 0))
    mask = np.zeros((10, 10, 4), dtype=np.uint8)

    preview, color = render_line_preview(original, mask, BoundingBox(2, 2, 4, 4), padding=1)

    assert (preview.pixels == 255).all()
    assert color == DEFAULT_CONTENT_COLOR


def test_dominant_color_picks_most_frequent():
    colors = np.array([[20, 20, 20], [20, 25, 30], [200, 0, 0]], dtype=np.uint8)

    assert dominant_color(colors) == (16, 16, 16)
    assert dominant_color(np.zeros((0, 3), dtype=np.uint8)) == DEFAULT_CONTENT_COLOR
