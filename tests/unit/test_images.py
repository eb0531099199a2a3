import io
import pytest
from PIL import Image
from mbc.config.models import ImageSettings
from mbc.domain.errors import ConversionError, DecodeError, EncodeError
from mbc.pipeline.images import compress_image, convert_to_webp, fit_long_edge


def _open(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def test_fit_long_edge_downscales_uniformly():
    img = Image.new("RGB", (4000, 3000))
    resized, changed = fit_long_edge(img, 1920)
    assert changed is True
    assert resized.size == (1920, 1440)


def test_fit_long_edge_never_upscales():
    img = Image.new("RGB", (800, 600))
    same, changed = fit_long_edge(img, 1920)
    assert changed is False
    assert same.size == (800, 600)


def test_fit_long_edge_portrait():
    resized, _ = fit_long_edge(Image.new("RGB", (1000, 3000)), 1280)
    assert max(resized.size) == 1280
    assert resized.size[0] == 427


def test_compress_large_jpeg_resizes_and_keeps_format(make_jpeg):
    data = make_jpeg(width=2400, height=1200, quality=95)
    out = compress_image(data, ImageSettings(max_size_mb=0.5, max_long_edge_px=1280, quality=0.6))
    img = _open(out)
    assert img.format == "JPEG"
    assert img.size == (1280, 640)
    assert len(out) < len(data)


def test_compress_small_image_returns_original_when_not_smaller(make_jpeg):
    data = make_jpeg(width=64, height=64, quality=10)
    out = compress_image(data, ImageSettings(max_size_mb=1, max_long_edge_px=1920, quality=0.95))
    assert out == data


def test_compress_png_keeps_alpha(make_png):
    data = make_png(width=3000, height=100)
    out = compress_image(data, ImageSettings(max_size_mb=1, max_long_edge_px=1500, quality=0.8))
    img = _open(out)
    assert img.format == "PNG"
    assert img.mode == "RGBA"
    assert img.size == (1500, 50)


def test_compress_rejects_garbage():
    with pytest.raises(DecodeError):
        compress_image(b"definitely not an image", ImageSettings(max_size_mb=1, max_long_edge_px=100, quality=0.5))


def test_compress_rejects_non_reencodable_format():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="BMP")
    with pytest.raises(EncodeError):
        compress_image(buffer.getvalue(), ImageSettings(max_size_mb=1, max_long_edge_px=100, quality=0.5))


def test_compress_applies_exif_orientation(make_jpeg):
    img = Image.new("RGB", (200, 100), (10, 200, 10))
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 CW on display
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=95, exif=exif)
    out = compress_image(buffer.getvalue(), ImageSettings(max_size_mb=1, max_long_edge_px=150, quality=0.8))
    assert _open(out).size == (75, 150)


def test_convert_to_webp(make_jpeg, make_png):
    out = convert_to_webp(make_jpeg(width=320, height=200), quality=0.8)
    img = _open(out)
    assert img.format == "WEBP"
    assert img.size == (320, 200)

    alpha = _open(convert_to_webp(make_png(), quality=0.6))
    assert alpha.format == "WEBP"
    assert alpha.mode == "RGBA"


def test_convert_to_webp_failures(make_png):
    with pytest.raises(ConversionError):
        convert_to_webp(b"\x89PNG broken", quality=0.8)
    with pytest.raises(ConversionError):
        convert_to_webp(make_png(), quality=0)
