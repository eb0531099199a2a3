"""Raster re-encoding: size-bounded compression and WebP conversion."""

import io
import logging
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from mbc.config.models import ImageSettings
from mbc.domain.errors import ConversionError, DecodeError, EncodeError

logger = logging.getLogger(__name__)

# Pillow format name -> file extension of the re-encoded output
REENCODABLE_FORMATS = {"JPEG": "jpg", "PNG": "png", "WEBP": "webp"}

_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError)


def _decode(data: bytes) -> Tuple[Image.Image, str]:
    """Opens and fully loads the image, applying EXIF orientation."""
    with Image.open(io.BytesIO(data)) as src:
        src.load()
        source_format = src.format or ""
        img = ImageOps.exif_transpose(src)
    return img, source_format


def _quality_percent(quality: float) -> int:
    if not 0 < quality <= 1:
        raise EncodeError(f"Quality factor must be in (0, 1], got {quality}")
    return max(1, min(100, round(quality * 100)))


def fit_long_edge(img: Image.Image, max_long_edge: int) -> Tuple[Image.Image, bool]:
    """Uniformly downscales so neither side exceeds max_long_edge. Never upscales."""
    w, h = img.size
    long_edge = max(w, h)
    if long_edge <= max_long_edge:
        return img, False
    scale = max_long_edge / long_edge
    new_w = max(1, round(w * scale))
    new_h = max(1, round(h * scale))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS), True


def _save_kwargs(img: Image.Image, fmt: str, quality: int) -> Tuple[Image.Image, dict]:
    icc_profile = img.info.get("icc_profile")
    if fmt == "JPEG":
        if img.mode not in ("RGB", "L", "CMYK"):
            img = img.convert("RGB")
        save_kw = {"format": "JPEG", "quality": quality, "optimize": True}
    elif fmt == "WEBP":
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")
        save_kw = {"format": "WEBP", "quality": quality, "method": 4}
    else:
        save_kw = {"format": "PNG", "optimize": True}
    if icc_profile:
        save_kw["icc_profile"] = icc_profile
    return img, save_kw


def compress_image(data: bytes, settings: ImageSettings) -> bytes:
    """Single-pass resize + re-encode in the source format.

    The size budget is best effort: a result above settings.max_size_mb is
    returned as-is. If nothing was resized and the re-encode did not shrink
    the file, the original bytes are returned unchanged.
    """
    try:
        img, source_format = _decode(data)
    except _DECODE_ERRORS as exc:
        raise DecodeError(f"Not a decodable raster image: {exc}") from exc

    with img:
        fmt = source_format.upper()
        if fmt not in REENCODABLE_FORMATS:
            raise EncodeError(f"Unsupported image format for re-encoding: {source_format or 'unknown'}")
        quality = _quality_percent(settings.quality)

        try:
            work_img, resized = fit_long_edge(img, settings.max_long_edge_px)
            out_img, save_kw = _save_kwargs(work_img, fmt, quality)
            buffer = io.BytesIO()
            out_img.save(buffer, **save_kw)
        except (OSError, ValueError, KeyError) as exc:
            raise EncodeError(f"{fmt} encoder rejected settings (quality={quality}): {exc}") from exc
    output = buffer.getvalue()

    if not resized and len(output) >= len(data):
        logger.debug(f"Re-encode did not shrink {fmt} ({len(data)} -> {len(output)} bytes); keeping original")
        return data

    budget = settings.max_size_mb * 1024 * 1024
    if len(output) > budget:
        logger.info(f"Image still above budget after single pass: {len(output)} > {int(budget)} bytes")
    return output


def convert_to_webp(data: bytes, quality: float) -> bytes:
    """Re-encodes any decodable raster as WebP. Dimensions are kept as-is."""
    try:
        img, _ = _decode(data)
    except _DECODE_ERRORS as exc:
        raise ConversionError(f"WebP conversion failed: cannot decode image ({exc})") from exc

    try:
        out_img, save_kw = _save_kwargs(img, "WEBP", _quality_percent(quality))
        buffer = io.BytesIO()
        out_img.save(buffer, **save_kw)
    except (EncodeError, OSError, ValueError, KeyError) as exc:
        raise ConversionError(f"WebP conversion failed: {exc}") from exc
    finally:
        img.close()
    return buffer.getvalue()
