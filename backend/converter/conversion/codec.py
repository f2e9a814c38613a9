"""Pillow-backed decode / resize / encode. Wraps codec failures in the conversion error types."""
import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from converter.conversion.encode import EncodePlan
from converter.conversion.errors import DecodeError, EncodeError, ResizeError
from converter.conversion.formats import lookup_source
from converter.conversion.models import ResizePlan

logger = logging.getLogger("converter.codec")

_PPM_MAGIC = (b"P1", b"P2", b"P3", b"P4", b"P5", b"P6")

# Modes each encoder accepts as-is; anything else is converted first
_ENCODER_MODES = {
    "jpg": ("RGB", "L"),
    "png": ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"),
    "webp": ("RGB", "RGBA"),
    "avif": ("RGB", "RGBA"),
    "bmp": ("1", "L", "P", "RGB", "RGBA"),
    "ppm": ("1", "L", "RGB"),
}

_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError)


def is_ppm(data: bytes, filename: Optional[str] = None) -> bool:
    """Netpbm container, by magic number or by name."""
    if filename and filename.lower().endswith(".ppm"):
        return True
    return data[:2] in _PPM_MAGIC


def decode(data: bytes, filename: Optional[str] = None) -> tuple[Image.Image, str]:
    """Decode bytes with the primary decoder. Returns (image, registry source id)."""
    try:
        img = Image.open(io.BytesIO(data))
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Cannot decode {filename or 'image'}: {e}", filename=filename) from e
    # Container check before the pixel data is read
    source_format = lookup_source(img.format, filename=filename)
    try:
        img.load()
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Corrupt {img.format} data in {filename or 'image'}: {e}", filename=filename) from e
    return img, source_format


def decode_ppm(data: bytes, filename: Optional[str] = None) -> Image.Image:
    """Decode through the Netpbm plugin only."""
    try:
        img = Image.open(io.BytesIO(data), formats=["PPM"])
        img.load()
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Cannot decode PPM {filename or 'image'}: {e}", filename=filename) from e
    return img


def resize(
    img: Image.Image,
    plan: ResizePlan,
    resample: Image.Resampling = Image.Resampling.LANCZOS,
    filename: Optional[str] = None,
) -> Image.Image:
    if plan.is_identity:
        return img
    try:
        return img.resize((plan.width, plan.height), resample)
    except (OSError, ValueError) as e:
        raise ResizeError(f"Resize to {plan.width}x{plan.height} failed: {e}", filename=filename) from e


def _prepare_mode(img: Image.Image, format_id: str) -> Image.Image:
    allowed = _ENCODER_MODES.get(format_id)
    if allowed is None or img.mode in allowed:
        return img
    has_alpha = "A" in img.getbands() or "transparency" in img.info
    if has_alpha and "RGBA" in allowed:
        return img.convert("RGBA")
    return img.convert("RGB")


def encode(img: Image.Image, plan: EncodePlan, filename: Optional[str] = None) -> bytes:
    out = io.BytesIO()
    try:
        _prepare_mode(img, plan.format).save(out, **plan.save_options())
    except (KeyError, OSError, ValueError) as e:
        # KeyError: no encoder registered for the format in this Pillow build
        raise EncodeError(f"Encoding {plan.format} failed: {e}", filename=filename) from e
    return out.getvalue()
