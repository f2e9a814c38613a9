"""Registry of supported formats and the numeric controls each one accepts."""
import logging
from typing import Optional

from converter.config import ALLOWED_FORMATS
from converter.conversion.errors import UnsupportedFormat
from converter.conversion.models import FormatSpec

logger = logging.getLogger("converter.formats")

FORMATS: dict[str, FormatSpec] = {
    spec.id: spec
    for spec in (
        FormatSpec("png", uses_quality=False, uses_compression=True, mime_type="image/png", file_extension="png"),
        FormatSpec("jpg", uses_quality=True, uses_compression=True, mime_type="image/jpeg", file_extension="jpg"),
        FormatSpec("webp", uses_quality=True, uses_compression=False, mime_type="image/webp", file_extension="webp"),
        FormatSpec("avif", uses_quality=True, uses_compression=False, mime_type="image/avif", file_extension="avif"),
        FormatSpec("bmp", uses_quality=False, uses_compression=False, mime_type="image/bmp", file_extension="bmp"),
        FormatSpec(
            "ppm", uses_quality=False, uses_compression=False,
            mime_type="image/x-portable-pixmap", file_extension="ppm", output=False,
        ),
    )
}

# Pillow container name -> registry id. jpeg/tiff are accepted as sources only.
SOURCE_ALIASES = {
    "PNG": "png",
    "JPEG": "jpg",
    "MPO": "jpg",
    "WEBP": "webp",
    "AVIF": "avif",
    "BMP": "bmp",
    "PPM": "ppm",
    "TIFF": "tiff",
}


def lookup(format_id: str) -> FormatSpec:
    """Exact, case-sensitive match against the registry."""
    spec = FORMATS.get(format_id)
    if spec is None:
        raise UnsupportedFormat(format_id)
    return spec


def lookup_target(format_id: str, filename: Optional[str] = None) -> FormatSpec:
    """Registry lookup restricted to formats we can write and that are enabled in ALLOWED_FORMATS."""
    spec = FORMATS.get(format_id)
    if spec is None or not spec.output or format_id not in ALLOWED_FORMATS:
        logger.warning("Rejected target format %r", format_id)
        raise UnsupportedFormat(format_id, filename=filename)
    return spec


def lookup_source(container: Optional[str], filename: Optional[str] = None) -> str:
    """Map a decoded container name (Image.format) to a registry id."""
    format_id = SOURCE_ALIASES.get((container or "").upper())
    if format_id is None:
        raise UnsupportedFormat(container or "unknown", filename=filename)
    return format_id


def output_formats() -> list[str]:
    return [f for f in ALLOWED_FORMATS if f in FORMATS and FORMATS[f].output]
