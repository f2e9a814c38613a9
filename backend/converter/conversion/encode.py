"""
Map per-format quality/compression knobs to codec-level encode parameters.

Each format has its own parameter type; build_encode_plan resolves the right one once through
_BUILDERS so the executor never branches on format names.
"""
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional, Union

from converter.config import DEFAULT_JPEG_COMPRESSION, DEFAULT_QUALITY
from converter.conversion.formats import lookup

logger = logging.getLogger("converter.encode")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

CHROMA_420 = "4:2:0"
CHROMA_444 = "4:4:4"


def parse_int(raw: Any, default: Optional[int] = None) -> Optional[int]:
    """Leading integer of a free-form value ("90", " 85px", 70.5); default when absent or non-numeric."""
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw)
    m = _LEADING_INT.match(str(raw))
    if not m:
        return default
    return int(m.group(1))


def _quality(raw: Any) -> int:
    return max(0, min(100, parse_int(raw, DEFAULT_QUALITY)))


@dataclass(frozen=True)
class JpegParams:
    quality: int
    chroma_subsampling: str
    progressive: bool

    def save_options(self) -> dict:
        return {
            "format": "JPEG",
            "quality": self.quality,
            "subsampling": self.chroma_subsampling,
            "progressive": self.progressive,
            "optimize": True,
        }


@dataclass(frozen=True)
class PngParams:
    compression_level: int
    quality: int
    adaptive_filtering: bool = True

    def save_options(self) -> dict:
        # Pillow picks the row filter adaptively for truecolor images; quality has no zlib equivalent
        return {"format": "PNG", "compress_level": self.compression_level}


@dataclass(frozen=True)
class WebpParams:
    quality: int

    def save_options(self) -> dict:
        return {"format": "WEBP", "quality": self.quality}


@dataclass(frozen=True)
class AvifParams:
    quality: int

    def save_options(self) -> dict:
        return {"format": "AVIF", "quality": self.quality}


@dataclass(frozen=True)
class BmpParams:
    def save_options(self) -> dict:
        return {"format": "BMP"}


@dataclass(frozen=True)
class PpmParams:
    def save_options(self) -> dict:
        return {"format": "PPM"}


FormatParams = Union[JpegParams, PngParams, WebpParams, AvifParams, BmpParams, PpmParams]


@dataclass(frozen=True)
class EncodePlan:
    format: str
    params: FormatParams

    @property
    def quality(self) -> int:
        """Effective quality; 100 for formats without a quality knob."""
        return getattr(self.params, "quality", 100)

    @property
    def extra_params(self) -> dict:
        extra = asdict(self.params)
        extra.pop("quality", None)
        return extra

    def save_options(self) -> dict:
        return self.params.save_options()


# compression level -> (quality cap, chroma subsampling, progressive)
_JPEG_LEVELS = {
    1: (70, CHROMA_420, True),
    2: (85, CHROMA_420, True),
    3: (95, CHROMA_444, False),
}

# compression level -> (zlib level, quality)
_PNG_LEVELS = {
    1: (2, 70),
    2: (5, 60),
    3: (9, 50),
}
_PNG_DEFAULT = (5, 60)


def _build_jpeg(raw_quality: Any, raw_compression: Any) -> JpegParams:
    quality = _quality(raw_quality)
    level = parse_int(raw_compression, DEFAULT_JPEG_COMPRESSION)
    if level in _JPEG_LEVELS:
        cap, chroma, progressive = _JPEG_LEVELS[level]
        return JpegParams(min(quality, cap), chroma, progressive)
    return JpegParams(85, CHROMA_420, True)


def _build_png(raw_quality: Any, raw_compression: Any) -> PngParams:
    level, quality = _PNG_LEVELS.get(parse_int(raw_compression), _PNG_DEFAULT)
    return PngParams(compression_level=level, quality=quality)


def _build_webp(raw_quality: Any, raw_compression: Any) -> WebpParams:
    return WebpParams(_quality(raw_quality))


def _build_avif(raw_quality: Any, raw_compression: Any) -> AvifParams:
    return AvifParams(_quality(raw_quality))


def _build_bmp(raw_quality: Any, raw_compression: Any) -> BmpParams:
    return BmpParams()


def _build_ppm(raw_quality: Any, raw_compression: Any) -> PpmParams:
    return PpmParams()


_BUILDERS: dict[str, Callable[[Any, Any], FormatParams]] = {
    "jpg": _build_jpeg,
    "png": _build_png,
    "webp": _build_webp,
    "avif": _build_avif,
    "bmp": _build_bmp,
    "ppm": _build_ppm,
}


def build_encode_plan(target_format: str, raw_quality: Any = None, raw_compression_level: Any = None) -> EncodePlan:
    """Resolve the encode plan for a registered format. Raises UnsupportedFormat for unknown ids."""
    spec = lookup(target_format)
    params = _BUILDERS[spec.id](raw_quality, raw_compression_level)
    logger.debug("Encode plan for %s: %s", spec.id, params)
    return EncodePlan(spec.id, params)
