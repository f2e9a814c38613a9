"""Single-file conversion: validate, decode, resize, encode."""
import logging
import time
from pathlib import PurePath
from typing import Optional

from PIL import Image

from converter.config import MAX_DIMENSION, MAX_FILE_SIZE_MB
from converter.conversion import codec
from converter.conversion.encode import build_encode_plan
from converter.conversion.errors import ConversionError, DimensionTooLarge, FileTooLarge
from converter.conversion.formats import lookup, lookup_target
from converter.conversion.models import ConversionRequest, ConversionResult, FormatSpec
from converter.conversion.resize import plan_resize

logger = logging.getLogger("converter.service")

# PPM sources bypass the primary decoder and are always written as PNG
PPM_OUTPUT_FORMAT = "png"


def output_filename(source_name: str, extension: str) -> str:
    """`{base}.{ext}` with the original extension stripped once."""
    base = PurePath(source_name.replace("\\", "/")).stem if source_name else ""
    return f"{base or 'image'}.{extension}"


class ConversionService:
    """Converts one image per call. Holds no per-request state, so calls may run concurrently."""

    def __init__(self, max_file_size_mb: int = MAX_FILE_SIZE_MB, max_dimension: int = MAX_DIMENSION):
        self.max_file_size_mb = max_file_size_mb
        self.max_file_size = max_file_size_mb * 1024 * 1024
        self.max_dimension = max_dimension

    def validate(self, request: ConversionRequest) -> FormatSpec:
        """Checks that need no decoding: target format, payload size and requested dimensions."""
        spec = lookup_target(request.target_format, filename=request.source_name)
        if len(request.source_bytes) > self.max_file_size:
            raise FileTooLarge(request.source_name, self.max_file_size_mb)
        w, h = request.target_width or 0, request.target_height or 0
        if w > self.max_dimension or h > self.max_dimension:
            raise DimensionTooLarge(request.source_name, request.target_width, request.target_height, self.max_dimension)
        return spec

    def convert(self, request: ConversionRequest) -> ConversionResult:
        """Raises ConversionError subclasses; anything else is wrapped with stage "convert"."""
        try:
            return self._convert(request)
        except ConversionError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure converting %s: %s", request.source_name, e)
            raise ConversionError(str(e) or type(e).__name__, filename=request.source_name, stage="convert") from e

    def _convert(self, request: ConversionRequest) -> ConversionResult:
        spec = self.validate(request)
        name = request.source_name
        start = time.perf_counter()

        if codec.is_ppm(request.source_bytes, name):
            img = codec.decode_ppm(request.source_bytes, name)
            # Exact box, nearest neighbor, PNG out regardless of the requested format
            plan = plan_resize(
                request.target_width, request.target_height,
                keep_aspect_ratio=False, allow_upscale=True,
                source_width=img.width, source_height=img.height,
            )
            img = codec.resize(img, plan, Image.Resampling.NEAREST, filename=name)
            encode_plan = build_encode_plan(PPM_OUTPUT_FORMAT, request.quality, request.compression_level)
            if spec.id != PPM_OUTPUT_FORMAT:
                logger.info("PPM source %s: writing PNG instead of %s", name, spec.id)
        else:
            img, source_format = codec.decode(request.source_bytes, name)
            logger.debug("Decoded %s as %s (%sx%s)", name, source_format, img.width, img.height)
            plan = plan_resize(
                request.target_width, request.target_height,
                request.keep_aspect_ratio, request.allow_upscale,
                source_width=img.width, source_height=img.height,
            )
            img = codec.resize(img, plan, filename=name)
            encode_plan = build_encode_plan(spec.id, request.quality, request.compression_level)

        data = codec.encode(img, encode_plan, filename=name)
        out_spec = lookup(encode_plan.format)
        result = ConversionResult(
            data=data,
            mime_type=out_spec.mime_type,
            output_filename=output_filename(name, out_spec.file_extension),
            width=img.width,
            height=img.height,
        )
        logger.info(
            "Converted %s -> %s (%sx%s, %s, %.0f ms)",
            name, result.output_filename, img.width, img.height, plan.fit_mode.value,
            (time.perf_counter() - start) * 1000,
        )
        return result


# Singleton
_conversion_service: Optional[ConversionService] = None


def get_conversion_service() -> ConversionService:
    global _conversion_service
    if _conversion_service is None:
        _conversion_service = ConversionService()
    return _conversion_service
