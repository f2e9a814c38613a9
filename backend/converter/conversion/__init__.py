from .service import ConversionService, get_conversion_service
from .models import BatchStatus, ConversionRequest, ConversionResult, FitMode

__all__ = [
    "ConversionService",
    "get_conversion_service",
    "BatchStatus",
    "ConversionRequest",
    "ConversionResult",
    "FitMode",
]
