"""Conversion request/response models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class BatchStatus(str, Enum):
    PENDING = "pending"
    CONVERTING = "converting"
    ZIPPING = "zipping"
    DONE = "done"
    FAILED = "failed"


class FitMode(str, Enum):
    EXACT = "exact"
    CONTAIN_NO_UPSCALE = "contain_no_upscale"
    CONTAIN_ALLOW_UPSCALE = "contain_allow_upscale"
    FILL = "fill"


@dataclass(frozen=True)
class FormatSpec:
    id: str
    uses_quality: bool
    uses_compression: bool
    mime_type: str
    file_extension: str
    output: bool = True  # False for source-only formats


@dataclass
class ConversionRequest:
    """One file to convert. quality/compression_level are raw client values, parsed by the encode plan."""

    source_bytes: bytes
    source_name: str
    target_format: str
    quality: Optional[str] = None
    compression_level: Optional[str] = None
    target_width: Optional[int] = None
    target_height: Optional[int] = None
    keep_aspect_ratio: bool = True
    allow_upscale: bool = True


@dataclass(frozen=True)
class ResizePlan:
    width: int
    height: int
    fit_mode: FitMode
    source_width: int
    source_height: int

    @property
    def is_identity(self) -> bool:
        return (self.width, self.height) == (self.source_width, self.source_height)


@dataclass
class ConversionResult:
    data: bytes
    mime_type: str
    output_filename: str
    width: int
    height: int


@dataclass
class BatchSession:
    """In-memory state of one batch; dropped once the batch reaches a terminal state."""

    session_id: str
    files: list[ConversionRequest] = field(default_factory=list)
    completed: int = 0
    status: BatchStatus = BatchStatus.PENDING
    error: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.files)
