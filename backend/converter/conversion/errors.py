"""Conversion failures, tagged with the stage that failed and the file involved."""
from typing import Optional


class ConversionError(Exception):
    """Base class. stage: validation | decode | resize | encode | archive | convert | cancelled."""

    stage = "validation"

    def __init__(self, message: str, filename: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.filename = filename
        if stage is not None:
            self.stage = stage

    def to_dict(self) -> dict:
        return {"error": self.message, "stage": self.stage, "filename": self.filename}


class UnsupportedFormat(ConversionError):
    def __init__(self, format_id: str, filename: Optional[str] = None):
        super().__init__(f"Unsupported format: {format_id}", filename=filename)
        self.format_id = format_id


class FileTooLarge(ConversionError):
    def __init__(self, filename: str, limit_mb: int):
        super().__init__(f"File {filename} exceeds the {limit_mb} MB size limit.", filename=filename)
        self.limit_mb = limit_mb


class DimensionTooLarge(ConversionError):
    def __init__(self, filename: str, width: Optional[int], height: Optional[int], limit: int):
        super().__init__(
            f"Requested size {width or '-'}x{height or '-'} for {filename} exceeds the {limit}px limit.",
            filename=filename,
        )
        self.limit = limit


class TooManyFiles(ConversionError):
    def __init__(self, count: int, limit: int):
        super().__init__(f"Maximum {limit} files allowed. You uploaded {count} files.")
        self.count = count
        self.limit = limit


class DecodeError(ConversionError):
    stage = "decode"


class ResizeError(ConversionError):
    stage = "resize"


class EncodeError(ConversionError):
    stage = "encode"


class ArchiveError(ConversionError):
    stage = "archive"


class Cancelled(ConversionError):
    stage = "cancelled"

    def __init__(self, session_id: str):
        super().__init__(f"Conversion cancelled for session {session_id}")
        self.session_id = session_id


class BatchConversionError(ConversionError):
    """One file failed and the whole batch was aborted. stage is taken from the cause."""

    def __init__(self, filename: str, cause: ConversionError):
        super().__init__(
            f"Batch aborted: {filename} failed during {cause.stage}: {cause.message}",
            filename=filename,
            stage=cause.stage,
        )
        self.cause = cause
