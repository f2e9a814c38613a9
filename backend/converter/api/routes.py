"""API routes for single and batch conversion plus the progress websocket."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import Response

from converter.batch import BatchCoordinator, get_batch_coordinator
from converter.config import (
    ALLOWED_FORMATS,
    MAX_DIMENSION,
    MAX_FILE_SIZE_BYTES,
    MAX_FILE_SIZE_MB,
    MAX_FILES,
    PROGRESS_IDLE_TIMEOUT,
)
from converter.conversion.encode import parse_int
from converter.conversion.errors import BatchConversionError, ConversionError, FileTooLarge
from converter.conversion.formats import FORMATS, output_formats
from converter.conversion.models import ConversionRequest
from converter.conversion.service import ConversionService, get_conversion_service
from converter.progress import ProgressHub, encode_frame, get_progress_hub

logger = logging.getLogger("converter.api")
router = APIRouter(prefix="/api", tags=["converter"])

_STAGE_STATUS = {
    "validation": 400,
    "decode": 422,
    "cancelled": 409,
}

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def _form_flag(raw: Optional[str], default: bool) -> bool:
    value = (raw or "").strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return default


def _parse_resolution(raw: Optional[str]) -> tuple[Optional[int], Optional[int]]:
    """'width,height' -> (width, height); anything else -> (None, None)."""
    parts = (raw or "").split(",")
    if len(parts) != 2:
        return None, None
    return parse_int(parts[0]), parse_int(parts[1])


@dataclass
class ConversionForm:
    format: str
    quality: Optional[str] = None
    compression: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    keep_aspect_ratio: bool = True
    upscale: bool = True

    def to_request(self, data: bytes, filename: Optional[str]) -> ConversionRequest:
        return ConversionRequest(
            source_bytes=data,
            source_name=filename or "image",
            target_format=self.format,
            quality=self.quality,
            compression_level=self.compression,
            target_width=self.width,
            target_height=self.height,
            keep_aspect_ratio=self.keep_aspect_ratio,
            allow_upscale=self.upscale,
        )


def conversion_form(
    format: str = Form(..., description="Target format: jpg, png, webp, avif, bmp"),
    quality: Optional[str] = Form(None, description="0-100, default 80"),
    compression: Optional[str] = Form(None, description="1-3"),
    width: Optional[str] = Form(None),
    height: Optional[str] = Form(None),
    resolution: Optional[str] = Form(None, description="'width,height', used when width/height are absent"),
    keep_aspect_ratio: Optional[str] = Form(None),
    keepAspectRatio: Optional[str] = Form(None),
    upscale: Optional[str] = Form(None, description="'false' forbids enlarging"),
) -> ConversionForm:
    """Form fields shared by /convert and /convert-batch."""
    w, h = parse_int(width), parse_int(height)
    if w is None and h is None:
        w, h = _parse_resolution(resolution)
    keep_raw = keep_aspect_ratio if keep_aspect_ratio is not None else keepAspectRatio
    return ConversionForm(
        format=format.strip(),
        quality=quality,
        compression=compression,
        width=w,
        height=h,
        keep_aspect_ratio=_form_flag(keep_raw, True),
        upscale=_form_flag(upscale, True),
    )


def _http_error(e: ConversionError) -> HTTPException:
    inner = e.cause if isinstance(e, BatchConversionError) else e
    if isinstance(inner, FileTooLarge):
        status = 413
    else:
        status = _STAGE_STATUS.get(e.stage, 500)
    return HTTPException(status, detail=e.to_dict())


def _content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "").replace("?", "_")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


async def _read_upload(file: UploadFile, max_bytes: int = MAX_FILE_SIZE_BYTES) -> bytes:
    """Read an upload, stopping one chunk past max_bytes so oversize files fail validation without being buffered whole."""
    chunks = []
    total = 0
    while chunk := await file.read(1024 * 1024):
        chunks.append(chunk)
        total += len(chunk)
        if total > max_bytes:
            break
    return b"".join(chunks)


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/formats")
def get_formats():
    return {
        "output": output_formats(),
        "input": sorted(set(FORMATS) | {"jpeg", "tiff"}),
        "formats": {
            f: {
                "mime_type": FORMATS[f].mime_type,
                "uses_quality": FORMATS[f].uses_quality,
                "uses_compression": FORMATS[f].uses_compression,
            }
            for f in ALLOWED_FORMATS
            if f in FORMATS
        },
    }


@router.get("/limits")
def get_limits():
    """Return upload limits for the client."""
    return {
        "max_files": MAX_FILES,
        "max_file_size_mb": MAX_FILE_SIZE_MB,
        "max_file_size_bytes": MAX_FILE_SIZE_BYTES,
        "max_dimension": MAX_DIMENSION,
    }


@router.post("/convert")
async def convert_file(
    file: UploadFile = File(...),
    settings: ConversionForm = Depends(conversion_form),
    svc: ConversionService = Depends(get_conversion_service),
):
    """Convert a single file and return it as an attachment."""
    data = await _read_upload(file, svc.max_file_size)
    request = settings.to_request(data, file.filename)
    try:
        result = await asyncio.to_thread(svc.convert, request)
    except ConversionError as e:
        logger.warning("Conversion of %s failed at %s: %s", file.filename, e.stage, e.message)
        raise _http_error(e)
    return Response(
        content=result.data,
        media_type=result.mime_type,
        headers={"Content-Disposition": _content_disposition(result.output_filename)},
    )


@router.post("/convert-batch")
async def convert_batch(
    session_id: str = Query(..., min_length=1),
    files: list[UploadFile] = File(..., alias="file"),
    settings: ConversionForm = Depends(conversion_form),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    """Convert up to MAX_FILES files and return a zip. Progress is streamed on /api/ws?session_id=..."""
    try:
        coordinator.check_file_count(session_id, len(files))
    except ConversionError as e:
        raise _http_error(e)
    requests = [
        settings.to_request(await _read_upload(f, coordinator.service.max_file_size), f.filename)
        for f in files
    ]
    try:
        data = await coordinator.convert_batch(session_id, requests)
    except ConversionError as e:
        raise _http_error(e)
    return Response(
        content=data,
        media_type="application/zip",
        headers={"Content-Disposition": _content_disposition("converted.zip")},
    )


@router.post("/cancel")
def cancel_conversion(
    session_id: str = Query(..., min_length=1),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    """Stop a running batch after the file currently being converted."""
    if not coordinator.cancel(session_id):
        raise HTTPException(404, "No running batch for this session")
    return {"ok": True, "message": "Conversion cancelled"}


async def _send_progress(websocket: WebSocket, channel, queue: asyncio.Queue) -> None:
    async for event in channel.events(queue, idle_timeout=PROGRESS_IDLE_TIMEOUT):
        await websocket.send_text(encode_frame(event))


async def _receive_commands(websocket: WebSocket, session_id: str, coordinator: BatchCoordinator) -> None:
    while True:
        text = await websocket.receive_text()
        if text.strip().lower() == "cancel":
            coordinator.cancel(session_id, source="websocket")


@router.websocket("/ws")
async def progress_ws(
    websocket: WebSocket,
    session_id: str = Query(..., min_length=1),
    hub: ProgressHub = Depends(get_progress_hub),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    """Stream progress frames for a session until its batch finishes. A 'cancel' message stops the batch."""
    channel = hub.channel(session_id)
    queue = channel.subscribe()
    await websocket.accept()
    logger.info("Progress client connected: %s", session_id)
    sender = asyncio.create_task(_send_progress(websocket, channel, queue))
    receiver = asyncio.create_task(_receive_commands(websocket, session_id, coordinator))
    try:
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Progress stream for %s ended with error: %s", session_id, exc)
        if sender in done and sender.exception() is None:
            try:
                await websocket.close()
            except RuntimeError:
                # client went away between the last frame and the close
                pass
    finally:
        channel.unsubscribe(queue)
        hub.release(session_id, channel)
        logger.info("Progress client disconnected: %s", session_id)
