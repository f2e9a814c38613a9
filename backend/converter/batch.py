"""
Batch conversion: runs the single-file service over each request in order, reports progress on the
session's channel and zips the results.

Session lifecycle: pending -> converting -> zipping -> done, or failed from any state. A batch is
all-or-nothing: any file failure, validation error or cancellation ends in failed and no archive.
"""
import asyncio
import logging
from typing import Callable, Optional, Sequence

from converter.archive import ZipArchive
from converter.cancellation import CancellationToken
from converter.config import MAX_FILES
from converter.conversion.errors import BatchConversionError, ConversionError, TooManyFiles
from converter.conversion.models import BatchSession, BatchStatus, ConversionRequest, ConversionResult
from converter.conversion.service import ConversionService, get_conversion_service
from converter.progress import (
    Completed,
    Failed,
    FileProgress,
    ProgressHub,
    Started,
    Zipping,
    get_progress_hub,
)

logger = logging.getLogger("converter.batch")

# Share of the progress range used by conversion; the rest is archiving
CONVERT_SHARE = 90.0
ZIP_SHARE = 9.0


class BatchCoordinator:
    def __init__(
        self,
        service: Optional[ConversionService] = None,
        hub: Optional[ProgressHub] = None,
        max_files: int = MAX_FILES,
        archive_factory: Callable[[], ZipArchive] = ZipArchive,
    ):
        self.service = service or get_conversion_service()
        self.hub = hub or get_progress_hub()
        self.max_files = max_files
        self.archive_factory = archive_factory
        self._sessions: dict[str, BatchSession] = {}
        self._tokens: dict[str, CancellationToken] = {}

    def get_session(self, session_id: str) -> Optional[BatchSession]:
        return self._sessions.get(session_id)

    def cancel(self, session_id: str, source: str = "api") -> bool:
        """Request cancellation of a running batch. False if none is running for the session."""
        token = self._tokens.get(session_id)
        if token is None:
            return False
        if token.cancel(source):
            logger.info("Cancellation requested for session %s via %s", session_id, source)
        return True

    def check_file_count(self, session_id: str, count: int) -> None:
        """Enforce the per-batch file limit before uploads are read. A waiting progress client is told about the failure."""
        if count <= self.max_files:
            return
        error = TooManyFiles(count, self.max_files)
        channel = self.hub.get(session_id)
        if channel is not None and session_id not in self._sessions:
            channel.publish(Failed(error.message, stage=error.stage))
            channel.close()
            self.hub.release(session_id, channel)
        logger.warning("Session %s rejected: %s", session_id, error.message)
        raise error

    def validate(self, requests: Sequence[ConversionRequest]) -> None:
        """File count, target formats and sizes. Runs before anything is decoded."""
        if not requests:
            raise ConversionError("No files uploaded")
        if len(requests) > self.max_files:
            raise TooManyFiles(len(requests), self.max_files)
        for request in requests:
            self.service.validate(request)

    async def convert_batch(
        self,
        session_id: str,
        requests: Sequence[ConversionRequest],
        cancel_token: Optional[CancellationToken] = None,
    ) -> bytes:
        """Convert all requests and return the zip bytes. Raises ConversionError subclasses on failure."""
        if session_id in self._sessions:
            raise ConversionError(f"A batch is already running for session {session_id}")
        session = BatchSession(session_id=session_id, files=list(requests))
        token = cancel_token or CancellationToken()
        self._sessions[session_id] = session
        self._tokens[session_id] = token
        channel = self.hub.channel(session_id)
        progress = 0.0
        try:
            self.validate(session.files)
            session.status = BatchStatus.CONVERTING
            channel.publish(Started(total=session.total))
            logger.info("Batch %s: converting %s files", session_id, session.total)

            results: list[ConversionResult] = []
            for index, request in enumerate(session.files):
                token.raise_if_cancelled(session_id)
                results.append(await self._convert_one(request))
                session.completed += 1
                progress = min(CONVERT_SHARE, session.completed / session.total * CONVERT_SHARE)
                channel.publish(FileProgress(index, results[-1].output_filename, progress))
                logger.info(
                    "Batch %s: [%s/%s] %s (%.2f%%)",
                    session_id, session.completed, session.total, results[-1].output_filename, progress,
                )
            token.raise_if_cancelled(session_id)

            session.status = BatchStatus.ZIPPING
            archive = self.archive_factory()
            for i, result in enumerate(results):
                arcname = archive.add_entry(result.output_filename, result.data)
                progress = CONVERT_SHARE + (i + 1) / len(results) * ZIP_SHARE
                channel.publish(Zipping(arcname, progress))
            data = archive.finalize()

            session.status = BatchStatus.DONE
            channel.publish(Completed())
            logger.info("Batch %s done (%s files, %s bytes)", session_id, session.total, len(data))
            return data
        except ConversionError as e:
            session.status = BatchStatus.FAILED
            session.error = e.message
            channel.publish(Failed(e.message, filename=e.filename, stage=e.stage, progress=progress))
            logger.warning("Batch %s failed: %s", session_id, e.message)
            raise
        finally:
            channel.close()
            self.hub.release(session_id, channel)
            self._sessions.pop(session_id, None)
            self._tokens.pop(session_id, None)

    async def _convert_one(self, request: ConversionRequest) -> ConversionResult:
        try:
            return await asyncio.to_thread(self.service.convert, request)
        except ConversionError as e:
            raise BatchConversionError(request.source_name, e) from e


# Singleton
_batch_coordinator: Optional[BatchCoordinator] = None


def get_batch_coordinator() -> BatchCoordinator:
    global _batch_coordinator
    if _batch_coordinator is None:
        _batch_coordinator = BatchCoordinator()
    return _batch_coordinator
