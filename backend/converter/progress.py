"""
Typed batch progress events and the session-scoped channel that carries them.

The batch coordinator is the only writer. Publishing never blocks: each subscriber gets a bounded
queue and frames are dropped for subscribers that fall behind. Channels and queues belong to the
event loop that runs the coordinator and are not thread-safe.
"""
import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union

from converter.config import PROGRESS_QUEUE_SIZE
from converter.conversion.models import BatchStatus

logger = logging.getLogger("converter.progress")


@dataclass(frozen=True)
class Started:
    total: int
    progress: float = 0.0
    status = BatchStatus.CONVERTING

    def to_frame(self) -> dict:
        return {"progress": self.progress, "filename": "", "status": self.status.value, "total": self.total}


@dataclass(frozen=True)
class FileProgress:
    index: int
    filename: str
    progress: float
    status = BatchStatus.CONVERTING

    def to_frame(self) -> dict:
        return {"progress": round(self.progress, 2), "filename": self.filename, "status": self.status.value}


@dataclass(frozen=True)
class Zipping:
    filename: str
    progress: float
    status = BatchStatus.ZIPPING

    def to_frame(self) -> dict:
        return {"progress": round(self.progress, 2), "filename": self.filename, "status": self.status.value}


@dataclass(frozen=True)
class Completed:
    filename: str = ""
    progress: float = 100.0
    status = BatchStatus.DONE

    def to_frame(self) -> dict:
        return {"progress": self.progress, "filename": self.filename, "status": self.status.value}


@dataclass(frozen=True)
class Failed:
    reason: str
    filename: Optional[str] = None
    stage: str = "validation"
    progress: float = 0.0
    status = BatchStatus.FAILED

    def to_frame(self) -> dict:
        return {
            "progress": round(self.progress, 2),
            "filename": self.filename or "",
            "status": self.status.value,
            "error": self.reason,
            "stage": self.stage,
        }


ProgressEvent = Union[Started, FileProgress, Zipping, Completed, Failed]

_CLOSED = None


class ProgressChannel:
    """One-way broadcast for one session. Late subscribers first receive the latest event."""

    def __init__(self, session_id: str, maxsize: int = PROGRESS_QUEUE_SIZE):
        self.session_id = session_id
        self.maxsize = maxsize
        self.closed = False
        self.last_event: Optional[ProgressEvent] = None
        self._subscribers: list[asyncio.Queue] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        if self.last_event is not None:
            q.put_nowait(self.last_event)
        if self.closed:
            _put_closed(q)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        try:
            self._subscribers.remove(q)
        except ValueError:
            pass

    def publish(self, event: ProgressEvent) -> None:
        if self.closed:
            logger.debug("Dropping %s for closed session %s", type(event).__name__, self.session_id)
            return
        self.last_event = event
        for q in self._subscribers:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Subscriber of session %s is behind, dropping frame", self.session_id)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for q in self._subscribers:
            _put_closed(q)

    async def events(
        self, q: Optional[asyncio.Queue] = None, idle_timeout: Optional[float] = None
    ) -> AsyncIterator[ProgressEvent]:
        """
        Iterate events until the channel closes. Pass a queue from subscribe() to avoid missing early events.
        idle_timeout ends the iteration if nothing has been published by then; it no longer applies once
        the batch has started.
        """
        if q is None:
            q = self.subscribe()
        try:
            while True:
                if idle_timeout is not None and self.last_event is None and q.empty():
                    try:
                        event = await asyncio.wait_for(q.get(), idle_timeout)
                    except asyncio.TimeoutError:
                        logger.info("No batch started for session %s within %ss", self.session_id, idle_timeout)
                        return
                else:
                    event = await q.get()
                if event is _CLOSED:
                    return
                yield event
        finally:
            self.unsubscribe(q)


def _put_closed(q: asyncio.Queue) -> None:
    # The end marker must get through even when the queue is full
    while True:
        try:
            q.put_nowait(_CLOSED)
            return
        except asyncio.QueueFull:
            q.get_nowait()


class ProgressHub:
    """session_id -> ProgressChannel. Subscribers may connect before the batch starts."""

    def __init__(self, maxsize: int = PROGRESS_QUEUE_SIZE):
        self.maxsize = maxsize
        self._channels: dict[str, ProgressChannel] = {}

    def channel(self, session_id: str) -> ProgressChannel:
        """Get or create the open channel for a session."""
        ch = self._channels.get(session_id)
        if ch is None or ch.closed:
            ch = ProgressChannel(session_id, self.maxsize)
            self._channels[session_id] = ch
        return ch

    def get(self, session_id: str) -> Optional[ProgressChannel]:
        return self._channels.get(session_id)

    def release(self, session_id: str, channel: ProgressChannel) -> None:
        """Drop a channel once it is closed or nobody is listening."""
        if self._channels.get(session_id) is not channel:
            return
        if channel.closed or (channel.subscriber_count == 0 and channel.last_event is None):
            del self._channels[session_id]

    def __len__(self) -> int:
        return len(self._channels)


_NUMBER_AFTER_PROGRESS = re.compile(r"progress\W*?(-?\d+(?:\.\d+)?)", re.I)
_ANY_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def parse_progress_frame(text: str) -> Optional[float]:
    """
    Best-effort progress value from a frame, clamped to 0-100.
    Accepts well-formed JSON frames and also loose text such as
    '{"progress": 10.00% - Files uploading started}'. Returns None when no number is found.
    """
    value: Optional[float] = None
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        data = None
    if isinstance(data, dict) and isinstance(data.get("progress"), (int, float)) and not isinstance(
        data.get("progress"), bool
    ):
        value = float(data["progress"])
    elif isinstance(data, (int, float)) and not isinstance(data, bool):
        value = float(data)
    else:
        m = _NUMBER_AFTER_PROGRESS.search(text or "") or _ANY_NUMBER.search(text or "")
        if m:
            value = float(m.group(1) if m.re is _NUMBER_AFTER_PROGRESS else m.group(0))
    if value is None:
        return None
    return max(0.0, min(100.0, value))


def encode_frame(event: ProgressEvent) -> str:
    return json.dumps(event.to_frame())


# Singleton
_progress_hub: Optional[ProgressHub] = None


def get_progress_hub() -> ProgressHub:
    global _progress_hub
    if _progress_hub is None:
        _progress_hub = ProgressHub()
    return _progress_hub
