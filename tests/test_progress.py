"""Tests for progress events and channels."""

import asyncio
import json

import pytest

from converter.progress import (
    Completed,
    Failed,
    FileProgress,
    ProgressChannel,
    ProgressHub,
    Started,
    Zipping,
    encode_frame,
    parse_progress_frame,
)


class TestFrames:
    def test_file_progress_frame(self) -> None:
        frame = json.loads(encode_frame(FileProgress(0, "a.webp", 30.0)))
        assert frame == {"progress": 30.0, "filename": "a.webp", "status": "converting"}

    def test_status_per_event(self) -> None:
        assert Started(total=2).to_frame()["status"] == "converting"
        assert Zipping("a.webp", 95.0).to_frame()["status"] == "zipping"
        assert Completed().to_frame() == {"progress": 100.0, "filename": "", "status": "done"}

    def test_failed_frame(self) -> None:
        frame = Failed("boom", filename="b.png", stage="decode", progress=45.0).to_frame()
        assert frame["status"] == "failed"
        assert frame["error"] == "boom"
        assert frame["filename"] == "b.png"
        assert frame["stage"] == "decode"


class TestParseProgressFrame:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ('{"progress": 45.5, "filename": "a.png", "status": "converting"}', 45.5),
            ('{"progress": 10.00% - Files uploading started}', 10.0),
            ('{"progress": 25.00% - Files Validated}', 25.0),
            ('{"progress": 150}', 100.0),
            ("42", 42.0),
            ("progress=77.5", 77.5),
            ("no numbers here", None),
            ("", None),
            ('{"progress": "soon"}', None),
        ],
    )
    def test_best_effort(self, text, expected) -> None:
        assert parse_progress_frame(text) == expected


class TestProgressChannel:
    @pytest.mark.asyncio
    async def test_publish_and_close(self) -> None:
        channel = ProgressChannel("s")

        async def consume():
            return [e async for e in channel.events()]

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)
        channel.publish(Started(total=1))
        channel.publish(FileProgress(0, "a.png", 90.0))
        channel.publish(Completed())
        channel.close()

        events = await asyncio.wait_for(consumer, timeout=1)
        assert [type(e) for e in events] == [Started, FileProgress, Completed]
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_latest(self) -> None:
        channel = ProgressChannel("s")
        channel.publish(Started(total=2))
        channel.publish(FileProgress(0, "a.png", 45.0))

        q = channel.subscribe()
        assert q.get_nowait() == FileProgress(0, "a.png", 45.0)

    @pytest.mark.asyncio
    async def test_subscribe_after_close(self) -> None:
        channel = ProgressChannel("s")
        channel.publish(Completed())
        channel.close()

        events = [e async for e in channel.events()]
        assert events == [Completed()]

    @pytest.mark.asyncio
    async def test_slow_subscriber_does_not_block(self) -> None:
        channel = ProgressChannel("s", maxsize=2)
        q = channel.subscribe()
        for i in range(10):
            channel.publish(FileProgress(i, f"{i}.png", float(i)))
        channel.close()

        items = []
        while not q.empty():
            items.append(q.get_nowait())
        assert items[-1] is None
        assert len(items) == 2

    def test_publish_after_close_is_ignored(self) -> None:
        channel = ProgressChannel("s")
        channel.close()
        channel.publish(Started(total=1))
        assert channel.last_event is None


class TestProgressHub:
    def test_get_or_create(self) -> None:
        hub = ProgressHub()
        assert hub.channel("a") is hub.channel("a")
        assert hub.get("b") is None

    def test_closed_channel_is_replaced(self) -> None:
        hub = ProgressHub()
        first = hub.channel("a")
        first.close()
        assert hub.channel("a") is not first

    def test_release(self) -> None:
        hub = ProgressHub()
        ch = hub.channel("a")
        ch.publish(Started(total=1))
        hub.release("a", ch)
        assert hub.get("a") is ch

        ch.close()
        hub.release("a", ch)
        assert hub.get("a") is None

    def test_release_idle_channel(self) -> None:
        hub = ProgressHub()
        ch = hub.channel("a")
        hub.release("a", ch)
        assert len(hub) == 0


class TestIdleTimeout:
    @pytest.mark.asyncio
    async def test_stream_ends_when_no_batch_starts(self) -> None:
        channel = ProgressChannel("s")
        events = [e async for e in channel.events(idle_timeout=0.01)]
        assert events == []
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_timeout_does_not_apply_after_start(self) -> None:
        channel = ProgressChannel("s")
        channel.publish(Started(total=1))

        async def consume():
            return [e async for e in channel.events(idle_timeout=0.01)]

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        assert not consumer.done()
        channel.publish(Completed())
        channel.close()

        events = await asyncio.wait_for(consumer, timeout=1)
        assert [type(e) for e in events] == [Started, Completed]
