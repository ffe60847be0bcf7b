import asyncio
import json

import pytest

from agent.events import DoneEvent, MetaEvent, TextEvent, ToolCallEvent, ToolResultEvent
from agent.stream_writer import EventChannel, StreamWriter
from llm.base import ToolCallRequest, ToolCallResult


async def _collect(channel):
    return [(r["event"], json.loads(r["data"])) async for r in channel]


async def test_indices_are_contiguous_and_done_is_last():
    channel = EventChannel()
    writer = StreamWriter(channel)

    await writer.emit(MetaEvent(7))
    await writer.emit(TextEvent("Hel"))
    await writer.emit(TextEvent("lo"))
    await writer.finish()

    records = await _collect(channel)
    assert [label for label, _ in records] == ["meta", "text", "text", "done"]
    assert [data["index"] for _, data in records] == [0, 1, 2, 3]
    assert records[0][1]["chatId"] == 7
    assert records[1][1]["chunk"] == "Hel"


async def test_record_ids_mirror_the_index():
    channel = EventChannel()
    writer = StreamWriter(channel)
    await writer.emit(TextEvent("a"))
    await writer.finish()

    ids = [r["id"] async for r in channel]
    assert ids == ["0", "1"]


async def test_fail_writes_error_then_done():
    channel = EventChannel()
    writer = StreamWriter(channel)
    await writer.emit(TextEvent("partial"))
    await writer.fail("upstream exploded")

    records = await _collect(channel)
    assert [label for label, _ in records] == ["text", "error", "done"]
    assert records[1][1]["message"] == "upstream exploded"


async def test_done_is_written_once():
    channel = EventChannel()
    writer = StreamWriter(channel)

    assert await writer.finish() is True
    assert await writer.finish() is False
    assert await writer.emit(DoneEvent()) is False
    assert await writer.emit(TextEvent("late")) is False

    records = await _collect(channel)
    assert [label for label, _ in records] == ["done"]


async def test_emit_done_routes_through_finish():
    channel = EventChannel()
    writer = StreamWriter(channel)
    await writer.emit(DoneEvent())

    assert writer.finished
    assert channel.closed
    assert [label for label, _ in await _collect(channel)] == ["done"]


async def test_emits_after_transport_close_are_dropped():
    channel = EventChannel()
    writer = StreamWriter(channel)
    await writer.emit(TextEvent("seen"))

    writer.close_transport()

    assert await writer.emit(TextEvent("unseen")) is False
    assert await writer.fail("nobody listening") is False
    assert channel.pending() == 1
    assert writer.emitted == 1


async def test_tool_records_carry_call_ids():
    channel = EventChannel()
    writer = StreamWriter(channel)
    call = ToolCallRequest(call_id="call_1", tool_name="getDocument", input={"id": 3})
    result = ToolCallResult(call_id="call_1", tool_name="getDocument", output={"id": 3, "title": "Notes"})

    await writer.emit(ToolCallEvent(call))
    await writer.emit(ToolResultEvent(result))
    await writer.finish()

    records = await _collect(channel)
    assert records[0] == ("tool-call", {
        "chunk": {"toolCallId": "call_1", "toolName": "getDocument", "input": {"id": 3}},
        "index": 0,
    })
    assert records[1][1]["chunk"]["output"] == {"id": 3, "title": "Notes"}
    assert records[1][1]["chunk"]["toolCallId"] == "call_1"


async def test_writer_waits_for_a_slow_consumer():
    channel = EventChannel(maxsize=1)
    writer = StreamWriter(channel)
    await writer.emit(TextEvent("first"))

    pending = asyncio.create_task(writer.emit(TextEvent("second")))
    await asyncio.sleep(0.01)
    assert not pending.done()

    first = await channel.__anext__()
    assert json.loads(first["data"])["chunk"] == "first"
    assert await asyncio.wait_for(pending, timeout=1) is True


async def test_cancelled_send_gives_its_index_back():
    channel = EventChannel(maxsize=1)
    writer = StreamWriter(channel)
    await writer.emit(TextEvent("queued"))

    blocked = asyncio.create_task(writer.emit(TextEvent("dropped")))
    await asyncio.sleep(0.01)
    blocked.cancel()
    with pytest.raises(asyncio.CancelledError):
        await blocked
    assert writer.emitted == 1

    consumer = asyncio.create_task(_collect(channel))
    await writer.fail("timed out")
    records = await consumer

    assert [label for label, _ in records] == ["text", "error", "done"]
    assert [data["index"] for _, data in records] == [0, 1, 2]
