from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import orjson
import pytest
import pytest_asyncio
import websockets

from sqlstream.application.session import QuerySession
from sqlstream.common.exceptions import ConnectError
from sqlstream.config.settings import StreamSettings
from sqlstream.core.stream.events import CompleteEvent, MetadataEvent, RowEvent
from tests.factory_builders import build_websocket_settings


class _FakeQueryEngine:
    """query 마다 metadata → data* → complete 를 돌려주는 최소 서버"""

    def __init__(self, rows: int = 3) -> None:
        self.rows = rows
        self.received: list[dict[str, Any]] = []

    async def handler(self, websocket: Any) -> None:
        async for raw in websocket:
            message = orjson.loads(raw)
            self.received.append(message)
            stream_id = message.get("streamId")
            match message.get("type"):
                case "query":
                    await websocket.send(
                        orjson.dumps(
                            {"type": "metadata", "streamId": stream_id, "data": {"columns": ["n"]}}
                        ).decode()
                    )
                    for n in range(self.rows):
                        await websocket.send(
                            orjson.dumps({"type": "data", "streamId": stream_id, "data": [n]}).decode()
                        )
                    await websocket.send(
                        orjson.dumps(
                            {
                                "type": "complete",
                                "streamId": stream_id,
                                "data": {"rows": self.rows, "status": "completed"},
                            }
                        ).decode()
                    )
                case "cancelQuery":
                    await websocket.send(
                        orjson.dumps(
                            {
                                "type": "complete",
                                "streamId": stream_id,
                                "data": {"rows": 0, "status": "cancelled"},
                            }
                        ).decode()
                    )
                case _:
                    await websocket.send(
                        orjson.dumps({"type": "error", "error": "Invalid message format"}).decode()
                    )


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[tuple[_FakeQueryEngine, str]]:
    fake = _FakeQueryEngine()
    server = await websockets.serve(fake.handler, "127.0.0.1", 0)
    port = next(iter(server.sockets)).getsockname()[1]
    try:
        yield fake, f"ws://127.0.0.1:{port}/ws"
    finally:
        server.close()
        await server.wait_closed()


def _session(url: str) -> QuerySession:
    return QuerySession.create(
        url,
        settings=build_websocket_settings(handshake_timeout=2.0),
        stream_config=StreamSettings(buffer_size=8),
    )


@pytest.mark.asyncio
async def test_query_round_trip_over_real_websocket(engine: tuple[_FakeQueryEngine, str]) -> None:
    fake, url = engine

    async with _session(url) as session:
        stream = await session.open_query("SELECT n FROM numbers", "E1")
        events = [event async for event in stream]

    assert events == [
        MetadataEvent(columns=["n"]),
        RowEvent(row=[0]),
        RowEvent(row=[1]),
        RowEvent(row=[2]),
        CompleteEvent(rows=3, status="completed"),
    ]
    assert fake.received == [{"type": "query", "query": "SELECT n FROM numbers", "streamId": "E1"}]


@pytest.mark.asyncio
async def test_concurrent_streams_share_one_connection(engine: tuple[_FakeQueryEngine, str]) -> None:
    _, url = engine

    async with _session(url) as session:
        streams = [await session.open_query(f"SELECT {i}") for i in range(3)]
        results = await asyncio.gather(*(stream.collect() for stream in streams))

    assert [r.reported_rows for r in results] == [3, 3, 3]
    assert all(r.rows == [[0], [1], [2]] for r in results)


@pytest.mark.asyncio
async def test_connection_level_error_goes_to_global_subscribers(
    engine: tuple[_FakeQueryEngine, str],
) -> None:
    _, url = engine
    errors: list[Any] = []

    async with _session(url) as session:
        session.on_message_type("error", lambda frame: errors.append(frame.error))
        await session.manager.send('{"type": "ping"}')
        for _ in range(100):
            if errors:
                break
            await asyncio.sleep(0.01)

    assert errors == ["Invalid message format"]


@pytest.mark.asyncio
async def test_connect_to_closed_port_fails_fast() -> None:
    session = _session("ws://127.0.0.1:9/ws")

    with pytest.raises(ConnectError):
        await session.connect()
