from __future__ import annotations

import asyncio

import pytest

from sqlstream.common.exceptions import (
    ConnectError,
    ConnectTimeout,
    NotConnectedError,
    ReconnectExhausted,
)
from sqlstream.core.types import ConnectionState
from tests.factory_builders import (
    TEST_URL,
    FakeTransportFactory,
    RecordingSleep,
    build_manager,
    wait_until,
)


@pytest.mark.asyncio
async def test_connect_opens_single_transport_and_ensure_connected_reuses_it() -> None:
    factory = FakeTransportFactory()
    manager = build_manager(factory)

    await manager.connect()
    await manager.ensure_connected()
    await manager.connect()

    assert manager.state is ConnectionState.CONNECTED
    assert factory.calls == [TEST_URL]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_concurrent_connect_calls_share_one_handshake() -> None:
    factory = FakeTransportFactory()
    manager = build_manager(factory)

    await asyncio.gather(manager.connect(), manager.ensure_connected(), manager.connect())

    assert len(factory.calls) == 1
    assert manager.connected
    await manager.disconnect()


@pytest.mark.asyncio
async def test_handshake_timeout_raises_connect_timeout_without_retry() -> None:
    factory = FakeTransportFactory()
    factory.hang = True
    sleep = RecordingSleep()
    manager = build_manager(factory, sleep=sleep, handshake_timeout=0.01)

    with pytest.raises(ConnectTimeout):
        await manager.connect()

    assert manager.state is ConnectionState.DISCONNECTED
    assert sleep.delays == []
    assert len(factory.calls) == 1


@pytest.mark.asyncio
async def test_transport_failure_raises_connect_error_with_cause() -> None:
    factory = FakeTransportFactory([OSError("connection refused")])
    manager = build_manager(factory)

    with pytest.raises(ConnectError) as exc_info:
        await manager.connect()

    assert isinstance(exc_info.value.__cause__, OSError)
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.scheduler.waits == 0


@pytest.mark.asyncio
async def test_connect_after_failure_tries_again() -> None:
    factory = FakeTransportFactory([OSError("refused")])
    manager = build_manager(factory)

    with pytest.raises(ConnectError):
        await manager.connect()
    await manager.connect()

    assert manager.connected
    assert len(factory.calls) == 2
    await manager.disconnect()


@pytest.mark.asyncio
async def test_unclean_close_reconnects_with_counter_reset() -> None:
    factory = FakeTransportFactory([None, OSError("down"), OSError("still down"), None])
    sleep = RecordingSleep()
    manager = build_manager(factory, sleep=sleep)
    sleep.observer = lambda: manager.reconnect_attempts
    states: list[ConnectionState] = []
    manager.add_state_listener(states.append)

    await manager.connect()
    factory.latest.drop()
    await wait_until(lambda: len(factory.transports) == 2 and manager.connected)

    assert sleep.observed == [1, 2, 3]
    assert sleep.delays == [3.0, 3.0, 3.0]
    assert manager.reconnect_attempts == 0
    assert ConnectionState.RECONNECTING in states
    assert states[-1] is ConnectionState.CONNECTED
    await manager.disconnect()


@pytest.mark.asyncio
async def test_reconnect_exhaustion_requires_manual_connect() -> None:
    factory = FakeTransportFactory(
        [None, OSError("down"), OSError("down"), OSError("manual attempt fails")]
    )
    manager = build_manager(factory, max_reconnect_attempts=2, reconnect_interval=0.0)

    await manager.connect()
    factory.latest.drop()
    await wait_until(lambda: manager.exhausted)

    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.reconnect_attempts == 2
    assert len(factory.calls) == 3

    with pytest.raises(ReconnectExhausted) as exc_info:
        await manager.ensure_connected()
    assert exc_info.value.attempts == 2
    assert isinstance(exc_info.value.__cause__, ConnectError)

    await manager.ensure_connected()
    assert manager.connected
    assert not manager.exhausted
    assert manager.reconnect_attempts == 0
    await manager.disconnect()


@pytest.mark.asyncio
async def test_disconnect_after_exhaustion_restores_plain_connect_error() -> None:
    factory = FakeTransportFactory(
        [None, OSError("down"), OSError("down"), OSError("fresh attempt fails")]
    )
    manager = build_manager(factory, max_reconnect_attempts=2, reconnect_interval=0.0)

    await manager.connect()
    factory.latest.drop()
    await wait_until(lambda: manager.exhausted)

    await manager.disconnect()
    assert not manager.exhausted

    with pytest.raises(ConnectError) as exc_info:
        await manager.ensure_connected()
    assert not isinstance(exc_info.value, ReconnectExhausted)
    assert len(factory.calls) == 4


@pytest.mark.asyncio
async def test_reconnect_delay_log_is_cleared_once_link_recovers() -> None:
    factory = FakeTransportFactory([None, OSError("down"), None])
    manager = build_manager(factory, reconnect_interval=0.5)

    await manager.connect()
    factory.latest.drop()
    await wait_until(lambda: len(factory.transports) == 2 and manager.connected)

    assert manager.scheduler.waits == 2
    assert manager.scheduler.delays == []

    factory.latest.drop()
    await wait_until(lambda: len(factory.transports) == 3 and manager.connected)

    assert manager.scheduler.waits == 3
    assert manager.scheduler.delays == []
    await manager.disconnect()


@pytest.mark.asyncio
async def test_clean_server_close_does_not_reconnect() -> None:
    factory = FakeTransportFactory()
    lost: list[str] = []
    manager = build_manager(factory)
    manager.set_connection_lost_callback(lost.append)

    await manager.connect()
    factory.latest.finish()
    await wait_until(lambda: manager.state is ConnectionState.DISCONNECTED)

    assert manager.scheduler.waits == 0
    assert len(factory.calls) == 1
    assert len(lost) == 1


@pytest.mark.asyncio
async def test_disconnect_closes_with_normal_code_and_never_reconnects() -> None:
    factory = FakeTransportFactory()
    lost: list[str] = []
    manager = build_manager(factory)
    manager.set_connection_lost_callback(lost.append)

    await manager.connect()
    transport = factory.latest
    await manager.disconnect()
    await asyncio.sleep(0)

    assert transport.closed
    assert transport.close_code == 1000
    assert transport.close_reason == "Client disconnecting"
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.scheduler.waits == 0
    assert lost == ["disconnect"]


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_reconnect_wait() -> None:
    factory = FakeTransportFactory()
    manager = build_manager(factory, sleep=asyncio.sleep)

    await manager.connect()
    factory.latest.drop()
    await wait_until(lambda: manager.scheduler.pending)

    await manager.disconnect()

    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.scheduler.pending
    assert len(factory.calls) == 1


@pytest.mark.asyncio
async def test_send_without_connection_raises_not_connected() -> None:
    manager = build_manager()

    with pytest.raises(NotConnectedError):
        await manager.send('{"type":"query"}')


@pytest.mark.asyncio
async def test_frames_are_delivered_in_arrival_order() -> None:
    factory = FakeTransportFactory()
    received: list[str | bytes] = []
    manager = build_manager(factory)
    manager.set_frame_callback(received.append)

    await manager.connect()
    for index in range(5):
        factory.latest.push(f'{{"n": {index}}}')
    await wait_until(lambda: len(received) == 5)

    assert received == [f'{{"n": {index}}}' for index in range(5)]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_failing_frame_callback_keeps_connection_alive() -> None:
    factory = FakeTransportFactory()
    received: list[str | bytes] = []
    manager = build_manager(factory)

    def _callback(raw: str | bytes) -> None:
        if raw == "boom":
            raise RuntimeError("callback bug")
        received.append(raw)

    manager.set_frame_callback(_callback)

    await manager.connect()
    factory.latest.push("boom")
    factory.latest.push("ok")
    await wait_until(lambda: received == ["ok"])

    assert manager.connected
    await manager.disconnect()


@pytest.mark.asyncio
async def test_changing_url_while_connected_is_rejected() -> None:
    manager = build_manager()
    await manager.connect()

    with pytest.raises(ConnectError):
        await manager.connect("ws://other.invalid/ws")

    await manager.disconnect()
