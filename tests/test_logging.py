from __future__ import annotations

import logging

import pytest

from sqlstream.common.logger import ComponentLogger
from sqlstream.core.stream.registry import StreamRegistry
from sqlstream.core.stream.router import MessageRouter


def test_logger_name_includes_component() -> None:
    log = ComponentLogger.get_logger("unit", "stream")
    try:
        assert log.logger_name == "sqlstream.stream.unit"
    finally:
        log.close()


def test_reserved_extra_keys_are_prefixed(caplog: pytest.LogCaptureFixture) -> None:
    log = ComponentLogger.get_logger("unit_extra", "stream")
    try:
        with caplog.at_level(logging.INFO, logger="sqlstream.stream.unit_extra"):
            log.info("hello", name="shadow", stream_id="Q1")

        record = caplog.records[-1]
        assert record.getMessage() == "hello"
        assert record.component == "stream"
        assert record.ctx_name == "shadow"
        assert record.stream_id == "Q1"
    finally:
        log.close()


@pytest.mark.asyncio
async def test_dropped_frame_is_logged_with_error_fields(caplog: pytest.LogCaptureFixture) -> None:
    router = MessageRouter(StreamRegistry())

    with caplog.at_level(logging.WARNING, logger="sqlstream.stream.message_router"):
        await router.route("{broken")

    record = next(r for r in caplog.records if r.name == "sqlstream.stream.message_router")
    assert "inbound frame dropped" in record.getMessage()
    assert record.error_code == "malformed_frame"
    assert record.retryable is False


def test_clear_logs_abandoned_stream_ids_in_registration_order(caplog: pytest.LogCaptureFixture) -> None:
    registry = StreamRegistry()
    registry.register("Q2", {})
    registry.register("Q1", {})

    with caplog.at_level(logging.INFO, logger="sqlstream.stream.stream_registry"):
        registry.clear("connection lost")

    record = next(r for r in caplog.records if "abandoned" in r.getMessage())
    assert record.stream_ids == ["Q2", "Q1"]


@pytest.mark.asyncio
async def test_malformed_metadata_for_pull_stream_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    from sqlstream.core.stream.handle import QueryStream

    async def _cancel(_: str) -> None:
        return None

    registry = StreamRegistry()
    router = MessageRouter(registry)
    stream = QueryStream("Q1", buffer_size=10, cancel=_cancel)
    stream.bind(registry.register("Q1", stream.handlers(), on_abandon=stream.abandon))

    with caplog.at_level(logging.WARNING, logger="sqlstream.stream.query_stream"):
        await router.route('{"type":"metadata","streamId":"Q1","data":{"columns":"n"}}')

    record = next(r for r in caplog.records if r.name == "sqlstream.stream.query_stream")
    assert "metadata frame skipped" in record.getMessage()
    assert record.error_code == "malformed_frame"
    assert record.stream_id == "Q1"
    assert "Q1" in registry
