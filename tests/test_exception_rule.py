from __future__ import annotations

import asyncio

from websockets.exceptions import ConnectionClosedError

from sqlstream.common.exceptions import (
    ConnectError,
    ConnectTimeout,
    FrameDecodeError,
    NotConnectedError,
    ReconnectExhausted,
)
from sqlstream.common.exceptions.exception_rule import classify_exception, error_log_extra
from sqlstream.core.types import ErrorCode, ErrorDomain


def test_session_errors_are_classified_specific_first() -> None:
    assert classify_exception(ReconnectExhausted("x", attempts=5), "session") == (
        ErrorDomain.CONNECTION,
        ErrorCode.RECONNECT_EXHAUSTED,
        False,
    )
    assert classify_exception(ConnectTimeout("x"), "connection")[1] == ErrorCode.CONNECT_TIMEOUT
    assert classify_exception(NotConnectedError("x"), "session")[1] == ErrorCode.NOT_CONNECTED
    assert classify_exception(ConnectError("x"), "session")[1] == ErrorCode.CONNECT_FAILED


def test_transport_errors_are_retryable() -> None:
    assert classify_exception(ConnectionClosedError(None, None), "connection") == (
        ErrorDomain.CONNECTION,
        ErrorCode.CONNECTION_LOST,
        True,
    )
    assert classify_exception(asyncio.TimeoutError(), "connection")[1] == ErrorCode.CONNECT_TIMEOUT
    assert classify_exception(OSError("refused"), "connection")[2] is True


def test_router_errors() -> None:
    assert classify_exception(FrameDecodeError("bad"), "router") == (
        ErrorDomain.PROTOCOL,
        ErrorCode.MALFORMED_FRAME,
        False,
    )
    assert classify_exception(RuntimeError("handler bug"), "router") == (
        ErrorDomain.APPLICATION,
        ErrorCode.HANDLER_FAILED,
        False,
    )


def test_unknown_kind_falls_back_to_unknown() -> None:
    assert classify_exception(RuntimeError("x"), "connection") == (
        ErrorDomain.UNKNOWN,
        ErrorCode.UNKNOWN_ERROR,
        False,
    )


def test_error_log_extra_fields() -> None:
    extra = error_log_extra(OSError("refused"), "connection")

    assert extra == {
        "error_type": "OSError",
        "error_domain": ErrorDomain.CONNECTION.value,
        "error_code": ErrorCode.CONNECT_FAILED.value,
        "retryable": True,
    }
