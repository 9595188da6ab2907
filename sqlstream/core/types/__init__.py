from sqlstream.core.types._common_types import (
    RESPONSE_MESSAGE_TYPES,
    TERMINAL_MESSAGE_TYPES,
    ConnectionState,
    MessageHandler,
    MessageType,
    RawFrame,
    SleepFunc,
    StreamId,
    StreamState,
    TransportFactory,
    Unsubscribe,
    WebsocketTransport,
    connection_state_format,
)
from sqlstream.core.types._exception_types import (
    CONNECTION_EXCEPTIONS,
    DECODE_EXCEPTIONS,
    ErrorCategory,
    ErrorCode,
    ErrorDomain,
    ExceptionGroup,
)

__all__ = [
    # _common_types
    "StreamId",
    "RawFrame",
    "MessageHandler",
    "Unsubscribe",
    "SleepFunc",
    "MessageType",
    "TERMINAL_MESSAGE_TYPES",
    "RESPONSE_MESSAGE_TYPES",
    "ConnectionState",
    "StreamState",
    "connection_state_format",
    "WebsocketTransport",
    "TransportFactory",
    # _exception_types
    "ErrorDomain",
    "ErrorCode",
    "ErrorCategory",
    "ExceptionGroup",
    "CONNECTION_EXCEPTIONS",
    "DECODE_EXCEPTIONS",
]
