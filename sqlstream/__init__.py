"""sqlstream - 단일 웹소켓 위의 스트리밍 SQL 세션 다중화 클라이언트"""

from sqlstream.application.session import QuerySession
from sqlstream.common.exceptions import (
    ConnectError,
    ConnectTimeout,
    FrameDecodeError,
    NotConnectedError,
    ReconnectExhausted,
    SqlStreamError,
    StreamAbandonedError,
)
from sqlstream.core.connection.manager import ConnectionManager
from sqlstream.core.dto.internal.stream import StreamHandlers
from sqlstream.core.stream.events import CompleteEvent, MetadataEvent, RowEvent, StreamErrorEvent
from sqlstream.core.stream.handle import QueryStream
from sqlstream.core.stream.registry import StreamRegistry
from sqlstream.core.stream.result import QueryResult, QueryResultCollector
from sqlstream.core.stream.router import MessageRouter
from sqlstream.core.types import ConnectionState, MessageType, StreamState

__version__ = "0.1.0"

__all__ = [
    "QuerySession",
    "QueryStream",
    "ConnectionManager",
    "StreamRegistry",
    "MessageRouter",
    "StreamHandlers",
    "QueryResult",
    "QueryResultCollector",
    "MetadataEvent",
    "RowEvent",
    "CompleteEvent",
    "StreamErrorEvent",
    "ConnectionState",
    "StreamState",
    "MessageType",
    "SqlStreamError",
    "ConnectError",
    "ConnectTimeout",
    "ReconnectExhausted",
    "NotConnectedError",
    "FrameDecodeError",
    "StreamAbandonedError",
    "__version__",
]
