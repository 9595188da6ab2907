from sqlstream.common.exceptions.errors import (
    ConnectError,
    ConnectTimeout,
    FrameDecodeError,
    NotConnectedError,
    ReconnectExhausted,
    SqlStreamError,
    StreamAbandonedError,
)

__all__ = [
    "SqlStreamError",
    "ConnectError",
    "ConnectTimeout",
    "ReconnectExhausted",
    "NotConnectedError",
    "FrameDecodeError",
    "StreamAbandonedError",
]
