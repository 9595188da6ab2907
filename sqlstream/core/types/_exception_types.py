"""트라이/캐치 블록에서 사용할 예외 타입 정의 모듈.

광범위한 Exception 사용을 지양하고, 의도한 예외만 명시적으로 처리하기 위해 사용합니다.
"""

import asyncio
from enum import StrEnum
from typing import Final, TypeAlias

import orjson
import pydantic
import websockets

# ----------------------------------------------------------------------------
# Enums
# ----------------------------------------------------------------------------


class ErrorDomain(StrEnum):
    """에러 도메인 분류"""

    CONNECTION = "connection"
    PROTOCOL = "protocol"
    APPLICATION = "application"
    UNKNOWN = "unknown"


class ErrorCode(StrEnum):
    """에러 코드 분류"""

    CONNECT_FAILED = "connect_failed"
    CONNECT_TIMEOUT = "connect_timeout"
    CONNECTION_LOST = "connection_lost"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"
    NOT_CONNECTED = "not_connected"
    MALFORMED_FRAME = "malformed_frame"
    HANDLER_FAILED = "handler_failed"
    UNKNOWN_ERROR = "unknown_error"


# ----------------------------------------------------------------------------
# Exception Constants
# ----------------------------------------------------------------------------

# 1. 네트워크/연결 관련 예외 (재연결 대상)
# - websockets.ConnectionClosed: 정상/비정상 종료
# - websockets.InvalidHandshake / InvalidURI: 핸드셰이크 실패
# - OSError: 소켓 레벨 에러 (ConnectionError 포함)
CONNECTION_EXCEPTIONS: Final[tuple[type[BaseException], ...]] = (
    websockets.ConnectionClosed,
    websockets.InvalidHandshake,
    websockets.InvalidURI,
    websockets.WebSocketException,
    asyncio.TimeoutError,
    OSError,
)

# 2. 프레임 역직렬화 관련 예외 (프레임 폐기 대상)
DECODE_EXCEPTIONS: Final[tuple[type[BaseException], ...]] = (
    orjson.JSONDecodeError,
    pydantic.ValidationError,
    UnicodeDecodeError,
    ValueError,
    TypeError,
)


ErrorCategory: TypeAlias = tuple[ErrorDomain, ErrorCode, bool]
ExceptionGroup: TypeAlias = type[BaseException] | tuple[type[BaseException], ...]
