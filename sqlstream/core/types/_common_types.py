from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Final, Protocol, TypeAlias, assert_never

# 공통 타입/별칭을 한곳에 모읍니다.
# - 코어 계층 어디서나 재사용 가능한 최소 단위만 정의합니다.
# - 와이어 스키마 세부는 dto.io 에 두고, 여기에는 기반 타입만 둡니다.

StreamId: TypeAlias = str
RawFrame: TypeAlias = str | bytes

# 핸들러는 동기/비동기 모두 허용 (라우터가 awaitable 여부를 판단)
MessageHandler: TypeAlias = Callable[[Any], Any] | Callable[[Any], Awaitable[Any]]
Unsubscribe: TypeAlias = Callable[[], None]

# 재연결 대기에 사용하는 sleep 함수 (테스트에서 시간을 직접 제어하기 위해 주입)
SleepFunc: TypeAlias = Callable[[float], Awaitable[None]]



class MessageType(str, Enum):
    """와이어 메시지 타입 상수

    - QUERY / CANCEL_QUERY: client -> server 제어 메시지
    - METADATA / DATA / COMPLETE / ERROR: server -> client 스트림 메시지
    """

    QUERY = "query"
    CANCEL_QUERY = "cancelQuery"
    METADATA = "metadata"
    DATA = "data"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_MESSAGE_TYPES: Final[frozenset[str]] = frozenset(
    {MessageType.COMPLETE.value, MessageType.ERROR.value}
)
RESPONSE_MESSAGE_TYPES: Final[frozenset[str]] = frozenset(
    {MessageType.METADATA.value, MessageType.DATA.value}
)


class ConnectionState(Enum):
    """물리 연결 상태 Enum."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class StreamState(Enum):
    """스트림 세션 상태 Enum.

    OPEN -> STREAMING -> COMPLETE | ERROR 는 서버 메시지로만 전이하고,
    ABANDONED 는 와이어 메시지 없이 로컬에서만 전이합니다.
    """

    OPEN = "open"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"
    ABANDONED = "abandoned"


def connection_state_format(state: ConnectionState) -> str:
    """상태 로깅 포맷터: Enum 분기 완전탐색 보장."""
    match state:
        case ConnectionState.DISCONNECTED:
            return "disconnected"
        case ConnectionState.CONNECTING:
            return "connecting"
        case ConnectionState.CONNECTED:
            return "connected"
        case ConnectionState.RECONNECTING:
            return "reconnecting"
        case _:
            assert_never(state)


class WebsocketTransport(Protocol):
    """ConnectionManager 가 사용하는 최소 전송 인터페이스.

    websockets 의 ClientConnection 이 그대로 만족하며, 테스트에서는 가짜 객체로 대체합니다.
    """

    async def send(self, message: str | bytes) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


TransportFactory: TypeAlias = Callable[[str], Awaitable[WebsocketTransport]]
