"""sqlstream 예외 계층.

모든 예외는 SqlStreamError 를 상속하므로 호출자는 하나의 타입으로 모두 잡을 수 있습니다.
"""

from __future__ import annotations


class SqlStreamError(Exception):
    """sqlstream 공통 기반 예외"""


class ConnectError(SqlStreamError):
    """전송 계층(웹소켓) 생성 또는 연결이 실패했을 때 발생합니다."""


class ConnectTimeout(ConnectError):
    """핸드셰이크가 handshake_timeout 안에 끝나지 않았을 때 발생합니다."""


class ReconnectExhausted(ConnectError):
    """자동 재연결 시도 한도를 모두 소진한 뒤 연결이 여전히 없을 때 발생합니다.

    호출자는 연결을 직접 다시 시작해야 합니다.
    """

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class NotConnectedError(ConnectError):
    """연결이 없는 상태(또는 전송 중 끊김)에서 프레임을 보내려 할 때 발생합니다."""


class FrameDecodeError(SqlStreamError):
    """수신 프레임을 해석할 수 없을 때 발생합니다. 라우터 경계 밖으로 전파되지 않습니다."""

    def __init__(self, message: str, *, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class StreamAbandonedError(SqlStreamError):
    """종료 메시지 없이 로컬에서 폐기된 스트림을 소비하려 할 때 발생합니다."""

    def __init__(self, stream_id: str, reason: str = "abandoned") -> None:
        super().__init__(f"stream {stream_id} abandoned: {reason}")
        self.stream_id = stream_id
        self.reason = reason
