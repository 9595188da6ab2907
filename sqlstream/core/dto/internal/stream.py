from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Mapping

from sqlstream.core.types import (
    RESPONSE_MESSAGE_TYPES,
    MessageHandler,
    MessageType,
    StreamId,
    StreamState,
)


@dataclass(slots=True, eq=False, repr=False, kw_only=True)
class StreamHandlers:
    """스트림 하나에 대한 메시지 종류별 핸들러 집합.

    비어 있는 슬롯은 해당 타입 메시지를 조용히 무시한다는 뜻입니다.
    """

    metadata: MessageHandler | None = None
    data: MessageHandler | None = None
    complete: MessageHandler | None = None
    error: MessageHandler | None = None

    @classmethod
    def from_mapping(cls, handlers: Mapping[str, MessageHandler]) -> StreamHandlers:
        """{"metadata": fn, "data": fn, ...} 형태를 변환합니다. 알 수 없는 키는 무시합니다."""
        known = {kind.value for kind in (MessageType.METADATA, MessageType.DATA, MessageType.COMPLETE, MessageType.ERROR)}
        return cls(**{k: v for k, v in handlers.items() if k in known})

    def get(self, message_type: str) -> MessageHandler | None:
        match message_type:
            case "metadata":
                return self.metadata
            case "data":
                return self.data
            case "complete":
                return self.complete
            case "error":
                return self.error
            case _:
                return None


@dataclass(slots=True, eq=False, repr=False, kw_only=True)
class StreamSessionDomain:
    """레지스트리가 소유하는 스트림 세션 항목."""

    stream_id: StreamId
    handlers: StreamHandlers
    created_at: float = field(default_factory=time.monotonic)
    first_response_at: float | None = None
    state: StreamState = StreamState.OPEN
    # 종료 메시지 없이 폐기될 때 호출 (콜백 핸들러 집합에는 알리지 않음)
    on_abandon: Callable[[str], None] | None = None

    def mark_received(self, message_type: str, now: float | None = None) -> None:
        """수신 메시지 타입에 따라 상태를 전이합니다."""
        if message_type in RESPONSE_MESSAGE_TYPES:
            if self.first_response_at is None:
                self.first_response_at = time.monotonic() if now is None else now
            if self.state is StreamState.OPEN:
                self.state = StreamState.STREAMING
        elif message_type == MessageType.COMPLETE.value:
            self.state = StreamState.COMPLETE
        elif message_type == MessageType.ERROR.value:
            self.state = StreamState.ERROR

    def elapsed(self, now: float | None = None) -> float:
        """스트림 등록 후 경과 시간(초)"""
        return (time.monotonic() if now is None else now) - self.created_at

    def awaiting_first_response(self) -> bool:
        return self.first_response_at is None
