"""와이어 메시지 DTO

client -> server:
    {"type": "query", "query": "...", "streamId": "..."}
    {"type": "cancelQuery", "streamId": "..."}

server -> client:
    {"type": "metadata", "streamId": "...", "data": {"columns": [...]}}
    {"type": "data", "streamId": "...", "data": [...]}
    {"type": "complete", "streamId": "...", "data": {"rows": 1, "status": "completed"}}
    {"type": "error", "streamId": "...", "error": "..."}
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from sqlstream.core.dto.io._base import InboundMessageDTO, OutboundMessageDTO
from sqlstream.core.types import TERMINAL_MESSAGE_TYPES


class QueryRequestDTO(OutboundMessageDTO):
    """스트리밍 쿼리 시작 요청"""

    type: Literal["query"] = "query"
    query: str = Field(..., description="엔진에 전달할 쿼리 텍스트 (검증하지 않음)")
    stream_id: str = Field(..., alias="streamId", min_length=1)


class CancelQueryRequestDTO(OutboundMessageDTO):
    """쿼리 취소 요청 (서버에 대한 권고, 로컬 스트림은 제거하지 않음)"""

    type: Literal["cancelQuery"] = "cancelQuery"
    stream_id: str = Field(..., alias="streamId", min_length=1)


class InboundFrameDTO(InboundMessageDTO):
    """수신 프레임 봉투.

    data/error 는 코덱에서 한 번 정규화된 값(구조화된 값 또는 원문 문자열)입니다.
    """

    type: str | None = None
    stream_id: str | None = Field(default=None, alias="streamId")
    data: Any = None
    error: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_MESSAGE_TYPES


class MetadataPayloadDTO(InboundMessageDTO):
    """metadata 메시지 data 필드"""

    columns: list[str] = Field(default_factory=list)


class CompletePayloadDTO(InboundMessageDTO):
    """complete 메시지 data 필드"""

    rows: int = 0
    status: str = ""
