from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeAlias

from pydantic import ValidationError

from sqlstream.common.exceptions import FrameDecodeError
from sqlstream.core.dto.io.frames import (
    CompletePayloadDTO,
    InboundFrameDTO,
    MetadataPayloadDTO,
)


@dataclass(frozen=True, slots=True)
class MetadataEvent:
    """컬럼 스키마 (스트림당 1회, 데이터보다 먼저)"""

    columns: list[str]


@dataclass(frozen=True, slots=True)
class RowEvent:
    """결과 행 1개 (columns 순서에 맞춘 값 시퀀스)"""

    row: Any


@dataclass(frozen=True, slots=True)
class CompleteEvent:
    """성공 종료"""

    rows: int
    status: str


@dataclass(frozen=True, slots=True)
class StreamErrorEvent:
    """실패 종료 (서버가 보고한 애플리케이션 에러)"""

    message: str


StreamEvent: TypeAlias = MetadataEvent | RowEvent | CompleteEvent | StreamErrorEvent


def event_from_frame(frame: InboundFrameDTO) -> StreamEvent:
    """스트림 프레임 → 타입 이벤트 변환

    Raises:
        FrameDecodeError: metadata/complete 페이로드 형태가 맞지 않거나 알 수 없는 타입
    """
    try:
        match frame.type:
            case "metadata":
                payload = MetadataPayloadDTO.model_validate(frame.data or {})
                return MetadataEvent(columns=list(payload.columns))
            case "data":
                return RowEvent(row=frame.data)
            case "complete":
                completed = CompletePayloadDTO.model_validate(frame.data or {})
                return CompleteEvent(rows=completed.rows, status=completed.status)
            case "error":
                message = frame.error if frame.error is not None else "unknown error"
                return StreamErrorEvent(message=str(message))
            case _:
                raise FrameDecodeError(f"not a stream event type: {frame.type}")
    except ValidationError as e:
        raise FrameDecodeError(
            f"invalid {frame.type} payload for stream {frame.stream_id}: {e.error_count()} error(s)"
        ) from e
