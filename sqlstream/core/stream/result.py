"""쿼리 결과 누적기

스트림 이벤트를 받아 화면 계층이 렌더링하던 관찰 상태(columns, rows, status, error)로 누적합니다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlstream.common.exceptions import FrameDecodeError
from sqlstream.core.dto.internal.stream import StreamHandlers
from sqlstream.core.dto.io.frames import InboundFrameDTO
from sqlstream.core.stream.events import (
    CompleteEvent,
    MetadataEvent,
    RowEvent,
    StreamErrorEvent,
    StreamEvent,
    event_from_frame,
)

STATUS_EXECUTING = "Executing query..."
STATUS_FAILED = "Query failed"
STATUS_CANCELLED = "Query cancelled"


def complete_status(rows: int, status: str) -> str:
    return f"Query complete: {rows} rows retrieved ({status})"


@dataclass(slots=True, kw_only=True)
class QueryResult:
    """스트림 하나의 최종(또는 진행 중) 관찰 상태"""

    columns: list[str] = field(default_factory=list)
    rows: list[Any] = field(default_factory=list)
    status: str = ""
    error: str = ""
    is_streaming: bool = False
    reported_rows: int | None = None
    server_status: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.reported_rows is not None and not self.error


class QueryResultCollector:
    """이벤트 → QueryResult 누적기

    콜백 방식(as_handlers)과 풀 방식(QueryStream.collect) 모두에서 사용합니다.
    """

    def __init__(self) -> None:
        self._result = QueryResult()

    @property
    def result(self) -> QueryResult:
        return self._result

    def start(self) -> None:
        """새 쿼리 시작: 이전 결과 초기화"""
        self._result = QueryResult(status=STATUS_EXECUTING, is_streaming=True)

    def apply(self, event: StreamEvent) -> None:
        result = self._result
        match event:
            case MetadataEvent(columns=columns):
                result.columns = list(columns)
            case RowEvent(row=row):
                result.rows.append(row)
            case CompleteEvent(rows=rows, status=status):
                result.reported_rows = rows
                result.server_status = status
                result.status = complete_status(rows, status)
                result.is_streaming = False
            case StreamErrorEvent(message=message):
                result.error = message
                result.status = STATUS_FAILED
                result.is_streaming = False

    def mark_cancelled(self) -> None:
        """로컬에서 취소를 요청했을 때의 표시 상태"""
        self._result.status = STATUS_CANCELLED
        self._result.is_streaming = False

    def mark_failed(self, message: str) -> None:
        """쿼리 발행 자체가 실패했을 때 (연결 실패 등)"""
        self._result.error = message
        self._result.status = STATUS_FAILED
        self._result.is_streaming = False

    def as_handlers(self) -> StreamHandlers:
        """on_stream 에 바로 넘길 수 있는 콜백 핸들러 집합"""

        def _apply_frame(frame: InboundFrameDTO) -> None:
            try:
                event = event_from_frame(frame)
            except FrameDecodeError as e:
                if frame.is_terminal:
                    self.mark_failed(str(e))
                return
            self.apply(event)

        return StreamHandlers(
            metadata=_apply_frame,
            data=_apply_frame,
            complete=_apply_frame,
            error=_apply_frame,
        )
