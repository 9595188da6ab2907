from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from sqlstream.common.exceptions import FrameDecodeError, StreamAbandonedError
from sqlstream.common.exceptions.exception_rule import error_log_extra
from sqlstream.common.logger import ComponentLogger
from sqlstream.core.dto.internal.stream import StreamHandlers
from sqlstream.core.dto.io.frames import InboundFrameDTO
from sqlstream.core.stream.events import (
    CompleteEvent,
    MetadataEvent,
    StreamErrorEvent,
    StreamEvent,
    event_from_frame,
)
from sqlstream.core.stream.result import QueryResult, QueryResultCollector
from sqlstream.core.types import StreamId, StreamState, Unsubscribe

logger = ComponentLogger.get_logger("query_stream", "stream")


class _Abandoned:
    """소비자를 깨우기 위한 폐기 센티널"""

    __slots__ = ("reason",)

    def __init__(self, reason: str) -> None:
        self.reason = reason


class QueryStream:
    """쿼리 하나의 결과 스트림 핸들 (풀 방식)

    `async for event in stream` 으로 MetadataEvent 1회 → RowEvent* → 종료 이벤트 1개를
    받습니다. 유한하며 다시 시작할 수 없습니다.

    - 버퍼가 가득 차면 라우터가 소비를 기다립니다 (무제한 버퍼링 없음)
    - 연결 손실/로컬 close 로 폐기되면 남은 이벤트 이후 StreamAbandonedError 발생
    - cancel() 은 서버에 cancelQuery 만 보내며 스트림은 종료 메시지로 닫힙니다
    """

    def __init__(
        self,
        stream_id: StreamId,
        *,
        buffer_size: int,
        cancel: Callable[[StreamId], Awaitable[None]],
    ) -> None:
        self.stream_id = stream_id
        self._queue: asyncio.Queue[StreamEvent | _Abandoned] = asyncio.Queue(maxsize=buffer_size)
        self._cancel = cancel
        self._deregister: Unsubscribe | None = None
        self._put_waiter: asyncio.Future[None] | None = None

        self._state = StreamState.OPEN
        self._abandon_reason: str | None = None
        self._finished = False
        self._closed = False
        self._columns: list[str] | None = None

        self.created_at = time.monotonic()
        self.first_response_at: float | None = None

    # -- properties --------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def columns(self) -> list[str] | None:
        return self._columns

    @property
    def finished(self) -> bool:
        """종료 이벤트(또는 폐기)를 소비자가 이미 받았는지 여부"""
        return self._finished

    def elapsed(self) -> float:
        return time.monotonic() - self.created_at

    def awaiting_first_response(self) -> bool:
        """아직 metadata/data 를 하나도 받지 못했는지 여부 (워치독 판단용)"""
        return self.first_response_at is None

    # -- registry wiring ---------------------------------------------------

    def bind(self, deregister: Unsubscribe) -> None:
        self._deregister = deregister

    def handlers(self) -> StreamHandlers:
        """레지스트리에 등록할 핸들러 집합 (모든 타입을 이벤트 큐로 전달)"""
        return StreamHandlers(
            metadata=self._on_frame,
            data=self._on_frame,
            complete=self._on_frame,
            error=self._on_frame,
        )

    async def _on_frame(self, frame: InboundFrameDTO) -> None:
        if self._closed:
            return

        try:
            event = event_from_frame(frame)
        except FrameDecodeError as e:
            if not frame.is_terminal:
                # 비종료 프레임은 건너뛰고 스트림은 계속 진행
                logger.warning(
                    f"stream {self.stream_id}: {frame.type} frame skipped - {e}",
                    stream_id=self.stream_id,
                    **error_log_extra(e, "router"),
                )
                return
            # 종료 프레임은 실패 종료 이벤트로 대체
            logger.warning(
                f"stream {self.stream_id}: malformed {frame.type} frame ends stream - {e}",
                stream_id=self.stream_id,
                **error_log_extra(e, "router"),
            )
            event = StreamErrorEvent(message=str(e))

        match event:
            case MetadataEvent(columns=columns):
                self._columns = list(columns)
                self._mark_response()
            case CompleteEvent():
                self._state = StreamState.COMPLETE
            case StreamErrorEvent():
                self._state = StreamState.ERROR
            case _:
                self._mark_response()

        try:
            self._queue.put_nowait(event)
            return
        except asyncio.QueueFull:
            pass

        # 버퍼가 가득 차면 여기서 대기 (close 시 대기 취소)
        waiter = asyncio.ensure_future(self._queue.put(event))
        self._put_waiter = waiter
        try:
            await waiter
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._closed and waiter.cancelled() and not (current and current.cancelling()):
                return
            raise
        finally:
            self._put_waiter = None

    def _mark_response(self) -> None:
        if self.first_response_at is None:
            self.first_response_at = time.monotonic()
        if self._state is StreamState.OPEN:
            self._state = StreamState.STREAMING

    def abandon(self, reason: str) -> None:
        """종료 메시지 없이 로컬에서 폐기 (와이어 메시지 없음)"""
        if self._abandon_reason is not None or self._state in (StreamState.COMPLETE, StreamState.ERROR):
            return
        self._abandon_reason = reason
        self._state = StreamState.ABANDONED
        try:
            self._queue.put_nowait(_Abandoned(reason))
        except asyncio.QueueFull:
            # 소비자가 버퍼를 비운 뒤 _abandon_reason 으로 감지
            pass
        logger.debug(f"stream {self.stream_id} abandoned: {reason}", stream_id=self.stream_id)

    # -- consumer API ------------------------------------------------------

    def __aiter__(self) -> QueryStream:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._finished:
            raise StopAsyncIteration

        if self._closed or (self._abandon_reason is not None and self._queue.empty()):
            self._finished = True
            raise StreamAbandonedError(self.stream_id, self._abandon_reason or "closed locally")

        item = await self._queue.get()
        if isinstance(item, _Abandoned):
            self._finished = True
            raise StreamAbandonedError(self.stream_id, item.reason)

        if isinstance(item, (CompleteEvent, StreamErrorEvent)):
            self._finished = True
        return item

    async def collect(self) -> QueryResult:
        """스트림을 끝까지 소비해 QueryResult 로 반환합니다.

        Raises:
            StreamAbandonedError: 종료 메시지 전에 스트림이 폐기된 경우
        """
        collector = QueryResultCollector()
        collector.start()
        async for event in self:
            collector.apply(event)
        return collector.result

    async def cancel(self) -> None:
        """서버에 cancelQuery 전송 (권고). 스트림은 이후 종료 메시지로 닫힙니다."""
        await self._cancel(self.stream_id)

    def close(self) -> None:
        """로컬 관심 해제: 레지스트리에서 제거하고 소비자를 깨웁니다. 프로토콜 취소는 보내지 않습니다."""
        if self._closed:
            return
        self._closed = True
        if self._deregister is not None:
            self._deregister()
            self._deregister = None

        # put 대기 중인 라우터를 풀어주고 버퍼를 비움
        if self._put_waiter is not None and not self._put_waiter.done():
            self._put_waiter.cancel()
        while not self._queue.empty():
            self._queue.get_nowait()

        if not self._finished:
            if self._abandon_reason is None:
                self._abandon_reason = "closed locally"
            if self._state not in (StreamState.COMPLETE, StreamState.ERROR):
                self._state = StreamState.ABANDONED
            self._queue.put_nowait(_Abandoned(self._abandon_reason))

    async def __aenter__(self) -> QueryStream:
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        self.close()
