"""
스트림 레지스트리

stream_id → 핸들러 집합(StreamSessionDomain) 매핑을 관리하는 순수 인메모리 테이블입니다.
모든 연산은 이벤트 루프 스레드에서 호출되며 await 지점이 없으므로
디스패치 경로와 쿼리 발행 경로가 섞여도 항목 단위로 원자적입니다.
"""

from __future__ import annotations

import time
from typing import Callable, Iterator, Mapping

from sqlstream.common.logger import ComponentLogger
from sqlstream.core.dto.internal.stream import StreamHandlers, StreamSessionDomain
from sqlstream.core.types import MessageHandler, StreamId, StreamState, Unsubscribe

logger = ComponentLogger.get_logger("stream_registry", "stream")


class StreamRegistry:
    """스트림 레지스트리 관리자

    등록 → 조회 → (종료 메시지 수신 시) 제거 의 생명주기를 추적합니다.
    같은 stream_id 로 다시 등록하면 조용히 덮어씁니다.
    """

    def __init__(self) -> None:
        self._sessions: dict[StreamId, StreamSessionDomain] = {}

    def register(
        self,
        stream_id: StreamId,
        handlers: StreamHandlers | Mapping[str, MessageHandler],
        *,
        on_abandon: Callable[[str], None] | None = None,
    ) -> Unsubscribe:
        """핸들러 집합 등록

        Args:
            stream_id: 호출자가 생성한 고유 스트림 ID
            handlers: 메시지 종류별 핸들러 (StreamHandlers 또는 dict)
            on_abandon: 연결 손실 등으로 폐기될 때 호출할 로컬 콜백

        Returns:
            등록 해제 함수 (이 등록이 아직 유효할 때만 제거)
        """
        if not isinstance(handlers, StreamHandlers):
            handlers = StreamHandlers.from_mapping(handlers)

        session = StreamSessionDomain(
            stream_id=stream_id, handlers=handlers, on_abandon=on_abandon
        )
        if stream_id in self._sessions:
            logger.debug(f"stream {stream_id} re-registered; previous handlers replaced")
        self._sessions[stream_id] = session
        logger.debug(f"stream registered: {stream_id}", stream_id=stream_id)

        def _deregister() -> None:
            if self._sessions.get(stream_id) is session:
                del self._sessions[stream_id]
                logger.debug(f"stream deregistered: {stream_id}", stream_id=stream_id)

        return _deregister

    def lookup(self, stream_id: StreamId) -> StreamHandlers | None:
        """핸들러 집합 조회 (없으면 None)"""
        session = self._sessions.get(stream_id)
        return session.handlers if session is not None else None

    def get_session(self, stream_id: StreamId) -> StreamSessionDomain | None:
        return self._sessions.get(stream_id)

    def remove(self, stream_id: StreamId) -> StreamSessionDomain | None:
        """항목 제거. 제거된 세션(없으면 None)을 반환합니다."""
        session = self._sessions.pop(stream_id, None)
        if session is not None:
            logger.debug(
                f"stream removed: {stream_id} ({session.state.value})", stream_id=stream_id
            )
        return session

    def clear(self, reason: str = "teardown") -> list[StreamSessionDomain]:
        """모든 항목을 폐기(ABANDONED)합니다. 핸들러 집합에는 알리지 않습니다.

        Returns:
            폐기된 세션 목록
        """
        if not self._sessions:
            return []

        stream_ids = self.active_stream_ids()
        abandoned = list(self._sessions.values())
        self._sessions.clear()
        for session in abandoned:
            session.state = StreamState.ABANDONED
            if session.on_abandon is not None:
                try:
                    session.on_abandon(reason)
                except Exception as e:
                    logger.warning(
                        f"abandon callback failed for {session.stream_id} - {e}",
                        stream_id=session.stream_id,
                    )

        logger.info(
            f"{len(abandoned)} open stream(s) abandoned (reason: {reason})",
            stream_ids=stream_ids,
        )
        return abandoned

    def awaiting_first_response(
        self, older_than: float = 0.0, *, now: float | None = None
    ) -> list[StreamId]:
        """등록 후 older_than 초가 지나도록 metadata/data 를 받지 못한 스트림 목록.

        자동 타임아웃은 없으며, 호출자가 워치독 판단에 사용합니다.
        """
        current = time.monotonic() if now is None else now
        return [
            session.stream_id
            for session in self._sessions.values()
            if session.awaiting_first_response() and session.elapsed(current) >= older_than
        ]

    def active_stream_ids(self) -> list[StreamId]:
        """등록 순서대로의 stream_id 목록 (스냅샷)"""
        return list(self._sessions)

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[StreamSessionDomain]:
        return iter(list(self._sessions.values()))
