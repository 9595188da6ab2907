"""Message Router

수신 프레임마다:
    1) Frame Codec 으로 해석 (실패 시 로그 후 폐기, 연결에는 영향 없음)
    2) type 별 전역 구독자에게 등록 순서대로 전달
    3) streamId 가 레지스트리에 있으면 해당 타입의 스트림 핸들러 1개 호출
    4) complete / error 이면 레지스트리에서 스트림 제거 (종료 스트림의 유일한 정리 경로)

프레임은 하나씩 순서대로 처리되므로 서로 다른 스트림의 핸들러가 병렬로 실행되지 않습니다.
"""

from __future__ import annotations

import contextlib
import inspect
from dataclasses import dataclass
from typing import Any

from sqlstream.common.exceptions import FrameDecodeError
from sqlstream.common.exceptions.exception_rule import error_log_extra
from sqlstream.common.logger import ComponentLogger
from sqlstream.core.connection.codec import decode_frame
from sqlstream.core.dto.io.frames import InboundFrameDTO
from sqlstream.core.stream.registry import StreamRegistry
from sqlstream.core.types import MessageHandler, RawFrame, Unsubscribe

logger = ComponentLogger.get_logger("message_router", "stream")


@dataclass(slots=True, kw_only=True)
class RouterStats:
    """라우터 처리 카운터"""

    routed: int = 0
    dropped: int = 0
    unknown_stream: int = 0
    handler_failures: int = 0


class MessageRouter:
    """수신 프레임 디스패처"""

    def __init__(self, registry: StreamRegistry) -> None:
        self._registry = registry
        self._subscribers: dict[str, list[MessageHandler]] = {}
        self.stats = RouterStats()

    @property
    def registry(self) -> StreamRegistry:
        return self._registry

    def subscribe(self, message_type: str, handler: MessageHandler) -> Unsubscribe:
        """type 전역 구독자 등록. 해제 함수를 반환합니다."""
        self._subscribers.setdefault(message_type, []).append(handler)

        def _unsubscribe() -> None:
            handlers = self._subscribers.get(message_type)
            if handlers is None:
                return
            with contextlib.suppress(ValueError):
                handlers.remove(handler)
            if not handlers:
                self._subscribers.pop(message_type, None)

        return _unsubscribe

    async def route(self, raw: RawFrame) -> None:
        """수신 프레임 1개를 처리합니다. 어떤 경우에도 예외를 밖으로 던지지 않습니다."""
        try:
            frame = decode_frame(raw)
        except FrameDecodeError as e:
            self.stats.dropped += 1
            logger.warning(
                f"inbound frame dropped - {e}",
                raw_preview=_preview(raw),
                **error_log_extra(e, "router"),
            )
            return

        if not frame.type:
            self.stats.dropped += 1
            logger.debug("inbound frame without type ignored", raw_preview=_preview(raw))
            return

        self.stats.routed += 1

        for handler in list(self._subscribers.get(frame.type, ())):
            await self._invoke(handler, frame)

        if not frame.stream_id:
            if frame.type == "error":
                logger.warning(f"server reported connection-level error: {frame.error}")
            return

        session = self._registry.get_session(frame.stream_id)
        if session is None:
            self.stats.unknown_stream += 1
            logger.debug(
                f"frame for unknown stream discarded: {frame.stream_id} ({frame.type})",
                stream_id=frame.stream_id,
            )
            return

        session.mark_received(frame.type)
        handler = session.handlers.get(frame.type)
        if handler is not None:
            await self._invoke(handler, frame)

        if frame.is_terminal:
            self._registry.remove(frame.stream_id)

    async def _invoke(self, handler: MessageHandler, frame: InboundFrameDTO) -> None:
        try:
            result: Any = handler(frame)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.stats.handler_failures += 1
            logger.error(
                f"handler failed for {frame.type} (stream={frame.stream_id}) - {e}",
                exc_info=True,
                stream_id=frame.stream_id,
                **error_log_extra(e, "router"),
            )


def _preview(raw: RawFrame, limit: int = 200) -> str:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, (bytes, bytearray)) else str(raw)
    return text if len(text) <= limit else f"{text[:limit]}..."
