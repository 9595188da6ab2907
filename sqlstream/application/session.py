"""
Query Session API

애플리케이션이 사용하는 유일한 진입점입니다.
단일 연결(ConnectionManager) 위에 여러 쿼리 스트림을 다중화합니다.

    session = QuerySession.create()
    stream_id = await session.execute_query("SELECT 1", stream_id)   # 콜백 방식
    async with await session.open_query("SELECT 1") as stream:       # 풀 방식
        async for event in stream: ...
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping

from sqlstream.common.logger import ComponentLogger
from sqlstream.config.settings import (
    StreamSettings,
    WebsocketSettings,
    stream_settings,
    websocket_settings,
)
from sqlstream.core.connection.codec import encode_cancel, encode_query
from sqlstream.core.connection.manager import ConnectionManager
from sqlstream.core.dto.internal.stream import StreamHandlers
from sqlstream.core.stream.handle import QueryStream
from sqlstream.core.stream.registry import StreamRegistry
from sqlstream.core.stream.router import MessageRouter
from sqlstream.core.types import (
    ConnectionState,
    MessageHandler,
    SleepFunc,
    StreamId,
    TransportFactory,
    Unsubscribe,
)

logger = ComponentLogger.get_logger("query_session", "app")


class QuerySession:
    """쿼리 세션 (공개 API)

    책임:
    - execute_query / cancel_query / on_stream / on_message_type
    - 연결 손실 시 열린 스트림 전체 폐기 (와이어 메시지 없음)
    - 풀 방식 스트림 핸들(open_query) 제공
    """

    def __init__(
        self,
        manager: ConnectionManager,
        registry: StreamRegistry,
        router: MessageRouter,
        *,
        buffer_size: int = 1000,
    ) -> None:
        self._manager = manager
        self._registry = registry
        self._router = router
        self._buffer_size = buffer_size

        self._manager.set_frame_callback(self._router.route)
        self._manager.set_connection_lost_callback(self._on_connection_lost)

    @classmethod
    def create(
        cls,
        url: str | None = None,
        *,
        settings: WebsocketSettings | None = None,
        stream_config: StreamSettings | None = None,
        transport_factory: TransportFactory | None = None,
        sleep: SleepFunc | None = None,
    ) -> QuerySession:
        """설정 기반으로 매니저/레지스트리/라우터를 조립합니다."""
        registry = StreamRegistry()
        router = MessageRouter(registry)
        manager = ConnectionManager(
            url,
            settings=settings or websocket_settings,
            transport_factory=transport_factory,
            sleep=sleep,
        )
        config = stream_config or stream_settings
        return cls(manager, registry, router, buffer_size=config.buffer_size)

    # -- properties --------------------------------------------------------

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    @property
    def registry(self) -> StreamRegistry:
        return self._registry

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def state(self) -> ConnectionState:
        return self._manager.state

    @property
    def connected(self) -> bool:
        return self._manager.connected

    @staticmethod
    def new_stream_id() -> StreamId:
        """충돌 가능성이 무시할 수준인 새 stream_id (uuid4)"""
        return str(uuid.uuid4())

    # -- connection --------------------------------------------------------

    async def connect(self, url: str | None = None) -> None:
        await self._manager.connect(url)

    async def ensure_connected(self) -> None:
        await self._manager.ensure_connected()

    async def close(self) -> None:
        """정상 종료. 열린 스트림은 모두 폐기됩니다."""
        await self._manager.disconnect()

    async def __aenter__(self) -> QuerySession:
        await self._manager.connect()
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()

    # -- query API ---------------------------------------------------------

    async def execute_query(self, query_text: str, stream_id: StreamId) -> StreamId:
        """쿼리 요청 프레임을 전송합니다 (fire-and-forget).

        결과는 on_stream 으로 등록한 핸들러로 전달됩니다. 응답을 놓치지 않으려면
        이 호출 전에 on_stream 을 먼저 등록해야 합니다.

        Returns:
            전달받은 stream_id

        Raises:
            ConnectError / ReconnectExhausted: 연결 수립 실패
            NotConnectedError: 송신 실패
        """
        await self._manager.ensure_connected()
        await self._manager.send(encode_query(query_text, stream_id))
        logger.info(f"query submitted: {stream_id}", stream_id=stream_id)
        return stream_id

    async def cancel_query(self, stream_id: StreamId) -> None:
        """cancelQuery 전송 (권고). 스트림은 서버의 종료 메시지로 닫힙니다."""
        await self._manager.ensure_connected()
        await self._manager.send(encode_cancel(stream_id))
        logger.info(f"cancel requested: {stream_id}", stream_id=stream_id)

    def on_stream(
        self,
        stream_id: StreamId,
        handlers: StreamHandlers | Mapping[str, MessageHandler],
    ) -> Unsubscribe:
        """stream_id 에 핸들러 집합을 등록합니다. 등록 해제 함수를 반환합니다."""
        return self._registry.register(stream_id, handlers)

    def on_message_type(self, message_type: str, handler: MessageHandler) -> Unsubscribe:
        """type 전역 구독자 등록 (streamId 없는 연결 수준 error 포함)"""
        return self._router.subscribe(message_type, handler)

    async def open_query(self, query_text: str, stream_id: StreamId | None = None) -> QueryStream:
        """쿼리를 실행하고 풀 방식 스트림 핸들을 반환합니다.

        등록 → 전송 순서를 지키므로 첫 응답을 놓치지 않습니다.
        전송에 실패하면 등록을 되돌리고 예외를 그대로 전달합니다.
        """
        stream_id = stream_id or self.new_stream_id()
        stream = QueryStream(stream_id, buffer_size=self._buffer_size, cancel=self.cancel_query)
        deregister = self._registry.register(
            stream_id, stream.handlers(), on_abandon=stream.abandon
        )
        stream.bind(deregister)

        try:
            await self.execute_query(query_text, stream_id)
        except BaseException:
            stream.close()
            raise
        return stream

    def awaiting_first_response(self, older_than: float = 0.0) -> list[StreamId]:
        """older_than 초 이상 첫 응답이 없는 스트림 목록 (워치독용)"""
        return self._registry.awaiting_first_response(older_than)

    # -- private -----------------------------------------------------------

    def _on_connection_lost(self, reason: str) -> None:
        abandoned = self._registry.clear(reason)
        if abandoned:
            logger.warning(
                f"connection lost; {len(abandoned)} stream(s) abandoned without terminal frame",
                reason=reason,
            )
