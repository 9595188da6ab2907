"""Connection Manager

단일 물리 연결(웹소켓)의 생명주기를 소유합니다.

    connect() → 핸드셰이크(handshake_timeout) → CONNECTED → 수신 루프
    비정상 종료 → RECONNECTING → (reconnect_interval 대기 → 재연결) × max_reconnect_attempts
    disconnect() → DISCONNECTED (재연결 없음)

불변식:
- 살아있는 전송 핸들은 최대 1개
- 진행 중인 connect 가 있으면 동시 호출자는 같은 결과를 공유
- 재연결은 single-flight (동시에 하나의 재연결 루프만 존재)
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import Any, Awaitable, Callable

import websockets

from sqlstream.common.exceptions import (
    ConnectError,
    ConnectTimeout,
    NotConnectedError,
    ReconnectExhausted,
)
from sqlstream.common.exceptions.exception_rule import error_log_extra
from sqlstream.common.logger import ComponentLogger
from sqlstream.config.settings import WebsocketSettings, websocket_settings
from sqlstream.core.connection.scheduler import ReconnectScheduler
from sqlstream.core.dto.internal.common import ReconnectPolicyDomain
from sqlstream.core.types import (
    CONNECTION_EXCEPTIONS,
    ConnectionState,
    RawFrame,
    SleepFunc,
    TransportFactory,
    WebsocketTransport,
    connection_state_format,
)

logger = ComponentLogger.get_logger("connection_manager", "connection")

FrameCallback = Callable[[RawFrame], Awaitable[None] | None]
ConnectionLostCallback = Callable[[str], Awaitable[None] | None]
StateListener = Callable[[ConnectionState], None]

CLIENT_CLOSE_CODE = 1000
CLIENT_CLOSE_REASON = "Client disconnecting"


def policy_from_settings(settings: WebsocketSettings) -> ReconnectPolicyDomain:
    """WebsocketSettings → 재연결 정책 변환"""
    return ReconnectPolicyDomain(
        max_reconnect_attempts=settings.max_reconnect_attempts,
        reconnect_interval=settings.reconnect_interval,
        handshake_timeout=settings.handshake_timeout,
    )


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class ConnectionManager:
    """단일 웹소켓 연결 관리자

    책임:
    - connect / ensure_connected / disconnect
    - 수신 루프 실행 및 프레임 콜백 전달 (도착 순서대로 하나씩)
    - 비정상 종료 시 유한 재연결
    - 송신 직렬화 (전송 핸들은 유일한 공유 가변 자원)
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        policy: ReconnectPolicyDomain | None = None,
        settings: WebsocketSettings | None = None,
        transport_factory: TransportFactory | None = None,
        sleep: SleepFunc | None = None,
        on_frame: FrameCallback | None = None,
        on_connection_lost: ConnectionLostCallback | None = None,
    ) -> None:
        """
        Args:
            url: 엔드포인트 (기본: settings.url)
            policy: 재연결 정책 (기본: settings 에서 생성)
            settings: 웹소켓 설정 (기본: 전역 websocket_settings)
            transport_factory: url → 연결된 전송 핸들 (기본: websockets.connect)
            sleep: 재연결 대기 함수 (기본: asyncio.sleep)
            on_frame: 수신 프레임 콜백
            on_connection_lost: 연결이 내려갈 때마다 호출되는 콜백 (reason 문자열 전달)
        """
        self._settings = settings or websocket_settings
        self._url = url or self._settings.url
        self.policy = policy or policy_from_settings(self._settings)
        self._transport_factory: TransportFactory = transport_factory or self._open_websocket
        self._scheduler = ReconnectScheduler(sleep)
        self._on_frame = on_frame
        self._on_connection_lost = on_connection_lost
        self._state_listeners: list[StateListener] = []

        # 연결 상태 관리
        self._state = ConnectionState.DISCONNECTED
        self._transport: WebsocketTransport | None = None
        self._send_lock = asyncio.Lock()

        # 태스크 관리
        self._connect_task: asyncio.Task[None] | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

        # 재연결 제어
        self._reconnect_attempts: int = 0
        self._exhausted: bool = False
        self._closing: bool = False

    # -- properties --------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._transport is not None

    @property
    def reconnect_attempts(self) -> int:
        """현재 재연결 시도 카운터 (성공 시 0으로 리셋)"""
        return self._reconnect_attempts

    @property
    def exhausted(self) -> bool:
        """재연결 한도 소진 여부 (수동 connect 성공 시 해제)"""
        return self._exhausted

    @property
    def scheduler(self) -> ReconnectScheduler:
        return self._scheduler

    def set_frame_callback(self, callback: FrameCallback | None) -> None:
        self._on_frame = callback

    def set_connection_lost_callback(self, callback: ConnectionLostCallback | None) -> None:
        self._on_connection_lost = callback

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """상태 전이 리스너 등록. 해제 함수를 반환합니다."""
        self._state_listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._state_listeners.remove(listener)

        return _remove

    # -- public ------------------------------------------------------------

    async def connect(self, url: str | None = None) -> None:
        """연결을 수립합니다 (이미 연결되어 있으면 즉시 반환).

        진행 중인 connect 가 있으면 새 소켓을 열지 않고 그 결과를 공유합니다.

        Raises:
            ConnectTimeout: 핸드셰이크가 handshake_timeout 안에 끝나지 않음
            ConnectError: 전송 생성 실패 또는 disconnect 로 중단됨
        """
        if url is not None and url != self._url:
            if self._state is not ConnectionState.DISCONNECTED:
                raise ConnectError(f"already bound to {self._url}; disconnect before changing url")
            self._url = url

        if self.connected:
            return

        if self._reconnect_task is not None and not self._reconnect_task.done():
            await asyncio.shield(self._reconnect_task)
            if self.connected:
                return

        task = self._connect_task
        if task is None or task.done():
            self._closing = False
            task = asyncio.ensure_future(self._connect_once())
            self._connect_task = task
            task.add_done_callback(self._clear_connect_task)

        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # 공유 태스크가 disconnect 로 취소된 경우만 연결 에러로 변환
            if task.cancelled():
                raise ConnectError("connect aborted by disconnect") from None
            raise

    async def ensure_connected(self) -> None:
        """연결되어 있으면 즉시 반환, 아니면 connect 와 동일하게 동작합니다.

        재연결 진행 중이면 그 결과를 기다립니다. 재연결 한도가 소진된 뒤에는
        새 연결을 한 번 시도하고, 실패하면 ReconnectExhausted 를 발생시킵니다.
        """
        if self.connected:
            return

        if self._reconnect_task is not None and not self._reconnect_task.done():
            await asyncio.shield(self._reconnect_task)
            if self.connected:
                return

        if self._exhausted:
            attempts = self.policy.max_reconnect_attempts
            try:
                await self.connect()
            except ConnectError as e:
                raise ReconnectExhausted(
                    f"reconnection exhausted after {attempts} attempts and manual connect failed: {e}",
                    attempts=attempts,
                ) from e
            return

        await self.connect()

    async def disconnect(self) -> None:
        """정상 종료. DISCONNECTED 로 전이하며 재연결을 트리거하지 않습니다."""
        self._closing = True

        await self._scheduler.cancel()
        await self._cancel_task(self._reconnect_task)
        self._reconnect_task = None
        await self._cancel_task(self._connect_task)
        self._connect_task = None

        transport = self._transport
        self._transport = None

        receive_task = self._receive_task
        self._receive_task = None
        if receive_task is not asyncio.current_task():
            await self._cancel_task(receive_task)

        if transport is not None:
            try:
                await transport.close(CLIENT_CLOSE_CODE, CLIENT_CLOSE_REASON)
            except CONNECTION_EXCEPTIONS as e:
                logger.warning(
                    f"websocket close failed during disconnect - {e}",
                    **error_log_extra(e, "connection"),
                )

        was_active = self._state is not ConnectionState.DISCONNECTED or transport is not None
        self._reconnect_attempts = 0
        self._exhausted = False
        self._scheduler.reset()
        self._set_state(ConnectionState.DISCONNECTED)
        if was_active:
            logger.info(f"disconnected from {self._url}")
            await self._notify_connection_lost("disconnect")

    async def send(self, message: RawFrame) -> None:
        """전송 핸들로 프레임 1개를 송신합니다 (임계 구역).

        Raises:
            NotConnectedError: 연결이 없거나 송신 중 연결이 끊긴 경우
        """
        async with self._send_lock:
            transport = self._transport
            if transport is None or self._state is not ConnectionState.CONNECTED:
                raise NotConnectedError(
                    f"cannot send: connection is {connection_state_format(self._state)}"
                )
            try:
                await transport.send(message)
            except CONNECTION_EXCEPTIONS as e:
                raise NotConnectedError(f"send failed: {e}") from e

    # -- private: connect --------------------------------------------------

    def _clear_connect_task(self, task: asyncio.Task[None]) -> None:
        if self._connect_task is task:
            self._connect_task = None
        # 공유 태스크의 예외는 대기 중인 호출자가 받으므로 여기서는 회수만 합니다.
        if not task.cancelled():
            task.exception()

    async def _connect_once(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        try:
            await self._open()
        except BaseException:
            if self._state is ConnectionState.CONNECTING:
                self._set_state(ConnectionState.DISCONNECTED)
            raise

    async def _open(self) -> None:
        """전송을 하나 열고 수신 루프를 시작합니다. 상태 실패 처리는 호출자 몫입니다."""
        logger.info(f"connecting to {self._url}")
        try:
            transport = await asyncio.wait_for(
                self._transport_factory(self._url),
                timeout=self.policy.handshake_timeout,
            )
        except TimeoutError as e:
            logger.warning(
                f"handshake timed out after {self.policy.handshake_timeout}s: {self._url}",
                **error_log_extra(e, "connection"),
            )
            raise ConnectTimeout(
                f"handshake with {self._url} did not complete within "
                f"{self.policy.handshake_timeout}s"
            ) from e
        except Exception as e:
            logger.warning(
                f"transport creation failed: {self._url} - {e}",
                **error_log_extra(e, "connection"),
            )
            raise ConnectError(f"could not connect to {self._url}: {e}") from e

        if self._closing:
            # disconnect 와 경합한 경우 새 전송을 즉시 닫음
            with contextlib.suppress(*CONNECTION_EXCEPTIONS):
                await transport.close(CLIENT_CLOSE_CODE, CLIENT_CLOSE_REASON)
            raise ConnectError("connect aborted by disconnect")

        self._transport = transport
        self._reconnect_attempts = 0
        self._exhausted = False
        self._scheduler.reset()
        self._set_state(ConnectionState.CONNECTED)
        self._receive_task = asyncio.create_task(self._receive_loop(transport))
        logger.info(f"connection established: {self._url}")

    async def _open_websocket(self, url: str) -> WebsocketTransport:
        ping_interval = self._settings.ping_interval if self._settings.ping_interval > 0 else None
        return await websockets.connect(
            url,
            open_timeout=None,
            ping_interval=ping_interval,
            close_timeout=self._settings.close_timeout,
        )

    # -- private: receive --------------------------------------------------

    async def _receive_loop(self, transport: WebsocketTransport) -> None:
        """수신 루프: 프레임을 도착 순서대로 하나씩 콜백에 전달합니다."""
        clean = False
        reason = "closed"
        try:
            while True:
                raw = await transport.recv()
                await self._dispatch(raw)
        except websockets.ConnectionClosedOK as e:
            clean = True
            reason = f"closed cleanly ({e})"
        except CONNECTION_EXCEPTIONS as e:
            reason = f"{type(e).__name__}: {e}"
            logger.warning(
                f"connection lost: {reason}",
                **error_log_extra(e, "connection"),
            )
        except Exception as e:
            # 예기치 못한 수신 오류도 비정상 종료와 동일하게 재연결 흐름을 탑니다.
            reason = f"{type(e).__name__}: {e}"
            logger.error(f"unexpected error in receive loop - {e}", exc_info=True)

        await self._handle_transport_closed(transport, clean=clean, reason=reason)

    async def _dispatch(self, raw: RawFrame) -> None:
        if self._on_frame is None:
            return
        try:
            await _maybe_await(self._on_frame(raw))
        except Exception as e:
            # 프레임 처리 실패는 연결을 끊지 않습니다.
            logger.error(f"frame callback failed - {e}", exc_info=True)

    async def _handle_transport_closed(
        self, transport: WebsocketTransport, *, clean: bool, reason: str
    ) -> None:
        if self._transport is not transport:
            # disconnect 가 이미 정리한 오래된 전송
            return

        self._transport = None
        self._receive_task = None

        if self._closing or clean:
            self._set_state(ConnectionState.DISCONNECTED)
            logger.info(f"connection closed without reconnect: {reason}")
            await self._notify_connection_lost(reason)
            return

        self._set_state(ConnectionState.RECONNECTING)
        await self._notify_connection_lost(reason)
        if self._closing:
            self._set_state(ConnectionState.DISCONNECTED)
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    # -- private: reconnect ------------------------------------------------

    async def _reconnect_loop(self) -> None:
        """유한 재연결 루프 (single-flight).

        시도 전 카운터를 증가시키고 reconnect_interval 만큼 대기한 뒤 연결합니다.
        성공하면 _open 에서 카운터가 0으로 리셋됩니다.
        """
        max_attempts = self.policy.max_reconnect_attempts
        try:
            while self._reconnect_attempts < max_attempts:
                self._reconnect_attempts += 1
                attempt = self._reconnect_attempts
                logger.info(
                    f"reconnecting in {self.policy.reconnect_interval:.2f}s "
                    f"({attempt}/{max_attempts})",
                    attempt=attempt,
                )

                try:
                    await self._scheduler.wait(self.policy.reconnect_interval)
                except asyncio.CancelledError:
                    if self._closing:
                        logger.info("reconnect wait cancelled by disconnect")
                        return
                    raise

                if self._closing:
                    return

                try:
                    await self._open()
                except ConnectError as e:
                    logger.warning(
                        f"reconnect attempt {attempt}/{max_attempts} failed - {e}",
                        attempt=attempt,
                        **error_log_extra(e, "connection"),
                    )
                    continue

                logger.info(f"reconnected after {attempt} attempt(s)")
                return

            self._exhausted = True
            self._set_state(ConnectionState.DISCONNECTED)
            logger.error(
                f"reconnect attempts ({max_attempts}) exhausted; manual connect required",
                attempts=max_attempts,
            )
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    # -- private: helpers --------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        logger.debug(
            f"state {connection_state_format(previous)} -> {connection_state_format(state)}"
        )
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning(f"state listener failed - {e}")

    async def _notify_connection_lost(self, reason: str) -> None:
        if self._on_connection_lost is None:
            return
        try:
            await _maybe_await(self._on_connection_lost(reason))
        except Exception as e:
            logger.error(f"connection lost callback failed - {e}", exc_info=True)

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
