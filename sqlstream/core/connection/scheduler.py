from __future__ import annotations

import asyncio
import contextlib

from sqlstream.core.types import SleepFunc


class ReconnectScheduler:
    """재연결 대기 전담 클래스 (취소 가능한 지연 태스크)

    책임:
    - 재연결 시도 사이의 대기를 단일 태스크로 관리
    - 대기 횟수(누적)와 현재 장애 구간의 지연 기록 (테스트 및 로깅용)
    - disconnect 시 진행 중인 대기 취소

    sleep 함수를 주입하면 테스트에서 실제 타이머 없이 시간을 진행할 수 있습니다.
    """

    def __init__(self, sleep: SleepFunc | None = None) -> None:
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._task: asyncio.Task[None] | None = None
        self._waits: int = 0
        self._delays: list[float] = []

    @property
    def waits(self) -> int:
        """지금까지 예약된 대기 횟수"""
        return self._waits

    @property
    def delays(self) -> list[float]:
        """현재 장애 구간에서 기록된 지연값 (연결 성공 또는 disconnect 시 초기화)"""
        return list(self._delays)

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait(self, delay: float) -> None:
        """delay 초 대기. cancel() 로 중단되면 asyncio.CancelledError 가 전파됩니다."""
        self._waits += 1
        self._delays.append(delay)
        self._task = asyncio.ensure_future(self._sleep(delay))
        try:
            await self._task
        finally:
            self._task = None

    def reset(self) -> None:
        self._delays.clear()

    async def cancel(self) -> None:
        """진행 중인 대기를 취소합니다."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None
