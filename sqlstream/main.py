"""커맨드라인 진입점

쿼리 하나를 실행하고 컬럼, 행, 상태 줄을 출력합니다.
Ctrl-C 를 한 번 누르면 서버에 cancelQuery 를 보내고, 두 번째에는 로컬에서 스트림을 닫습니다.

Usage:
    python -m sqlstream "SELECT * FROM trades LIMIT 10"
    python -m sqlstream --url ws://engine:8080/ws "SELECT 1"
    WS_HOST=engine python -m sqlstream "SELECT 1"
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from typing import Any, Sequence, TextIO

from sqlstream.application.session import QuerySession
from sqlstream.common.exceptions import SqlStreamError, StreamAbandonedError
from sqlstream.common.logger import ComponentLogger
from sqlstream.common.serde import to_text
from sqlstream.core.stream.events import CompleteEvent, MetadataEvent, RowEvent, StreamErrorEvent
from sqlstream.core.stream.handle import QueryStream
from sqlstream.core.stream.result import (
    STATUS_CANCELLED,
    STATUS_FAILED,
    complete_status,
)

logger = ComponentLogger.get_logger("main", "app")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sqlstream",
        description="Run one SQL query over the streaming websocket endpoint",
    )
    parser.add_argument("query", help="SQL text to execute")
    parser.add_argument(
        "--url",
        default=None,
        help="websocket endpoint (default: built from WS_* settings)",
    )
    parser.add_argument(
        "--stream-id",
        default=None,
        dest="stream_id",
        help="stream id to use (default: random uuid4)",
    )
    return parser.parse_args(argv)


def _format_row(row: Any) -> str:
    if isinstance(row, (list, tuple)):
        return "\t".join(_format_cell(value) for value in row)
    return _format_cell(row)


def _format_cell(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, str):
        return value
    return to_text(value)


class _CancelOnInterrupt:
    """SIGINT 처리: 1회차는 서버 취소 요청, 2회차는 로컬 close"""

    def __init__(self, stream: QueryStream) -> None:
        self._stream = stream
        self._tasks: set[asyncio.Task[None]] = set()
        self.cancel_requested = False

    def __call__(self) -> None:
        if not self.cancel_requested:
            self.cancel_requested = True
            logger.info(f"interrupt: cancelling {self._stream.stream_id}")
            task = asyncio.ensure_future(self._send_cancel())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return
        logger.info(f"second interrupt: closing {self._stream.stream_id} locally")
        self._stream.close()

    async def _send_cancel(self) -> None:
        try:
            await self._stream.cancel()
        except SqlStreamError as e:
            logger.warning(f"cancel request failed - {e}")
            self._stream.close()


async def run_query(
    session: QuerySession,
    query: str,
    *,
    stream_id: str | None = None,
    out: TextIO = sys.stdout,
) -> int:
    """쿼리 하나를 실행해 결과를 out 에 출력합니다. 종료 코드를 반환합니다."""
    stream = await session.open_query(query, stream_id)
    interrupt = _CancelOnInterrupt(stream)

    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, interrupt)
        installed = True

    rows = 0
    try:
        async with stream:
            async for event in stream:
                match event:
                    case MetadataEvent(columns=columns):
                        print("\t".join(columns), file=out)
                    case RowEvent(row=row):
                        rows += 1
                        print(_format_row(row), file=out)
                    case CompleteEvent(rows=reported, status=status):
                        print(complete_status(reported, status), file=out)
                        return 0
                    case StreamErrorEvent(message=message):
                        print(f"{STATUS_FAILED}: {message}", file=out)
                        return 1
    except StreamAbandonedError as e:
        if interrupt.cancel_requested:
            print(STATUS_CANCELLED, file=out)
            return 130
        print(f"{STATUS_FAILED}: {e.reason} after {rows} rows", file=out)
        return 1
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
    return 1


async def main(argv: Sequence[str] | None = None) -> int:
    """메인 실행 함수"""
    args = parse_args(argv)
    session = QuerySession.create(args.url)
    try:
        await session.connect()
        return await run_query(session, args.query, stream_id=args.stream_id)
    except SqlStreamError as e:
        logger.error(f"query failed - {e}")
        print(f"{STATUS_FAILED}: {e}", file=sys.stderr)
        return 1
    finally:
        await session.close()


def cli() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    cli()
