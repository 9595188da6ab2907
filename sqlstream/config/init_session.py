from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlstream.application.session import QuerySession


@asynccontextmanager
async def init_query_session(session: QuerySession) -> AsyncIterator[QuerySession]:
    """QuerySession 연결 및 정리를 위한 async context manager"""
    await session.connect()
    try:
        yield session
    finally:
        await session.close()
