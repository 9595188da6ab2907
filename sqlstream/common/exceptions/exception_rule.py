from __future__ import annotations

import asyncio

import websockets

from sqlstream.common.exceptions.errors import (
    ConnectError,
    ConnectTimeout,
    FrameDecodeError,
    NotConnectedError,
    ReconnectExhausted,
)
from sqlstream.core.dto.internal.common import RuleDomain
from sqlstream.core.types import (
    DECODE_EXCEPTIONS,
    ErrorCategory,
    ErrorCode,
    ErrorDomain,
)

# 1) sqlstream 자체 예외 (구체 -> 포괄)
RULES_SESSION: list[RuleDomain] = [
    RuleDomain(
        kinds=("connection", "session"),
        exc=ReconnectExhausted,
        result=(ErrorDomain.CONNECTION, ErrorCode.RECONNECT_EXHAUSTED, False),
    ),
    RuleDomain(
        kinds=("connection", "session"),
        exc=ConnectTimeout,
        result=(ErrorDomain.CONNECTION, ErrorCode.CONNECT_TIMEOUT, True),
    ),
    RuleDomain(
        kinds=("connection", "session"),
        exc=NotConnectedError,
        result=(ErrorDomain.CONNECTION, ErrorCode.NOT_CONNECTED, True),
    ),
    RuleDomain(
        kinds=("connection", "session"),
        exc=ConnectError,
        result=(ErrorDomain.CONNECTION, ErrorCode.CONNECT_FAILED, True),
    ),
    RuleDomain(
        kinds=("router",),
        exc=FrameDecodeError,
        result=(ErrorDomain.PROTOCOL, ErrorCode.MALFORMED_FRAME, False),
    ),
]

# 2) 전송 계층 예외 (재연결 대상)
RULES_TRANSPORT: list[RuleDomain] = [
    RuleDomain(
        kinds=("connection",),
        exc=(asyncio.TimeoutError, TimeoutError),
        result=(ErrorDomain.CONNECTION, ErrorCode.CONNECT_TIMEOUT, True),
    ),
    RuleDomain(
        kinds=("connection",),
        exc=websockets.ConnectionClosed,
        result=(ErrorDomain.CONNECTION, ErrorCode.CONNECTION_LOST, True),
    ),
    RuleDomain(
        kinds=("connection",),
        exc=(websockets.WebSocketException, OSError),
        result=(ErrorDomain.CONNECTION, ErrorCode.CONNECT_FAILED, True),
    ),
]

# 3) 역직렬화 (라우터 경계)
RULES_DECODE: list[RuleDomain] = [
    RuleDomain(
        kinds=("router",),
        exc=DECODE_EXCEPTIONS,
        result=(ErrorDomain.PROTOCOL, ErrorCode.MALFORMED_FRAME, False),
    ),
]

# 주의: 매칭 우선순위를 보장하기 위해 선언 순서를 유지합니다.
RULES: list[RuleDomain] = [
    *RULES_SESSION,
    *RULES_TRANSPORT,
    *RULES_DECODE,
]


def classify_exception(err: BaseException, kind: str) -> ErrorCategory:
    """예외 → (ErrorDomain, ErrorCode, retryable) 분류기 (규칙 테이블 기반)

    - 규칙은 "구체 → 포괄" 순서로 선언되어 가장 특수한 규칙이 먼저 매칭됩니다.
    - kind("connection", "session", "router")에 해당하지 않는 규칙은 건너뜁니다.
    - 라우터에서 핸들러가 던진 알 수 없는 예외는 APPLICATION/HANDLER_FAILED 로 분류합니다.
    """
    for rule in RULES:
        if kind in rule.kinds and isinstance(err, rule.exc):
            return rule.result

    if kind == "router":
        return (ErrorDomain.APPLICATION, ErrorCode.HANDLER_FAILED, False)
    return (ErrorDomain.UNKNOWN, ErrorCode.UNKNOWN_ERROR, False)


def error_log_extra(err: BaseException, kind: str) -> dict[str, str | bool]:
    """로그 extra 에 넣을 표준 에러 필드"""
    domain, code, retryable = classify_exception(err, kind)
    return {
        "error_type": type(err).__name__,
        "error_domain": domain.value,
        "error_code": code.value,
        "retryable": retryable,
    }
