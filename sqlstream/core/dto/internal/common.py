from __future__ import annotations

from dataclasses import dataclass

from sqlstream.core.types import ErrorCategory, ExceptionGroup


@dataclass(slots=True, frozen=True, eq=True, repr=False, match_args=False, kw_only=True)
class ReconnectPolicyDomain:
    """연결/재연결 정책(도메인 값 객체).

    - max_reconnect_attempts: 비정상 종료 후 자동 재연결 최대 시도 횟수
    - reconnect_interval: 각 재연결 시도 전 대기 시간(초)
    - handshake_timeout: 핸드셰이크 타임아웃(초)
    """

    max_reconnect_attempts: int = 5
    reconnect_interval: float = 3.0
    handshake_timeout: float = 5.0


@dataclass(slots=True, frozen=True, eq=False, repr=False, match_args=False, kw_only=True)
class RuleDomain:
    """예외 분류 규칙(도메인)

    kinds: 규칙이 적용될 경계 종류 ("connection", "session", "router")
    exc:   매칭할 예외 타입(단일 타입 또는 타입 튜플)
    result: ErrorCategory
    """

    kinds: tuple[str, ...]
    exc: ExceptionGroup
    result: ErrorCategory
