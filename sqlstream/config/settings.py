"""통합 Settings 모듈 - 환경변수 기반

이 모듈의 역할:
    1. 코드에 합리적인 기본값 제공
    2. 환경변수로 오버라이드 (우선순위 높음)
    3. 타입 안전성 보장 (Pydantic 자동 검증)

설정 우선순위:
    1. 환경변수 (최우선) - export WS_HOST=...
    2. .env 파일 - config/.env
    3. 코드 기본값 (settings.py 내부)

사용 예시:
    # 개발 환경 (기본값 사용)
    python -m sqlstream "SELECT 1"
    # → ws://localhost:8080/ws

    # 원격 엔진 (환경변수 오버라이드)
    export WS_HOST=query-engine.internal
    export WS_SCHEME=wss
    python -m sqlstream "SELECT 1"
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 설정 파일 경로
config_dir = Path(__file__).parent


def env_settings(prefix: str) -> SettingsConfigDict:
    """환경변수 + .env 통합 설정

    Args:
        prefix: 환경변수 접두사 (예: WS_, STREAM_)

    Returns:
        Pydantic 설정 딕셔너리
    """
    return SettingsConfigDict(
        env_prefix=prefix,
        env_file=config_dir / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppSettings(BaseSettings):
    """애플리케이션 일반 설정

    환경변수 오버라이드:
        APP_ENVIRONMENT: 실행 환경 (dev, prod, test) (기본: dev)
        APP_DEBUG: 디버그 로그 활성화 (기본: false)
        APP_LOG_DIR: 로그 디렉토리 (기본: logs)
        APP_LOG_TO_FILE: 파일 로깅 여부 (기본: false)
    """

    environment: str = "dev"
    debug: bool = False
    log_dir: str = "logs"
    log_to_file: bool = False

    model_config = env_settings("APP_")


class WebsocketSettings(BaseSettings):
    """WebSocket 연결 설정 (환경변수 기반)

    환경변수 오버라이드 (모든 타이밍 설정은 초 단위):
        WS_SCHEME / WS_HOST / WS_PORT / WS_PATH: 엔드포인트 (기본: ws://localhost:8080/ws)
        WS_MAX_RECONNECT_ATTEMPTS: 비정상 종료 후 재연결 최대 시도 횟수 (기본: 5회)
        WS_RECONNECT_INTERVAL: 재연결 시도 간격 (기본: 3초)
        WS_HANDSHAKE_TIMEOUT: 핸드셰이크 타임아웃 (기본: 5초)
        WS_PING_INTERVAL: 전송 계층 keep-alive ping 간격 (기본: 30초, 0 이하면 비활성화)
        WS_CLOSE_TIMEOUT: close 핸드셰이크 대기 (기본: 5초)
    """

    scheme: str = "ws"
    host: str = "localhost"
    port: int = 8080
    path: str = "/ws"

    max_reconnect_attempts: int = Field(default=5, ge=0)
    reconnect_interval: float = Field(default=3.0, ge=0)
    handshake_timeout: float = Field(default=5.0, gt=0)
    ping_interval: float = 30.0
    close_timeout: float = 5.0

    model_config = env_settings("WS_")

    @property
    def url(self) -> str:
        """엔드포인트 URL 생성 (scheme://host:port/path)"""
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"{self.scheme}://{self.host}:{self.port}{path}"


class StreamSettings(BaseSettings):
    """스트림 핸들 설정 (환경변수 기반)

    환경변수 오버라이드:
        STREAM_BUFFER_SIZE: 스트림당 미소비 이벤트 버퍼 크기 (기본: 1000)
    """

    buffer_size: int = Field(default=1000, ge=1)

    model_config = env_settings("STREAM_")


# ========================================
# 설정 인스턴스 (싱글톤)
# ========================================

app_settings = AppSettings()
websocket_settings = WebsocketSettings()
stream_settings = StreamSettings()
