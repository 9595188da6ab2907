from __future__ import annotations

import logging
import queue
import sys
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from sqlstream.config.settings import app_settings

# LogRecord 예약 속성과 충돌하는 extra 키는 접두사를 붙여 보존합니다.
_RESERVED_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class ComponentLogger:
    """
    컴포넌트 단위 로깅 시스템
    큐 기반 비동기 출력, 컴포넌트별 파일 분리, 구조화된 컨텍스트(extra) 제공
    """

    _default_level = logging.DEBUG if app_settings.debug else logging.INFO

    @classmethod
    def get_logger(cls, name: str, component: str | None = None, **kwargs: Any) -> ComponentLogger:
        """
        로거 인스턴스를 반환하는 간단한 팩토리 메서드.
        표준 logging.getLogger가 이름 단위로 사실상 싱글톤이므로
        별도 레지스트리 없이 인스턴스를 생성합니다.
        """
        return cls(name, component, **kwargs)

    def __init__(
        self,
        name: str,
        component: str | None = None,
        level: int | None = None,
        log_to_file: bool | None = None,
        log_to_console: bool = True,
        log_dir: str | None = None,
        rotation: str = "midnight",
    ) -> None:
        """
        Args:
            name: 로거 이름
            component: 컴포넌트 이름 (connection, stream, session ...)
            level: 로깅 레벨
            log_to_file: 파일에 로깅 여부 (기본: APP_LOG_TO_FILE)
            log_to_console: 콘솔에 로깅 여부
            log_dir: 로그 디렉토리 (기본: APP_LOG_DIR)
            rotation: 로그 로테이션 주기
        """
        self.name = name
        self.component = component
        self.level = level or self._default_level
        self.log_to_file = app_settings.log_to_file if log_to_file is None else log_to_file
        self.log_to_console = log_to_console
        self.log_dir = log_dir or app_settings.log_dir
        self.rotation = rotation

        # 무제한 버퍼로 설정해 queue.Full 예외 방지
        self.log_queue: queue.Queue = queue.Queue()
        self.context: dict[str, Any] = {}

        self._setup_logger()

    def _setup_logger(self) -> None:
        """
        로거, 핸들러, 포맷터 설정
        """
        self.logger_name = f"sqlstream.{self.component}.{self.name}" if self.component else f"sqlstream.{self.name}"
        self.logger = logging.getLogger(self.logger_name)
        self.logger.setLevel(self.level)

        # 기존 핸들러 제거 (동일 이름 재생성 시 중복 출력 방지)
        if self.logger.hasHandlers():
            self.logger.handlers.clear()

        self.formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(component)s] %(message)s"
        )

        handlers: list[logging.Handler] = []

        if self.log_to_console:
            console = logging.StreamHandler(sys.stderr)
            console.setFormatter(self.formatter)
            handlers.append(console)

        if self.log_to_file:
            log_filename = self._get_log_filename()
            # 디렉터리만 생성하고 파일 생성은 핸들러에 위임
            Path(log_filename).parent.mkdir(parents=True, exist_ok=True)

            file_handler = TimedRotatingFileHandler(
                filename=log_filename,
                when=self.rotation,
                backupCount=7,
            )
            file_handler.setFormatter(self.formatter)
            handlers.append(file_handler)

        self.queue_handler = QueueHandler(self.log_queue)
        self.logger.addHandler(self.queue_handler)

        self.listener = QueueListener(self.log_queue, *handlers, respect_handler_level=True)
        self.listener.start()

    def _get_log_filename(self) -> str:
        today = datetime.now().strftime("%Y-%m-%d")
        component_part = f"{self.component}/" if self.component else ""
        return f"{self.log_dir}/{component_part}{self.name}_{today}.log"

    def set_context(self, **kwargs: Any) -> None:
        """
        로깅 컨텍스트 설정 (이후 모든 레코드에 병합)
        """
        self.context.update(kwargs)

    def clear_context(self) -> None:
        self.context.clear()

    def _process_message(self, level: int, msg: str, extra: dict[str, Any] | None = None) -> None:
        """
        메시지 처리 및 로깅
        """
        log_extra: dict[str, Any] = {"component": self.component or "main"}

        exc_info_param = None
        stack_info_param = False

        if self.context:
            log_extra.update(self.context)

        if extra:
            # logging 파라미터 추출 (exc_info, stack_info)
            exc_info_param = extra.pop("exc_info", None)
            stack_info_param = bool(extra.pop("stack_info", False))

            # 'extra' 키가 있으면 그 내용을 풀어서 병합
            nested_extra = extra.pop("extra", None)
            if isinstance(nested_extra, dict):
                extra = {**nested_extra, **extra}

            for key, value in extra.items():
                safe_key = f"ctx_{key}" if key in _RESERVED_RECORD_KEYS else key
                log_extra[safe_key] = value

        self.logger.log(
            level, msg, exc_info=exc_info_param, stack_info=stack_info_param, extra=log_extra
        )

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._process_message(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._process_message(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._process_message(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._process_message(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._process_message(logging.CRITICAL, msg, kwargs)

    def close(self) -> None:
        """
        리소스 정리 (큐 리스너 스레드 종료)
        """
        self.listener.stop()

    def __del__(self) -> None:
        try:
            self.close()
        except Exception:
            pass
