"""Frame Codec

송신 제어 메시지를 와이어 포맷(JSON 텍스트)으로 직렬화하고,
수신 프레임을 InboundFrameDTO 로 해석합니다. 상태를 갖지 않습니다.
"""

from __future__ import annotations

from typing import Any

import orjson
from pydantic import ValidationError

from sqlstream.common.exceptions import FrameDecodeError
from sqlstream.common.serde import loads, to_text
from sqlstream.core.dto.io.frames import (
    CancelQueryRequestDTO,
    InboundFrameDTO,
    QueryRequestDTO,
)
from sqlstream.core.types import RawFrame, StreamId


def encode_query(query_text: str, stream_id: StreamId) -> str:
    """query 제어 메시지 직렬화"""
    return to_text(QueryRequestDTO(query=query_text, stream_id=stream_id).to_wire())


def encode_cancel(stream_id: StreamId) -> str:
    """cancelQuery 제어 메시지 직렬화"""
    return to_text(CancelQueryRequestDTO(stream_id=stream_id).to_wire())


def normalize_payload(value: Any) -> Any:
    """data/error 페이로드를 구조화된 값으로 한 번만 정규화합니다.

    - 문자열이 JSON 이면 디코드한 값을 반환 (예: '{"columns": ["n"]}' -> dict)
    - JSON 이 아닌 문자열(예: "cancelled")은 그대로 반환
    - 그 외 값은 이미 구조화된 것으로 보고 그대로 반환
    """
    match value:
        case str() as text:
            stripped = text.strip()
            if not stripped:
                return text
            try:
                return loads(stripped)
            except orjson.JSONDecodeError:
                return text
        case _:
            return value


def decode_frame(raw: RawFrame) -> InboundFrameDTO:
    """수신 프레임 해석.

    Raises:
        FrameDecodeError: JSON 이 아니거나, 최상위가 객체가 아니거나, 봉투 검증에 실패한 경우
    """
    match raw:
        case bytes() | bytearray() | memoryview():
            try:
                text = bytes(raw).decode("utf-8")
            except UnicodeDecodeError as e:
                raise FrameDecodeError(f"frame is not valid utf-8: {e}", raw=bytes(raw)) from e
        case str():
            text = raw
        case _:
            raise FrameDecodeError(f"unsupported frame type: {type(raw).__name__}")

    try:
        parsed = loads(text)
    except orjson.JSONDecodeError as e:
        raise FrameDecodeError(f"frame is not well-formed JSON: {e}", raw=text) from e

    if not isinstance(parsed, dict):
        raise FrameDecodeError(
            f"frame must be a JSON object, got {type(parsed).__name__}", raw=text
        )

    if "data" in parsed:
        parsed["data"] = normalize_payload(parsed["data"])
    if "error" in parsed:
        parsed["error"] = normalize_payload(parsed["error"])

    try:
        return InboundFrameDTO.model_validate(parsed)
    except ValidationError as e:
        raise FrameDecodeError(f"invalid frame envelope: {e.error_count()} error(s)", raw=text) from e
