"""I/O 경계 DTO 기반 클래스

와이어 필드는 camelCase(streamId), 파이썬 속성은 snake_case(stream_id)로 다룹니다.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

# 송신 메시지용 ConfigDict (불변 + 알 수 없는 필드 금지)
OUTBOUND_CONFIG = ConfigDict(
    use_enum_values=True,
    extra="forbid",
    validate_default=True,
    frozen=True,
    populate_by_name=True,
    arbitrary_types_allowed=False,
)

# 수신 메시지용 ConfigDict (서버가 추가 필드를 보내도 허용하고 무시)
INBOUND_CONFIG = ConfigDict(
    use_enum_values=True,
    extra="ignore",
    frozen=True,
    populate_by_name=True,
    arbitrary_types_allowed=False,
)


class OutboundMessageDTO(BaseModel):
    """client -> server 제어 메시지 베이스."""

    model_config = OUTBOUND_CONFIG

    def to_wire(self) -> dict[str, Any]:
        """와이어 필드명(alias) 기준 dict, None 필드는 제외"""
        return self.model_dump(by_alias=True, exclude_none=True)


class InboundMessageDTO(BaseModel):
    """server -> client 메시지 베이스."""

    model_config = INBOUND_CONFIG
