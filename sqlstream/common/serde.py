from typing import Any, Callable

import orjson

JSONDefault = Callable[[Any], Any]


def to_bytes(value: Any, default: JSONDefault | None = None) -> bytes:
    """객체를 UTF-8 JSON bytes(orjson)로 직렬화.

    - orjson.dumps 사용, 실패 시 default 인코더 시도 후 str(value)로 폴백
    """
    try:
        return orjson.dumps(value)
    except TypeError:
        if default is not None:
            return orjson.dumps(default(value))
        return orjson.dumps(str(value))


def to_text(value: Any, default: JSONDefault | None = None) -> str:
    """텍스트 프레임 전송용 JSON 문자열 직렬화."""
    return to_bytes(value, default).decode("utf-8")


def loads(raw: str | bytes | bytearray | memoryview) -> Any:
    """orjson 역직렬화. 실패 시 orjson.JSONDecodeError(ValueError 하위) 발생."""
    return orjson.loads(raw)
