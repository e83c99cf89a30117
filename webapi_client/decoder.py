"""
Body decoding with an envelope-first, bare-payload-second policy.

Servers that already speak the ``{success, message, data}`` envelope are
unwrapped; plain REST endpoints that return the payload directly are
wrapped in a successful envelope. In both cases the status code comes
from the transport, never from the body.
"""
from functools import lru_cache
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from .exceptions import DecodeError
from .models import ResponseEnvelope, WireEnvelope


@lru_cache(maxsize=256)
def _payload_adapter(response_type: Any) -> TypeAdapter:
    return TypeAdapter(response_type)


@lru_cache(maxsize=256)
def _wire_adapter(response_type: Any) -> TypeAdapter:
    return TypeAdapter(WireEnvelope[response_type])


def _type_name(response_type: Any) -> str:
    return getattr(response_type, "__name__", None) or repr(response_type)


class ResponseDecoder:
    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def decode(
        self,
        body: bytes,
        status_code: int,
        response_type: Any = Any,
        url: Optional[str] = None,
    ) -> ResponseEnvelope:
        envelope_type = ResponseEnvelope[response_type]

        if response_type is str:
            return envelope_type.ok(body.decode(self.encoding, errors="replace"), status_code)
        if response_type is bytes:
            return envelope_type.ok(body, status_code)

        # 204 and friends
        if not body.strip():
            return envelope_type.ok(None, status_code)

        try:
            wire = _wire_adapter(response_type).validate_json(body)
        except ValidationError:
            pass
        else:
            return envelope_type(
                success=wire.success,
                message=wire.message,
                data=wire.data,
                status_code=status_code,
            )

        try:
            data = _payload_adapter(response_type).validate_json(body)
        except ValidationError as e:
            raise DecodeError(
                url=url or "<unknown>",
                target=_type_name(response_type),
                details=f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}",
                status_code=status_code,
            ) from e

        return envelope_type.ok(data, status_code)
