"""
Codec — serialize message payloads to and from text using Pydantic v2.

Payloads are arbitrary structured values. Encoding goes through
TypeAdapter(Any), which serializes by runtime type, so dicts, lists,
pydantic models, dataclasses and datetimes all work. Decoding validates
the text as a JSON value.

Wire format
-----------
    add_message({"to": "user@example.com"}, 0)
        → '{"to":"user@example.com"}'
"""
from __future__ import annotations

from typing import Any

from pydantic import JsonValue, TypeAdapter, ValidationError

from rqueue.domain.errors import PayloadDecodeError

_ENCODER: TypeAdapter[Any] = TypeAdapter(Any)
_DECODER: TypeAdapter[JsonValue] = TypeAdapter(JsonValue)


def encode(payload: Any) -> str:
    """Serialize a structured value to JSON text."""
    return _ENCODER.dump_json(payload).decode("utf-8")


def decode(raw: str) -> JsonValue:
    """Parse JSON text. Raises PayloadDecodeError on malformed input."""
    try:
        return _DECODER.validate_json(raw)
    except ValidationError as exc:
        raise PayloadDecodeError(raw, exc) from exc
