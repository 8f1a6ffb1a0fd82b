from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence, Union

from pydantic import ValidationError

from .errors import BatchEnvelopeError, DecodeError
from .models import TelemetryMessage, TelemetryRecord

# flat form used by the upstream generator, field order is fixed
CSV_FIELDS = ("Month", "Temperature", "Humidity", "WaterLevel", "ClusterId", "DeviceId")

RawMessage = Union[bytes, str]
Decoded = Union[TelemetryRecord, DecodeError]


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(x) for x in err.get("loc", ())) or "message"
    return f"{loc}: {err.get('msg', 'invalid')}"


def _parse_fields(text: str) -> Dict[str, Any]:
    if text.startswith("{"):
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("JSON message is not an object")
        return data
    tokens = [t.strip() for t in text.split(",")]
    if len(tokens) != len(CSV_FIELDS):
        raise ValueError(f"expected {len(CSV_FIELDS)} comma-delimited fields, got {len(tokens)}")
    return dict(zip(CSV_FIELDS, tokens))


def _is_csv_header(line: str) -> bool:
    return tuple(t.strip().lower() for t in line.split(",")) == tuple(f.lower() for f in CSV_FIELDS)


def decode_one(index: int, raw: RawMessage) -> Decoded:
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else str(raw)
    except UnicodeDecodeError:
        return DecodeError(index, "message is not valid UTF-8")
    text = text.strip()
    if not text:
        return DecodeError(index, "empty message")

    try:
        fields = _parse_fields(text)
    except ValueError as e:  # json.JSONDecodeError is a ValueError
        return DecodeError(index, str(e))

    try:
        return TelemetryMessage.model_validate(fields).to_record()
    except ValidationError as e:
        return DecodeError(index, _first_error(e))


def decode(raw_messages: Sequence[RawMessage]) -> List[Decoded]:
    """
    Decode every message independently. A malformed message becomes a DecodeError
    in its own slot; output order matches input order.
    """
    return [decode_one(i, raw) for i, raw in enumerate(raw_messages)]


def split_envelope(body: Union[bytes, str]) -> List[bytes]:
    """
    Split a batch body into raw messages.

    - JSON array: each element is one message (objects are re-serialized, strings kept)
    - otherwise: newline-delimited messages, blank lines skipped
    - a leading CSV header line (the generator writes one) is dropped
    """
    try:
        text = body.decode("utf-8") if isinstance(body, (bytes, bytearray)) else str(body)
    except UnicodeDecodeError as e:
        raise BatchEnvelopeError(f"batch body is not valid UTF-8: {e}") from e

    stripped = text.strip()
    if stripped.startswith("["):
        try:
            items = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise BatchEnvelopeError(f"batch body is not a valid JSON array: {e}") from e
        out: List[bytes] = []
        for item in items:
            if isinstance(item, str):
                out.append(item.encode("utf-8"))
            else:
                # non-object items still go through the decoder so they surface as DecodeErrors
                out.append(json.dumps(item).encode("utf-8"))
        return out

    lines = [line for line in stripped.splitlines() if line.strip()]
    if lines and _is_csv_header(lines[0]):
        lines = lines[1:]
    return [line.encode("utf-8") for line in lines]
