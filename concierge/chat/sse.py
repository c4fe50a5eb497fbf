"""
Server-Sent Events framing for the chat stream.

Frames:
    data: "<json string>"\n\n          one per content chunk
    event: end\ndata: {}\n\n           exactly once, after success
    event: error\ndata: {...}\n\n      at most once, terminal
"""

from __future__ import annotations

import json
from typing import Any

END_FRAME = "event: end\ndata: {}\n\n"


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def encode_data_frame(text: str) -> str:
    return f"data: {_dumps(text)}\n\n"


def encode_payload_frame(payload: Any) -> str:
    """A structured payload travels as the JSON string of its JSON."""
    return encode_data_frame(_dumps(payload))


def encode_error_frame(message: str) -> str:
    return f"event: error\ndata: {_dumps({'error': message})}\n\n"


__all__ = ["END_FRAME", "encode_data_frame", "encode_error_frame", "encode_payload_frame"]
