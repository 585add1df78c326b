"""
Transport Framing - Encode and decode event-stream frames

Each SSE event carries one `data:` payload: a JSON object with
type "data" or "error", or the literal [DONE] sentinel.
"""

from __future__ import annotations

import json
from typing import Any

from models.stream import FrameType, StreamFrame

DONE_SENTINEL = "[DONE]"
SSE_DATA_PREFIX = "data:"


def data_frame(content: Any) -> StreamFrame:
    return StreamFrame(type=FrameType.DATA, content=content)


def error_frame(message: str, error_type: str | None = None, error: str | None = None) -> StreamFrame:
    return StreamFrame(type=FrameType.ERROR, content=message, error_type=error_type, error=error)


def done_frame() -> StreamFrame:
    return StreamFrame(type=FrameType.DONE)


def encode_frame(frame: StreamFrame) -> str:
    """Payload for the SSE data field"""
    if frame.type == FrameType.DONE:
        return DONE_SENTINEL

    payload: dict[str, Any] = {"type": frame.type.value, "content": frame.content}
    if frame.error_type:
        payload["errorType"] = frame.error_type
    if frame.error:
        payload["error"] = frame.error
    return json.dumps(payload)


def _frame_from_dict(data: dict[str, Any]) -> StreamFrame:
    kind = data.get("type")
    if kind == FrameType.DATA.value:
        return data_frame(data.get("content"))
    if kind == FrameType.ERROR.value:
        content = data.get("content")
        return error_frame(
            str(content) if content is not None else "Unknown stream error",
            error_type=data.get("errorType"),
            error=data.get("error"),
        )
    if kind == FrameType.DONE.value:
        return done_frame()
    return StreamFrame(type=FrameType.UNKNOWN, content=data)


def parse_frame(payload: StreamFrame | dict | str) -> StreamFrame:
    """Decode a frame from a model, a dict, a JSON string, or an SSE data line"""
    if isinstance(payload, StreamFrame):
        return payload
    if isinstance(payload, dict):
        return _frame_from_dict(payload)

    text = payload.strip()
    if text.startswith(SSE_DATA_PREFIX):
        text = text[len(SSE_DATA_PREFIX) :].strip()
    if text == DONE_SENTINEL:
        return done_frame()

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return StreamFrame(type=FrameType.UNKNOWN, content=text)
    if not isinstance(data, dict):
        return StreamFrame(type=FrameType.UNKNOWN, content=data)
    return _frame_from_dict(data)


def parse_sse_line(line: str) -> StreamFrame | None:
    """Frame carried by one SSE line; None for blank, comment and field lines"""
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    return parse_frame(line)
