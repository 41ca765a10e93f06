"""
Wire protocol for the realtime channel.

Frames are JSON text messages tagged by their ``type`` field. Inbound frames
are parsed into ``InboundFrame`` tuples; outbound frames are plain dicts built
by the ``*_frame`` helpers and serialized with ``encode``.

Every frame produced while handling a user message carries that message's
``messageId`` so clients can pair responses with requests and drop stale
frames after a reconnect.
"""

import json
import uuid
from typing import Any, Dict, List, NamedTuple, Optional

INBOUND_TYPES = ("message", "audio", "interrupt", "config")
STATUSES = ("listening", "processing", "responding", "ready")


class ProtocolError(ValueError):
    """Raised when an inbound frame cannot be understood."""


class UnknownFrameError(ProtocolError):
    """Raised for a well-formed frame with an unrecognized ``type``."""

    def __init__(self, frame_type: str):
        self.frame_type = frame_type
        super().__init__(f"Tipo de mensaje no reconocido: {frame_type}")


class InboundFrame(NamedTuple):
    """A parsed client-to-server frame."""

    type: str
    content: str = ""
    message_id: Optional[str] = None
    audio_data: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


def new_message_id() -> str:
    return uuid.uuid4().hex


def _optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ProtocolError(f"Field '{key}' must be a string")
    return value


def parse_inbound(raw: str) -> InboundFrame:
    """Parse a raw text frame from the client.

    Raises:
        ProtocolError: invalid JSON, non-object payload or bad field types
        UnknownFrameError: the ``type`` tag is not one we handle
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Frame must be a JSON object")

    frame_type = data.get("type")
    if not isinstance(frame_type, str):
        raise ProtocolError("Frame is missing a string 'type' field")
    if frame_type not in INBOUND_TYPES:
        raise UnknownFrameError(frame_type)

    message_id = _optional_str(data, "messageId")

    if frame_type == "message":
        content = _optional_str(data, "content") or ""
        return InboundFrame(
            type=frame_type,
            content=content,
            message_id=message_id or new_message_id(),
        )

    if frame_type == "audio":
        return InboundFrame(
            type=frame_type,
            audio_data=_optional_str(data, "audioData"),
            message_id=message_id,
        )

    if frame_type == "config":
        config = data.get("config")
        if config is not None and not isinstance(config, dict):
            raise ProtocolError("Field 'config' must be an object")
        return InboundFrame(type=frame_type, config=config, message_id=message_id)

    return InboundFrame(type=frame_type, message_id=message_id)


def _with_id(frame: dict, message_id: Optional[str]) -> dict:
    if message_id:
        frame["messageId"] = message_id
    return frame


def status_frame(
    status: str, content: Optional[str] = None, message_id: Optional[str] = None
) -> dict:
    if status not in STATUSES:
        raise ValueError(f"Unknown status: {status}")
    frame = {"type": "status", "status": status}
    if content is not None:
        frame["content"] = content
    return _with_id(frame, message_id)


def chunk_frame(chunk: str, message_id: Optional[str] = None) -> dict:
    return _with_id({"type": "chunk", "chunk": chunk}, message_id)


def tool_call_frame(tool_name: str, message_id: Optional[str] = None) -> dict:
    frame = {
        "type": "tool_call",
        "toolName": tool_name,
        "content": f"Ejecutando {tool_name}...",
    }
    return _with_id(frame, message_id)


def tool_result_frame(
    tool_name: str, tool_result: dict, message_id: Optional[str] = None
) -> dict:
    frame = {"type": "tool_result", "toolName": tool_name, "toolResult": tool_result}
    return _with_id(frame, message_id)


def response_frame(
    content: str,
    latency_ms: int,
    tools_used: List[str],
    confidence: float = 0.95,
    message_id: Optional[str] = None,
) -> dict:
    frame = {
        "type": "response",
        "content": content,
        "metadata": {
            "latency": latency_ms,
            "toolsUsed": list(tools_used),
            "confidence": confidence,
        },
    }
    return _with_id(frame, message_id)


def error_frame(error: str, message_id: Optional[str] = None) -> dict:
    return _with_id({"type": "error", "error": error}, message_id)


def encode(frame: dict) -> str:
    return json.dumps(frame, ensure_ascii=False)
