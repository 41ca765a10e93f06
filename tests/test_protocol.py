import json

import pytest

from realtime_agent import protocol
from realtime_agent.protocol import ProtocolError, UnknownFrameError


def test_message_frame_gets_generated_id():
    frame = protocol.parse_inbound('{"type": "message", "content": "Hola"}')
    assert frame.type == "message"
    assert frame.content == "Hola"
    assert frame.message_id


def test_message_frame_keeps_client_id():
    frame = protocol.parse_inbound('{"type": "message", "content": "Hola", "messageId": "m1"}')
    assert frame.message_id == "m1"


def test_config_frame():
    frame = protocol.parse_inbound('{"type": "config", "config": {"streamingEnabled": false}}')
    assert frame.config == {"streamingEnabled": False}


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        '{"content": "no type"}',
        '{"type": "message", "content": 42}',
        '{"type": "config", "config": "yes"}',
    ],
)
def test_malformed_frames(raw):
    with pytest.raises(ProtocolError):
        protocol.parse_inbound(raw)


def test_unknown_type_names_the_tag():
    with pytest.raises(UnknownFrameError) as excinfo:
        protocol.parse_inbound('{"type": "video"}')
    assert excinfo.value.frame_type == "video"
    assert str(excinfo.value) == "Tipo de mensaje no reconocido: video"


def test_status_frame_rejects_unknown_status():
    with pytest.raises(ValueError):
        protocol.status_frame("sleeping")


def test_frames_carry_message_id_only_when_given():
    assert "messageId" not in protocol.chunk_frame("hola ")
    assert protocol.chunk_frame("hola ", "m1")["messageId"] == "m1"


def test_response_frame_metadata():
    frame = protocol.response_frame("texto", 120, ["weather"])
    assert frame["metadata"] == {"latency": 120, "toolsUsed": ["weather"], "confidence": 0.95}


def test_encode_keeps_accents():
    raw = protocol.encode(protocol.status_frame("ready", "Conexión establecida"))
    assert "Conexión" in raw
    assert json.loads(raw)["content"] == "Conexión establecida"
