import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from realtime_agent.config import RealtimeConfig
from realtime_agent.dispatcher import (
    CLOSING_LINE,
    CONVERSATIONAL_REPLIES,
    FALLBACK_NOTE,
    analyze_tool_needs,
    compose_response,
    run_turn,
)
from realtime_agent.tool_registry import FALLBACK, ToolRegistry
from realtime_agent.tools.weather import static_weather


@pytest.mark.parametrize(
    "message, tools",
    [
        ("Calcula 250 * 1.21", ["calculator"]),
        ("¿Qué tiempo hace en Madrid?", ["weather"]),
        ("Busca el precio de bitcoin", ["web_search"]),
        ("Convierte 100 euros a dólares", ["currency"]),
        ("Convierte 100 euros a DOLARES", ["currency"]),
        ("¿Cuánto es 12 + 30?", ["calculator"]),
        ("clima en Cancún", ["weather"]),
        ("Hola, ¿qué tal?", []),
    ],
)
def test_analyze_tool_needs(message, tools):
    assert analyze_tool_needs(message) == tools


def test_priority_order_ignores_keyword_position():
    message = "Convierte 50 pesos, dime el clima y calcula el 15% de propina, busca información"
    assert analyze_tool_needs(message) == ["web_search", "calculator", "weather", "currency"]


def test_conversational_reply_uses_rng():
    reply = compose_response({}, [], rng=random.Random(3))
    assert reply in CONVERSATIONAL_REPLIES
    assert reply == random.Random(3).choice(CONVERSATIONAL_REPLIES)


def test_compose_marks_fallback_data():
    weather = static_weather("Madrid", provenance=FALLBACK)
    response = compose_response({"weather": weather}, ["weather"])
    assert "🌤️ **Información del clima:**" in response
    assert FALLBACK_NOTE in response
    assert response.endswith(CLOSING_LINE)


def test_streaming_turn_frame_sequence(recorder, static_registry):
    outcome = asyncio.run(
        run_turn("Calcula 250 * 1.21", recorder, static_registry, message_id="m1", chunk_delay=None)
    )

    types = recorder.types()
    assert types[:4] == ["status", "tool_call", "tool_result", "status"]
    assert set(types[4:-1]) == {"chunk"}
    assert types[-1] == "status"
    assert recorder.statuses() == ["processing", "responding", "listening"]
    assert all(f["messageId"] == "m1" for f in recorder.frames)

    tool_result = recorder.of_type("tool_result")[0]
    assert tool_result["toolName"] == "calculator"
    assert tool_result["toolResult"]["result"] == "302.5"

    streamed = "".join(f["chunk"] for f in recorder.of_type("chunk"))
    assert streamed == outcome.response
    assert "250 * 1.21 = 302.5" in streamed
    assert outcome.tools_used == ["calculator"]
    assert outcome.provenance == {"calculator": "computed"}
    assert not outcome.interrupted


def test_non_streaming_turn_sends_one_response(recorder, static_registry):
    config = RealtimeConfig(streaming_enabled=False)

    outcome = asyncio.run(
        run_turn("¿Qué tiempo hace en Madrid?", recorder, static_registry, config=config)
    )

    assert recorder.types() == [
        "status", "tool_call", "tool_result", "status", "response", "status",
    ]
    response = recorder.of_type("response")[0]
    assert response["content"] == outcome.response
    assert "En Madrid: 18°C, parcialmente nublado." in response["content"]
    assert response["metadata"]["toolsUsed"] == ["weather"]
    assert response["metadata"]["confidence"] == 0.95
    assert recorder.statuses()[-1] == "listening"


def test_tool_delays_are_applied(recorder, static_registry):
    sleep = AsyncMock()
    asyncio.run(
        run_turn(
            "Busca bitcoin y convierte 10 euros a dólares",
            recorder,
            static_registry,
            chunk_delay=None,
            tool_delays={"web_search": (0.8, 1.5), "currency": (0.4, 0.8)},
            sleep=sleep,
        )
    )

    delays = [call.args[0] for call in sleep.await_args_list]
    assert len(delays) == 2
    assert 0.8 <= delays[0] <= 1.5
    assert 0.4 <= delays[1] <= 0.8


def test_interrupt_before_tools(recorder, static_registry):
    event = asyncio.Event()
    event.set()

    outcome = asyncio.run(
        run_turn("Calcula 2 + 2", recorder, static_registry, interrupt_event=event)
    )

    assert outcome.interrupted
    assert recorder.types() == ["status", "status"]
    assert recorder.statuses() == ["processing", "listening"]


def test_interrupt_ignored_when_not_interruptible(recorder, static_registry):
    event = asyncio.Event()
    event.set()
    config = RealtimeConfig(interruptible=False)

    outcome = asyncio.run(
        run_turn(
            "Calcula 2 + 2", recorder, static_registry,
            config=config, chunk_delay=None, interrupt_event=event,
        )
    )

    assert not outcome.interrupted
    assert "2 + 2 = 4" in "".join(f["chunk"] for f in recorder.of_type("chunk"))


def test_interrupt_mid_stream(static_registry):
    event = asyncio.Event()
    frames = []

    async def emit(frame):
        frames.append(frame)
        if frame["type"] == "chunk":
            event.set()

    outcome = asyncio.run(
        run_turn("Calcula 2 + 2", emit, static_registry, chunk_delay=None, interrupt_event=event)
    )

    assert outcome.interrupted
    assert len([f for f in frames if f["type"] == "chunk"]) == 1
    assert [f["status"] for f in frames if f["type"] == "status"][-1] == "listening"


def test_failing_tool_yields_error_and_ready(recorder):
    def calculator(message: str):
        raise RuntimeError("boom")

    registry = ToolRegistry()
    registry.register_callable(calculator)

    outcome = asyncio.run(run_turn("Calcula 2 + 2", recorder, registry, message_id="m9"))

    assert outcome.failed
    assert recorder.types()[-2:] == ["error", "status"]
    assert recorder.of_type("error")[0] == {
        "type": "error",
        "error": "Error procesando tu mensaje",
        "messageId": "m9",
    }
    assert recorder.statuses()[-1] == "ready"


def test_missing_tools_are_skipped(recorder):
    outcome = asyncio.run(
        run_turn("Calcula 2 + 2", recorder, ToolRegistry(), chunk_delay=None, rng=random.Random(0))
    )
    assert outcome.tools_used == []
    assert outcome.response in CONVERSATIONAL_REPLIES
