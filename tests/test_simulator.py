import asyncio
import json

from realtime_agent.config import RealtimeConfig, Settings
from realtime_agent.simulator import LocalSimulator


def make_simulator():
    return LocalSimulator(tool_delays=None, chunk_delay=None)


def test_simulator_emits_encoded_frames():
    raw_frames = []

    async def on_frame(raw):
        raw_frames.append(raw)

    outcome = asyncio.run(
        make_simulator().run("¿Qué tiempo hace en Madrid?", on_frame, message_id="m1")
    )

    frames = [json.loads(raw) for raw in raw_frames]
    assert frames[0] == {
        "type": "status",
        "status": "processing",
        "content": "Analizando mensaje...",
        "messageId": "m1",
    }
    assert frames[-1]["status"] == "listening"
    assert frames[2]["toolResult"]["provenance"] == "static"
    assert "".join(f["chunk"] for f in frames if f["type"] == "chunk") == outcome.response


def test_simulator_ignores_live_credentials():
    simulator = LocalSimulator(settings=Settings(openweather_api_key="secret"))
    result = asyncio.run(simulator.registry.execute_tool("weather", "clima en Madrid"))
    assert result.provenance == "static"


def test_simulator_interrupt():
    simulator = make_simulator()
    frames = []

    async def on_frame(raw):
        frame = json.loads(raw)
        frames.append(frame)
        if frame["type"] == "chunk":
            simulator.interrupt()

    outcome = asyncio.run(simulator.run("Calcula 2 + 2", on_frame))

    assert outcome.interrupted
    assert [f["type"] for f in frames].count("chunk") == 1


def test_simulator_non_streaming():
    frames = []

    async def on_frame(raw):
        frames.append(json.loads(raw))

    asyncio.run(
        make_simulator().run(
            "Convierte 100 euros a dólares", on_frame, config=RealtimeConfig(streaming_enabled=False)
        )
    )

    response = next(f for f in frames if f["type"] == "response")
    assert "100 EUR = 108.90 USD" in response["content"]
