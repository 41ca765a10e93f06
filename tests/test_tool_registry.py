import asyncio

import pytest

from realtime_agent.tool_registry import ToolRegistry, callable_to_tool_schema
from realtime_agent.tools.calculator import calculate


def test_schema_from_callable():
    def lookup(city: str, days: int = 1):
        """Look up the forecast.

        More details here.
        """

    schema = callable_to_tool_schema(lookup, "lookup")
    assert schema["description"] == "Look up the forecast."
    assert schema["parameters"]["properties"]["days"]["type"] == "integer"
    assert schema["parameters"]["required"] == ["city"]


def test_default_registry_describes_tools(static_registry):
    described = static_registry.describe()
    assert [d["name"] for d in described] == ["web_search", "calculator", "weather", "currency"]
    assert described[1]["label"] == "Calculadora"
    assert all(d["status"] == "ready" for d in described)


def test_unknown_tool_raises_key_error():
    with pytest.raises(KeyError):
        asyncio.run(ToolRegistry().execute_tool("nope", "hola"))


def test_status_tracks_result(static_registry):
    result = asyncio.run(static_registry.execute_tool("calculator", "calcula 1 / 0"))
    assert not result.ok
    assert static_registry.descriptors["calculator"].status == "error"

    asyncio.run(static_registry.execute_tool("calculator", "calcula 1 + 1"))
    assert static_registry.descriptors["calculator"].status == "ready"


def test_sync_and_async_callables():
    async def slow_calculator(message: str):
        """Async variant."""
        return calculate(message)

    registry = ToolRegistry()
    registry.register_callable(calculate, name="sync_calc")
    registry.register_callable(slow_calculator)

    assert asyncio.run(registry.execute_tool("sync_calc", "2 + 2")).value == 4
    assert asyncio.run(registry.execute_tool("slow_calculator", "3 * 3")).value == 9


def test_raising_tool_marks_error_status():
    def broken(message: str):
        raise RuntimeError("boom")

    registry = ToolRegistry()
    registry.register_callable(broken)
    with pytest.raises(RuntimeError):
        asyncio.run(registry.execute_tool("broken", "hola"))
    assert registry.descriptors["broken"].status == "error"


def test_set_status_rejects_unknown_values(static_registry):
    with pytest.raises(ValueError):
        static_registry.set_status("weather", "sleeping")
