"""
Tool dispatcher and turn engine.

Shared by the server and the client's offline simulator: both run a user
message through ``run_turn`` so they emit the same sequence of frames.
"""

import asyncio
import logging
import random
import re
import time
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional, Tuple

from . import protocol
from .config import RealtimeConfig, Settings
from .streamer import split_into_chunks, stream_response
from .tool_registry import FALLBACK, ToolCall, ToolRegistry, ToolResult
from .tools.calculator import CalculatorTool
from .tools.currency import CurrencyTool
from .tools.weather import CITY_NAMES, WeatherTool
from .tools.web_search import WebSearchTool
from .utils import contains_any

logger = logging.getLogger(__name__)

Emit = Callable[[dict], Awaitable[None]]

# Invocation order, independent of where keywords appear in the message
TOOL_PRIORITY = ("web_search", "calculator", "weather", "currency")

TOOL_KEYWORDS = {
    "web_search": (
        "busca", "información", "bitcoin", "precio", "typescript", "javascript",
        "search", "price", "information",
    ),
    "calculator": ("calcula", "cálculo", "%", "propina"),
    "weather": (
        "tiempo", "clima", "temperatura", "weather", "temperature", "méxico",
        *CITY_NAMES.keys(),
    ),
    "currency": ("euro", "dólar", "peso", "conversión", "cambio"),
}

ARITHMETIC_PATTERN = re.compile(r"\d+\s*[+\-*/]\s*\d+")

# Artificial per-tool latency in seconds
TOOL_DELAYS = {
    "web_search": (0.8, 1.5),
    "calculator": (0.2, 0.5),
    "weather": (0.6, 1.0),
    "currency": (0.4, 0.8),
}

CONVERSATIONAL_REPLIES = (
    "Entiendo tu consulta. ¿Podrías ser más específico sobre lo que necesitas?",
    "Interesante pregunta. ¿Te gustaría que busque información específica sobre esto?",
    "Puedo ayudarte con eso. ¿Necesitas que realice algún cálculo o búsqueda?",
    "¡Por supuesto! ¿Hay algún aspecto particular que te interese más?",
)

CLOSING_LINE = "¿Hay algo más en lo que pueda ayudarte?"
FALLBACK_NOTE = "(Datos de respaldo: el servicio en vivo no respondió.)"
CONFIDENCE = 0.95


class TurnOutcome(NamedTuple):
    """What happened while answering one user message."""

    response: str
    tools_used: List[str]
    latency_ms: int
    interrupted: bool = False
    provenance: Optional[Dict[str, str]] = None
    failed: bool = False


def analyze_tool_needs(message: str) -> List[str]:
    """Select tools for a message by keyword, in fixed priority order."""
    selected = []
    for name in TOOL_PRIORITY:
        if contains_any(message, TOOL_KEYWORDS[name]):
            selected.append(name)
        elif name == "calculator" and ARITHMETIC_PATTERN.search(message):
            selected.append(name)
    return selected


def create_tool_registry(settings: Optional[Settings] = None, live: bool = True) -> ToolRegistry:
    """Build the registry of demo tools.

    With ``live=False`` (or no credentials in settings) every tool answers
    from its static tables.
    """
    settings = settings or Settings()
    weather = WeatherTool(
        api_key=settings.openweather_api_key if live else "",
        timeout=settings.weather_timeout_s,
    )
    search = WebSearchTool(
        api_key=settings.google_search_api_key if live else "",
        engine_id=settings.google_search_engine_id if live else "",
    )

    registry = ToolRegistry()
    registry.register_callable(search.web_search, label="Búsqueda Web", icon="🔍")
    registry.register_callable(CalculatorTool().calculator, label="Calculadora", icon="🧮")
    registry.register_callable(weather.weather, label="Clima", icon="🌤️")
    registry.register_callable(CurrencyTool().currency, label="Divisas", icon="💱")
    return registry


def _with_note(result: ToolResult, text: str) -> str:
    if result.provenance == FALLBACK:
        return f"{text}\n{FALLBACK_NOTE}"
    return text


def compose_response(
    results: Dict[str, ToolResult], tools_used: List[str], rng=random
) -> str:
    """Compose the natural-language reply from tool results."""
    if not tools_used:
        return rng.choice(CONVERSATIONAL_REPLIES)

    response = ""

    search = results.get("web_search")
    if search:
        response += f"🔍 **Búsqueda realizada:**\n{_with_note(search, search.summary)}\n\n"
        if search.results:
            response += "**Fuentes consultadas:**\n"
            for index, item in enumerate(search.results, start=1):
                response += f"{index}. [{item['title']}]({item['url']})\n"
            response += "\n"

    calculation = results.get("calculator")
    if calculation:
        response += "🧮 **Cálculo realizado:**\n"
        response += f"{calculation.calculation}\n{calculation.explanation}\n\n"

    weather = results.get("weather")
    if weather:
        response += f"🌤️ **Información del clima:**\n{_with_note(weather, weather.summary)}\n\n"

    currency = results.get("currency")
    if currency:
        response += f"💱 **Conversión de moneda:**\n{currency.summary}\n\n"

    return response + CLOSING_LINE


async def _pause(delay_range: Optional[Tuple[float, float]], rng, sleep) -> None:
    if delay_range:
        await sleep(rng.uniform(*delay_range))


async def run_turn(
    message: str,
    emit: Emit,
    registry: ToolRegistry,
    config: Optional[RealtimeConfig] = None,
    message_id: Optional[str] = None,
    chunk_delay: Optional[Tuple[float, float]] = (0.05, 0.1),
    tool_delays: Optional[Dict[str, Tuple[float, float]]] = None,
    interrupt_event: Optional[asyncio.Event] = None,
    rng=random,
    sleep=asyncio.sleep,
) -> TurnOutcome:
    """Answer one user message, emitting frames as the turn progresses.

    The turn always ends with exactly one status frame: ``listening`` on
    success (also after an interrupt) or ``ready`` after an error frame.
    """
    config = config or RealtimeConfig()
    start = time.monotonic()
    tools_used: List[str] = []
    results: Dict[str, ToolResult] = {}

    def interrupted() -> bool:
        return bool(
            config.interruptible and interrupt_event is not None and interrupt_event.is_set()
        )

    def elapsed_ms() -> int:
        return int((time.monotonic() - start) * 1000)

    try:
        await emit(protocol.status_frame("processing", "Analizando mensaje...", message_id))

        for tool_name in analyze_tool_needs(message):
            if interrupted():
                break
            if not registry.has_tool(tool_name):
                continue

            tool_call = ToolCall(name=tool_name, arguments={"message": message})
            logger.info(
                f"TOOL: calling {tool_call.name}",
                extra={"structured": {"log_type": "tool_call", **tool_call._asdict()}},
            )
            await emit(protocol.tool_call_frame(tool_name, message_id))
            await _pause((tool_delays or {}).get(tool_name), rng, sleep)

            result = await registry.execute_tool(tool_name, message)
            results[tool_name] = result
            tools_used.append(tool_name)
            await emit(protocol.tool_result_frame(tool_name, result.to_payload(), message_id))

        provenance = {name: result.provenance for name, result in results.items()}

        if interrupted():
            await emit(protocol.status_frame("listening", "Escuchando...", message_id))
            return TurnOutcome("", tools_used, elapsed_ms(), True, provenance)

        await emit(protocol.status_frame("responding", "Generando respuesta...", message_id))
        response = compose_response(results, tools_used, rng)

        if config.streaming_enabled:
            sent = await stream_response(
                emit,
                response,
                delay_range=chunk_delay,
                interrupt_event=interrupt_event if config.interruptible else None,
                message_id=message_id,
                sleep=sleep,
                rng=rng,
            )
            was_interrupted = sent < len(split_into_chunks(response))
            return TurnOutcome(response, tools_used, elapsed_ms(), was_interrupted, provenance)

        await emit(
            protocol.response_frame(response, elapsed_ms(), tools_used, CONFIDENCE, message_id)
        )
        await emit(protocol.status_frame("listening", "Escuchando...", message_id))
        return TurnOutcome(response, tools_used, elapsed_ms(), False, provenance)

    except Exception as e:
        logger.error(f"ERROR: Error handling message: {e}", exc_info=True)
        await emit(protocol.error_frame("Error procesando tu mensaje", message_id))
        await emit(protocol.status_frame("ready", message_id=message_id))
        return TurnOutcome("", tools_used, elapsed_ms(), False, {}, failed=True)
