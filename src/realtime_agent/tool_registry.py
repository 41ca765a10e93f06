"""
Simple tool registry and typed tool results.

Each tool takes the raw user message and returns one of the ``ToolResult``
variants below. Tools never raise; degraded answers are marked through the
``provenance`` attribute instead.
"""

import inspect
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, get_type_hints

from .utils import format_number

logger = logging.getLogger(__name__)

# Where a tool's answer came from
STATIC = "static"
LIVE = "live"
FALLBACK = "fallback"
COMPUTED = "computed"
ERROR = "error"

TOOL_STATUSES = ("ready", "active", "error")


class ToolCall(NamedTuple):
    """Container for tool call information passed to hooks and logs."""

    name: str
    arguments: Dict[str, Any]


class ToolResult:
    """Base class for tool results."""

    tool_name = ""

    def __init__(self, provenance: str = STATIC):
        self.provenance = provenance

    @property
    def ok(self) -> bool:
        return self.provenance != ERROR

    @property
    def degraded(self) -> bool:
        """True when a configured live source failed and static data was used."""
        return self.provenance == FALLBACK

    @property
    def summary(self) -> str:
        raise NotImplementedError

    def _payload(self) -> Dict[str, Any]:
        raise NotImplementedError

    def to_payload(self) -> Dict[str, Any]:
        """Return the ``toolResult`` object sent over the wire."""
        payload = {"tool": self.tool_name, "provenance": self.provenance}
        payload.update(self._payload())
        payload["summary"] = self.summary
        return payload

    def __str__(self):
        return self.summary


class WeatherResult(ToolResult):
    tool_name = "weather"

    def __init__(
        self,
        location: str,
        temperature: int,
        condition: str,
        humidity: int,
        wind: str,
        provenance: str = STATIC,
        feels_like: Optional[int] = None,
    ):
        super().__init__(provenance)
        self.location = location
        self.temperature = temperature
        self.condition = condition
        self.humidity = humidity
        self.wind = wind
        self.feels_like = feels_like

    @property
    def record(self) -> Dict[str, Any]:
        """The bare weather record, as stored in the static table."""
        return {
            "temp": self.temperature,
            "condition": self.condition,
            "humidity": self.humidity,
            "wind": self.wind,
        }

    @property
    def summary(self) -> str:
        return (
            f"En {self.location}: {self.temperature}°C, {self.condition.lower()}. "
            f"Humedad: {self.humidity}%, Viento: {self.wind}."
        )

    def _payload(self):
        payload = {
            "location": self.location,
            "temperature": self.temperature,
            "condition": self.condition,
            "humidity": self.humidity,
            "wind": self.wind,
        }
        if self.feels_like is not None:
            payload["feelsLike"] = self.feels_like
        return payload


class CalculatorResult(ToolResult):
    tool_name = "calculator"

    def __init__(
        self, expression: str, value: Optional[float], error: str = "", note: str = ""
    ):
        super().__init__(COMPUTED if value is not None else ERROR)
        self.expression = expression
        self.value = value
        self.error = error
        self.note = note

    @property
    def result(self) -> str:
        if self.value is None:
            return "Error"
        return format_number(self.value)

    @property
    def calculation(self) -> str:
        if self.value is None:
            return self.expression
        return f"{self.expression} = {self.result}"

    @property
    def explanation(self) -> str:
        if self.value is None:
            return (
                "No pude procesar este cálculo. "
                "Intenta con una expresión matemática válida."
            )
        explanation = f"Resultado del cálculo: {self.result}"
        if self.note:
            explanation += f". {self.note}"
        return explanation

    @property
    def summary(self) -> str:
        return f"{self.calculation}\n{self.explanation}"

    def _payload(self):
        payload = {
            "expression": self.expression,
            "result": self.result,
            "value": self.value,
            "calculation": self.calculation,
            "explanation": self.explanation,
        }
        if self.error:
            payload["error"] = self.error
        return payload


class CurrencyResult(ToolResult):
    tool_name = "currency"

    def __init__(
        self,
        from_currency: str,
        to_currency: str,
        amount: float,
        rate: float,
        known_rate: bool = True,
    ):
        super().__init__(COMPUTED)
        self.from_currency = from_currency.upper()
        self.to_currency = to_currency.upper()
        self.amount = amount
        self.rate = rate
        self.known_rate = known_rate
        self.result = round(amount * rate, 2)

    @property
    def summary(self) -> str:
        return (
            f"{format_number(self.amount)} {self.from_currency} = "
            f"{self.result:.2f} {self.to_currency} "
            f"(Tipo de cambio: {format_number(self.rate)})"
        )

    def _payload(self):
        return {
            "from": self.from_currency,
            "to": self.to_currency,
            "amount": self.amount,
            "rate": self.rate,
            "knownRate": self.known_rate,
            "result": f"{self.result:.2f}",
        }


class WebSearchResult(ToolResult):
    tool_name = "web_search"

    def __init__(
        self,
        query: str,
        results: List[Dict[str, str]],
        summary: str,
        provenance: str = STATIC,
    ):
        super().__init__(provenance)
        self.query = query
        self.results = results
        self._summary = summary

    @property
    def summary(self) -> str:
        return self._summary

    def _payload(self):
        return {"query": self.query, "results": [dict(r) for r in self.results]}


def callable_to_tool_schema(
    callable_func: Callable, name: str, description: Optional[str] = None
) -> Dict[str, Any]:
    """
    Describe a tool callable as a JSON-schema style dictionary.

    Args:
        callable_func: The callable to describe
        name: Tool name
        description: Optional description (defaults to the docstring)

    Returns:
        Schema dictionary with name, description and parameters
    """
    sig = inspect.signature(callable_func)
    type_hints = get_type_hints(callable_func)

    if description is None:
        doc = inspect.getdoc(callable_func)
        description = doc.strip().splitlines()[0] if doc else f"Execute {name}"

    schema = {
        "type": "function",
        "name": name,
        "description": description,
        "parameters": {"type": "object", "properties": {}, "required": []},
    }

    for param_name, param in sig.parameters.items():
        if param_name == "self":
            continue

        param_type = type_hints.get(param_name, str)
        if param_type is int:
            json_type = "integer"
        elif param_type is float:
            json_type = "number"
        elif param_type is bool:
            json_type = "boolean"
        else:
            json_type = "string"

        schema["parameters"]["properties"][param_name] = {
            "type": json_type,
            "description": f"The {param_name} parameter",
        }
        if param.default is inspect.Parameter.empty:
            schema["parameters"]["required"].append(param_name)

    return schema


class ToolDescriptor:
    """Display information and live status for a registered tool."""

    def __init__(self, name: str, label: str, icon: str, description: str):
        self.name = name
        self.label = label
        self.icon = icon
        self.description = description
        self.status = "ready"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "icon": self.icon,
            "description": self.description,
            "status": self.status,
        }


class ToolRegistry:
    """Registry for managing tools, their schemas and their status."""

    def __init__(self):
        self.tools: Dict[str, Callable] = {}  # name -> callable
        self.descriptors: Dict[str, ToolDescriptor] = {}
        self.schemas: List[Dict[str, Any]] = []

    def register_callable(
        self,
        callable_func: Callable,
        name: Optional[str] = None,
        label: Optional[str] = None,
        icon: str = "",
        description: Optional[str] = None,
    ) -> None:
        """
        Register a tool callable and generate its schema.

        Args:
            callable_func: Callable taking the raw user message
            name: Optional name override (defaults to callable name)
            label: Human readable name shown in clients
            icon: Emoji shown next to the label
            description: Optional description (defaults to the docstring)
        """
        tool_name = name or callable_func.__name__
        schema = callable_to_tool_schema(callable_func, tool_name, description)

        self.tools[tool_name] = callable_func
        self.descriptors[tool_name] = ToolDescriptor(
            tool_name, label or tool_name, icon, schema["description"]
        )
        self.schemas.append(schema)

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    def set_status(self, name: str, status: str) -> None:
        if status not in TOOL_STATUSES:
            raise ValueError(f"Unknown tool status: {status}")
        descriptor = self.descriptors.get(name)
        if descriptor:
            descriptor.status = status

    def describe(self) -> List[Dict[str, Any]]:
        """Descriptors joined with parameter schemas, in registration order."""
        described = []
        for schema in self.schemas:
            entry = self.descriptors[schema["name"]].to_dict()
            entry["parameters"] = schema["parameters"]
            described.append(entry)
        return described

    async def execute_tool(self, name: str, message: str) -> ToolResult:
        """
        Execute a registered tool by name.

        Args:
            name: Tool name
            message: Raw user message the tool extracts its argument from

        Returns:
            The tool's result

        Raises:
            KeyError: If tool is not registered
        """
        if name not in self.tools:
            raise KeyError(f"Tool '{name}' not found in registry")

        callable_func = self.tools[name]
        self.set_status(name, "active")
        try:
            if inspect.iscoroutinefunction(callable_func):
                result = await callable_func(message)
            else:
                result = callable_func(message)
        except Exception:
            self.set_status(name, "error")
            raise

        self.set_status(name, "error" if not result.ok else "ready")
        logger.info(
            f"TOOL: {name} returned ({result.provenance})",
            extra={
                "structured": {
                    "log_type": "tool_result",
                    "tool_name": name,
                    "provenance": result.provenance,
                    "result": result.summary,
                }
            },
        )
        return result
