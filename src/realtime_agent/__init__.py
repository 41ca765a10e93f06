"""
Realtime Agent Demo - a chat backend that simulates agent tool calls.

This package provides a WebSocket endpoint that answers chat messages by
running keyword-selected demo tools (weather, calculator, web search,
currency) and streaming the composed reply word by word, plus a client that
falls back to the same logic locally when no connection is available.
"""

__version__ = "0.1.0"

from .client import RealtimeClient
from .dispatcher import analyze_tool_needs, create_tool_registry, run_turn
from .simulator import LocalSimulator
from .tool_registry import ToolRegistry, callable_to_tool_schema

__all__ = [
    "RealtimeClient",
    "LocalSimulator",
    "ToolRegistry",
    "analyze_tool_needs",
    "callable_to_tool_schema",
    "create_tool_registry",
    "run_turn",
]
