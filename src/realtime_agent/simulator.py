"""Offline stand-in for the server, used by the client when no connection exists."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple

from . import protocol
from .config import RealtimeConfig, Settings
from .dispatcher import TOOL_DELAYS, TurnOutcome, create_tool_registry, run_turn
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class LocalSimulator:
    """Runs turns in-process with the same dispatcher and streamer as the server.

    Frames are delivered encoded, exactly as they would arrive over the
    socket, so the client handles both paths identically. Only static tool
    data is used.
    """

    def __init__(
        self,
        registry: Optional[ToolRegistry] = None,
        settings: Optional[Settings] = None,
        tool_delays=TOOL_DELAYS,
        chunk_delay: Optional[Tuple[float, float]] = (0.05, 0.1),
        rng=random,
        sleep=asyncio.sleep,
    ):
        self.registry = registry or create_tool_registry(settings, live=False)
        self.tool_delays = tool_delays
        self.chunk_delay = chunk_delay
        self.rng = rng
        self.sleep = sleep
        self.interrupt_event = asyncio.Event()

    async def run(
        self,
        content: str,
        on_frame: Callable[[str], Awaitable[None]],
        config: Optional[RealtimeConfig] = None,
        message_id: Optional[str] = None,
    ) -> TurnOutcome:
        self.interrupt_event.clear()

        async def emit(frame: dict):
            await on_frame(protocol.encode(frame))

        logger.info("SYSTEM: answering locally (no realtime connection)")
        return await run_turn(
            content,
            emit,
            self.registry,
            config=config,
            message_id=message_id,
            chunk_delay=self.chunk_delay,
            tool_delays=self.tool_delays,
            interrupt_event=self.interrupt_event,
            rng=self.rng,
            sleep=self.sleep,
        )

    def interrupt(self):
        self.interrupt_event.set()
