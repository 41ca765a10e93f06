"""
Client session for the realtime channel.

Mirrors the server's state machine from the status frames it receives,
rebuilds streamed text from chunk frames, reconnects after a fixed delay
while ``use_realtime`` is on, and answers locally through ``LocalSimulator``
whenever there is no open connection.

Can be run as a terminal chat with: python -m realtime_agent.client
"""

import argparse
import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from . import protocol
from .config import RealtimeConfig
from .dispatcher import TurnOutcome
from .session_manager import SessionMetrics
from .simulator import LocalSimulator

logger = logging.getLogger(__name__)

DISCONNECTED = "disconnected"
CONNECTING = "connecting"
LISTENING = "listening"
PROCESSING = "processing"
RESPONDING = "responding"

STATUS_TO_STATE = {
    "listening": LISTENING,
    "ready": LISTENING,
    "processing": PROCESSING,
    "responding": RESPONDING,
}

RECONNECT_DELAY_S = 3.0


class TranscriptEntry(NamedTuple):
    role: str  # user, agent or system
    content: str
    message_id: Optional[str] = None
    tools_used: tuple = ()
    timestamp: str = ""


class RealtimeClient:
    """Chat client that prefers the realtime channel and falls back to local simulation."""

    def __init__(
        self,
        url: str = "ws://localhost:8080/ws",
        use_realtime: bool = True,
        reconnect_delay: float = RECONNECT_DELAY_S,
        simulator: Optional[LocalSimulator] = None,
        on_event: Optional[Callable[[dict], None]] = None,
        connect=websockets.connect,
        sleep=asyncio.sleep,
    ):
        self.url = url
        self.use_realtime = use_realtime
        self.reconnect_delay = reconnect_delay
        self.simulator = simulator
        self.on_event = on_event
        self._connect = connect
        self._sleep = sleep

        self.state = DISCONNECTED
        self.websocket = None
        self.config = RealtimeConfig()
        self.metrics = SessionMetrics()
        self.transcript: List[TranscriptEntry] = []
        self.active_tools = set()
        self.tool_results = {}
        self.streaming_text = ""
        self.reconnect_attempts = 0

        self.current_message_id: Optional[str] = None
        self._turn_done = asyncio.Event()
        self._turn_failed = False
        self._turn_remote = False
        self._turn_started = 0.0
        self._turn_tools: List[str] = []
        self._turn_provenance = {}
        self._last_response: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.websocket is not None and self.state not in (DISCONNECTED, CONNECTING)

    @property
    def is_processing(self) -> bool:
        return self.current_message_id is not None

    def _set_state(self, state: str):
        if state != self.state:
            logger.debug(f"CLIENT: {self.state} -> {state}")
            self.state = state

    def _add_entry(self, role: str, content: str, tools_used=()):
        self.transcript.append(
            TranscriptEntry(
                role,
                content,
                self.current_message_id,
                tuple(tools_used),
                datetime.now().isoformat(),
            )
        )

    # Connection lifecycle

    async def run(self):
        """Keep a connection open, reconnecting after every close or error."""
        while self.use_realtime:
            self._set_state(CONNECTING)
            try:
                async with self._connect(self.url) as websocket:
                    self.websocket = websocket
                    self._set_state(LISTENING)
                    logger.info(f"CLIENT: connected to {self.url}")
                    async for raw in websocket:
                        self.handle_frame(raw)
            except (OSError, WebSocketException) as e:
                logger.warning(f"CLIENT: connection error: {e}")
            finally:
                self.websocket = None
                self._set_state(DISCONNECTED)
                self._abort_turn("Conexión perdida")

            if not self.use_realtime:
                break
            self.reconnect_attempts += 1
            logger.info(f"CLIENT: reconnecting in {self.reconnect_delay}s")
            await self._sleep(self.reconnect_delay)

    async def stop(self):
        self.use_realtime = False
        if self.websocket is not None:
            await self.websocket.close()

    # Inbound frames

    def handle_frame(self, raw: str):
        """Apply one server frame to the client state."""
        try:
            frame = json.loads(raw)
        except ValueError as e:
            logger.error(f"CLIENT: could not parse frame: {e}")
            return
        if not isinstance(frame, dict):
            logger.error("CLIENT: ignoring non-object frame")
            return

        message_id = frame.get("messageId")
        if message_id and message_id != self.current_message_id:
            logger.debug(f"CLIENT: dropping stale frame for {message_id}")
            return

        frame_type = frame.get("type")

        if frame_type == "status":
            status = frame.get("status")
            self._set_state(STATUS_TO_STATE.get(status, self.state))
            if self.is_processing and status == "listening":
                self._finish_turn()
            elif self.is_processing and status == "ready" and self._turn_failed:
                self._finish_turn()

        elif frame_type == "chunk":
            self._set_state(RESPONDING)
            self.streaming_text += frame.get("chunk", "")

        elif frame_type == "response":
            content = frame.get("content", "")
            tools_used = frame.get("metadata", {}).get("toolsUsed", [])
            self._add_entry("agent", content, tools_used)
            self._last_response = content
            self.streaming_text = ""

        elif frame_type == "tool_call":
            self.active_tools.add(frame.get("toolName"))

        elif frame_type == "tool_result":
            tool_name = frame.get("toolName")
            result = frame.get("toolResult") or {}
            self.active_tools.discard(tool_name)
            self.tool_results[tool_name] = result
            self._turn_tools.append(tool_name)
            self._turn_provenance[tool_name] = result.get("provenance", "")

        elif frame_type == "error":
            self._add_entry("system", f"Error: {frame.get('error', '')}")
            if message_id:
                self._turn_failed = True

        if self.on_event:
            self.on_event(frame)

    # Turns

    def _begin_turn(self, message_id: str):
        self.current_message_id = message_id
        self.streaming_text = ""
        self.active_tools.clear()
        self._turn_done.clear()
        self._turn_failed = False
        self._turn_remote = False
        self._turn_started = time.monotonic()
        self._turn_tools = []
        self._turn_provenance = {}
        self._last_response = None

    def _finish_turn(self):
        if self.streaming_text:
            self._add_entry("agent", self.streaming_text, self._turn_tools)
            self._last_response = self.streaming_text
            self.streaming_text = ""

        outcome = TurnOutcome(
            response=self._last_response or "",
            tools_used=list(self._turn_tools),
            latency_ms=int((time.monotonic() - self._turn_started) * 1000),
            provenance=dict(self._turn_provenance),
            failed=self._turn_failed,
        )
        self.metrics.record_turn(outcome)
        self.active_tools.clear()
        self.current_message_id = None
        self._turn_done.set()

    def _abort_turn(self, reason: str):
        if not (self.is_processing and self._turn_remote):
            return
        self._add_entry("system", reason)
        self._turn_failed = True
        self._finish_turn()

    async def send_message(self, content: str) -> Optional[str]:
        """Send a user message and wait for the full reply.

        Returns the reply text, or None if a turn was already in progress or
        the turn failed.
        """
        content = content.strip()
        if not content or self.is_processing:
            return None

        message_id = protocol.new_message_id()
        self._add_entry("user", content)
        self._begin_turn(message_id)

        if self.connected:
            frame = {"type": "message", "content": content, "messageId": message_id}
            self._turn_remote = True
            try:
                await self.websocket.send(protocol.encode(frame))
                await self._turn_done.wait()
                return None if self._turn_failed else self._last_response
            except ConnectionClosed as e:
                logger.warning(f"CLIENT: send failed, answering locally: {e}")
                self._begin_turn(message_id)

        return await self._run_locally(content, message_id)

    async def _run_locally(self, content: str, message_id: str) -> Optional[str]:
        if self.simulator is None:
            self.simulator = LocalSimulator()

        async def deliver(raw: str):
            self.handle_frame(raw)

        await self.simulator.run(content, deliver, config=self.config, message_id=message_id)
        if self.is_processing:
            # no terminal status frame arrived
            self._finish_turn()
        return None if self._turn_failed else self._last_response

    async def interrupt(self):
        """Ask the server (or the local simulator) to stop the current reply."""
        if not self.is_processing:
            return
        if self.connected:
            frame = {"type": "interrupt", "messageId": self.current_message_id}
            await self.websocket.send(protocol.encode(frame))
        elif self.simulator is not None:
            self.simulator.interrupt()

    async def update_config(self, **changes):
        """Update the agent configuration, e.g. ``update_config(streaming_enabled=False)``."""
        wire_keys = {attr: key for key, (attr, _) in RealtimeConfig.FIELDS.items()}
        update = {}
        for name, value in changes.items():
            if name not in wire_keys:
                raise TypeError(f"Unknown config option: {name}")
            update[wire_keys[name]] = value

        self.config.merge(update)
        if self.connected:
            await self.websocket.send(protocol.encode({"type": "config", "config": update}))

    def clear(self):
        """Forget the transcript and reset metrics."""
        self.transcript = []
        self.tool_results = {}
        self.metrics.reset()


async def _chat(url: str, realtime: bool):
    def print_chunks(frame: dict):
        if frame.get("type") == "chunk":
            print(frame.get("chunk", ""), end="", flush=True)

    client = RealtimeClient(url, use_realtime=realtime, on_event=print_chunks)
    connection = asyncio.create_task(client.run()) if realtime else None
    loop = asyncio.get_running_loop()

    try:
        while True:
            line = await loop.run_in_executor(None, input, "\n> ")
            if line.strip() in ("/quit", "/exit"):
                break
            if line.strip() == "/metrics":
                print(json.dumps(client.metrics.to_dict(), indent=2))
                continue
            reply = await client.send_message(line)
            if reply is not None and not client.config.streaming_enabled:
                print(reply)
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await client.stop()
        if connection:
            connection.cancel()


def main():
    parser = argparse.ArgumentParser(description="Realtime Agent Demo - terminal client")
    parser.add_argument(
        "--url",
        default="ws://localhost:8080/ws",
        help="WebSocket URL of the server (default: ws://localhost:8080/ws)",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Do not connect; answer every message with the local simulator",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)
    asyncio.run(_chat(args.url, realtime=not args.offline))


if __name__ == "__main__":
    main()
