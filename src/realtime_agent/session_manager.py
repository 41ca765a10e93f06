import asyncio
import logging
from collections import deque
import random
import string
import time
from typing import Deque, Dict, Optional

from fastapi import WebSocket

from . import protocol
from .config import RealtimeConfig
from .dispatcher import TurnOutcome
from .protocol import InboundFrame
from .tool_registry import FALLBACK, LIVE

logger = logging.getLogger(__name__)

# Closed sessions whose metrics still count towards the process totals
MAX_CLOSED_SESSIONS = 100


def generate_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class SessionMetrics:
    """Counters for one session. Nothing here is persisted."""

    COUNTERS = (
        "message_count",
        "tools_invoked",
        "live_results",
        "fallback_results",
        "error_count",
        "interrupted_count",
    )

    def __init__(self):
        self.reset()

    def reset(self):
        self.message_count = 0
        self.last_latency_ms = 0
        self.tools_invoked = 0
        self.live_results = 0
        self.fallback_results = 0
        self.error_count = 0
        self.interrupted_count = 0
        self.started_at = time.monotonic()
        self.ended_at: Optional[float] = None

    @property
    def duration_s(self) -> float:
        end = self.ended_at if self.ended_at is not None else time.monotonic()
        return end - self.started_at

    def record_turn(self, outcome: TurnOutcome):
        self.message_count += 1
        self.last_latency_ms = outcome.latency_ms
        self.tools_invoked += len(outcome.tools_used)
        provenance = (outcome.provenance or {}).values()
        self.live_results += sum(1 for p in provenance if p == LIVE)
        self.fallback_results += sum(1 for p in provenance if p == FALLBACK)
        if outcome.failed:
            self.error_count += 1
        if outcome.interrupted:
            self.interrupted_count += 1

    def close(self):
        if self.ended_at is None:
            self.ended_at = time.monotonic()

    def to_dict(self) -> dict:
        return {
            "messageCount": self.message_count,
            "lastLatency": self.last_latency_ms,
            "toolsInvoked": self.tools_invoked,
            "liveResults": self.live_results,
            "fallbackResults": self.fallback_results,
            "errorCount": self.error_count,
            "interruptedCount": self.interrupted_count,
            "sessionDuration": round(self.duration_s, 3),
        }


class RealtimeSession:
    """State scoped to one WebSocket connection."""

    def __init__(self, websocket: Optional[WebSocket] = None):
        self.session_id = generate_session_id()
        self.websocket = websocket
        self.config = RealtimeConfig()
        self.metrics = SessionMetrics()
        self.message_queue: asyncio.Queue = asyncio.Queue()
        self.interrupt_event = asyncio.Event()
        self.current_message_id: Optional[str] = None
        self.processing_task: Optional[asyncio.Task] = None

    async def _send_to_ui(self, frame: dict):
        """Send one frame to the client."""
        if self.websocket:
            await self.websocket.send_text(protocol.encode(frame))

    async def add_message(self, frame: InboundFrame):
        """Queue a user message; turns are processed one at a time."""
        await self.message_queue.put(frame)

    def begin_turn(self, message_id: str):
        self.current_message_id = message_id
        self.interrupt_event.clear()

    def end_turn(self, outcome: TurnOutcome):
        self.current_message_id = None
        self.metrics.record_turn(outcome)

    def interrupt(self) -> bool:
        """Ask the in-flight turn to stop. Returns True if there was one to stop."""
        if not self.config.interruptible or self.current_message_id is None:
            return False
        self.interrupt_event.set()
        logger.info(f"SYSTEM: interrupt requested for {self.current_message_id}")
        return True


class SessionManager:
    def __init__(self):
        self.sessions: Dict[str, RealtimeSession] = {}
        self.closed_metrics: Deque[SessionMetrics] = deque(maxlen=MAX_CLOSED_SESSIONS)

    def create_session(self, websocket: Optional[WebSocket] = None) -> RealtimeSession:
        session = RealtimeSession(websocket)
        self.sessions[session.session_id] = session
        logger.info(f"SYSTEM: created session {session.session_id}")
        return session

    def get_session(self, session_id: str) -> Optional[RealtimeSession]:
        return self.sessions.get(session_id)

    def remove_session(self, session_id: str):
        """Drop a session, keeping its metrics for the process totals."""
        session = self.sessions.pop(session_id, None)
        if not session:
            return
        session.metrics.close()
        self.closed_metrics.append(session.metrics)
        logger.info(f"SYSTEM: removed session {session_id}")

    def get_session_count(self) -> int:
        return len(self.sessions)

    def aggregate_metrics(self) -> dict:
        """Process-wide totals, summed over per-session metrics at read time."""
        all_metrics = [s.metrics for s in self.sessions.values()] + list(self.closed_metrics)
        totals = {
            counter: sum(getattr(m, counter) for m in all_metrics)
            for counter in SessionMetrics.COUNTERS
        }
        return {
            "activeSessions": len(self.sessions),
            "closedSessions": len(self.closed_metrics),
            "messageCount": totals["message_count"],
            "toolsInvoked": totals["tools_invoked"],
            "liveResults": totals["live_results"],
            "fallbackResults": totals["fallback_results"],
            "errorCount": totals["error_count"],
            "interruptedCount": totals["interrupted_count"],
        }
