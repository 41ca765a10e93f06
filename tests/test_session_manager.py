import re

from realtime_agent.dispatcher import TurnOutcome
from realtime_agent.session_manager import (
    MAX_CLOSED_SESSIONS,
    RealtimeSession,
    SessionManager,
    SessionMetrics,
    generate_session_id,
)


def test_session_id_format():
    assert re.match(r"^session_\d+_[a-z0-9]{9}$", generate_session_id())


def test_record_turn():
    metrics = SessionMetrics()
    metrics.record_turn(
        TurnOutcome(
            "respuesta",
            ["weather", "web_search"],
            420,
            provenance={"weather": "live", "web_search": "fallback"},
        )
    )
    metrics.record_turn(TurnOutcome("", [], 10, interrupted=True))

    data = metrics.to_dict()
    assert data["messageCount"] == 2
    assert data["lastLatency"] == 10
    assert data["toolsInvoked"] == 2
    assert data["liveResults"] == 1
    assert data["fallbackResults"] == 1
    assert data["interruptedCount"] == 1
    assert data["sessionDuration"] >= 0

    metrics.reset()
    assert metrics.to_dict()["messageCount"] == 0


def test_interrupt_needs_active_turn():
    session = RealtimeSession()
    assert not session.interrupt()

    session.begin_turn("m1")
    assert session.interrupt()
    assert session.interrupt_event.is_set()

    session.begin_turn("m2")
    assert not session.interrupt_event.is_set()


def test_interrupt_respects_config():
    session = RealtimeSession()
    session.config.merge({"interruptible": False})
    session.begin_turn("m1")
    assert not session.interrupt()
    assert not session.interrupt_event.is_set()


def test_aggregate_metrics_sums_active_and_closed():
    manager = SessionManager()
    first = manager.create_session()
    second = manager.create_session()
    first.end_turn(TurnOutcome("a", ["calculator"], 5, provenance={"calculator": "computed"}))
    second.end_turn(TurnOutcome("b", [], 5, failed=True))

    manager.remove_session(first.session_id)

    totals = manager.aggregate_metrics()
    assert manager.get_session(first.session_id) is None
    assert manager.get_session_count() == 1
    assert totals["activeSessions"] == 1
    assert totals["closedSessions"] == 1
    assert totals["messageCount"] == 2
    assert totals["toolsInvoked"] == 1
    assert totals["errorCount"] == 1


def test_closed_history_is_bounded():
    manager = SessionManager()
    removed = []
    for _ in range(MAX_CLOSED_SESSIONS + 5):
        session = manager.create_session()
        manager.remove_session(session.session_id)
        removed.append(session.metrics)

    assert len(manager.closed_metrics) == MAX_CLOSED_SESSIONS
    assert list(manager.closed_metrics) == removed[5:]
    assert manager.aggregate_metrics()["closedSessions"] == MAX_CLOSED_SESSIONS
    manager.remove_session("missing")
