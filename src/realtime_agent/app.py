import asyncio
import logging
import random
import time
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import protocol
from .config import Settings
from .dispatcher import TOOL_DELAYS, create_tool_registry, run_turn
from .protocol import InboundFrame, ProtocolError, UnknownFrameError
from .session_manager import RealtimeSession, SessionManager
from .tool_registry import ToolRegistry
from .tools.calculator import calculate
from .tools.weather import WeatherTool
from .utils import iso_timestamp

logger = logging.getLogger(__name__)

MALFORMED_FRAME_ERROR = "Error al procesar el mensaje"
AUDIO_UNSUPPORTED_ERROR = "Procesamiento de audio no implementado aún"


async def message_loop(session: RealtimeSession, registry: ToolRegistry, settings: Settings):
    """Process queued user messages one turn at a time."""
    tool_delays = TOOL_DELAYS if settings.tool_delays_enabled else None
    while True:
        frame = await session.message_queue.get()
        session.begin_turn(frame.message_id)
        try:
            outcome = await run_turn(
                frame.content,
                session._send_to_ui,
                registry,
                config=session.config,
                message_id=frame.message_id,
                chunk_delay=settings.chunk_delay_range,
                tool_delays=tool_delays,
                interrupt_event=session.interrupt_event,
            )
            session.end_turn(outcome)
        except Exception as e:
            logger.error(f"ERROR: Error processing message: {e}")
            session.current_message_id = None


async def handle_inbound_frame(session: RealtimeSession, raw: str):
    """Route one raw client frame. Errors become error frames; the session survives."""
    try:
        frame = protocol.parse_inbound(raw)
    except UnknownFrameError as e:
        logger.warning(f"SYSTEM: {e}")
        await session._send_to_ui(protocol.error_frame(str(e)))
        return
    except ProtocolError as e:
        logger.warning(f"SYSTEM: Malformed frame: {e}")
        await session._send_to_ui(protocol.error_frame(MALFORMED_FRAME_ERROR))
        return

    await dispatch_frame(session, frame)


async def dispatch_frame(session: RealtimeSession, frame: InboundFrame):
    if frame.type == "message":
        await session.add_message(frame)

    elif frame.type == "audio":
        await session._send_to_ui(
            protocol.error_frame(AUDIO_UNSUPPORTED_ERROR, frame.message_id)
        )

    elif frame.type == "interrupt":
        message_id = session.current_message_id
        session.interrupt()
        await session._send_to_ui(
            protocol.status_frame("ready", "Procesamiento interrumpido", message_id)
        )

    elif frame.type == "config":
        try:
            session.config.merge(frame.config)
            logger.info(f"SYSTEM: {session.session_id} config updated: {session.config}")
        except ProtocolError as e:
            logger.warning(f"SYSTEM: Invalid config update: {e}")
            await session._send_to_ui(protocol.error_frame(str(e)))


async def handle_websocket_session(websocket: WebSocket, app: FastAPI):
    """Helper function to handle a websocket session."""
    manager: SessionManager = app.state.session_manager
    session = manager.create_session(websocket)

    await session._send_to_ui(
        protocol.status_frame("ready", "Conexión establecida. Escuchando...")
    )

    session.processing_task = asyncio.create_task(
        message_loop(session, app.state.registry, app.state.settings)
    )

    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except KeyError:
                # binary frame
                await session._send_to_ui(protocol.error_frame(MALFORMED_FRAME_ERROR))
                continue
            await handle_inbound_frame(session, raw)
    except WebSocketDisconnect:
        logger.info(f"SYSTEM: Client disconnected ({session.session_id})")
    except Exception as e:
        logger.error(f"ERROR: WebSocket error: {e}")
    finally:
        session.processing_task.cancel()
        session.websocket = None
        manager.remove_session(session.session_id)


async def _read_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def create_app(settings: Optional[Settings] = None, registry: Optional[ToolRegistry] = None) -> FastAPI:
    """Create the FastAPI application with its REST and WebSocket routes."""
    settings = settings or Settings.from_env()

    app = FastAPI(title="Realtime Agent Demo")
    app.state.settings = settings
    app.state.registry = registry or create_tool_registry(settings)
    app.state.session_manager = SessionManager()
    app.state.started_at = time.monotonic()

    weather_tool = WeatherTool(settings.openweather_api_key, settings.weather_timeout_s)

    async def simulated_latency(low: float, high: float):
        if settings.tool_delays_enabled:
            await asyncio.sleep(random.uniform(low, high))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = "Ruta no encontrada"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": message, "timestamp": iso_timestamp()},
        )

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        logger.error(f"ERROR: Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "Error interno del servidor",
                "timestamp": iso_timestamp(),
            },
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        await handle_websocket_session(websocket, app)

    @app.get("/api/status")
    async def status():
        return {
            "status": "success",
            "message": "Servidor funcionando correctamente",
            "timestamp": iso_timestamp(),
        }

    @app.post("/api/chat")
    async def chat(request: Request):
        """Synchronous chat stub that echoes the message back."""
        body = await _read_json(request)
        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse(
                status_code=400,
                content={
                    "response": "Error: El mensaje es requerido y debe ser una cadena de texto.",
                    "timestamp": iso_timestamp(),
                },
            )
        return {
            "response": f'Recibí tu mensaje: "{message}". Usa el canal en tiempo real para respuestas con herramientas.',
            "timestamp": iso_timestamp(),
        }

    @app.get("/api/demo/tools")
    async def list_tools():
        return {"tools": app.state.registry.describe(), "timestamp": iso_timestamp()}

    @app.post("/api/demo/tools/web-search")
    async def web_search(request: Request):
        body = await _read_json(request)
        query = body.get("query")
        if not isinstance(query, str) or not query.strip():
            return JSONResponse(
                status_code=400,
                content={"error": "La consulta es requerida", "timestamp": iso_timestamp()},
            )
        await simulated_latency(0.5, 1.5)
        result = await app.state.registry.execute_tool("web_search", query)
        return {
            "query": query,
            "results": result.results,
            "summary": result.summary,
            "provenance": result.provenance,
            "timestamp": iso_timestamp(),
        }

    @app.post("/api/demo/tools/calculator")
    async def calculator(request: Request):
        body = await _read_json(request)
        expression = body.get("expression")
        result = calculate(expression) if isinstance(expression, str) else None
        if result is None or not result.ok:
            return JSONResponse(
                status_code=400,
                content={"error": "Expresión matemática inválida", "timestamp": iso_timestamp()},
            )
        return {
            "expression": expression,
            "result": result.value,
            "timestamp": iso_timestamp(),
        }

    @app.get("/api/demo/tools/weather/{location}")
    async def weather(location: str):
        result = await weather_tool.lookup(location)
        return {**result.to_payload(), "timestamp": iso_timestamp()}

    @app.get("/api/demo/metrics")
    async def metrics():
        manager: SessionManager = app.state.session_manager
        return {
            "serverUptime": round(time.monotonic() - app.state.started_at, 3),
            "activeConnections": manager.get_session_count(),
            "sessions": manager.aggregate_metrics(),
            "timestamp": iso_timestamp(),
        }

    return app


app = create_app()
