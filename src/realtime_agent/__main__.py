"""
Main entry point for the Realtime Agent Demo server.

This module provides the entry point for running the server.
Can be called with: python -m realtime_agent

Automatically opens the status page in your browser once the server is
reachable. Disable with --no-open or REALTIME_AGENT_NO_BROWSER=1.
"""

import argparse
import logging
import os
import threading
import time
import urllib.error
import urllib.request
import webbrowser

import uvicorn

from .app import create_app
from .config import Settings


def main():
    """Main entry point for the Realtime Agent Demo server."""
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(
        description="Realtime Agent Demo - simulated agent tool calls over WebSocket"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to run the server on (default: {settings.port})",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Interface to bind (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--no-open",
        action="store_true",
        help="Do not automatically open the browser",
    )
    args = parser.parse_args()
    settings.port = args.port

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    logger.info("Starting realtime agent server...")
    logger.info(f"WebSocket available at ws://localhost:{args.port}/ws")
    if not settings.live_weather_enabled:
        logger.warning("OPENWEATHER_API_KEY not set - using static weather data")
    if not settings.live_search_enabled:
        logger.info("Google search credentials not set - using canned search results")

    # Auto-open the browser once the server is reachable (best-effort)
    def _open_when_ready(url: str, timeout: float = 15.0, interval: float = 0.2):
        deadline = time.time() + timeout
        while time.time() < deadline:
            try:
                with urllib.request.urlopen(url, timeout=1):
                    pass
                try:
                    webbrowser.open(url, new=1)
                except webbrowser.Error:
                    logger.debug("Could not open a browser")
                return
            except (urllib.error.URLError, OSError):
                time.sleep(interval)

    should_open = not args.no_open and os.environ.get("REALTIME_AGENT_NO_BROWSER") != "1"
    url = f"http://localhost:{args.port}/api/status"
    if should_open:
        threading.Thread(target=_open_when_ready, args=(url,), daemon=True).start()
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
