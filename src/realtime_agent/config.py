"""Session configuration and process settings."""

import logging
import os
from typing import Optional, Tuple

from dotenv import load_dotenv

from .protocol import ProtocolError

logger = logging.getLogger(__name__)

LANGUAGES = ("es", "en")


class RealtimeConfig:
    """Per-connection agent configuration, mutated only by config frames."""

    # wire key -> (attribute, expected type)
    FIELDS = {
        "streamingEnabled": ("streaming_enabled", bool),
        "audioEnabled": ("audio_enabled", bool),
        "interruptible": ("interruptible", bool),
        "language": ("language", str),
    }

    def __init__(
        self,
        streaming_enabled: bool = True,
        audio_enabled: bool = False,
        interruptible: bool = True,
        language: str = "es",
    ):
        self.streaming_enabled = streaming_enabled
        self.audio_enabled = audio_enabled
        self.interruptible = interruptible
        self.language = language

    def merge(self, update: Optional[dict]) -> "RealtimeConfig":
        """Apply a partial update using wire (camelCase) keys.

        Unknown keys are ignored. The update is validated as a whole before
        anything is applied, so a bad value leaves the config untouched.
        """
        if not update:
            return self

        changes = {}
        for key, value in update.items():
            if key not in self.FIELDS:
                logger.debug(f"CONFIG: ignoring unknown key {key}")
                continue
            attribute, expected = self.FIELDS[key]
            if not isinstance(value, expected):
                raise ProtocolError(
                    f"Config field '{key}' must be of type {expected.__name__}"
                )
            if key == "language" and value not in LANGUAGES:
                raise ProtocolError(f"Unsupported language: {value}")
            changes[attribute] = value

        for attribute, value in changes.items():
            setattr(self, attribute, value)
        return self

    def to_dict(self) -> dict:
        return {key: getattr(self, attr) for key, (attr, _) in self.FIELDS.items()}

    def __repr__(self):
        return f"RealtimeConfig({self.to_dict()})"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"CONFIG: invalid value for {name}: {value!r}, using {default}")
        return default


class Settings:
    """Process-wide settings read from the environment (and a .env file)."""

    def __init__(
        self,
        port: int = 8080,
        openweather_api_key: str = "",
        google_search_api_key: str = "",
        google_search_engine_id: str = "",
        weather_timeout_s: float = 5.0,
        chunk_delay_ms: Tuple[float, float] = (50.0, 100.0),
        tool_delays_enabled: bool = True,
        log_level: str = "INFO",
    ):
        self.port = port
        self.openweather_api_key = openweather_api_key
        self.google_search_api_key = google_search_api_key
        self.google_search_engine_id = google_search_engine_id
        self.weather_timeout_s = weather_timeout_s
        self.chunk_delay_ms = chunk_delay_ms
        self.tool_delays_enabled = tool_delays_enabled
        self.log_level = log_level

    @property
    def chunk_delay_range(self) -> Tuple[float, float]:
        """Chunk delay range in seconds."""
        low, high = self.chunk_delay_ms
        return low / 1000.0, high / 1000.0

    @property
    def live_weather_enabled(self) -> bool:
        return bool(self.openweather_api_key)

    @property
    def live_search_enabled(self) -> bool:
        return bool(self.google_search_api_key and self.google_search_engine_id)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        try:
            port = int(os.getenv("PORT", "8080"))
        except ValueError:
            logger.warning("CONFIG: invalid PORT, using 8080")
            port = 8080

        return cls(
            port=port,
            openweather_api_key=os.getenv("OPENWEATHER_API_KEY", ""),
            google_search_api_key=os.getenv("GOOGLE_SEARCH_API_KEY", ""),
            google_search_engine_id=os.getenv("GOOGLE_SEARCH_ENGINE_ID", ""),
            weather_timeout_s=_env_float("WEATHER_TIMEOUT_S", 5.0),
            chunk_delay_ms=(
                _env_float("CHUNK_DELAY_MIN_MS", 50.0),
                _env_float("CHUNK_DELAY_MAX_MS", 100.0),
            ),
            tool_delays_enabled=_env_bool("TOOL_DELAYS_ENABLED", True),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
