"""Weather tool: static city table with an optional OpenWeatherMap lookup."""

import logging
from typing import Optional

import httpx

from ..tool_registry import FALLBACK, LIVE, STATIC, WeatherResult
from ..utils import fold_text

logger = logging.getLogger(__name__)

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"

DEFAULT_CITY = "Madrid"

# Recognized cities (folded) and how they are displayed
CITY_NAMES = {
    "madrid": "Madrid",
    "barcelona": "Barcelona",
    "valencia": "Valencia",
    "sevilla": "Sevilla",
    "bilbao": "Bilbao",
    "cdmx": "CDMX",
    "ciudad de mexico": "Ciudad de México",
    "guadalajara": "Guadalajara",
    "monterrey": "Monterrey",
    "cancun": "Cancún",
    "puebla": "Puebla",
    "tijuana": "Tijuana",
    "merida": "Mérida",
}

WEATHER_TABLE = {
    "madrid": {"temp": 18, "condition": "Parcialmente nublado", "humidity": 65, "wind": "12 km/h"},
    "barcelona": {"temp": 22, "condition": "Soleado", "humidity": 58, "wind": "8 km/h"},
    "valencia": {"temp": 20, "condition": "Despejado", "humidity": 62, "wind": "10 km/h"},
    "cdmx": {"temp": 24, "condition": "Parcialmente nublado", "humidity": 45, "wind": "10 km/h"},
    "ciudad de mexico": {"temp": 24, "condition": "Parcialmente nublado", "humidity": 45, "wind": "10 km/h"},
    "guadalajara": {"temp": 28, "condition": "Soleado", "humidity": 40, "wind": "8 km/h"},
    "monterrey": {"temp": 32, "condition": "Despejado", "humidity": 35, "wind": "15 km/h"},
    "cancun": {"temp": 30, "condition": "Soleado", "humidity": 75, "wind": "12 km/h"},
    "puebla": {"temp": 22, "condition": "Parcialmente nublado", "humidity": 50, "wind": "9 km/h"},
    "tijuana": {"temp": 21, "condition": "Despejado", "humidity": 55, "wind": "18 km/h"},
    "merida": {"temp": 33, "condition": "Soleado", "humidity": 70, "wind": "7 km/h"},
}

DEFAULT_RECORD = {"temp": 16, "condition": "Variable", "humidity": 60, "wind": "15 km/h"}

# Longest names first so "ciudad de mexico" wins over any shorter overlap
_CITIES_BY_LENGTH = sorted(CITY_NAMES, key=len, reverse=True)


class WeatherUnavailable(Exception):
    """The live weather provider could not answer."""


def extract_location(message: str) -> Optional[str]:
    """Return the display name of the first known city mentioned, if any."""
    folded = fold_text(message)
    for city in _CITIES_BY_LENGTH:
        if city in folded:
            return CITY_NAMES[city]
    return None


def static_weather(location: str, provenance: str = STATIC) -> WeatherResult:
    """Look a location up in the static table, with a placeholder for unknowns."""
    record = WEATHER_TABLE.get(fold_text(location.strip()), DEFAULT_RECORD)
    return WeatherResult(
        location=location,
        temperature=record["temp"],
        condition=record["condition"],
        humidity=record["humidity"],
        wind=record["wind"],
        provenance=provenance,
    )


class WeatherTool:
    """Weather lookups, live when an API key is configured."""

    def __init__(
        self,
        api_key: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def _fetch_live(self, location: str) -> WeatherResult:
        params = {"q": location, "appid": self.api_key, "units": "metric", "lang": "es"}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(OPENWEATHER_URL, params=params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise WeatherUnavailable(str(e)) from e

        try:
            description = data["weather"][0]["description"]
            return WeatherResult(
                location=data.get("name") or location,
                temperature=round(data["main"]["temp"]),
                condition=description[:1].upper() + description[1:],
                humidity=data["main"]["humidity"],
                wind=f"{round(data['wind']['speed'] * 3.6)} km/h",
                provenance=LIVE,
                feels_like=round(data["main"]["feels_like"]),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise WeatherUnavailable(f"Unexpected payload: {e}") from e

    async def lookup(self, location: str) -> WeatherResult:
        """Weather for a location; never raises."""
        if not self.api_key:
            return static_weather(location)

        try:
            return await self._fetch_live(location)
        except WeatherUnavailable as e:
            logger.warning(f"TOOL: live weather failed for {location}, using static data: {e}")
            return static_weather(location, provenance=FALLBACK)

    async def weather(self, message: str) -> WeatherResult:
        """Current weather for the city mentioned in the message."""
        location = extract_location(message) or DEFAULT_CITY
        return await self.lookup(location)
