import asyncio
import logging

from ..tool_registry import FALLBACK, LIVE, STATIC, WebSearchResult
from ..utils import contains_any

logger = logging.getLogger(__name__)

# Suppress the oauth2client file_cache warning
logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)

from googleapiclient.discovery import build

# (trigger keywords, results, summary)
CANNED_RESULTS = [
    (
        ("bitcoin", "btc"),
        [
            {
                "title": "Bitcoin Price Today",
                "url": "coinmarketcap.com",
                "snippet": "Bitcoin está cotizando a $43,250 USD (+5.2% en 24h)",
            },
            {
                "title": "Bitcoin Analysis",
                "url": "coindesk.com",
                "snippet": "Análisis técnico muestra tendencia alcista",
            },
        ],
        "El precio actual de Bitcoin es $43,250 USD, con un aumento del 5.2% "
        "en las últimas 24 horas.",
    ),
    (
        ("tiempo", "clima"),
        [
            {
                "title": "Weather Madrid",
                "url": "weather.com",
                "snippet": "Madrid: 18°C, parcialmente nublado",
            }
        ],
        "El clima en Madrid es de 18°C con cielos parcialmente nublados.",
    ),
    (
        ("typescript", "javascript"),
        [
            {
                "title": "TypeScript vs JavaScript",
                "url": "developer.mozilla.org",
                "snippet": "TypeScript añade tipado estático a JavaScript",
            },
            {
                "title": "TypeScript Benefits",
                "url": "typescriptlang.org",
                "snippet": "Mejor detección de errores y IntelliSense",
            },
        ],
        "TypeScript es un superset de JavaScript que añade tipado estático, "
        "mejorando la detección de errores y la experiencia de desarrollo.",
    ),
]


def canned_search(query: str, provenance: str = STATIC) -> WebSearchResult:
    """Canned results picked by keyword, with a templated stub otherwise."""
    for keywords, results, summary in CANNED_RESULTS:
        if contains_any(query, keywords):
            return WebSearchResult(query, results, summary, provenance)

    results = [
        {
            "title": "Resultado de búsqueda",
            "url": "example.com",
            "snippet": f"Información relevante sobre: {query}",
        }
    ]
    return WebSearchResult(
        query, results, f'He encontrado información relevante sobre "{query}".', provenance
    )


class WebSearchTool:
    """Web search, live through Google Custom Search when credentials are set."""

    def __init__(self, api_key: str = "", engine_id: str = "", max_results: int = 5):
        self.api_key = api_key
        self.engine_id = engine_id
        self.max_results = max_results

    def _google_search(self, query: str) -> WebSearchResult:
        service = build("customsearch", "v1", developerKey=self.api_key)
        resp = (
            service.cse().list(q=query, cx=self.engine_id, num=self.max_results).execute()
        )

        results = []
        for item in resp.get("items", []):
            results.append(
                {
                    "title": item.get("title", "No title"),
                    "url": item.get("link", "No link"),
                    "snippet": item.get("snippet", "No description"),
                }
            )

        if not results:
            summary = f'No encontré resultados para "{query}".'
        else:
            summary = f'He encontrado {len(results)} resultados sobre "{query}".'
        return WebSearchResult(query, results, summary, LIVE)

    async def search(self, query: str) -> WebSearchResult:
        """Search results for a query; never raises."""
        if not (self.api_key and self.engine_id):
            return canned_search(query)

        try:
            return await asyncio.to_thread(self._google_search, query)
        except Exception as e:
            logger.warning(f"TOOL: live web search failed, using canned results: {e}")
            return canned_search(query, provenance=FALLBACK)

    async def web_search(self, message: str) -> WebSearchResult:
        """Search the web for the topic of the message."""
        return await self.search(message)
