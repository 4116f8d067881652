"""External lookups used by the enrichment graphs.

ContextTools bundles them so the graphs can be built against fakes in
tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sora_core.config.settings import settings as default_settings
from sora_core.domain.models import Coordinates, WebResult
from sora_core.tools.geocoder import geocode
from sora_core.tools.weather import fetch_weather
from sora_core.tools.web_search import search_web


@dataclass
class ContextTools:
    geocode: Callable[[str], Awaitable[Optional[Coordinates]]]
    fetch_weather: Callable[[Coordinates], Awaitable[Dict[str, Any]]]
    search: Callable[[str, str], Awaitable[List[WebResult]]]


def default_tools(settings=None) -> ContextTools:
    cfg = settings or default_settings

    async def _geocode(name: str) -> Optional[Coordinates]:
        return await geocode(cfg, name)

    async def _weather(coords: Coordinates) -> Dict[str, Any]:
        return await fetch_weather(cfg, coords)

    async def _search(query: str, locale: str) -> List[WebResult]:
        return await search_web(cfg, query, locale)

    return ContextTools(geocode=_geocode, fetch_weather=_weather, search=_search)
