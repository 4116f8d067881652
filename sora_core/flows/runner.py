"""上下文增强的高层入口。

两张图并发执行，各自有独立的超时预算，天气查询慢不会拖累搜索结果，反之亦然。
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple

from sora_core.config.settings import settings
from sora_core.domain.exceptions import EnrichmentTimeout
from sora_core.domain.models import EnrichmentContext, WebResult
from sora_core.flows.graph import build_search_graph, build_weather_graph
from sora_core.flows.state import SearchState, WeatherState
from sora_core.infrastructure.logging.logger import logger
from sora_core.providers import create_provider
from sora_core.providers.base import ProviderClient
from sora_core.tools import ContextTools, default_tools


class ContextEnricher:
    """针对一条用户消息运行天气图和搜索图。"""

    def __init__(
        self,
        provider: Optional[ProviderClient] = None,
        tools: Optional[ContextTools] = None,
        timeout: Optional[float] = None,
        max_results: Optional[int] = None,
    ) -> None:
        self._provider = provider or create_provider()
        self._tools = tools or default_tools()
        self._timeout = timeout if timeout is not None else settings.enrichment_timeout
        self._max_results = max_results or settings.search_max_results
        self._weather_graph = build_weather_graph(self._provider, self._tools)
        self._search_graph = build_search_graph(self._provider, self._tools)

    async def enrich(self, message: str, locale: str) -> EnrichmentContext:
        """为 ``message`` 收集可选上下文，从不抛异常。"""

        ctx = EnrichmentContext()
        if not message.strip():
            return ctx
        weather_state, search_state = await asyncio.gather(
            self._run("weather", self._weather_graph, {"message": message, "locale": locale}),
            self._run("search", self._search_graph, {"query": message, "locale": locale}),
        )
        if weather_state:
            ctx.location_name = weather_state.get("location_name")
            ctx.coordinates = weather_state.get("coordinates")
            ctx.weather = weather_state.get("weather")
        if search_state:
            ctx.should_show_results = bool(search_state.get("should_show"))
            ctx.web_results = list(search_state.get("results") or [])[: self._max_results]
        logger.info(
            "enrich.done",
            extra={"extra": {
                "locale": locale,
                "location": ctx.location_name,
                "has_weather": ctx.weather is not None,
                "should_show_results": ctx.should_show_results,
                "results": len(ctx.web_results),
            }},
        )
        return ctx

    async def search_guarded(self, query: str, locale: str) -> Tuple[bool, List[WebResult]]:
        """经分类器把关的搜索，返回 (shouldShowResults, results)。"""

        if not query or not query.strip():
            return False, []
        state = await self._run("search", self._search_graph, {"query": query, "locale": locale})
        if not state or not state.get("should_show"):
            return False, []
        return True, list(state.get("results") or [])[: self._max_results]

    async def _run(self, name: str, graph: Any, initial: WeatherState | SearchState) -> Optional[dict]:
        try:
            try:
                return await asyncio.wait_for(graph.ainvoke(initial), timeout=self._timeout)
            except asyncio.TimeoutError:
                raise EnrichmentTimeout(
                    code="ENRICHMENT_TIMEOUT",
                    message=f"{name} enrichment exceeded {self._timeout}s",
                    pipeline=name,
                )
        except EnrichmentTimeout as exc:
            logger.warning(f"enrich.{name}.timeout", extra={"extra": {"budget": self._timeout, "error": exc.message}})
            return None
        except Exception as exc:
            logger.exception(f"enrich.{name}.failed", extra={"extra": {"error": str(exc)}})
            return None
