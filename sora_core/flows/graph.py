"""上下文增强的 LangGraph 构建与节点实现。

两张相互独立的图：

- weather：extract_location -> geocode -> fetch_weather
- search： classify -> search（仅在分类器判定需要时执行）

Provider 失败时各节点都退化为“未找到”，不做重试。
"""

from __future__ import annotations

import json
import re
from typing import List, Optional

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from sora_core.domain.exceptions import BusinessError
from sora_core.domain.models import ChatMessage, ChatRequest
from sora_core.flows.state import SearchState, WeatherState
from sora_core.infrastructure.logging.logger import logger
from sora_core.prompts import location_extraction_prompt, search_classifier_instruction
from sora_core.providers.base import ProviderClient
from sora_core.providers.registry import CLASSIFY_MODEL, EXTRACT_MODEL
from sora_core.tools import ContextTools

NONE_SENTINEL = "NONE"
MAX_LOCATION_CHARS = 100
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


async def _call_llm(provider: ProviderClient, model: str, messages: List[ChatMessage]) -> str:
    req = ChatRequest(provider=provider.name, model=model, messages=messages)
    result = await provider.chat(req)
    return result.content or ""


async def extract_location(provider: ProviderClient, message: str, locale: str) -> Optional[str]:
    """让模型从 ``message`` 中提取地名；没有地名时返回 None。"""

    prompt = location_extraction_prompt(message, locale)
    text = await _call_llm(provider, EXTRACT_MODEL, [ChatMessage(role="user", content=prompt)])
    location = text.strip().strip("\"'「」『』.。").strip()
    if not location or location.upper() == NONE_SENTINEL or len(location) > MAX_LOCATION_CHARS:
        return None
    return location


async def classify_should_show(provider: ProviderClient, query: str, locale: str) -> bool:
    """搜索开关（二分类）。只有明确的 ``true`` 才返回 True。"""

    messages = [
        ChatMessage(role="system", content=search_classifier_instruction(locale)),
        ChatMessage(role="user", content=query),
    ]
    content = await _call_llm(provider, CLASSIFY_MODEL, messages)
    return _parse_should_show(content)


def _parse_should_show(content: str) -> bool:
    try:
        payload = json.loads(content)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(content or "")
        if not match:
            return False
        try:
            payload = json.loads(match.group(0))
        except json.JSONDecodeError:
            return False
    if not isinstance(payload, dict):
        return False
    return payload.get("shouldShowResults") is True


# ---- weather graph ----


async def extract_node(state: WeatherState, provider: ProviderClient) -> WeatherState:
    try:
        name = await extract_location(provider, state["message"], state["locale"])
    except BusinessError as exc:
        logger.warning("enrich.weather.extract_failed", extra={"extra": {"code": exc.code, "error": exc.message}})
        name = None
    logger.info("enrich.weather.extract", extra={"extra": {"location": name}})
    return {"location_name": name}


async def geocode_node(state: WeatherState, tools: ContextTools) -> WeatherState:
    try:
        coords = await tools.geocode(state["location_name"])
    except BusinessError as exc:
        logger.warning("enrich.weather.geocode_failed", extra={"extra": {"code": exc.code, "error": exc.message}})
        coords = None
    if coords is None:
        logger.info("enrich.weather.geocode_miss", extra={"extra": {"location": state["location_name"]}})
    return {"coordinates": coords}


async def weather_node(state: WeatherState, tools: ContextTools) -> WeatherState:
    try:
        weather = await tools.fetch_weather(state["coordinates"])
    except BusinessError as exc:
        logger.warning("enrich.weather.fetch_failed", extra={"extra": {"code": exc.code, "error": exc.message}})
        weather = None
    return {"weather": weather}


def after_extract(state: WeatherState) -> str:
    return "geocode" if state.get("location_name") else "end"


def after_geocode(state: WeatherState) -> str:
    return "weather" if state.get("coordinates") else "end"


def build_weather_graph(provider: ProviderClient, tools: ContextTools) -> CompiledStateGraph:
    async def extract(s: WeatherState) -> WeatherState:
        return await extract_node(s, provider)

    async def geocode(s: WeatherState) -> WeatherState:
        return await geocode_node(s, tools)

    async def weather(s: WeatherState) -> WeatherState:
        return await weather_node(s, tools)

    graph = StateGraph(WeatherState)
    graph.add_node("extract", extract)
    graph.add_node("geocode", geocode)
    graph.add_node("weather", weather)
    graph.set_entry_point("extract")
    graph.add_conditional_edges("extract", after_extract, {"geocode": "geocode", "end": END})
    graph.add_conditional_edges("geocode", after_geocode, {"weather": "weather", "end": END})
    graph.add_edge("weather", END)
    return graph.compile()


# ---- search graph ----


async def classify_node(state: SearchState, provider: ProviderClient) -> SearchState:
    try:
        should_show = await classify_should_show(provider, state["query"], state["locale"])
    except BusinessError as exc:
        # fail closed: no classification, no results
        logger.warning("enrich.search.classify_failed", extra={"extra": {"code": exc.code, "error": exc.message}})
        should_show = False
    logger.info("enrich.search.classify", extra={"extra": {"should_show": should_show}})
    return {"should_show": should_show, "results": []}


async def search_node(state: SearchState, tools: ContextTools) -> SearchState:
    try:
        results = await tools.search(state["query"], state["locale"])
    except BusinessError as exc:
        logger.warning("enrich.search.failed", extra={"extra": {"code": exc.code, "error": exc.message}})
        results = []
    logger.info("enrich.search.results", extra={"extra": {"count": len(results)}})
    return {"results": results}


def after_classify(state: SearchState) -> str:
    return "search" if state.get("should_show") else "end"


def build_search_graph(provider: ProviderClient, tools: ContextTools) -> CompiledStateGraph:
    async def classify(s: SearchState) -> SearchState:
        return await classify_node(s, provider)

    async def search(s: SearchState) -> SearchState:
        return await search_node(s, tools)

    graph = StateGraph(SearchState)
    graph.add_node("classify", classify)
    graph.add_node("search", search)
    graph.set_entry_point("classify")
    graph.add_conditional_edges("classify", after_classify, {"search": "search", "end": END})
    graph.add_edge("search", END)
    return graph.compile()
