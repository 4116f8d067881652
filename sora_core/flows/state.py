"""上下文增强图的状态定义。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

from sora_core.domain.models import Coordinates, WebResult


class WeatherState(TypedDict, total=False):
    """天气图各节点共享的状态。"""

    message: str
    locale: str
    location_name: Optional[str]
    coordinates: Optional[Coordinates]
    weather: Optional[Dict[str, Any]]


class SearchState(TypedDict, total=False):
    """搜索图各节点共享的状态。"""

    query: str
    locale: str
    should_show: bool
    results: List[WebResult]
