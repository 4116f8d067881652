"""Web search through the DuckDuckGo Instant Answer API.

The raw answer is normalised into WebResult records: the abstract (when
there is one) first, then related topics, truncated to ``max_results``.
"""

from typing import Any, Dict, List

import httpx

from sora_core.domain.exceptions import ApiError, NetworkError
from sora_core.domain.models import WebResult


DDG_ORIGIN = "https://duckduckgo.com"


async def search_web(settings, query: str, locale: str) -> List[WebResult]:
    params = {
        "q": query,
        "format": "json",
        "no_html": 1,
        "skip_disambig": 1,
        # region hint; the API ignores unknown values
        "kl": "jp-jp" if locale == "ja" else "us-en",
    }
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout, trust_env=False) as client:
            resp = await client.get(settings.search_base_url, params=params)
    except httpx.RequestError as e:
        raise NetworkError(code="NETWORK_ERROR", message=str(e), provider="duckduckgo")
    if resp.status_code >= 400:
        raise ApiError(code="API_ERROR", message=resp.text, provider="duckduckgo")
    try:
        data = resp.json()
    except ValueError:
        raise ApiError(code="BAD_RESPONSE", message="search response is not JSON", provider="duckduckgo")
    return normalize_results(data, settings.search_max_results)


def normalize_results(data: Dict[str, Any], max_results: int = 3) -> List[WebResult]:
    results: List[WebResult] = []
    if not isinstance(data, dict):
        return results

    abstract = data.get("AbstractText") or data.get("Abstract")
    if abstract:
        results.append(
            WebResult(
                title=data.get("Heading") or abstract[:50] or "Related Information",
                url=data.get("AbstractURL") or "#",
                snippet=abstract,
                image=_absolute_image(data.get("Image")),
            )
        )

    for topic in data.get("RelatedTopics") or []:
        if len(results) >= max_results:
            break
        # grouped topics ({"Name": ..., "Topics": [...]}) carry no Text of their own
        text = topic.get("Text") if isinstance(topic, dict) else None
        url = topic.get("FirstURL") if isinstance(topic, dict) else None
        if not text or not url:
            continue
        icon = (topic.get("Icon") or {}).get("URL")
        results.append(
            WebResult(
                title=text.split(" - ")[0] or text[:50],
                url=url,
                snippet=text,
                image=_absolute_image(icon),
            )
        )
    return results[:max_results]


def _absolute_image(path: Any) -> str | None:
    if not path or not isinstance(path, str):
        return None
    if path.startswith("http://") or path.startswith("https://"):
        return path
    return f"{DDG_ORIGIN}{path if path.startswith('/') else '/' + path}"
