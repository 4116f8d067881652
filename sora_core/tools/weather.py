"""Current conditions and daily forecast from Open-Meteo."""

from typing import Any, Dict

import httpx

from sora_core.domain.exceptions import ApiError, NetworkError
from sora_core.domain.models import Coordinates


CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,apparent_temperature,precipitation,weather_code"
DAILY_FIELDS = "weather_code,temperature_2m_max,temperature_2m_min"


async def fetch_weather(settings, coordinates: Coordinates) -> Dict[str, Any]:
    """Return the raw forecast JSON; it is opaque to the rest of the system."""

    params = {
        "latitude": coordinates.lat,
        "longitude": coordinates.lon,
        "current": CURRENT_FIELDS,
        "daily": DAILY_FIELDS,
        "timezone": "auto",
    }
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout, trust_env=False) as client:
            resp = await client.get(settings.weather_base_url, params=params)
    except httpx.RequestError as e:
        raise NetworkError(code="NETWORK_ERROR", message=str(e), provider="open-meteo")
    if resp.status_code >= 400:
        raise ApiError(code="API_ERROR", message=resp.text, provider="open-meteo")
    try:
        data = resp.json()
    except ValueError:
        raise ApiError(code="BAD_RESPONSE", message="weather response is not JSON", provider="open-meteo")
    if not isinstance(data, dict):
        raise ApiError(code="BAD_RESPONSE", message="weather payload is not an object", provider="open-meteo")
    return data
