"""Place name -> coordinates via OpenStreetMap Nominatim."""

from typing import Optional

import httpx

from sora_core.domain.exceptions import ApiError, NetworkError
from sora_core.domain.models import Coordinates


async def geocode(settings, location_name: str) -> Optional[Coordinates]:
    """Resolve ``location_name`` to the first Nominatim hit, or None."""

    params = {"q": location_name, "format": "json", "limit": 1}
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout, trust_env=False) as client:
            # Nominatim rejects requests without a distinctive User-Agent
            resp = await client.get(
                settings.geocoder_base_url,
                params=params,
                headers={"User-Agent": settings.user_agent},
            )
    except httpx.RequestError as e:
        raise NetworkError(code="NETWORK_ERROR", message=str(e), provider="nominatim")
    if resp.status_code >= 400:
        raise ApiError(code="API_ERROR", message=resp.text, provider="nominatim")
    try:
        data = resp.json()
    except ValueError:
        raise ApiError(code="BAD_RESPONSE", message="geocoder response is not JSON", provider="nominatim")
    if not isinstance(data, list) or not data:
        return None
    try:
        return Coordinates(lat=float(data[0]["lat"]), lon=float(data[0]["lon"]))
    except (KeyError, TypeError, ValueError):
        return None
