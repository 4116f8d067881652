import asyncio

import pytest

from sora_core.domain.exceptions import ApiError
from sora_core.domain.models import Coordinates
from sora_core.tools.geocoder import geocode
from sora_core.tools.weather import fetch_weather
from sora_core.tools.web_search import normalize_results, search_web


class SettingsStub:
    http_timeout = 1.0
    user_agent = "SoraAIApp/1.0"
    geocoder_base_url = "https://nominatim.test/search"
    weather_base_url = "https://meteo.test/v1/forecast"
    search_base_url = "https://ddg.test/"
    search_max_results = 3


DDG_ANSWER = {
    "Heading": "Kyoto",
    "AbstractText": "Kyoto is a city in Japan.",
    "AbstractURL": "https://en.wikipedia.org/wiki/Kyoto",
    "Image": "/i/kyoto.png",
    "RelatedTopics": [
        {"Text": "Kinkaku-ji - Zen temple", "FirstURL": "https://duckduckgo.com/Kinkaku-ji", "Icon": {"URL": ""}},
        {"Name": "Grouped", "Topics": [{"Text": "nested", "FirstURL": "https://x"}]},
        {"Text": "Fushimi Inari - Shrine", "FirstURL": "https://duckduckgo.com/Fushimi", "Icon": {"URL": "https://img/f.png"}},
        {"Text": "Arashiyama - District", "FirstURL": "https://duckduckgo.com/Arashiyama"},
    ],
}


def test_normalize_results_abstract_first_and_truncated():
    results = normalize_results(DDG_ANSWER, max_results=3)
    assert [r.title for r in results] == ["Kyoto", "Kinkaku-ji", "Fushimi Inari"]
    assert results[0].url == "https://en.wikipedia.org/wiki/Kyoto"
    assert results[0].image == "https://duckduckgo.com/i/kyoto.png"
    assert results[1].image is None
    assert results[2].image == "https://img/f.png"
    assert results[1].snippet == "Kinkaku-ji - Zen temple"


def test_normalize_results_empty_answer():
    assert normalize_results({}) == []
    assert normalize_results({"RelatedTopics": [{"Text": "no url"}]}) == []


def test_search_web_sends_region_hint(fake_http, response):
    calls = fake_http(lambda m, u, kw: response(json_data=DDG_ANSWER))
    results = asyncio.run(search_web(SettingsStub(), "京都 観光", "ja"))
    assert len(results) == 3
    params = calls[0][2]["params"]
    assert params["q"] == "京都 観光"
    assert params["kl"] == "jp-jp"
    assert params["format"] == "json"


def test_search_web_http_error(fake_http, response):
    fake_http(lambda m, u, kw: response(status_code=503, content=b"unavailable"))
    with pytest.raises(ApiError):
        asyncio.run(search_web(SettingsStub(), "tokyo", "en"))


def test_geocode_first_hit(fake_http, response):
    calls = fake_http(lambda m, u, kw: response(json_data=[
        {"lat": "35.6812", "lon": "139.7671", "display_name": "Tokyo"},
        {"lat": "0", "lon": "0"},
    ]))
    coords = asyncio.run(geocode(SettingsStub(), "Tokyo"))
    assert coords == Coordinates(lat=35.6812, lon=139.7671)
    assert calls[0][2]["headers"]["User-Agent"] == "SoraAIApp/1.0"
    assert calls[0][2]["params"]["limit"] == 1


def test_geocode_no_hit(fake_http, response):
    fake_http(lambda m, u, kw: response(json_data=[]))
    assert asyncio.run(geocode(SettingsStub(), "Atlantis")) is None


def test_fetch_weather_params(fake_http, response):
    forecast = {"current": {"temperature_2m": 21.5}, "daily": {"temperature_2m_max": [24.0]}}
    calls = fake_http(lambda m, u, kw: response(json_data=forecast))
    data = asyncio.run(fetch_weather(SettingsStub(), Coordinates(lat=35.0, lon=135.7)))
    assert data == forecast
    params = calls[0][2]["params"]
    assert params["latitude"] == 35.0
    assert params["timezone"] == "auto"
    assert "temperature_2m" in params["current"]


def test_geocode_html_page_is_an_api_error(fake_http, response):
    fake_http(lambda m, u, kw: response(content=b"<html>rate limited</html>"))
    with pytest.raises(ApiError) as exc:
        asyncio.run(geocode(SettingsStub(), "Tokyo"))
    assert exc.value.code == "BAD_RESPONSE"


def test_fetch_weather_non_json_is_an_api_error(fake_http, response):
    fake_http(lambda m, u, kw: response(content=b"upstream timeout"))
    with pytest.raises(ApiError) as exc:
        asyncio.run(fetch_weather(SettingsStub(), Coordinates(lat=35.0, lon=135.7)))
    assert exc.value.code == "BAD_RESPONSE"
