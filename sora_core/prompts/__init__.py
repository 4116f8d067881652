"""Prompt loading and directive composition.

Persona texts live in ``prompts/<locale>/<persona>_system.md``. The
wording differs per locale (tone and formatting rules), it is not a
straight translation.
"""

import json
from pathlib import Path
from typing import List

from sora_core.domain.models import EnrichmentContext, WebResult


PROMPTS_DIR = Path(__file__).resolve().parent
DEFAULT_PERSONA = "sora"


def load_system_prompt(persona: str = DEFAULT_PERSONA, locale: str = "en") -> str:
    """Load the base persona instructions for ``locale`` (unknown locales use English)."""

    lang = "ja" if locale == "ja" else "en"
    fname = PROMPTS_DIR / lang / f"{persona}_system.md"
    return fname.read_text(encoding="utf-8").strip()


_CONTEXT_HEADER = {
    "en": "ADDITIONAL CONTEXT TO INFORM YOUR RESPONSE:",
    "ja": "回答に役立つ追加情報：",
}
_LOCATION_LINE = {
    "en": "- Location: {name}",
    "ja": "- 場所: {name}",
}
_WEATHER_LINES = {
    "en": (
        "- Current weather and forecast (JSON from Open-Meteo):\n{data}\n"
        "  When you talk about the weather, quote the concrete figures "
        "(temperature in °C, humidity in %, precipitation in mm, daily high and low). "
        "Do not fall back on vague words like \"nice\" or \"cold\" without numbers."
    ),
    "ja": (
        "- 現在の天気と予報（Open-MeteoのJSON）：\n{data}\n"
        "  天気に触れるときは、気温（℃）、湿度（%）、降水量（mm）、最高・最低気温などの"
        "具体的な数値を必ず示してください。「いい天気」「寒い」といった曖昧な表現だけで済ませないでください。"
    ),
}
_SEARCH_LINES = {
    "en": (
        "- Web search results (use them as grounding, do not invent links; "
        "the user will also see them as cards under your reply):\n{data}"
    ),
    "ja": (
        "- ウェブ検索結果（回答の根拠として使い、リンクを捏造しないでください。"
        "ユーザーには返答の下にカードとして表示されます）：\n{data}"
    ),
}
_CLOSING = {
    "en": "Based on this context and the conversation so far, give a concise, friendly and helpful reply.",
    "ja": "これらの情報とこれまでの会話をもとに、簡潔で親しみやすく役立つ返答をしてください。",
}


def compose_directive(
    locale: str,
    enrichment: EnrichmentContext,
    persona: str = DEFAULT_PERSONA,
) -> str:
    """Build the single system directive for one reply.

    Deterministic: the same persona, locale and enrichment always give the
    same text. Sections for absent enrichment are left out.
    """

    lang = "ja" if locale == "ja" else "en"
    parts: List[str] = [load_system_prompt(persona, lang)]

    context_lines: List[str] = []
    if enrichment.location_name:
        context_lines.append(_LOCATION_LINE[lang].format(name=enrichment.location_name))
    if enrichment.weather:
        data = json.dumps(enrichment.weather, ensure_ascii=False, sort_keys=True)
        context_lines.append(_WEATHER_LINES[lang].format(data=data))
    if enrichment.web_results:
        context_lines.append(_SEARCH_LINES[lang].format(data=_results_json(enrichment.web_results)))

    if context_lines:
        parts.append(_CONTEXT_HEADER[lang] + "\n" + "\n".join(context_lines))
        parts.append(_CLOSING[lang])
    return "\n\n".join(parts)


def _results_json(results: List[WebResult]) -> str:
    return json.dumps([r.to_dict() for r in results], ensure_ascii=False)


def location_extraction_prompt(user_message: str, locale: str) -> str:
    if locale == "ja":
        return (
            "以下のメッセージから都市名または場所を抽出してください。"
            "場所が見つからない場合は「NONE」と返してください。場所名のみを返してください。\n\n"
            f"メッセージ: \"{user_message}\"\n\n場所:"
        )
    return (
        "Extract the city or location name from the following message. "
        "If no location is found, return \"NONE\". Return ONLY the location name.\n\n"
        f"Message: \"{user_message}\"\n\nLocation:"
    )


def search_classifier_instruction(locale: str) -> str:
    if locale == "ja":
        return (
            "あなたはメッセージが「情報検索が必要か」を判定する分類器です。"
            "単なる挨拶、感謝、謝罪、了承（例: ありがとう、OK、了解、すみません）などの場合は "
            "shouldShowResults を false にしてください。旅行先や天気、営業状況、今日のイベントなど、"
            "外部情報が役立つ質問や依頼の場合は true にしてください。"
            "JSON だけを返してください。例: {\"shouldShowResults\": true}"
        )
    return (
        "You are a classifier deciding if a message warrants showing web results. "
        "If it's just acknowledgement/polite chatter (e.g., thanks, sorry, ok, got it), "
        "set shouldShowResults=false. If it asks for info that benefits from web results "
        "(e.g., places, events, hours, weather, what's open today, spots for some purpose), "
        "set shouldShowResults=true. Return ONLY JSON like {\"shouldShowResults\": true}."
    )
