"""HTTP surface of the Sora server.

Run locally:
  python -m sora_core --reload
or
  uvicorn sora_core.api.service:app --host 127.0.0.1 --port 8000

All endpoints answer JSON except ``POST /reply``, which streams
newline-delimited JSON frames (see ReplyEvent).
"""

import base64
import json
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, File, Form, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from sora_core.agents.reply_agent import ReplyAgent
from sora_core.api.schemas import (
    GuardedSearchOut,
    ReplyIn,
    SearchIn,
    SearchOut,
    SpeakIn,
    SpeakOut,
    TranscribeOut,
    WebResultOut,
)
from sora_core.config.settings import settings
from sora_core.domain.exceptions import BusinessError, ProviderError, ValidationError
from sora_core.domain.models import Locale, ReplyEvent, SUPPORTED_LOCALES
from sora_core.flows.runner import ContextEnricher
from sora_core.infrastructure.audio import check_clip_size
from sora_core.infrastructure.logging.logger import logger
from sora_core.providers import create_provider
from sora_core.providers.base import SpeechToTextClient, TextToSpeechClient
from sora_core.providers.elevenlabs_client import ElevenLabsClient
from sora_core.providers.whisper_client import WhisperClient
from sora_core.tools import ContextTools, default_tools


_tools: Optional[ContextTools] = None
_enricher: Optional[ContextEnricher] = None
_agent: Optional[ReplyAgent] = None
_stt: Optional[WhisperClient] = None
_tts: Optional[ElevenLabsClient] = None


def get_context_tools() -> ContextTools:
    global _tools
    if _tools is None:
        _tools = default_tools(settings)
    return _tools


def get_enricher() -> ContextEnricher:
    global _enricher
    if _enricher is None:
        _enricher = ContextEnricher(provider=create_provider(), tools=get_context_tools())
    return _enricher


def get_reply_agent() -> ReplyAgent:
    """Default reply agent (singleton)."""
    global _agent
    if _agent is None:
        _agent = ReplyAgent(provider_client=create_provider(), enricher=get_enricher())
    return _agent


def get_stt_client() -> WhisperClient:
    global _stt
    if _stt is None:
        _stt = WhisperClient(settings)
    return _stt


def get_tts_client() -> ElevenLabsClient:
    global _tts
    if _tts is None:
        _tts = ElevenLabsClient(settings)
    return _tts


app = FastAPI(title="Sora Assistant")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BusinessError)
async def business_error_handler(request, exc: BusinessError):
    logger.warning(
        "api.business_error",
        extra={"extra": {"path": request.url.path, "code": exc.code, "error": exc.message}},
    )
    return JSONResponse(status_code=exc.http_status, content={"error": exc.code, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "VALIDATION_ERROR", "message": json.dumps(exc.errors(), default=str)},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/config")
def config():
    return {
        "locales": list(SUPPORTED_LOCALES),
        "llm_configured": bool(settings.groq_api_key),
        "stt_configured": bool(settings.hf_token),
        "tts_configured": bool(settings.elevenlabs_api_key),
        "enrichment_timeout": settings.enrichment_timeout,
    }


async def _ndjson(events: AsyncIterator[ReplyEvent]) -> AsyncIterator[bytes]:
    async for event in events:
        yield (json.dumps(event.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")


@app.post("/reply")
async def reply(body: ReplyIn, agent: ReplyAgent = Depends(get_reply_agent)):
    history = [m.to_chat_message() for m in body.messages]
    # reject bad input before the response starts streaming
    agent.validate_history(history, body.locale)
    logger.info(
        "api.reply",
        extra={"extra": {"locale": body.locale, "turns": len(history), "message_id": body.messageId}},
    )
    return StreamingResponse(
        _ndjson(agent.generate_reply(history, body.locale, message_id=body.messageId)),
        media_type="application/x-ndjson",
    )


@app.post("/transcribe", response_model=TranscribeOut)
async def transcribe(
    audio: UploadFile = File(...),
    locale: Locale = Form("en"),
    stt: SpeechToTextClient = Depends(get_stt_client),
):
    data = await audio.read()
    check_clip_size(len(data), settings.transcribe_min_bytes, settings.transcribe_max_bytes)
    try:
        text = await stt.transcribe(data, locale, content_type=audio.content_type or "audio/wav")
    except ProviderError as exc:
        logger.warning("api.transcribe.provider_error", extra={"extra": {"code": exc.code, "error": exc.message}})
        return JSONResponse(status_code=exc.http_status, content={"error": exc.message})
    if not text:
        return JSONResponse(status_code=502, content={"error": "empty transcription"})
    return TranscribeOut(text=text)


@app.post("/speak", response_model=SpeakOut, response_model_exclude_none=True)
async def speak(body: SpeakIn, tts: TextToSpeechClient = Depends(get_tts_client)):
    if not body.text.strip():
        raise ValidationError(code="EMPTY_TEXT", message="No text provided")
    if not tts.is_configured():
        return SpeakOut(error="ElevenLabs API not configured. Add ELEVENLABS_API_KEY.", fallback=True)
    try:
        audio = await tts.synthesize(body.text, body.locale)
    except BusinessError as exc:
        logger.warning("api.speak.provider_error", extra={"extra": {"code": exc.code, "error": exc.message}})
        return SpeakOut(error=exc.message, fallback=True)
    return SpeakOut(audioContent=base64.b64encode(audio).decode("ascii"))


@app.post("/search", response_model=SearchOut, response_model_exclude_none=True)
async def search(body: SearchIn, tools: ContextTools = Depends(get_context_tools)):
    if not body.query.strip():
        raise ValidationError(code="EMPTY_QUERY", message="Query is required")
    try:
        results = await tools.search(body.query, body.locale)
    except BusinessError as exc:
        logger.warning("api.search.provider_error", extra={"extra": {"code": exc.code, "error": exc.message}})
        results = []
    return SearchOut(results=[WebResultOut.from_result(r) for r in results[: settings.search_max_results]])


@app.post("/searchGuarded", response_model=GuardedSearchOut, response_model_exclude_none=True)
async def search_guarded(body: SearchIn, enricher: ContextEnricher = Depends(get_enricher)):
    should_show, results = await enricher.search_guarded(body.query, body.locale)
    return GuardedSearchOut(
        shouldShowResults=should_show,
        results=[WebResultOut.from_result(r) for r in results],
    )
