import asyncio
import io

import numpy as np
import pytest
import soundfile as sf

from sora_core.client.transcription import TranscriptionAdapter
from sora_core.domain.exceptions import ApiError, TranscriptionUnavailable, ValidationError
from sora_core.infrastructure.audio import check_clip_size, normalize_audio


def _stereo_wav(seconds=0.5, sample_rate=44100):
    t = np.linspace(0, seconds, int(seconds * sample_rate), endpoint=False)
    tone = 0.3 * np.sin(2 * np.pi * 440 * t)
    buf = io.BytesIO()
    sf.write(buf, np.stack([tone, tone], axis=1), sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


class FakeClient:
    def __init__(self, text="hello", error=None):
        self.text = text
        self.error = error
        self.uploads = []

    async def transcribe(self, audio, locale):
        self.uploads.append((audio, locale))
        if self.error:
            raise self.error
        return self.text


class FakeRecognizer:
    def __init__(self, text="local text", error=None):
        self.text = text
        self.error = error
        self.calls = 0

    async def recognize(self, audio, locale):
        self.calls += 1
        if self.error:
            raise self.error
        return self.text


class FakeMicrophone:
    def __init__(self, clip):
        self.clip = clip
        self.events = []

    def start(self):
        self.events.append("start")

    def stop(self):
        self.events.append("stop")
        return self.clip

    def release(self):
        self.events.append("release")


def test_check_clip_size_bounds():
    check_clip_size(1000, 1000, 2000)
    with pytest.raises(ValidationError) as short:
        check_clip_size(500, 1000, 2000)
    assert short.value.code == "AUDIO_TOO_SHORT"
    with pytest.raises(ValidationError) as large:
        check_clip_size(2001, 1000, 2000)
    assert large.value.code == "AUDIO_TOO_LARGE"
    assert large.value.http_status == 413


def test_normalize_audio_to_mono_16k():
    data, sr = sf.read(io.BytesIO(normalize_audio(_stereo_wav())))
    assert sr == 16000
    assert data.ndim == 1
    assert abs(len(data) - 8000) <= 1


def test_short_clip_never_reaches_network():
    client = FakeClient()
    adapter = TranscriptionAdapter(client, min_bytes=1000, max_bytes=10_000_000)
    with pytest.raises(ValidationError):
        asyncio.run(adapter.transcribe(b"\x00" * 500, "en"))
    assert client.uploads == []


def test_cloud_receives_normalized_clip():
    client = FakeClient(text="good morning")
    adapter = TranscriptionAdapter(client, min_bytes=1000, max_bytes=10_000_000)
    assert asyncio.run(adapter.transcribe(_stereo_wav(), "ja")) == "good morning"
    upload, locale = client.uploads[0]
    info = sf.info(io.BytesIO(upload))
    assert (info.samplerate, info.channels, locale) == (16000, 1, "ja")


def test_undecodable_clip_is_uploaded_as_is():
    client = FakeClient()
    adapter = TranscriptionAdapter(client, min_bytes=1000, max_bytes=10_000_000)
    clip = b"webm" + b"\x01" * 2000
    asyncio.run(adapter.transcribe(clip, "en"))
    assert client.uploads[0][0] == clip


def test_local_fallback_after_cloud_failure():
    recognizer = FakeRecognizer(text="from the device")
    adapter = TranscriptionAdapter(
        FakeClient(error=ApiError(code="API_ERROR", message="down")),
        local_recognizer=recognizer,
        min_bytes=1000,
        max_bytes=10_000_000,
    )
    assert asyncio.run(adapter.transcribe(_stereo_wav(), "en")) == "from the device"
    assert recognizer.calls == 1


def test_empty_cloud_text_falls_back():
    recognizer = FakeRecognizer()
    adapter = TranscriptionAdapter(FakeClient(text=""), local_recognizer=recognizer, min_bytes=1000, max_bytes=10_000_000)
    assert asyncio.run(adapter.transcribe(_stereo_wav(), "en")) == "local text"


def test_both_engines_failing_raises_unavailable():
    adapter = TranscriptionAdapter(
        FakeClient(error=ApiError(code="API_ERROR", message="down")),
        local_recognizer=FakeRecognizer(error=RuntimeError("no model")),
        min_bytes=1000,
        max_bytes=10_000_000,
    )
    with pytest.raises(TranscriptionUnavailable):
        asyncio.run(adapter.transcribe(_stereo_wav(), "en"))

    no_local = TranscriptionAdapter(FakeClient(text=""), min_bytes=1000, max_bytes=10_000_000)
    with pytest.raises(TranscriptionUnavailable):
        asyncio.run(no_local.transcribe(_stereo_wav(), "en"))


def test_recording_releases_microphone_on_failure():
    mic = FakeMicrophone(clip=b"\x00" * 10)
    adapter = TranscriptionAdapter(FakeClient(), min_bytes=1000, max_bytes=10_000_000)
    session = adapter.start_recording(mic)
    assert session.active
    with pytest.raises(ValidationError):
        asyncio.run(session.finish("en"))
    assert mic.events == ["start", "stop", "release"]
    assert not session.active


def test_cancelled_recording_releases_microphone():
    mic = FakeMicrophone(clip=b"")
    session = TranscriptionAdapter(FakeClient()).start_recording(mic)
    session.cancel()
    session.cancel()
    assert mic.events == ["start", "stop", "release"]
