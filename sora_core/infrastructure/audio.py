"""Audio helpers shared by the transcription endpoint and the client core.

Canonical upload format: mono, 16 kHz, 16-bit PCM WAV. Decoding goes
through soundfile (libsndfile) and resampling is linear interpolation
with numpy, so no ffmpeg is needed.
"""

from __future__ import annotations

import io
from typing import Tuple

import numpy as np
import soundfile as sf

from sora_core.domain.exceptions import ValidationError

TARGET_SAMPLE_RATE = 16000


def check_clip_size(n_bytes: int, min_bytes: int, max_bytes: int) -> None:
    """Reject empty/noise clips and oversized clips before any upload."""

    if n_bytes < min_bytes:
        raise ValidationError(
            code="AUDIO_TOO_SHORT",
            message=f"Recording too short ({n_bytes} bytes, minimum {min_bytes}).",
            size=n_bytes,
        )
    if n_bytes > max_bytes:
        raise ValidationError(
            code="AUDIO_TOO_LARGE",
            message=f"Recording too large ({n_bytes} bytes, maximum {max_bytes}).",
            http_status=413,
            size=n_bytes,
        )


def decode_audio(data: bytes) -> Tuple[np.ndarray, int]:
    """Decode any libsndfile-readable clip to float32 frames (n, channels)."""

    with io.BytesIO(data) as bio:
        audio, sr = sf.read(bio, dtype="float32", always_2d=True)
    return audio, int(sr)


def to_mono_16k(audio: np.ndarray, sample_rate: int) -> np.ndarray:
    if audio.ndim == 2 and audio.shape[1] > 1:
        audio = np.mean(audio, axis=1)
    else:
        audio = audio.reshape(-1)

    if sample_rate != TARGET_SAMPLE_RATE and len(audio) > 0:
        x = np.arange(len(audio), dtype=np.float64)
        new_len = int(round(len(audio) * (TARGET_SAMPLE_RATE / float(sample_rate))))
        xp = np.linspace(0, len(audio) - 1, num=max(new_len, 1), dtype=np.float64)
        audio = np.interp(xp, x, audio).astype(np.float32)
    return audio.astype(np.float32)


def encode_wav(audio: np.ndarray, sample_rate: int = TARGET_SAMPLE_RATE) -> bytes:
    buf = io.BytesIO()
    sf.write(buf, np.clip(audio, -1.0, 1.0), sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def normalize_audio(data: bytes) -> bytes:
    """Re-encode ``data`` as canonical mono 16 kHz PCM WAV.

    Raises soundfile.LibsndfileError (a RuntimeError) when the input
    cannot be decoded.
    """

    audio, sr = decode_audio(data)
    return encode_wav(to_mono_16k(audio, sr))
