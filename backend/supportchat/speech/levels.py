"""Input level metering for PCM16 mono audio."""
import io
import math
import wave

import numpy as np

SILENCE_FLOOR_DB = -120.0


def pcm16_samples(chunk: bytes) -> np.ndarray:
    """View PCM16 LE bytes as int16 samples (a trailing odd byte is dropped)."""
    usable = len(chunk) - (len(chunk) % 2)
    return np.frombuffer(chunk[:usable], dtype=np.int16)


def level_dbfs(chunk: bytes) -> float:
    """RMS level of a chunk in dBFS, clamped to SILENCE_FLOOR_DB."""
    samples = pcm16_samples(chunk)
    if samples.size == 0:
        return SILENCE_FLOOR_DB
    rms = float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))
    if rms <= 0.0:
        return SILENCE_FLOOR_DB
    return max(SILENCE_FLOOR_DB, 20.0 * math.log10(rms / 32768.0))


def pcm16_to_wav(pcm: bytes, sample_rate_hz: int, channels: int = 1) -> bytes:
    """Wrap raw PCM16 in a WAV container. Empty input gives empty output."""
    if not pcm:
        return b""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate_hz)
        wav.writeframes(pcm)
    return buffer.getvalue()
