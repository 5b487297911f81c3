import io
import wave

import numpy as np

from supportchat.speech.levels import SILENCE_FLOOR_DB, level_dbfs, pcm16_samples, pcm16_to_wav

SR = 16000


def pcm16_values(values) -> bytes:
    return np.asarray(values, dtype=np.int16).tobytes()


def test_silence_is_floor():
    assert level_dbfs(np.zeros(160, dtype=np.int16).tobytes()) == SILENCE_FLOOR_DB
    assert level_dbfs(b"") == SILENCE_FLOOR_DB


def test_full_scale_square_is_near_zero_dbfs():
    chunk = pcm16_values([32767, -32767] * 80)
    assert -0.01 < level_dbfs(chunk) <= 0.0


def test_half_scale_is_about_minus_six():
    chunk = pcm16_values([16384, -16384] * 80)
    assert abs(level_dbfs(chunk) - (-6.02)) < 0.05


def test_odd_trailing_byte_is_dropped():
    assert pcm16_samples(pcm16_values([1, 2]) + b"\x07").tolist() == [1, 2]


def test_wav_container():
    pcm = pcm16_values([0, 100, -100, 0] * 40)
    data = pcm16_to_wav(pcm, SR)
    assert data[:4] == b"RIFF"
    with wave.open(io.BytesIO(data), "rb") as wav:
        assert wav.getframerate() == SR
        assert wav.getnchannels() == 1
        assert wav.getsampwidth() == 2
        assert wav.readframes(wav.getnframes()) == pcm
    assert pcm16_to_wav(b"", SR) == b""
