"""
Microphone recorder.

sounddevice delivers audio on its own thread; chunks and their levels are
handed to the asyncio loop with call_soon_threadsafe so every consumer runs
on the event loop.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from supportchat.core.config import settings
from supportchat.speech.levels import level_dbfs, pcm16_to_wav

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[bytes, float], None]


class AudioRecorderInterface(ABC):
    @abstractmethod
    def start(self, on_chunk: ChunkCallback) -> None:
        """Open the microphone; `on_chunk(pcm16, level_dbfs)` runs on the loop."""
        pass

    @abstractmethod
    def stop(self) -> bytes:
        """Release the microphone and return everything captured as WAV."""
        pass

    @property
    @abstractmethod
    def recording(self) -> bool:
        pass


class SoundDeviceRecorder(AudioRecorderInterface):
    """
    PCM16 mono recorder on top of sounddevice.InputStream.
    Requires: pip install sounddevice (and the PortAudio library)
    """

    def __init__(self, sample_rate: Optional[int] = None, blocksize: int = 1600):
        self.sample_rate = sample_rate or settings.SAMPLE_RATE
        self.blocksize = blocksize
        self._stream = None
        self._frames: List[bytes] = []
        self._on_chunk: Optional[ChunkCallback] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def recording(self) -> bool:
        return self._stream is not None

    def _ensure_backend(self):
        """Lazy import; PortAudio is only needed once the microphone opens."""
        try:
            import sounddevice
        except (ImportError, OSError) as e:
            raise RuntimeError(f"sounddevice unavailable: {e}") from e
        return sounddevice

    def start(self, on_chunk: ChunkCallback) -> None:
        if self._stream is not None:
            raise RuntimeError("Recorder already running")
        sd = self._ensure_backend()
        self._loop = asyncio.get_running_loop()
        self._frames = []
        self._on_chunk = on_chunk
        stream = sd.InputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="int16",
            blocksize=self.blocksize,
            callback=self._callback,
        )
        stream.start()
        self._stream = stream
        logger.info(f"Microphone opened at {self.sample_rate} Hz")

    def _callback(self, indata, frames, time_info, status):
        # Audio thread
        if status:
            logger.debug(f"Input status: {status}")
        chunk = indata.tobytes()
        self._frames.append(chunk)
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._deliver, chunk, level_dbfs(chunk))

    def _deliver(self, chunk: bytes, level: float):
        if self._on_chunk is not None:
            self._on_chunk(chunk, level)

    def stop(self) -> bytes:
        stream, self._stream = self._stream, None
        self._on_chunk = None
        if stream is None:
            return b""
        try:
            stream.stop()
        finally:
            stream.close()
        pcm = b"".join(self._frames)
        self._frames = []
        logger.info(f"Microphone closed, captured {len(pcm)} bytes")
        return pcm16_to_wav(pcm, self.sample_rate)
