"""
Speech collaborators.

- HttpTranscriptionClient: uploads a recorded utterance for transcription.
- WebSocketRecognizer: streams microphone audio and receives partial/final
  transcripts as they are recognized.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx
import structlog
import websockets

from supportchat.adapters.backend import BackendError, parse_error_detail
from supportchat.core.config import settings
from supportchat.core.models import Transcription
from supportchat.speech.recorder import AudioRecorderInterface, SoundDeviceRecorder

logger = structlog.get_logger()


class TranscriptionClientInterface(ABC):
    @abstractmethod
    async def transcribe(self, audio: bytes, language: str) -> Transcription:
        pass

    async def close(self):
        pass


class HttpTranscriptionClient(TranscriptionClientInterface):
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.API_URL).rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url + "/",
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def transcribe(self, audio: bytes, language: str) -> Transcription:
        client = self._ensure_client()
        try:
            response = await client.post(
                "stt/transcribe",
                files={"file": ("speech.wav", audio, "audio/wav")},
                data={"language": language},
            )
        except httpx.HTTPError as e:
            logger.warning("stt_request_failed", error=str(e))
            raise BackendError(str(e) or type(e).__name__) from e

        if response.status_code >= 400:
            message = parse_error_detail(response)
            logger.warning("stt_error_response", status=response.status_code, detail=message)
            raise BackendError(message, status_code=response.status_code)

        result = Transcription(**response.json())
        logger.info("stt_transcribed", chars=len(result.clean_text), answered=result.has_answer)
        return result


@dataclass
class RecognitionEvent:
    """One message from the streaming recognizer."""
    type: str  # partial | final | end | error
    text: str = ""
    utterance_id: Optional[str] = None
    rev: Optional[int] = None

    @classmethod
    def from_message(cls, message) -> "RecognitionEvent":
        data = json.loads(message)
        return cls(
            type=str(data.get("type", "")),
            text=str(data.get("text") or ""),
            utterance_id=data.get("utterance_id"),
            rev=data.get("rev"),
        )


EventCallback = Callable[[RecognitionEvent], None]


class StreamingRecognizerInterface(ABC):
    @abstractmethod
    async def start(self, language: str, on_event: EventCallback) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass


class WebSocketRecognizer(StreamingRecognizerInterface):
    """
    Continuous recognition over a WebSocket.

    Protocol:
        client -> server: binary PCM16 chunks, then {"type": "stop"}
        server -> client: {"type": "partial" | "final" | "end" | "error", "text": ...}
    """

    def __init__(self, url: Optional[str] = None, recorder: Optional[AudioRecorderInterface] = None):
        self.url = url or settings.STREAMING_STT_URL
        self.recorder = recorder or SoundDeviceRecorder()
        self._ws = None
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: list = []
        self._on_event: Optional[EventCallback] = None

    async def start(self, language: str, on_event: EventCallback) -> None:
        if not self.url:
            raise BackendError("STREAMING_STT_URL not set")
        separator = "&" if "?" in self.url else "?"
        url = f"{self.url}{separator}{urlencode({'language': language})}"
        try:
            self._ws = await websockets.connect(url)
        except (OSError, websockets.WebSocketException) as e:
            logger.warning("stream_connect_failed", url=url, error=str(e))
            raise BackendError(f"음성 인식 서버에 연결할 수 없습니다: {e}") from e

        self._on_event = on_event
        self._queue = asyncio.Queue()
        try:
            self.recorder.start(lambda chunk, level: self._queue.put_nowait(chunk))
        except Exception:
            await self._ws.close()
            self._ws = None
            raise
        self._tasks = [
            asyncio.create_task(self._send_audio()),
            asyncio.create_task(self._receive_events()),
        ]
        logger.info("stream_started", language=language)

    async def _send_audio(self):
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                break
            await self._ws.send(chunk)
        await self._ws.send(json.dumps({"type": "stop"}))

    async def _receive_events(self):
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    continue
                try:
                    event = RecognitionEvent.from_message(message)
                except (json.JSONDecodeError, AttributeError) as e:
                    logger.warning("stream_bad_message", error=str(e))
                    continue
                self._emit(event)
                if event.type == "end":
                    return
        except websockets.ConnectionClosed as e:
            logger.info("stream_closed", code=e.code)
        except Exception as e:
            logger.error("stream_receive_failed", error=str(e))
            self._emit(RecognitionEvent(type="error", text=str(e)))
            return
        self._emit(RecognitionEvent(type="end"))

    def _emit(self, event: RecognitionEvent):
        if self._on_event is not None:
            self._on_event(event)

    async def stop(self) -> None:
        self._on_event = None
        if self.recorder.recording:
            self.recorder.stop()
        if self._queue is not None:
            self._queue.put_nowait(None)
        sender, receiver = (self._tasks + [None, None])[:2]
        if sender is not None:
            try:
                await asyncio.wait_for(sender, timeout=2.0)
            except (asyncio.TimeoutError, websockets.ConnectionClosed):
                sender.cancel()
        if receiver is not None:
            receiver.cancel()
        if self._ws is not None:
            await self._ws.close()
        self._ws = None
        self._queue = None
        self._tasks = []
        logger.info("stream_stopped")
