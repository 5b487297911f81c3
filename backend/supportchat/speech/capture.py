"""
CaptureSession - exclusive owner of the speech capture resource.

Two mutually exclusive modes:
- UTTERANCE: record until silence (or the hard cap), then transcribe once
- STREAMING: continuous recognition with partial and final transcripts

Exclusivity is a single state flag checked synchronously in start(); a
second start while a capture is active is rejected, never queued.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Optional, Set

from supportchat.adapters.speech import (
    RecognitionEvent,
    StreamingRecognizerInterface,
    TranscriptionClientInterface,
)
from supportchat.core.config import settings
from supportchat.core.models import Transcription
from supportchat.speech.recorder import AudioRecorderInterface

logger = logging.getLogger(__name__)


class CaptureMode(str, Enum):
    UTTERANCE = "utterance"
    STREAMING = "streaming"


class CaptureState(str, Enum):
    IDLE = "idle"
    UTTERANCE_RECORDING = "utterance_recording"
    STREAMING_RECORDING = "streaming_recording"


class CaptureListener:
    """Receives capture results. Override what you need."""

    async def on_transcript(self, result: Optional[Transcription]) -> None:
        """Utterance mode: transcription result, or None when nothing was heard."""

    def on_partial(self, text: str) -> None:
        pass

    def on_final(self, text: str) -> None:
        pass

    def on_end(self) -> None:
        pass


class CaptureSession:
    def __init__(
        self,
        recorder: AudioRecorderInterface,
        transcriber: TranscriptionClientInterface,
        recognizer: Optional[StreamingRecognizerInterface] = None,
        notify: Optional[Callable[[str, str], None]] = None,
        language: Optional[str] = None,
        silence_threshold_db: Optional[float] = None,
        silence_timeout: Optional[float] = None,
        max_duration: Optional[float] = None,
    ):
        self.recorder = recorder
        self.transcriber = transcriber
        self.recognizer = recognizer
        self.notify = notify or (lambda title, message: None)
        self.language = language or settings.STT_LANGUAGE
        self.silence_threshold_db = (
            silence_threshold_db if silence_threshold_db is not None else settings.SILENCE_THRESHOLD_DB
        )
        self.silence_timeout = silence_timeout or settings.SILENCE_TIMEOUT_SECONDS
        self.max_duration = max_duration or settings.MAX_RECORDING_SECONDS

        self._state = CaptureState.IDLE
        self._listener: Optional[CaptureListener] = None
        self._silence_timer: Optional[asyncio.TimerHandle] = None
        self._max_timer: Optional[asyncio.TimerHandle] = None
        self._generation = 0
        self._last_partial: Optional[str] = None
        self._finished_utterances: Set[str] = set()
        self._revisions: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state != CaptureState.IDLE

    async def start(self, mode: CaptureMode, listener: CaptureListener) -> bool:
        if self._state != CaptureState.IDLE:
            logger.info(f"Capture start rejected ({mode.value}): {self._state.value} active")
            self.notify("음성 인식", "이미 음성 인식이 진행 중입니다.")
            return False

        if mode == CaptureMode.UTTERANCE:
            return self._start_utterance(listener)
        return await self._start_streaming(listener)

    def _start_utterance(self, listener: CaptureListener) -> bool:
        self._state = CaptureState.UTTERANCE_RECORDING
        self._listener = listener
        try:
            self.recorder.start(self._on_chunk)
        except Exception as e:
            logger.warning(f"Microphone unavailable: {e}")
            self._reset()
            self.notify("음성 인식", "마이크를 사용할 수 없습니다.")
            return False

        loop = asyncio.get_running_loop()
        self._arm_silence_timer()
        self._max_timer = loop.call_later(self.max_duration, self._auto_stop, "max duration")
        logger.info("Utterance capture started")
        return True

    async def _start_streaming(self, listener: CaptureListener) -> bool:
        if self.recognizer is None:
            self.notify("음성 인식", "실시간 음성 인식을 사용할 수 없습니다.")
            return False

        # Claim the resource before the first await
        self._state = CaptureState.STREAMING_RECORDING
        self._listener = listener
        self._generation += 1
        self._last_partial = None
        generation = self._generation
        try:
            await self.recognizer.start(
                self.language, lambda event: self._on_recognition(generation, event)
            )
        except Exception as e:
            logger.warning(f"Streaming recognizer failed to start: {e}")
            if self._generation == generation:
                self._reset()
            self.notify("음성 인식", "음성 인식을 시작할 수 없습니다.")
            return False
        logger.info("Streaming capture started")
        return True

    async def stop(self):
        if self._state == CaptureState.IDLE:
            return
        if self._state == CaptureState.UTTERANCE_RECORDING:
            await self._stop_utterance()
        else:
            await self._stop_streaming()

    async def _stop_utterance(self):
        listener = self._listener
        self._reset()
        try:
            audio = self.recorder.stop()
        except Exception as e:
            logger.warning(f"Recorder stop failed: {e}")
            self.notify("음성 인식", "녹음을 종료하는 중 오류가 발생했습니다.")
            return

        if not audio:
            logger.info("Utterance capture stopped with no audio")
            await listener.on_transcript(None)
            return

        try:
            result = await self.transcriber.transcribe(audio, self.language)
        except Exception as e:
            logger.warning(f"Transcription failed: {e}")
            self.notify("음성 인식", "음성 인식 중 오류가 발생했습니다.")
            return
        await listener.on_transcript(result)

    async def _stop_streaming(self):
        self._reset()
        try:
            await self.recognizer.stop()
        except Exception as e:
            logger.warning(f"Streaming recognizer stop failed: {e}")
        logger.info("Streaming capture stopped")

    async def close(self):
        """Release any active capture without delivering results."""
        state = self._state
        self._reset()
        if state == CaptureState.UTTERANCE_RECORDING:
            try:
                self.recorder.stop()
            except Exception as e:
                logger.warning(f"Recorder release failed: {e}")
        elif state == CaptureState.STREAMING_RECORDING:
            try:
                await self.recognizer.stop()
            except Exception as e:
                logger.warning(f"Recognizer release failed: {e}")
        for task in list(self._tasks):
            task.cancel()

    async def drain(self):
        """Wait for auto-stops triggered by the timers."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- utterance level monitoring ---

    def _on_chunk(self, chunk: bytes, level: float):
        if self._state != CaptureState.UTTERANCE_RECORDING:
            return
        if level >= self.silence_threshold_db:
            self._arm_silence_timer()

    def _arm_silence_timer(self):
        if self._silence_timer is not None:
            self._silence_timer.cancel()
        loop = asyncio.get_running_loop()
        self._silence_timer = loop.call_later(self.silence_timeout, self._auto_stop, "silence")

    def _auto_stop(self, reason: str):
        if self._state != CaptureState.UTTERANCE_RECORDING:
            return
        logger.info(f"Utterance capture auto-stop: {reason}")
        task = asyncio.ensure_future(self.stop())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- streaming events ---

    def _on_recognition(self, generation: int, event: RecognitionEvent):
        listener = self._listener
        if generation != self._generation or self._state != CaptureState.STREAMING_RECORDING or listener is None:
            return

        if event.type == "partial":
            if self._accept_partial(event):
                self._last_partial = event.text
                listener.on_partial(event.text)
        elif event.type == "final":
            self._last_partial = None
            if event.utterance_id is not None:
                self._finished_utterances.add(event.utterance_id)
            listener.on_final(event.text)
        elif event.type == "end":
            listener.on_end()
        elif event.type == "error":
            logger.warning(f"Recognition error: {event.text}")
            listener.on_end()

    def _accept_partial(self, event: RecognitionEvent) -> bool:
        if not event.text or event.text == self._last_partial:
            return False
        utterance = event.utterance_id
        if utterance is None:
            return True
        if utterance in self._finished_utterances:
            return False
        if event.rev is not None:
            last = self._revisions.get(utterance)
            if last is not None and event.rev <= last:
                return False
            self._revisions[utterance] = event.rev
        return True

    def _reset(self):
        for timer in (self._silence_timer, self._max_timer):
            if timer is not None:
                timer.cancel()
        self._silence_timer = None
        self._max_timer = None
        self._listener = None
        self._last_partial = None
        self._finished_utterances.clear()
        self._revisions.clear()
        if self._state == CaptureState.STREAMING_RECORDING:
            self._generation += 1
        self._state = CaptureState.IDLE
