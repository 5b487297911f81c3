"""Shared fakes for the conversation and capture tests."""
import asyncio
from typing import Dict, List, Optional

from supportchat.adapters.backend import BackendClientInterface, BackendError
from supportchat.adapters.speech import (
    RecognitionEvent,
    StreamingRecognizerInterface,
    TranscriptionClientInterface,
)
from supportchat.core.models import Category, ChatSession, CustomerRecord, FAQ, Transcription
from supportchat.speech.capture import CaptureListener
from supportchat.speech.recorder import AudioRecorderInterface


class FakeBackend(BackendClientInterface):
    """In-memory backend. Put a method name in `failing` to make it raise."""

    def __init__(
        self,
        categories: Optional[List[Category]] = None,
        faqs: Optional[Dict[int, List[FAQ]]] = None,
        customers: Optional[List[CustomerRecord]] = None,
        answer: Optional[str] = "답변입니다.",
    ):
        self.categories = categories if categories is not None else [
            Category(id=1, name="POS 문의", description="POS 관련", icon_emoji="🖥️"),
            Category(id=2, name="키오스크", description="키오스크 관련"),
        ]
        self.faqs = faqs or {}
        self.customers = customers or []
        self.answer = answer
        self.failing = set()
        self.lookup_gate: Optional[asyncio.Event] = None
        self.answer_gate: Optional[asyncio.Event] = None
        self.submit_gate: Optional[asyncio.Event] = None

        self.questions: List[str] = []
        self.saved: List[tuple] = []
        self.lookups: List[str] = []
        self.submissions = []
        self.feedback: List[tuple] = []
        self.sessions_created = 0

    def _check(self, name: str):
        if name in self.failing:
            raise BackendError(f"{name} failed", status_code=500)

    async def list_categories(self):
        self._check("list_categories")
        return list(self.categories)

    async def list_faqs(self, category_id, offset=0, limit=50, order_by=None):
        self._check("list_faqs")
        return list(self.faqs.get(category_id, []))

    async def create_session(self):
        self._check("create_session")
        self.sessions_created += 1
        return ChatSession(id=str(100 + self.sessions_created))

    async def save_message(self, session_id, role, content, latency_ms=0):
        self._check("save_message")
        self.saved.append((session_id, role, content))

    async def ask(self, session_id, question, top_k=5, knowledge_id=None):
        self._check("ask")
        self.questions.append(question)
        if self.answer_gate is not None:
            await self.answer_gate.wait()
        return self.answer

    async def search_customers(self, query):
        self.lookups.append(query)
        if self.lookup_gate is not None:
            await self.lookup_gate.wait()
        self._check("search_customers")
        return list(self.customers)

    async def submit_inquiry(self, submission):
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        self._check("submit_inquiry")
        self.submissions.append(submission)
        return {"id": len(self.submissions)}

    async def send_feedback(self, rating, session_id):
        self._check("send_feedback")
        self.feedback.append((rating, session_id))
        return {"ok": True}


class FakeRecorder(AudioRecorderInterface):
    def __init__(self, audio: bytes = b"RIFF-fake-wav", fail: bool = False):
        self.audio = audio
        self.fail = fail
        self.on_chunk = None
        self._recording = False
        self.starts = 0
        self.stops = 0

    def start(self, on_chunk):
        if self.fail:
            raise RuntimeError("no microphone")
        self.on_chunk = on_chunk
        self._recording = True
        self.starts += 1

    def stop(self):
        self._recording = False
        self.on_chunk = None
        self.stops += 1
        return self.audio

    @property
    def recording(self):
        return self._recording

    def feed(self, level: float):
        if self.on_chunk is not None:
            self.on_chunk(b"\x00\x00" * 160, level)


class FakeTranscriber(TranscriptionClientInterface):
    def __init__(self, result: Optional[Transcription] = None, fail: bool = False):
        self.result = result or Transcription(text="영수증 용지 주문")
        self.fail = fail
        self.calls: List[tuple] = []

    async def transcribe(self, audio, language):
        self.calls.append((audio, language))
        if self.fail:
            raise BackendError("stt down", status_code=503)
        return self.result


class FakeRecognizer(StreamingRecognizerInterface):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.on_event = None
        self.language = None
        self.stops = 0

    async def start(self, language, on_event):
        if self.fail:
            raise BackendError("cannot connect")
        self.language = language
        self.on_event = on_event

    async def stop(self):
        self.stops += 1

    def emit(self, type: str, text: str = "", utterance_id=None, rev=None):
        self.on_event(RecognitionEvent(type=type, text=text, utterance_id=utterance_id, rev=rev))


class RecordingListener(CaptureListener):
    def __init__(self):
        self.transcripts = []
        self.partials: List[str] = []
        self.finals: List[str] = []
        self.ends = 0

    async def on_transcript(self, result):
        self.transcripts.append(result)

    def on_partial(self, text):
        self.partials.append(text)

    def on_final(self, text):
        self.finals.append(text)

    def on_end(self):
        self.ends += 1


class RecordingView:
    def __init__(self):
        self.notices: List[tuple] = []
        self.partials: List[str] = []

    def show_notice(self, title, message):
        self.notices.append((title, message))

    def show_partial_transcript(self, text):
        self.partials.append(text)

    @property
    def messages(self) -> List[str]:
        return [message for _, message in self.notices]
