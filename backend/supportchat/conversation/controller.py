"""
ConversationController - composes the conversation components.

Public surface used by the application shell:
- mount / close
- submit_text (typed text and recognized speech share this path)
- select_category, choose_period, open_category, select_faq
- add_attachment, remove_attachment
- start_capture, stop_capture
- reset_to_home, handle_review

Routing of a text event:
    wizard active          -> InquiryWizard
    FAQ sub-menu open + n  -> FAQ answer
    otherwise              -> question answering
"""

import asyncio
import logging
from typing import Optional, Protocol, Set, Union

from supportchat.adapters.backend import BackendClientInterface
from supportchat.conversation.attachments import Attachment, AttachmentManager
from supportchat.conversation.feedback import FeedbackPrompter, RATING_CHOICES, feedback_block
from supportchat.conversation.log import ContentLog, bot_message, user_message
from supportchat.conversation.menu import MenuNavigator
from supportchat.conversation.wizard import (
    InquiryCategory,
    InquirySession,
    InquiryWizard,
    PERIOD_LABELS,
    SalesPeriod,
    Transition,
    WizardStep,
    find_exact_customer,
)
from supportchat.core.config import settings
from supportchat.core.models import AttachmentPayload, Category, InquirySubmission, Transcription
from supportchat.speech.capture import CaptureListener, CaptureMode, CaptureSession

logger = logging.getLogger(__name__)

NO_RESPONSE = "응답을 가져올 수 없습니다."


class ChatView(Protocol):
    """What the controller needs from the UI besides the log itself."""

    def show_notice(self, title: str, message: str) -> None: ...

    def show_partial_transcript(self, text: str) -> None: ...


class NullView:
    def show_notice(self, title: str, message: str) -> None:
        logger.info(f"[notice] {title}: {message}")

    def show_partial_transcript(self, text: str) -> None:
        pass


class _SpeechFunnel(CaptureListener):
    """Routes both capture modes into the same recognized-text path."""

    def __init__(self, controller: "ConversationController"):
        self.controller = controller

    async def on_transcript(self, result: Optional[Transcription]) -> None:
        await self.controller.handle_transcription(result)

    def on_partial(self, text: str) -> None:
        self.controller.view.show_partial_transcript(text)

    def on_final(self, text: str) -> None:
        self.controller._spawn(self.controller.handle_transcription(Transcription(text=text)))

    def on_end(self) -> None:
        self.controller._spawn(self.controller.stop_capture())


class ConversationController:
    def __init__(
        self,
        backend: BackendClientInterface,
        capture: Optional[CaptureSession] = None,
        view: Optional[ChatView] = None,
        wizard: Optional[InquiryWizard] = None,
        idle_feedback_seconds: Optional[float] = None,
        top_k: Optional[int] = None,
        knowledge_id: Optional[int] = None,
    ):
        self.backend = backend
        self.view = view or NullView()
        self.log = ContentLog()
        self.wizard = wizard or InquiryWizard()
        self.session = InquirySession()
        self.attachments = AttachmentManager(
            self.log, notify=self._notify, max_items=settings.MAX_ATTACHMENTS
        )
        self.menu = MenuNavigator(backend, notify=self._notify)
        self.capture = capture
        if capture is not None:
            capture.notify = self._notify
        self.feedback = FeedbackPrompter(
            idle_feedback_seconds or settings.IDLE_FEEDBACK_SECONDS,
            on_fire=self._offer_feedback,
        )
        self.top_k = top_k or settings.QA_TOP_K
        self.knowledge_id = knowledge_id if knowledge_id is not None else settings.QA_KNOWLEDGE_ID

        self.chat_session_id: Optional[str] = None
        self._input_seq = 0
        self._home_generation = 0
        self._reviewed_sessions: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self.log.subscribe(lambda entry: self.feedback.touch())

    # --- lifecycle ---

    async def mount(self):
        """Create the chat session and load the menu, then greet."""
        await asyncio.gather(self._create_session(), self.menu.load())
        self.log.append(self.menu.greeting_entry())
        self.log.append(self.menu.menu_entry())
        self.feedback.start()

    async def close(self):
        self.feedback.cancel()
        if self.capture is not None:
            await self.capture.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def wait_idle(self):
        """Wait for background work (lookups, persistence, auto-stops)."""
        while True:
            if self.capture is not None:
                await self.capture.drain()
            if not self._tasks:
                break
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _create_session(self):
        try:
            session = await self.backend.create_session()
        except Exception as e:
            logger.warning(f"Chat session creation failed: {e}")
            self._notify("오류", "상담 세션을 생성하지 못했습니다.")
            return
        self.chat_session_id = session.id
        logger.info(f"Chat session {session.id} ready")

    # --- text input ---

    async def submit_text(self, text: str, from_speech: bool = False) -> bool:
        if not text or not text.strip():
            self._notify("알림", "메시지를 입력해 주세요.")
            return False

        text = text.strip()
        self._input_seq += 1
        self.log.append(user_message(text, source="speech" if from_speech else "keyboard"))
        self._spawn(self._persist_message(text))

        if self.session.active:
            await self._advance_wizard(text)
        elif text.isdecimal() and self.menu.find_faq(int(text)) is not None:
            await self.select_faq(int(text))
        else:
            await self._answer(text)
        return True

    async def _persist_message(self, text: str):
        if not self.chat_session_id:
            return
        try:
            await self.backend.save_message(self.chat_session_id, "user", text)
        except Exception as e:
            logger.warning(f"Message persistence failed: {e}")

    async def _answer(self, question: str):
        generation = self._home_generation
        if not self.chat_session_id:
            await self._create_session()
            if not self.chat_session_id:
                return
        try:
            answer = await self.backend.ask(
                self.chat_session_id, question, top_k=self.top_k, knowledge_id=self.knowledge_id
            )
        except Exception as e:
            logger.warning(f"Answer request failed: {e}")
            self._notify("오류", "답변을 가져오는 중 오류가 발생했습니다.")
            return
        if generation != self._home_generation:
            logger.info("Dropping answer that arrived after leaving the conversation")
            return
        self.log.append(bot_message(answer or NO_RESPONSE, fallback=answer is None))

    async def handle_transcription(self, result: Optional[Transcription]):
        """Shared funnel for recognized speech."""
        if result is not None and result.has_answer:
            question = result.question.strip()
            if self.session.active:
                await self.submit_text(question, from_speech=True)
                return
            self._input_seq += 1
            self.log.append(user_message(question, source="speech"))
            self._spawn(self._persist_message(question))
            self.log.append(bot_message(result.answer.strip()))
            return
        if result is not None and result.clean_text:
            await self.submit_text(result.clean_text, from_speech=True)
            return
        self.log.append(bot_message(NO_RESPONSE, fallback=True))

    # --- inquiry wizard ---

    async def select_category(self, category: Union[InquiryCategory, str]) -> bool:
        category = InquiryCategory(category)
        if category == InquiryCategory.NONE:
            return False
        self._input_seq += 1
        self._home_generation += 1
        self.menu.close_submenu()
        transition = self.wizard.start(category)
        self.attachments.reset(
            transition.session.editor_key, **self.wizard.editor_payload(transition.session)
        )
        self._apply(transition)
        return True

    async def choose_period(self, period: Union[SalesPeriod, str]) -> bool:
        if self.session.step != WizardStep.PERIOD:
            self._notify("알림", "지금은 기간을 선택할 수 없습니다.")
            return False
        return await self.submit_text(PERIOD_LABELS[SalesPeriod(period)])

    async def _advance_wizard(self, text: str):
        if self.session.step == WizardStep.SUBMITTED:
            self._notify("알림", "문의를 접수하고 있습니다. 잠시만 기다려 주세요.")
            return
        transition = self.wizard.advance(self.session, text)
        self._apply(transition)
        if transition.lookup_number:
            self._spawn(self._autofill(self.session, transition.lookup_number, self._input_seq))
        if transition.submission is not None:
            await self._submit(transition.submission)

    def _apply(self, transition: Transition):
        self.session = transition.session
        self.log.extend(transition.entries)
        if transition.open_editor:
            editor = self.attachments.render_entry()
            if editor.key in self.log:
                self.log.replace_by_key(editor.key, editor)
            else:
                self.log.append(editor)

    def _lookup_is_current(self, origin: InquirySession, input_seq: int) -> bool:
        return (
            self.session.session_id == origin.session_id
            and self._input_seq == input_seq
            and self.session.step == WizardStep.COMPANY_NAME
        )

    async def _autofill(self, origin: InquirySession, number: str, input_seq: int):
        try:
            records = await self.backend.search_customers(number)
        except Exception as e:
            logger.info(f"Customer lookup failed, falling back to manual entry: {e}")
            records = []

        if not self._lookup_is_current(origin, input_seq):
            logger.info(f"Discarding stale customer lookup for inquiry {origin.session_id}")
            return

        record = find_exact_customer(number, records)
        if record is not None:
            self._apply(self.wizard.apply_autofill(self.session, record))
        else:
            self._apply(self.wizard.autofill_missed(self.session))

    async def _submit(self, submission: InquirySubmission):
        origin = self.session
        files = [
            AttachmentPayload(file_name=item.file_name, mime_type=item.mime_type, uri=item.uri)
            for item in self.attachments.items
        ]
        submission = submission.model_copy(update={"files": files})
        try:
            await self.backend.submit_inquiry(submission)
        except Exception as e:
            logger.warning(f"Inquiry submission failed: {e}")
            if self.session.session_id == origin.session_id:
                self.session = self.wizard.submission_failed(self.session)
            self._notify("오류", "문의 접수 중 오류가 발생했습니다. 내용을 다시 입력해 주세요.")
            return

        if self.session.session_id != origin.session_id:
            logger.info(f"Inquiry {origin.session_id} submitted after the wizard was left")
            return
        self._apply(self.wizard.submission_succeeded(self.session, len(files)))
        self.attachments.reset()

    def add_attachment(self, attachment: Attachment) -> bool:
        if not self.session.active:
            self._notify("알림", "문의 진행 중에만 파일을 첨부할 수 있습니다.")
            return False
        return self.attachments.add(attachment)

    def remove_attachment(self, index: int) -> bool:
        return self.attachments.remove(index)

    # --- menu ---

    def reset_to_home(self):
        """Leave whatever is in progress and show the main menu again."""
        self._input_seq += 1
        self._home_generation += 1
        if self.session.active:
            logger.info(f"Inquiry {self.session.session_id} abandoned at step {self.session.step.value}")
        self.session = self.wizard.reset()
        self.attachments.reset()
        self.menu.close_submenu()
        self.log.append(self.menu.menu_entry())

    async def open_category(self, category: Union[Category, int]) -> bool:
        if isinstance(category, int):
            found = self.menu.find_category(category)
            if found is None:
                self._notify("알림", "없는 메뉴 번호입니다.")
                return False
            category = found
        entry = await self.menu.open(category)
        if entry is None:
            return False
        self.log.append(entry)
        return True

    async def select_faq(self, number: int) -> bool:
        faq = self.menu.find_faq(number)
        if faq is None:
            self._notify("알림", "없는 질문 번호입니다.")
            return False
        entry = self.menu.answer_entry(faq)
        if entry is not None:
            self.log.append(entry)
        else:
            await self._answer(faq.question)
        return True

    # --- speech ---

    async def start_capture(self, mode: Union[CaptureMode, str]) -> bool:
        if self.capture is None:
            self._notify("음성 인식", "음성 인식을 사용할 수 없습니다.")
            return False
        return await self.capture.start(CaptureMode(mode), _SpeechFunnel(self))

    async def stop_capture(self):
        if self.capture is not None:
            await self.capture.stop()

    # --- feedback ---

    def _offer_feedback(self):
        self.log.append(feedback_block("idle"))

    async def handle_review(self, rating: int) -> bool:
        if rating not in RATING_CHOICES:
            self._notify("알림", "만족도는 1에서 5 사이로 선택해 주세요.")
            return False
        session_id = self.chat_session_id
        if session_id is None:
            self._notify("오류", "상담 세션이 없어 평가를 보낼 수 없습니다.")
            return False
        if session_id in self._reviewed_sessions:
            self._notify("알림", "이미 평가해 주셨습니다.")
            return False
        try:
            await self.backend.send_feedback(rating, session_id)
        except Exception as e:
            logger.warning(f"Feedback submission failed: {e}")
            self._notify("오류", "평가를 전송하지 못했습니다.")
            return False
        self._reviewed_sessions.add(session_id)
        self.log.append(bot_message("소중한 의견 감사합니다."))
        return True

    # --- helpers ---

    def _notify(self, title: str, message: str):
        self.view.show_notice(title, message)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task failed: {task.exception()}")
