"""
SupportChatCLI - interactive terminal client for the support chat.

Features:
- Menu / FAQ navigation and the inquiry wizard
- File attachments for inquiries
- Voice input (utterance and streaming)
- Rich-based output
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from supportchat.adapters.backend import BackendClientInterface, HttpBackendClient
from supportchat.cli.display import ChatDisplay, KEYPAD_LABELS
from supportchat.conversation.attachments import Attachment
from supportchat.conversation.controller import ConversationController
from supportchat.conversation.wizard import INQUIRY_CATEGORIES, WizardStep, match_period
from supportchat.core.config import settings
from supportchat.speech.capture import CaptureMode, CaptureSession
from supportchat.utils.business_number import SecureNumberPad

logger = logging.getLogger(__name__)


class SupportChatCLI:
    """
    Interactive CLI around ConversationController.

    Input is read on a worker thread so timers, lookups and the microphone
    keep running on the event loop while the prompt waits.
    """

    def __init__(
        self,
        backend: BackendClientInterface,
        capture: Optional[CaptureSession] = None,
        display: Optional[ChatDisplay] = None,
    ):
        self.backend = backend
        self.display = display or ChatDisplay()
        self.controller = ConversationController(backend, capture=capture, view=self.display)
        self.controller.log.subscribe(self.display.render_entry)
        self.keypad = SecureNumberPad()
        self._running = False

    async def run(self):
        self.display.print_banner()
        self.display.print_help()

        with self.display.console.status("[bold cyan]Connecting...[/bold cyan]"):
            await self.controller.mount()

        self._running = True
        try:
            while self._running:
                try:
                    user_input = await asyncio.to_thread(self.display.prompt)
                except (EOFError, KeyboardInterrupt):
                    self.display.print_info("Goodbye!")
                    break

                user_input = user_input.strip()
                if not user_input:
                    continue
                if user_input.lower() in ("quit", "exit", "q"):
                    self.display.print_info("Goodbye!")
                    break
                if user_input.lower() in ("help", "?"):
                    self.display.print_help()
                    continue

                try:
                    await self.handle_input(user_input)
                except Exception as e:
                    logger.exception("Input handling failed")
                    self.display.print_error(f"Error: {e}")
        finally:
            await self.cleanup()

    async def cleanup(self):
        await self.controller.close()
        await self.backend.close()

    async def handle_input(self, text: str):
        if not text.startswith("/"):
            with self.display.console.status("[bold cyan]Thinking...[/bold cyan]"):
                await self.controller.submit_text(text)
            return

        command, _, arg = text[1:].partition(" ")
        arg = arg.strip()
        handler = {
            "menu": self._cmd_menu,
            "inquiry": self._cmd_inquiry,
            "category": self._cmd_category,
            "faq": self._cmd_faq,
            "period": self._cmd_period,
            "attach": self._cmd_attach,
            "detach": self._cmd_detach,
            "pad": self._cmd_pad,
            "mic": self._cmd_mic,
            "stream": self._cmd_stream,
            "stop": self._cmd_stop,
            "review": self._cmd_review,
        }.get(command.lower())

        if handler is None:
            self.display.show_notice("알림", f"알 수 없는 명령입니다: /{command}")
            return
        await handler(arg)

    # --- commands ---

    async def _cmd_menu(self, arg: str):
        self.controller.reset_to_home()

    async def _cmd_inquiry(self, arg: str):
        number = _parse_number(arg)
        if number is None or not 1 <= number <= len(INQUIRY_CATEGORIES):
            self.display.show_notice("알림", f"1에서 {len(INQUIRY_CATEGORIES)} 사이의 번호를 입력하세요.")
            return
        await self.controller.select_category(INQUIRY_CATEGORIES[number - 1])

    async def _cmd_category(self, arg: str):
        number = _parse_number(arg)
        if number is None:
            self.display.show_notice("알림", "카테고리 번호를 입력하세요.")
            return
        with self.display.console.status("[bold cyan]Loading...[/bold cyan]"):
            await self.controller.open_category(number)

    async def _cmd_faq(self, arg: str):
        number = _parse_number(arg)
        if number is None:
            self.display.show_notice("알림", "질문 번호를 입력하세요.")
            return
        await self.controller.select_faq(number)

    async def _cmd_period(self, arg: str):
        period = match_period(arg)
        if period is None:
            self.display.show_notice("알림", "상반기 / 하반기 / 전체 / 직접 입력 중에서 선택하세요.")
            return
        await self.controller.choose_period(period)

    async def _cmd_attach(self, arg: str):
        if not arg:
            self.display.show_notice("알림", "첨부할 파일 경로를 입력하세요.")
            return
        try:
            attachment = Attachment.from_path(arg)
        except OSError as e:
            self.display.show_notice("오류", f"파일을 열 수 없습니다: {e}")
            return
        self.controller.add_attachment(attachment)

    async def _cmd_detach(self, arg: str):
        number = _parse_number(arg)
        if number is None or not self.controller.remove_attachment(number - 1):
            self.display.show_notice("알림", "없는 첨부 파일 번호입니다.")

    async def _cmd_pad(self, arg: str):
        if self.controller.session.step != WizardStep.BUSINESS_NUMBER:
            self.display.show_notice("알림", "사업자등록번호 단계에서만 사용할 수 있습니다.")
            return

        self.keypad.open()
        while True:
            self.display.print_keypad(self.keypad)
            keys = (await asyncio.to_thread(self.display.prompt)).strip().lower()
            if keys == "x":
                return
            if keys == "ok":
                digits = self.keypad.confirm()
                if digits is None:
                    self.display.show_notice("알림", "사업자등록번호 10자리를 모두 입력하세요.")
                    continue
                await self.controller.submit_text(digits)
                return
            for key in keys:
                if key == "<":
                    self.keypad.backspace()
                elif key in KEYPAD_LABELS:
                    self.keypad.press_key(KEYPAD_LABELS.index(key))

    async def _cmd_mic(self, arg: str):
        if await self.controller.start_capture(CaptureMode.UTTERANCE):
            self.display.print_info("듣고 있습니다... 말씀이 끝나면 자동으로 종료됩니다.")

    async def _cmd_stream(self, arg: str):
        if await self.controller.start_capture(CaptureMode.STREAMING):
            self.display.print_info("실시간 음성 인식 중입니다. /stop 으로 종료하세요.")

    async def _cmd_stop(self, arg: str):
        await self.controller.stop_capture()

    async def _cmd_review(self, arg: str):
        rating = _parse_number(arg)
        if rating is None:
            self.display.show_notice("알림", "만족도 점수(1-5)를 입력하세요.")
            return
        await self.controller.handle_review(rating)


def _parse_number(text: str) -> Optional[int]:
    try:
        return int(text)
    except (TypeError, ValueError):
        return None


def build_capture(api_url: str, stream_url: Optional[str]) -> CaptureSession:
    from supportchat.adapters.speech import HttpTranscriptionClient, WebSocketRecognizer
    from supportchat.speech.recorder import SoundDeviceRecorder

    recognizer = WebSocketRecognizer(stream_url) if stream_url else None
    return CaptureSession(
        recorder=SoundDeviceRecorder(),
        transcriber=HttpTranscriptionClient(api_url),
        recognizer=recognizer,
    )


async def run_cli(api_url: Optional[str] = None, stream_url: Optional[str] = None, speech: bool = True):
    api_url = api_url or settings.API_URL
    stream_url = stream_url or settings.STREAMING_STT_URL
    backend = HttpBackendClient(api_url)
    capture = build_capture(api_url, stream_url) if speech else None
    cli = SupportChatCLI(backend, capture=capture)
    try:
        await cli.run()
    finally:
        if capture is not None:
            await capture.transcriber.close()


def main():
    """Parse arguments and run the CLI."""
    from dotenv import load_dotenv

    load_dotenv()

    parser = argparse.ArgumentParser(description="Support Chat CLI")
    parser.add_argument("--api-url", default=None, help="Backend API base URL")
    parser.add_argument("--stream-url", default=None, help="WebSocket URL of the streaming recognizer")
    parser.add_argument("--no-speech", action="store_true", help="Disable voice input")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        asyncio.run(run_cli(api_url=args.api_url, stream_url=args.stream_url, speech=not args.no_speech))
    except KeyboardInterrupt:
        print("\nGoodbye!")
        sys.exit(0)


if __name__ == "__main__":
    main()
