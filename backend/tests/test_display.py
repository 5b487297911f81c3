import io
import random

from rich.console import Console

from supportchat.cli.display import ChatDisplay
from supportchat.conversation.log import ContentLog, ConversationEntry, EntryKind, bot_message, user_message
from supportchat.conversation.feedback import feedback_block
from supportchat.utils.business_number import SecureNumberPad


def _display():
    display = ChatDisplay(Console(file=io.StringIO(), width=100, color_system=None))
    return display, display.console.file


def test_renders_messages_and_menu():
    display, out = _display()
    log = ContentLog()
    log.subscribe(display.render_entry)
    log.append(user_message("프린터가 안 돼요"))
    log.append(bot_message("용지를 확인해 주세요.", fallback=False))
    log.append(ConversationEntry("menu-1", EntryKind.MENU_BLOCK, {
        "inquiries": [{"key": "paper_request", "label": "용지 요청"}],
        "categories": [{"id": 1, "name": "POS 문의", "description": "", "icon_emoji": None}],
    }))
    log.append(feedback_block("idle"))
    text = out.getvalue()
    assert "프린터가 안 돼요" in text
    assert "용지를 확인해 주세요." in text
    assert "/inquiry 1" in text
    assert "POS 문의" in text
    assert "/review" in text


def test_replaced_editor_is_marked_updated():
    display, out = _display()
    log = ContentLog()
    log.subscribe(display.render_entry)
    payload = {"text": "문의 내용을 입력해 주세요.", "category_label": "기타 문의", "position": 4, "total": 4,
               "editor": True, "attachments": [], "max_attachments": 3}
    log.append(ConversationEntry("editor", EntryKind.WIZARD_STEP, payload))
    assert "갱신됨" not in out.getvalue()
    attachments = [{"file_name": "a.jpg", "size": 3, "uri": "file:///a.jpg", "mime_type": "image/jpeg"}]
    log.replace_by_key("editor", ConversationEntry("editor", EntryKind.WIZARD_STEP, {**payload, "attachments": attachments}))
    text = out.getvalue()
    assert "갱신됨" in text
    assert "a.jpg" in text
    assert "(1/3)" in text


def test_keypad_and_notices():
    display, out = _display()
    pad = SecureNumberPad(random.Random(2))
    pad.press_digit(1)
    display.print_keypad(pad)
    display.show_notice("알림", "파일은 최대 3개까지 첨부할 수 있습니다.")
    text = out.getvalue()
    assert "사업자등록번호: 1" in text
    assert "파일은 최대 3개까지" in text
