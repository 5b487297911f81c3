import pytest

from supportchat.conversation.attachments import Attachment, AttachmentManager
from supportchat.conversation.log import ContentLog, EntryKind, bot_message


def _attachment(name: str) -> Attachment:
    return Attachment(uri=f"file:///tmp/{name}", mime_type="image/jpeg", file_name=name, size=10)


def _manager(max_items=3):
    log = ContentLog()
    notices = []
    manager = AttachmentManager(log, notify=lambda t, m: notices.append(m), max_items=max_items)
    manager.reset("editor-1", text="문의 내용을 입력해 주세요.", step="4")
    log.append(manager.render_entry())
    return log, manager, notices


def test_add_refreshes_single_editor_entry():
    log, manager, _ = _manager()
    log.append(bot_message("other"))

    assert manager.add(_attachment("a.jpg"))
    assert manager.add(_attachment("b.jpg"))

    editors = [e for e in log if e.key == "editor-1"]
    assert len(editors) == 1
    assert len(log) == 2
    payload = editors[0].payload
    assert payload["editor"] is True
    assert payload["text"] == "문의 내용을 입력해 주세요."
    assert [item["file_name"] for item in payload["attachments"]] == ["a.jpg", "b.jpg"]
    assert payload["max_attachments"] == 3


def test_fourth_attachment_is_rejected_with_notice():
    log, manager, notices = _manager()
    for name in ("1.jpg", "2.jpg", "3.jpg"):
        assert manager.add(_attachment(name))
    assert manager.add(_attachment("4.jpg")) is False
    assert len(manager) == 3
    assert notices == ["파일은 최대 3개까지 첨부할 수 있습니다."]


def test_remove_by_index():
    log, manager, _ = _manager()
    manager.add(_attachment("a.jpg"))
    manager.add(_attachment("b.jpg"))
    assert manager.remove(0)
    assert [a.file_name for a in manager.items] == ["b.jpg"]
    assert [a["file_name"] for a in log.get("editor-1").payload["attachments"]] == ["b.jpg"]
    assert manager.remove(5) is False
    assert manager.remove(-1) is False


def test_reset_clears_and_rebinds():
    log, manager, _ = _manager()
    manager.add(_attachment("a.jpg"))
    manager.reset("editor-2")
    assert len(manager) == 0
    assert manager.render_entry().key == "editor-2"


def test_render_without_editor_raises():
    manager = AttachmentManager(ContentLog())
    with pytest.raises(RuntimeError):
        manager.render_entry()


def test_attachment_from_path(tmp_path):
    path = tmp_path / "receipt.png"
    path.write_bytes(b"\x89PNG....")
    attachment = Attachment.from_path(path)
    assert attachment.file_name == "receipt.png"
    assert attachment.mime_type == "image/png"
    assert attachment.size == 8
    assert attachment.uri.startswith("file://")
    assert EntryKind.WIZARD_STEP.value == "wizard_step"
