"""
AttachmentManager - up to three files for the inquiry detail step.

The detail editor is one WizardStep entry in the log. Every change to the
file list re-renders that same entry through ContentLog.replace_by_key, so
the log never holds two editors for one wizard session.
"""

import logging
import mimetypes
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Callable, List, Optional

from supportchat.conversation.log import ContentLog, ConversationEntry, EntryKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTACHMENTS = 3


@dataclass(frozen=True)
class Attachment:
    """A selected file reference."""
    uri: str
    mime_type: str
    file_name: str
    size: int

    @classmethod
    def from_path(cls, path) -> "Attachment":
        path = Path(path).expanduser()
        stat = path.stat()
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(
            uri=path.resolve().as_uri(),
            mime_type=mime_type,
            file_name=path.name,
            size=stat.st_size,
        )

    def to_dict(self) -> dict:
        return asdict(self)


NoticeCallback = Callable[[str, str], None]


class AttachmentManager:
    """
    Ordered, bounded collection of attachments bound to one editor entry.

    Usage:
        manager = AttachmentManager(log, notify=view.show_notice)
        manager.reset(editor_key)          # new wizard session
        log.append(manager.render_entry()) # when the detail step opens
        manager.add(Attachment.from_path("receipt.jpg"))
    """

    def __init__(
        self,
        log: ContentLog,
        notify: Optional[NoticeCallback] = None,
        max_items: int = DEFAULT_MAX_ATTACHMENTS,
    ):
        self.log = log
        self.notify = notify or (lambda title, message: None)
        self.max_items = max_items
        self._items: List[Attachment] = []
        self.editor_key: Optional[str] = None
        self.editor_payload: dict = {}

    @property
    def items(self) -> List[Attachment]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def reset(self, editor_key: Optional[str] = None, **editor_payload):
        """Drop all files and bind the editor key of a new wizard session."""
        self._items = []
        self.editor_key = editor_key
        self.editor_payload = dict(editor_payload)

    def add(self, attachment: Attachment) -> bool:
        if len(self._items) >= self.max_items:
            self.notify("알림", f"파일은 최대 {self.max_items}개까지 첨부할 수 있습니다.")
            return False
        self._items.append(attachment)
        logger.info(f"Attachment added: {attachment.file_name} ({len(self._items)}/{self.max_items})")
        self._refresh()
        return True

    def remove(self, index: int) -> bool:
        if index < 0 or index >= len(self._items):
            return False
        removed = self._items.pop(index)
        logger.info(f"Attachment removed: {removed.file_name}")
        self._refresh()
        return True

    def render_entry(self) -> ConversationEntry:
        if self.editor_key is None:
            raise RuntimeError("No editor bound; call reset(editor_key) first")
        payload = {
            **self.editor_payload,
            "editor": True,
            "attachments": [item.to_dict() for item in self._items],
            "max_attachments": self.max_items,
        }
        return ConversationEntry(self.editor_key, EntryKind.WIZARD_STEP, payload)

    def _refresh(self):
        if self.editor_key is None:
            return
        self.log.replace_by_key(self.editor_key, self.render_entry())
