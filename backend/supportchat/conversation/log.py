"""
ContentLog - ordered, key-addressable conversation history.

Entries are UI-neutral values; a rendering layer maps them to widgets.
The log only grows, except for the single replace-by-key operation used to
refresh the attachment editor in place.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class EntryKind(str, Enum):
    """What an entry renders as."""
    USER_MESSAGE = "user_message"
    BOT_MESSAGE = "bot_message"
    MENU_BLOCK = "menu_block"
    SUB_MENU_BLOCK = "sub_menu_block"
    WIZARD_STEP = "wizard_step"
    FEEDBACK_BLOCK = "feedback_block"


@dataclass(frozen=True)
class ConversationEntry:
    """A single item in the conversation log."""
    key: str
    kind: EntryKind
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return str(self.payload.get("text", ""))


def new_key(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def user_message(text: str, **extra) -> ConversationEntry:
    return ConversationEntry(new_key("message"), EntryKind.USER_MESSAGE, {"text": text, **extra})


def bot_message(text: str, **extra) -> ConversationEntry:
    return ConversationEntry(new_key("message"), EntryKind.BOT_MESSAGE, {"text": text, **extra})


class DuplicateEntryKeyError(ValueError):
    """Raised when appending an entry whose key is already in the log."""


EntryListener = Callable[[ConversationEntry], None]


class ContentLog:
    """
    Append-only list of entries with a key -> index lookup.

    Listeners are notified after every append or replace, in call order.
    """

    def __init__(self):
        self._entries: List[ConversationEntry] = []
        self._index: Dict[str, int] = {}
        self._listeners: List[EntryListener] = []

    def append(self, entry: ConversationEntry) -> ConversationEntry:
        if entry.key in self._index:
            raise DuplicateEntryKeyError(f"Entry key already in log: {entry.key}")
        self._index[entry.key] = len(self._entries)
        self._entries.append(entry)
        self._notify(entry)
        return entry

    def extend(self, entries) -> None:
        for entry in entries:
            self.append(entry)

    def replace_by_key(self, key: str, new_entry: ConversationEntry) -> bool:
        """Swap the entry stored under `key` in place. Missing key is a no-op."""
        position = self._index.get(key)
        if position is None:
            logger.debug(f"replace_by_key: nothing to update for {key}")
            return False
        if new_entry.key != key:
            new_entry = ConversationEntry(key, new_entry.kind, new_entry.payload)
        self._entries[position] = new_entry
        self._notify(new_entry)
        return True

    def snapshot(self) -> Tuple[ConversationEntry, ...]:
        return tuple(self._entries)

    def get(self, key: str) -> Optional[ConversationEntry]:
        position = self._index.get(key)
        return self._entries[position] if position is not None else None

    def last(self) -> Optional[ConversationEntry]:
        return self._entries[-1] if self._entries else None

    def subscribe(self, listener: EntryListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, entry: ConversationEntry):
        for listener in list(self._listeners):
            listener(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ConversationEntry]:
        return iter(self.snapshot())

    def __contains__(self, key: object) -> bool:
        return key in self._index
