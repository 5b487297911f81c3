"""
FeedbackPrompter - single-shot idle timer proposing a satisfaction survey.

The timer is armed when the controller mounts and re-armed on every log
change, but it fires at most once per prompter lifetime.
"""

import asyncio
import logging
from typing import Callable, Optional

from supportchat.conversation.log import ConversationEntry, EntryKind, new_key

logger = logging.getLogger(__name__)

RATING_CHOICES = (1, 2, 3, 4, 5)


def feedback_block(source: str) -> ConversationEntry:
    """Survey entry; `source` tells which path offered it."""
    return ConversationEntry(
        new_key("feedback"),
        EntryKind.FEEDBACK_BLOCK,
        {
            "text": "상담은 만족스러우셨나요? 만족도를 선택해 주세요.",
            "ratings": list(RATING_CHOICES),
            "source": source,
        },
    )


class FeedbackPrompter:
    """Idle timer built on loop.call_later."""

    def __init__(
        self,
        delay: float,
        on_fire: Callable[[], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.delay = delay
        self.on_fire = on_fire
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._started = False
        self.fired = False

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def start(self):
        if self._started:
            return
        self._started = True
        self._arm()

    def touch(self):
        """Log changed: restart the countdown unless already fired."""
        if not self._started or self.fired:
            return
        self._arm()

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self):
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self):
        self._handle = None
        if self.fired:
            return
        self.fired = True
        logger.info("Idle feedback timer fired")
        self.on_fire()
