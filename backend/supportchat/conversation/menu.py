"""
MenuNavigator - top-level menu and FAQ sub-menus.

Fetches quick categories and their FAQs from the backend and turns them
into MenuBlock / SubMenuBlock entries.
"""

import logging
from typing import Callable, List, Optional

from supportchat.adapters.backend import BackendClientInterface
from supportchat.conversation.log import ConversationEntry, EntryKind, new_key, bot_message
from supportchat.conversation.wizard import CATEGORY_LABELS, INQUIRY_CATEGORIES
from supportchat.core.config import settings
from supportchat.core.models import Category, FAQ

logger = logging.getLogger(__name__)

GREETING = "안녕하세요! 가람포스텍 AI 지원센터입니다."
GREETING_DESC = "POS 시스템, 키오스크 관련 문의를 선택하세요."


class MenuNavigator:
    """Owns the category list and the currently open FAQ sub-menu."""

    def __init__(
        self,
        backend: BackendClientInterface,
        notify: Optional[Callable[[str, str], None]] = None,
        page_limit: Optional[int] = None,
        order_by: Optional[str] = None,
    ):
        self.backend = backend
        self.notify = notify or (lambda title, message: None)
        self.page_limit = page_limit or settings.FAQ_PAGE_LIMIT
        self.order_by = order_by if order_by is not None else settings.FAQ_ORDER_BY
        self.categories: List[Category] = []
        self.open_category: Optional[Category] = None
        self.open_faqs: List[FAQ] = []

    async def load(self) -> List[Category]:
        try:
            self.categories = await self.backend.list_categories()
            logger.info(f"Loaded {len(self.categories)} categories")
        except Exception as e:
            logger.warning(f"Category fetch failed: {e}")
            self.notify("오류", "카테고리 목록을 불러오는 중 오류가 발생했습니다.")
            self.categories = []
        return self.categories

    def greeting_entry(self) -> ConversationEntry:
        return ConversationEntry(
            new_key("greeting"),
            EntryKind.BOT_MESSAGE,
            {"text": GREETING, "description": GREETING_DESC, "greeting": True},
        )

    def menu_entry(self) -> ConversationEntry:
        """Main menu; the payload depends only on the loaded categories."""
        return ConversationEntry(
            new_key("menu"),
            EntryKind.MENU_BLOCK,
            {
                "inquiries": [
                    {"key": category.value, "label": CATEGORY_LABELS[category]}
                    for category in INQUIRY_CATEGORIES
                ],
                "categories": [category.model_dump() for category in self.categories],
            },
        )

    def close_submenu(self):
        self.open_category = None
        self.open_faqs = []

    def find_category(self, number: int) -> Optional[Category]:
        """1-based lookup in the category list."""
        if 1 <= number <= len(self.categories):
            return self.categories[number - 1]
        return None

    async def open(self, category: Category) -> Optional[ConversationEntry]:
        """Fetch the FAQs of `category` and build its sub-menu entry."""
        try:
            faqs = await self.backend.list_faqs(
                category.id, offset=0, limit=self.page_limit, order_by=self.order_by
            )
        except Exception as e:
            logger.warning(f"FAQ fetch failed for category {category.id}: {e}")
            self.notify("오류", "FAQ 목록을 불러오는 중 오류가 발생했습니다.")
            return None

        self.open_category = category
        self.open_faqs = faqs
        payload = {
            "category": category.model_dump(),
            "faqs": [faq.model_dump() for faq in faqs],
            "text": "번호를 입력하거나 클릭하여 세부 문제를 선택하세요." if faqs else "등록된 질문이 없습니다.",
        }
        return ConversationEntry(new_key(f"submenu-{category.id}"), EntryKind.SUB_MENU_BLOCK, payload)

    def find_faq(self, number: int) -> Optional[FAQ]:
        if 1 <= number <= len(self.open_faqs):
            return self.open_faqs[number - 1]
        return None

    def answer_entry(self, faq: FAQ) -> Optional[ConversationEntry]:
        """Stored answer for the FAQ, or None when it has to be asked."""
        answer = (faq.answer or "").strip()
        if not answer:
            return None
        return bot_message(answer, title=faq.question, faq_id=faq.id)
