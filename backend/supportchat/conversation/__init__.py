"""
Conversation module: the chat session state machine.

- ContentLog: ordered, key-addressable entries
- InquiryWizard: branching inquiry intake (sales period, autofill, detail)
- AttachmentManager: up to three files on the detail editor
- MenuNavigator / FeedbackPrompter: menu, FAQs and the idle survey
- ConversationController: the public surface for the application shell
"""

from supportchat.conversation.log import (
    ContentLog,
    ConversationEntry,
    DuplicateEntryKeyError,
    EntryKind,
)
from supportchat.conversation.attachments import Attachment, AttachmentManager
from supportchat.conversation.wizard import (
    InquiryCategory,
    InquirySession,
    InquiryWizard,
    SalesPeriod,
    WizardStep,
)
from supportchat.conversation.menu import MenuNavigator
from supportchat.conversation.feedback import FeedbackPrompter
from supportchat.conversation.controller import ConversationController, ChatView

__all__ = [
    "ContentLog",
    "ConversationEntry",
    "DuplicateEntryKeyError",
    "EntryKind",
    "Attachment",
    "AttachmentManager",
    "InquiryCategory",
    "InquirySession",
    "InquiryWizard",
    "SalesPeriod",
    "WizardStep",
    "MenuNavigator",
    "FeedbackPrompter",
    "ConversationController",
    "ChatView",
]
