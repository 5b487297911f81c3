"""
Backend records (Pydantic)

Schemas for the JSON bodies exchanged with the support backend.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


class Category(BaseModel):
    """FAQ category shown on the main menu."""

    id: int
    name: str
    description: str = ""
    icon_emoji: Optional[str] = None


class FAQ(BaseModel):
    """A frequently asked question inside a category."""

    id: int
    question: str
    answer: Optional[str] = None


class CustomerRecord(BaseModel):
    """Customer lookup hit used for autofill."""

    business_name: str = ""
    business_number: str = ""
    phone: str = ""


class ChatSession(BaseModel):
    """Chat session created once per client launch."""

    id: str

    @classmethod
    def from_response(cls, data: dict) -> "ChatSession":
        # The backend returns integer ids; everything downstream uses strings
        return cls(id=str(data["id"]))


class Transcription(BaseModel):
    """
    Speech-to-text result.

    The backend either returns plain recognized text, or a question it
    already answered from the knowledge base.
    """

    text: Optional[str] = None
    question: Optional[str] = None
    answer: Optional[str] = None

    @property
    def has_answer(self) -> bool:
        return bool((self.question or "").strip() and (self.answer or "").strip())

    @property
    def clean_text(self) -> str:
        return (self.text or "").strip()


class AttachmentPayload(BaseModel):
    """A file part of the inquiry upload."""

    file_name: str
    mime_type: str
    uri: str


class InquirySubmission(BaseModel):
    """Fields sent as multipart form data to the inquiries endpoint."""

    business_name: str
    business_number: str
    phone: str
    content: str
    inquiry_type: str
    files: List[AttachmentPayload] = Field(default_factory=list)

    def form_fields(self) -> dict:
        return {
            "business_name": self.business_name,
            "business_number": self.business_number,
            "phone": self.phone,
            "content": self.content,
            "inquiry_type": self.inquiry_type,
        }
