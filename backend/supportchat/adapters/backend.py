"""
Backend client - async HTTP access to the support API.

Covers every collaborator the chat client consumes:
- quick categories and FAQs for the menu
- chat sessions, message persistence and question answering
- customer lookup (autofill) and inquiry submission
- satisfaction feedback
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Type
import json
import mimetypes
from pathlib import Path
from urllib.parse import unquote

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from supportchat.core.config import settings
from supportchat.core.models import (
    Category,
    FAQ,
    CustomerRecord,
    ChatSession,
    InquirySubmission,
)

logger = structlog.get_logger()


class BackendError(Exception):
    """A backend call failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def parse_error_detail(response: httpx.Response) -> str:
    """
    Extract a human readable message from an error response body.

    Handles FastAPI style bodies ({"detail": str | [{"msg": ...}] | {...}}),
    {"message": ...}, bare JSON strings and plain text.
    """
    fallback = f"{response.status_code} {response.reason_phrase}".strip()
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text or fallback or "요청 처리에 실패했습니다."

    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        detail = data.get("detail")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list):
            parts = []
            for item in detail:
                if isinstance(item, str):
                    parts.append(item)
                elif isinstance(item, dict):
                    parts.append(item.get("msg") or item.get("message") or json.dumps(item, ensure_ascii=False))
                else:
                    parts.append(json.dumps(item, ensure_ascii=False))
            return ", ".join(parts)
        if isinstance(detail, dict):
            return detail.get("message") or json.dumps(detail, ensure_ascii=False)
        if data.get("message"):
            return str(data["message"])
    return json.dumps(data, ensure_ascii=False)


class BackendClientInterface(ABC):
    @abstractmethod
    async def list_categories(self) -> List[Category]:
        pass

    @abstractmethod
    async def list_faqs(
        self,
        category_id: int,
        offset: int = 0,
        limit: int = 50,
        order_by: Optional[str] = None,
    ) -> List[FAQ]:
        pass

    @abstractmethod
    async def create_session(self) -> ChatSession:
        pass

    @abstractmethod
    async def save_message(
        self, session_id: str, role: str, content: str, latency_ms: int = 0
    ) -> None:
        pass

    @abstractmethod
    async def ask(
        self,
        session_id: str,
        question: str,
        top_k: int = 5,
        knowledge_id: Optional[int] = None,
    ) -> Optional[str]:
        """Return the trimmed answer, or None when the backend had none."""
        pass

    @abstractmethod
    async def search_customers(self, query: str) -> List[CustomerRecord]:
        pass

    @abstractmethod
    async def submit_inquiry(self, submission: InquirySubmission) -> dict:
        pass

    @abstractmethod
    async def send_feedback(self, rating: int, session_id: str) -> dict:
        pass

    async def close(self):
        pass


class HttpBackendClient(BackendClientInterface):
    """
    httpx based implementation.

    Usage:
        client = HttpBackendClient("http://localhost:8000/api")
        categories = await client.list_categories()
        await client.close()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.API_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Lazy initialization of the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url + "/",
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs):
        client = self._ensure_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("backend_request_failed", method=method, path=path, error=str(e))
            raise BackendError(str(e) or type(e).__name__) from e

        if response.status_code >= 400:
            message = parse_error_detail(response)
            logger.warning(
                "backend_error_response",
                method=method,
                path=path,
                status=response.status_code,
                detail=message,
            )
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def list_categories(self) -> List[Category]:
        data = await self._request("GET", "system/quick-categories")
        return _parse_records(Category, data)

    async def list_faqs(
        self,
        category_id: int,
        offset: int = 0,
        limit: int = 50,
        order_by: Optional[str] = None,
    ) -> List[FAQ]:
        params = {"category_id": category_id, "offset": offset, "limit": limit}
        if order_by:
            params["order_by"] = order_by
        data = await self._request("GET", "faqs", params=params)
        return _parse_records(FAQ, data)

    async def create_session(self) -> ChatSession:
        data = await self._request(
            "POST",
            "chat/sessions",
            json={
                "title": settings.SESSION_TITLE,
                "preview": "",
                "resolved": False,
                "model_id": settings.SESSION_MODEL_ID,
            },
        )
        session = ChatSession.from_response(data)
        logger.info("chat_session_created", session_id=session.id)
        return session

    async def save_message(
        self, session_id: str, role: str, content: str, latency_ms: int = 0
    ) -> None:
        await self._request(
            "POST",
            f"chat/sessions/{session_id}/messages",
            json={
                "session_id": session_id,
                "role": role,
                "content": content,
                "response_latency_ms": latency_ms,
            },
        )

    async def ask(
        self,
        session_id: str,
        question: str,
        top_k: int = 5,
        knowledge_id: Optional[int] = None,
    ) -> Optional[str]:
        data = await self._request(
            "POST",
            f"llm/chat/sessions/{session_id}/qa",
            json={
                "question": question,
                "top_k": int(top_k),
                "knowledge_id": knowledge_id,
            },
        )
        answer = data.get("answer") if isinstance(data, dict) else None
        if isinstance(answer, str) and answer.strip():
            return answer.strip()
        return None

    async def search_customers(self, query: str) -> List[CustomerRecord]:
        data = await self._request("GET", "customer/search", params={"q": query})
        return _parse_records(CustomerRecord, data)

    async def submit_inquiry(self, submission: InquirySubmission) -> dict:
        files = _file_parts(submission)
        # Plain fields travel as filename-less parts so the body is always
        # multipart, even without attachments
        fields = [
            (name, (None, value.encode("utf-8")))
            for name, value in submission.form_fields().items()
        ]
        try:
            data = await self._request("POST", "inquiries", files=fields + list(files))
        finally:
            for _, part in files:
                part[1].close()
        logger.info(
            "inquiry_submitted",
            inquiry_type=submission.inquiry_type,
            files=len(submission.files),
        )
        return data if isinstance(data, dict) else {"result": data}

    async def send_feedback(self, rating: int, session_id: str) -> dict:
        data = await self._request(
            "POST",
            "chat/feedback",
            json={"rating": rating, "session_id": session_id},
        )
        return data if isinstance(data, dict) else {"result": data}


def _parse_records(model: Type[BaseModel], data) -> list:
    """Validate a JSON list body; malformed records surface as BackendError."""
    if not data:
        return []
    if not isinstance(data, list):
        raise BackendError(f"Expected a list of {model.__name__} records")
    try:
        return [model.model_validate(item) for item in data]
    except ValidationError as e:
        logger.warning("malformed_records", model=model.__name__, errors=e.error_count())
        raise BackendError(f"Malformed {model.__name__} record: {e}") from e


def _file_parts(submission: InquirySubmission) -> Sequence[tuple]:
    """Open every attachment as a multipart "files" part."""
    parts = []
    try:
        for attachment in submission.files:
            path = Path(unquote(attachment.uri.removeprefix("file://")))
            mime_type = attachment.mime_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            parts.append(("files", (attachment.file_name, path.open("rb"), mime_type)))
    except OSError as e:
        for _, part in parts:
            part[1].close()
        raise BackendError(f"첨부 파일을 열 수 없습니다: {e}") from e
    return parts
