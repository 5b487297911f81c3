"""HttpBackendClient / HttpTranscriptionClient against httpx.MockTransport."""
import asyncio
import json

import httpx
import pytest

from conftest import RecordingView
from supportchat.adapters.backend import BackendError, HttpBackendClient, parse_error_detail
from supportchat.adapters.speech import HttpTranscriptionClient, RecognitionEvent
from supportchat.conversation.attachments import Attachment
from supportchat.conversation.controller import ConversationController
from supportchat.core.models import AttachmentPayload, InquirySubmission

BASE_URL = "http://backend.test/api"


def _run(handler, call):
    async def scenario():
        client = HttpBackendClient(BASE_URL, transport=httpx.MockTransport(handler))
        try:
            return await call(client)
        finally:
            await client.close()

    return asyncio.run(scenario())


def _submission(**kwargs):
    values = dict(
        business_name="가람상회",
        business_number="123-45-67890",
        phone="010-1234-5678",
        content="[상반기] 매출 자료",
        inquiry_type="sales_report",
    )
    values.update(kwargs)
    return InquirySubmission(**values)


def test_list_categories():
    def handler(request):
        assert request.url.path == "/api/system/quick-categories"
        return httpx.Response(200, json=[{"id": 1, "name": "POS", "icon_emoji": "🖥️"}])

    categories = _run(handler, lambda c: c.list_categories())
    assert categories[0].name == "POS"
    assert categories[0].description == ""


def test_list_faqs_sends_paging_params():
    def handler(request):
        params = request.url.params
        assert request.url.path == "/api/faqs"
        assert (params["category_id"], params["offset"], params["limit"]) == ("3", "0", "20")
        assert "order_by" not in params
        return httpx.Response(200, json=[{"id": 7, "question": "Q", "answer": "A"}])

    faqs = _run(handler, lambda c: c.list_faqs(3, limit=20))
    assert faqs[0].answer == "A"


def test_create_session_stringifies_id():
    def handler(request):
        body = json.loads(request.content)
        assert body["title"] == "모바일 대화"
        assert body["resolved"] is False
        return httpx.Response(200, json={"id": 42})

    session = _run(handler, lambda c: c.create_session())
    assert session.id == "42"


def test_ask_returns_trimmed_answer_or_none():
    answers = iter([{"answer": "  네, 가능합니다. "}, {"answer": "   "}, {}])

    def handler(request):
        assert request.url.path == "/api/llm/chat/sessions/42/qa"
        body = json.loads(request.content)
        assert body == {"question": "환불 되나요?", "top_k": 5, "knowledge_id": None}
        return httpx.Response(200, json=next(answers))

    async def call(client):
        return [await client.ask("42", "환불 되나요?") for _ in range(3)]

    assert _run(handler, call) == ["네, 가능합니다.", None, None]


def test_save_message_posts_to_session():
    def handler(request):
        assert request.url.path == "/api/chat/sessions/42/messages"
        assert json.loads(request.content)["role"] == "user"
        return httpx.Response(201)

    assert _run(handler, lambda c: c.save_message("42", "user", "hi")) is None


def test_search_customers_query():
    def handler(request):
        assert request.url.params["q"] == "1234567890"
        return httpx.Response(200, json=[{"business_name": "가람상회", "business_number": "123-45-67890", "phone": "010"}])

    records = _run(handler, lambda c: c.search_customers("1234567890"))
    assert records[0].business_name == "가람상회"


def test_submit_inquiry_without_files_is_multipart():
    def handler(request):
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="business_name"' in request.content
        assert "가람상회".encode() in request.content
        assert b'name="inquiry_type"' in request.content
        return httpx.Response(200, json={"id": 9})

    assert _run(handler, lambda c: c.submit_inquiry(_submission())) == {"id": 9}


def test_submit_inquiry_uploads_files(tmp_path):
    photo = tmp_path / "menu.jpg"
    photo.write_bytes(b"JPEGDATA")
    attachment = Attachment.from_path(photo)
    submission = _submission(files=[
        AttachmentPayload(file_name=attachment.file_name, mime_type=attachment.mime_type, uri=attachment.uri)
    ])

    def handler(request):
        assert b'name="files"; filename="menu.jpg"' in request.content
        assert b"JPEGDATA" in request.content
        return httpx.Response(200, json={"id": 10})

    assert _run(handler, lambda c: c.submit_inquiry(submission)) == {"id": 10}


def test_submit_inquiry_missing_file(tmp_path):
    submission = _submission(files=[
        AttachmentPayload(file_name="gone.jpg", mime_type="image/jpeg", uri=(tmp_path / "gone.jpg").as_uri())
    ])

    def handler(request):
        raise AssertionError("request must not be sent")

    with pytest.raises(BackendError):
        _run(handler, lambda c: c.submit_inquiry(submission))


def test_send_feedback():
    def handler(request):
        assert json.loads(request.content) == {"rating": 4, "session_id": "42"}
        return httpx.Response(200, json={"ok": True})

    assert _run(handler, lambda c: c.send_feedback(4, "42")) == {"ok": True}


def test_error_response_raises_with_detail():
    def handler(request):
        return httpx.Response(422, json={"detail": [{"msg": "field required"}, {"msg": "bad phone"}]})

    with pytest.raises(BackendError) as exc:
        _run(handler, lambda c: c.list_categories())
    assert exc.value.status_code == 422
    assert str(exc.value) == "field required, bad phone"


def test_transport_error_raises_backend_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BackendError) as exc:
        _run(handler, lambda c: c.list_categories())
    assert exc.value.status_code is None


def test_malformed_records_raise_backend_error():
    def handler(request):
        if request.url.path.endswith("quick-categories"):
            return httpx.Response(200, json=[{"id": 1}])
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(BackendError, match="Category"):
        _run(handler, lambda c: c.list_categories())
    with pytest.raises(BackendError):
        _run(handler, lambda c: c.list_faqs(1))


def test_mount_survives_malformed_categories():
    def handler(request):
        if request.url.path.endswith("quick-categories"):
            return httpx.Response(200, json=[{"id": 1}])
        return httpx.Response(200, json={"id": 55})

    async def scenario():
        client = HttpBackendClient(BASE_URL, transport=httpx.MockTransport(handler))
        view = RecordingView()
        controller = ConversationController(client, view=view, idle_feedback_seconds=60)
        try:
            await controller.mount()
        finally:
            await controller.close()
            await client.close()
        return controller, view.messages

    controller, notices = asyncio.run(scenario())
    assert controller.chat_session_id == "55"
    assert controller.log.last().payload["categories"] == []
    assert notices == ["카테고리 목록을 불러오는 중 오류가 발생했습니다."]


def test_parse_error_detail_variants():
    request = httpx.Request("GET", BASE_URL)
    assert parse_error_detail(httpx.Response(400, json={"detail": "잘못된 요청"}, request=request)) == "잘못된 요청"
    assert parse_error_detail(httpx.Response(400, json={"message": "nope"}, request=request)) == "nope"
    assert parse_error_detail(httpx.Response(500, text="Internal", request=request)) == "Internal"
    assert parse_error_detail(httpx.Response(503, request=request)) == "503 Service Unavailable"


def test_transcription_client():
    def handler(request):
        assert request.url.path == "/api/stt/transcribe"
        assert b'filename="speech.wav"' in request.content
        assert b"ko-KR" in request.content
        return httpx.Response(200, json={"text": " 안녕하세요 "})

    async def scenario():
        client = HttpTranscriptionClient(BASE_URL, transport=httpx.MockTransport(handler))
        try:
            return await client.transcribe(b"RIFF....", "ko-KR")
        finally:
            await client.close()

    result = asyncio.run(scenario())
    assert result.clean_text == "안녕하세요"
    assert not result.has_answer


def test_recognition_event_from_message():
    event = RecognitionEvent.from_message('{"type": "partial", "text": "안녕", "utterance_id": "u1", "rev": 2}')
    assert (event.type, event.text, event.utterance_id, event.rev) == ("partial", "안녕", "u1", 2)
    assert RecognitionEvent.from_message('{"type": "end"}').text == ""
