"""
InquiryWizard - branching intake flow for support inquiries.

Steps:
0.  CATEGORY_SELECTED  - category chosen, session created
1a. PERIOD             - sales report only: pick the sales period
1b. CUSTOM_DATE        - sales report + custom period: free-text range
1.  BUSINESS_NUMBER    - triggers the customer autofill lookup
2.  COMPANY_NAME       - skipped when autofill matched
3.  PHONE              - skipped when autofill matched
4.  DETAIL             - attachment-enabled editor, then submission

The wizard is pure: every transition takes an InquirySession value and
returns a Transition carrying the next session, the entries to append and
the side effects (lookup, submission) the controller must run.
"""

import re
import uuid
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional

from supportchat.conversation.log import ConversationEntry, EntryKind, new_key, bot_message
from supportchat.conversation.feedback import feedback_block
from supportchat.core.models import CustomerRecord, InquirySubmission
from supportchat.utils.business_number import normalize_digits

logger = logging.getLogger(__name__)


class InquiryCategory(str, Enum):
    PAPER_REQUEST = "paper_request"
    SALES_REPORT = "sales_report"
    KIOSK_MENU_UPDATE = "kiosk_menu_update"
    OTHER = "other"
    NONE = "none"


CATEGORY_LABELS = {
    InquiryCategory.PAPER_REQUEST: "용지 요청",
    InquiryCategory.SALES_REPORT: "매출 내역",
    InquiryCategory.KIOSK_MENU_UPDATE: "메뉴 수정 및 추가",
    InquiryCategory.OTHER: "기타 문의",
}

INQUIRY_CATEGORIES = list(CATEGORY_LABELS)


class WizardStep(str, Enum):
    CATEGORY_SELECTED = "0"
    BUSINESS_NUMBER = "1"
    PERIOD = "1a"
    CUSTOM_DATE = "1b"
    COMPANY_NAME = "2"
    PHONE = "3"
    DETAIL = "4"
    SUBMITTED = "submitted"


class SalesPeriod(str, Enum):
    FIRST_HALF = "firstHalf"
    SECOND_HALF = "secondHalf"
    FULL_YEAR = "fullYear"
    CUSTOM = "custom"


PERIOD_LABELS = {
    SalesPeriod.FIRST_HALF: "상반기",
    SalesPeriod.SECOND_HALF: "하반기",
    SalesPeriod.FULL_YEAR: "전체",
    SalesPeriod.CUSTOM: "직접 입력",
}

PROMPTS = {
    WizardStep.PERIOD: "조회하실 매출 기간을 선택해 주세요.",
    WizardStep.CUSTOM_DATE: "조회하실 기간을 입력해 주세요. (예: 2024-01-01 ~ 2024-03-31)",
    WizardStep.BUSINESS_NUMBER: "사업자등록번호를 입력해 주세요.",
    WizardStep.COMPANY_NAME: "상호명을 입력해 주세요.",
    WizardStep.PHONE: "연락 가능한 전화번호를 입력해 주세요.",
    WizardStep.DETAIL: "문의 내용을 입력해 주세요. 사진이나 파일은 최대 3개까지 첨부할 수 있습니다.",
}

_ORDINARY_FLOW = [
    WizardStep.BUSINESS_NUMBER,
    WizardStep.COMPANY_NAME,
    WizardStep.PHONE,
    WizardStep.DETAIL,
]
_SALES_FLOW = [WizardStep.PERIOD] + _ORDINARY_FLOW

_DATE = r"(\d{4}[-./]\d{1,2}[-./]\d{1,2})"
_DATE_RANGE = re.compile(_DATE + r"\s*(?:~|\bto\b|\s-\s)\s*" + _DATE, re.IGNORECASE)


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


@dataclass(frozen=True)
class InquirySession:
    """Collected wizard state. The default value is the idle zero state."""
    category: InquiryCategory = InquiryCategory.NONE
    step: WizardStep = WizardStep.CATEGORY_SELECTED
    business_number: str = ""
    company_name: str = ""
    phone: str = ""
    detail: str = ""
    sales_period: Optional[str] = None
    custom_date_range: Optional[DateRange] = None
    session_id: str = ""
    editor_key: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.category != InquiryCategory.NONE

    def advance(self, **changes) -> "InquirySession":
        return replace(self, **changes)


@dataclass
class Transition:
    """Result of feeding one input to the wizard."""
    session: InquirySession
    entries: List[ConversationEntry] = field(default_factory=list)
    lookup_number: Optional[str] = None
    submission: Optional[InquirySubmission] = None
    open_editor: bool = False
    accepted: bool = True


def total_steps(category: InquiryCategory) -> int:
    return len(_SALES_FLOW) if category == InquiryCategory.SALES_REPORT else len(_ORDINARY_FLOW)


def step_position(category: InquiryCategory, step: WizardStep) -> int:
    """1-based position shown as "(n/total)"; the custom date shares the period slot."""
    flow = _SALES_FLOW if category == InquiryCategory.SALES_REPORT else _ORDINARY_FLOW
    if step == WizardStep.CUSTOM_DATE:
        step = WizardStep.PERIOD
    return flow.index(step) + 1 if step in flow else 0


def parse_date_range(text: str) -> Optional[DateRange]:
    match = _DATE_RANGE.search(text)
    if not match:
        return None
    try:
        first, second = (
            datetime.strptime(re.sub(r"[./]", "-", value), "%Y-%m-%d").date()
            for value in match.groups()
        )
    except ValueError:
        return None
    return DateRange(start=min(first, second), end=max(first, second))


def match_period(text: str) -> Optional[SalesPeriod]:
    """Accept the label, the key, or the option number."""
    value = text.strip().lower()
    for number, (period, label) in enumerate(PERIOD_LABELS.items(), start=1):
        if value in (label, period.value.lower(), str(number)):
            return period
    return None


def find_exact_customer(
    business_number: str, records: Iterable[CustomerRecord]
) -> Optional[CustomerRecord]:
    """First record whose digits-only business number equals ours."""
    wanted = normalize_digits(business_number)
    if not wanted:
        return None
    for record in records:
        if normalize_digits(record.business_number) == wanted:
            return record
    return None


class InquiryWizard:
    """
    Stateless transition functions over InquirySession.

    Usage:
        wizard = InquiryWizard()
        t = wizard.start(InquiryCategory.PAPER_REQUEST)
        t = wizard.advance(t.session, "123-45-67890")  # t.lookup_number set
        t = wizard.autofill_missed(t.session)
    """

    def start(self, category: InquiryCategory) -> Transition:
        if category == InquiryCategory.NONE:
            raise ValueError("Cannot start an inquiry without a category")

        session = InquirySession(
            category=category,
            step=WizardStep.CATEGORY_SELECTED,
            session_id=uuid.uuid4().hex,
            editor_key=new_key("detail-editor"),
        )
        first = WizardStep.PERIOD if category == InquiryCategory.SALES_REPORT else WizardStep.BUSINESS_NUMBER
        session = session.advance(step=first)
        logger.info(f"Inquiry {session.session_id}: started {category.value}")

        intro = f"[{CATEGORY_LABELS[category]}] 문의를 시작합니다."
        return Transition(session, [self._prompt(session, first, intro=intro)])

    def reset(self) -> InquirySession:
        return InquirySession()

    def advance(self, session: InquirySession, text: str) -> Transition:
        text = (text or "").strip()
        if not session.active or not text:
            return Transition(session, accepted=False)

        handlers = {
            WizardStep.PERIOD: self._on_period,
            WizardStep.CUSTOM_DATE: self._on_custom_date,
            WizardStep.BUSINESS_NUMBER: self._on_business_number,
            WizardStep.COMPANY_NAME: self._on_company_name,
            WizardStep.PHONE: self._on_phone,
            WizardStep.DETAIL: self._on_detail,
        }
        handler = handlers.get(session.step)
        if handler is None:
            return Transition(session, accepted=False)
        return handler(session, text)

    def choose_period(self, session: InquirySession, period: SalesPeriod) -> Transition:
        if session.step != WizardStep.PERIOD:
            return Transition(session, accepted=False)
        return self._on_period(session, PERIOD_LABELS[period])

    # --- autofill ---

    def apply_autofill(self, session: InquirySession, record: CustomerRecord) -> Transition:
        session = session.advance(
            company_name=record.business_name,
            phone=record.phone,
            step=WizardStep.DETAIL,
        )
        logger.info(f"Inquiry {session.session_id}: autofilled from customer lookup")
        confirmation = bot_message(
            "등록된 고객 정보를 찾았습니다.\n"
            f"상호명: {record.business_name}\n"
            f"전화번호: {record.phone}",
            autofill=True,
            company_name=record.business_name,
            phone=record.phone,
        )
        return Transition(session, [confirmation], open_editor=True)

    def autofill_missed(self, session: InquirySession) -> Transition:
        return Transition(session, [self._prompt(session, WizardStep.COMPANY_NAME)])

    # --- submission ---

    def submission_succeeded(self, session: InquirySession, attachment_count: int = 0) -> Transition:
        label = CATEGORY_LABELS.get(session.category, session.category.value)
        lines = [
            "문의가 접수되었습니다.",
            f"유형: {label}",
            f"상호명: {session.company_name}",
            f"사업자등록번호: {session.business_number}",
            f"전화번호: {session.phone}",
        ]
        if session.sales_period:
            lines.append(f"조회 기간: {session.sales_period}")
        lines.append(f"문의 내용: {session.detail}")
        lines.append(f"첨부 파일: {attachment_count}개")

        summary = ConversationEntry(
            new_key("inquiry-result"),
            EntryKind.BOT_MESSAGE,
            {
                "text": "\n".join(lines),
                "step": WizardStep.SUBMITTED.value,
                "inquiry": {
                    "category": session.category.value,
                    "business_number": session.business_number,
                    "company_name": session.company_name,
                    "phone": session.phone,
                    "detail": session.detail,
                    "sales_period": session.sales_period,
                },
                "attachments": attachment_count,
            },
        )
        logger.info(f"Inquiry {session.session_id}: submitted")
        return Transition(self.reset(), [summary, feedback_block("inquiry")])

    def submission_failed(self, session: InquirySession) -> InquirySession:
        """Back to the detail step so the content can be entered again."""
        return session.advance(step=WizardStep.DETAIL, detail="")

    def build_submission(self, session: InquirySession) -> InquirySubmission:
        content = session.detail
        if session.sales_period:
            content = f"[{session.sales_period}] {session.detail}"
        return InquirySubmission(
            business_name=session.company_name,
            business_number=session.business_number,
            phone=session.phone,
            content=content,
            inquiry_type=session.category.value,
        )

    def editor_payload(self, session: InquirySession) -> dict:
        """Static part of the detail editor entry for this session."""
        return self._prompt_payload(session, WizardStep.DETAIL, PROMPTS[WizardStep.DETAIL])

    # --- step handlers ---

    def _on_period(self, session: InquirySession, text: str) -> Transition:
        period = match_period(text)
        if period is None:
            retry = self._prompt(session, WizardStep.PERIOD, intro="기간을 다시 선택해 주세요.")
            return Transition(session, [retry], accepted=False)

        if period == SalesPeriod.CUSTOM:
            session = session.advance(step=WizardStep.CUSTOM_DATE, sales_period=None, custom_date_range=None)
            return Transition(session, [self._prompt(session, WizardStep.CUSTOM_DATE)])

        session = session.advance(
            step=WizardStep.BUSINESS_NUMBER,
            sales_period=PERIOD_LABELS[period],
            custom_date_range=None,
        )
        return Transition(session, [self._prompt(session, WizardStep.BUSINESS_NUMBER)])

    def _on_custom_date(self, session: InquirySession, text: str) -> Transition:
        session = session.advance(
            step=WizardStep.BUSINESS_NUMBER,
            sales_period=text,
            custom_date_range=parse_date_range(text),
        )
        return Transition(session, [self._prompt(session, WizardStep.BUSINESS_NUMBER)])

    def _on_business_number(self, session: InquirySession, text: str) -> Transition:
        # Input moves on to the company name right away; its prompt is only
        # shown once the autofill lookup misses.
        session = session.advance(business_number=text, step=WizardStep.COMPANY_NAME)
        number = normalize_digits(text)
        if not number:
            return self.autofill_missed(session)
        return Transition(session, lookup_number=number)

    def _on_company_name(self, session: InquirySession, text: str) -> Transition:
        session = session.advance(company_name=text, step=WizardStep.PHONE)
        return Transition(session, [self._prompt(session, WizardStep.PHONE)])

    def _on_phone(self, session: InquirySession, text: str) -> Transition:
        session = session.advance(phone=text, step=WizardStep.DETAIL)
        return Transition(session, open_editor=True)

    def _on_detail(self, session: InquirySession, text: str) -> Transition:
        # Further input is rejected until the submission settles.
        session = session.advance(detail=text, step=WizardStep.SUBMITTED)
        return Transition(session, submission=self.build_submission(session))

    # --- entries ---

    def _prompt_payload(self, session: InquirySession, step: WizardStep, text: str) -> dict:
        payload = {
            "text": text,
            "category": session.category.value,
            "category_label": CATEGORY_LABELS.get(session.category, ""),
            "step": step.value,
            "position": step_position(session.category, step),
            "total": total_steps(session.category),
        }
        if step == WizardStep.PERIOD:
            payload["options"] = [
                {"key": period.value, "label": label} for period, label in PERIOD_LABELS.items()
            ]
        return payload

    def _prompt(self, session: InquirySession, step: WizardStep, intro: Optional[str] = None) -> ConversationEntry:
        text = PROMPTS[step]
        if intro:
            text = f"{intro}\n{text}"
        return ConversationEntry(new_key("wizard"), EntryKind.WIZARD_STEP, self._prompt_payload(session, step, text))
