from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Auth ---


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class BoardMemberDetails(ORMModel):
    role_id: int
    member_role: str
    assess_fines: bool
    change_rates: bool
    change_members: bool
    start_date: date
    end_date: Optional[date] = None


class LoginUser(BaseModel):
    id: int
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    role: Literal["board_member", "resident"]
    is_temporary_password: bool
    board_member_details: Optional[BoardMemberDetails] = None


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: LoginUser


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"


class ForgotPasswordRequest(BaseModel):
    email: str


class ForgotPasswordResponse(BaseModel):
    success: bool = True
    message: str


class RegistrationVerifyRequest(BaseModel):
    account_id: int
    owner_id: int
    temp_code: str


class RegistrationVerifyResponse(BaseModel):
    valid: bool
    account_id: int
    owner_id: int


class RegistrationRequest(RegistrationVerifyRequest):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(min_length=8)


class PasswordChange(BaseModel):
    current_password: Optional[str] = None
    new_password: str = Field(min_length=8)


# --- Owners ---


class NotificationPreferenceRead(ORMModel):
    email_enabled: bool
    messages_enabled: bool
    news_docs_enabled: bool
    payments_enabled: bool
    charges_enabled: bool


class NotificationPreferenceUpdate(NotificationPreferenceRead):
    pass


class OwnerProfile(ORMModel):
    id: int
    first_name: Optional[str]
    last_name: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    voting_rights: bool
    is_temporary_password: bool


class OwnerDetails(OwnerProfile):
    notification_preferences: Optional[NotificationPreferenceRead] = None


class PersonalInfoUpdate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)


class ContactInfoUpdate(BaseModel):
    email: EmailStr
    phone: Optional[str] = None


class PropertyRead(ORMModel):
    id: int
    unit: str
    street: str
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    address: str


class AccountSummary(BaseModel):
    account_id: int
    owner_id: int
    balance: Decimal
    property: PropertyRead


class ActiveOwnerRead(BaseModel):
    owner_id: int
    account_id: int
    first_name: Optional[str]
    last_name: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    property: PropertyRead


class AvailablePropertyRead(BaseModel):
    property: PropertyRead
    current_owner_id: Optional[int] = None
    current_owner_name: Optional[str] = None
    purchase_date: Optional[date] = None


class AccountCreateRequest(BaseModel):
    property_id: int
    effective_date: date


class AccountCreateResponse(BaseModel):
    account_id: int
    owner_id: int
    temp_code: str


# --- Billing ---


class ChargeRead(ORMModel):
    id: int
    account_id: int
    charge_type: str
    amount: Decimal
    payment_due_date: date
    violation_date: Optional[date] = None
    created_at: datetime


class ChargeDetail(ChargeRead):
    description: Optional[str] = None
    issued_by_name: str


class AccountHistoryEntry(BaseModel):
    entry_type: Literal["charge", "payment"]
    id: int
    amount: Decimal
    occurred_at: datetime
    description: str
    running_balance: Decimal


class AccountDetailsResponse(BaseModel):
    account: AccountSummary
    history: List[AccountHistoryEntry]


class ViolationTypeCreate(BaseModel):
    description: str = Field(min_length=1)
    rate: Decimal = Field(gt=0)


class ViolationTypeUpdate(BaseModel):
    description: Optional[str] = None
    rate: Optional[Decimal] = Field(default=None, gt=0)


class ViolationTypeRead(ORMModel):
    id: int
    description: str
    rate: Decimal


class ViolationIssueRequest(BaseModel):
    owner_id: int
    violation_type_id: int
    violation_date: date


class ViolationIssueResponse(BaseModel):
    success: bool
    charge_id: int
    message_id: int
    debug: Dict[str, Any]


class AssessmentTypeRead(ORMModel):
    id: int
    description: str


class AssessmentTypeBatch(BaseModel):
    descriptions: List[str] = Field(min_length=1)


class AssessmentRateRead(ORMModel):
    id: int
    year: int
    amount: Decimal
    is_yearly_assessment: bool


class AssessmentRateInput(BaseModel):
    id: Optional[int] = None
    year: int = Field(ge=2000, le=2100)
    amount: Decimal = Field(gt=0)
    is_yearly_assessment: bool = False


class AssessmentRateBatch(BaseModel):
    rates: List[AssessmentRateInput] = Field(min_length=1)


class AssessmentOwnerTarget(BaseModel):
    owner_id: int
    account_id: int


class AssessmentIssueRequest(BaseModel):
    type_id: int
    rate_id: Optional[int] = None
    amount: Decimal
    owners: List[AssessmentOwnerTarget] = Field(min_length=1)


class AssessmentIssueResponse(BaseModel):
    success: bool
    created: int
    debug: Dict[str, Any]


# --- Cards and payments ---


class CardCreate(BaseModel):
    card_number: str
    card_type: str = Field(min_length=1)
    expiration_date: Optional[str] = None


class CardRead(ORMModel):
    id: int
    last_four: str
    card_type: str
    expiration_date: Optional[str]
    is_default: bool
    created_at: datetime


class PaymentCreate(BaseModel):
    card_id: int
    amount: Decimal


class PaymentRead(BaseModel):
    id: int
    account_id: int
    amount: Decimal
    payment_date: datetime
    card_type: Optional[str] = None
    last_four: Optional[str] = None


class PaymentResponse(BaseModel):
    payment: PaymentRead
    new_balance: Decimal
    debug: Dict[str, Any]


# --- Messages ---


class MessageCreate(BaseModel):
    receiver_id: int
    content: str = Field(min_length=1)
    subject: Optional[str] = None
    parent_message_id: Optional[int] = None


class MessageRead(BaseModel):
    id: int
    sender_kind: str
    sender_id: Optional[int]
    sender_name: str
    subject: Optional[str]
    content: str
    parent_message_id: Optional[int]
    created_at: datetime
    is_read: bool


class MessageSendResponse(BaseModel):
    message_id: int
    debug: Dict[str, Any]


class OwnerSearchResult(BaseModel):
    id: int
    name: str
    email: Optional[str]


class ContactSubmission(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1)


# --- Announcements and documents ---


class AnnouncementRead(BaseModel):
    id: int
    title: str
    content: str
    announcement_type: str
    status: str
    publish_date: Optional[datetime]
    event_date: Optional[datetime]
    image: Optional[str] = None
    image_content_type: Optional[str] = None
    created_at: datetime


class AnnouncementCreateResponse(BaseModel):
    announcement: AnnouncementRead
    debug: Dict[str, Any]


class DocumentRead(BaseModel):
    id: int
    title: str
    description: str
    category: str
    file_name: str
    content_type: str
    file_size: int
    created_at: datetime
    download_url: str


class DocumentCreateResponse(BaseModel):
    document: DocumentRead
    debug: Dict[str, Any]


# --- Board ---


class BoardMemberRoleCreate(BaseModel):
    member_role: str
    assess_fines: bool = False
    change_rates: bool = False
    change_members: bool = False

    @field_validator("member_role")
    @classmethod
    def _strip_role_name(cls, value: str) -> str:
        return value.strip()


class BoardMemberRoleUpdate(BaseModel):
    member_role: Optional[str] = None
    assess_fines: Optional[bool] = None
    change_rates: Optional[bool] = None
    change_members: Optional[bool] = None


class BoardMemberRoleRead(ORMModel):
    id: int
    member_role: str
    assess_fines: bool
    change_rates: bool
    change_members: bool


class BoardMemberRead(BaseModel):
    membership_id: int
    owner_id: int
    name: str
    email: Optional[str]
    role_id: int
    member_role: str
    start_date: date
    end_date: Optional[date]


class BoardMemberAdd(BaseModel):
    owner_id: int
    role_id: int


# --- Surveys ---


class SurveyCreate(BaseModel):
    question: str = Field(min_length=1)
    answers: List[str] = Field(min_length=1, max_length=4)
    end_date: date

    @field_validator("answers")
    @classmethod
    def _drop_blank_answers(cls, value: List[str]) -> List[str]:
        cleaned = [answer.strip() for answer in value if answer and answer.strip()]
        if not cleaned:
            raise ValueError("At least one answer is required")
        return cleaned


class SurveyRead(BaseModel):
    id: int
    question: str
    answers: Dict[int, str]
    start_date: date
    end_date: date
    status: str
    results_sent: bool


class SurveyCreateResponse(BaseModel):
    survey: SurveyRead
    email_stats: Dict[str, int]


class SurveyListResponse(BaseModel):
    active: List[SurveyRead]
    inactive: List[SurveyRead]
    user_responses: Dict[int, int]


class SurveyResponseCreate(BaseModel):
    answer: int = Field(ge=1, le=4)


class SurveyAnswerResult(BaseModel):
    text: str
    count: int
    percentage: float


class SurveyResults(BaseModel):
    survey_id: int
    question: str
    total_responses: int
    answers: Dict[int, SurveyAnswerResult]


# --- System ---


class EmailConfigStatus(BaseModel):
    backend: str
    from_address: Optional[str]
    from_name: str
    sendgrid_configured: bool
    smtp_configured: bool


class AuditLogEntry(BaseModel):
    id: int
    timestamp: datetime
    actor_owner_id: Optional[int]
    actor_name: Optional[str]
    action: str
    target_entity_type: Optional[str]
    target_entity_id: Optional[str]
    before: Optional[Any] = None
    after: Optional[Any] = None


class AuditLogList(BaseModel):
    items: List[AuditLogEntry]
    total: int
