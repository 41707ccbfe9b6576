from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    or_,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base


def utcnow():
    return datetime.now(timezone.utc)


def is_active_window(start: date | None, end: date | None, today: date) -> bool:
    if start is not None and start > today:
        return False
    return end is None or end >= today


class Owner(Base):
    __tablename__ = "owners"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=True)
    phone = Column(String, nullable=True)
    hashed_password = Column(String, nullable=True)
    is_temporary_password = Column(Boolean, default=True, nullable=False)
    voting_rights = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    notification_preference = orm_relationship(
        "NotificationPreference",
        back_populates="owner",
        uselist=False,
        cascade="all, delete-orphan",
    )
    ownerships = orm_relationship("PropertyOwnership", back_populates="owner", cascade="all, delete-orphan")
    accounts = orm_relationship("Account", back_populates="owner")
    board_memberships = orm_relationship(
        "OwnerBoardMemberMap",
        back_populates="owner",
        cascade="all, delete-orphan",
    )
    message_maps = orm_relationship("OwnerMessageMap", back_populates="owner", cascade="all, delete-orphan")
    survey_responses = orm_relationship("OwnerSurveyMap", back_populates="owner", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) if parts else f"Owner #{self.id}"

    def active_board_membership(self, today: date | None = None):
        today = today or date.today()
        for membership in self.board_memberships:
            if membership.is_active(today):
                return membership
        return None


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"
    __table_args__ = (UniqueConstraint("owner_id", name="uq_notification_pref_owner"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("owners.id", ondelete="CASCADE"), nullable=False)
    email_enabled = Column(Boolean, default=True, nullable=False)
    messages_enabled = Column(Boolean, default=True, nullable=False)
    news_docs_enabled = Column(Boolean, default=True, nullable=False)
    payments_enabled = Column(Boolean, default=True, nullable=False)
    charges_enabled = Column(Boolean, default=True, nullable=False)

    owner = orm_relationship("Owner", back_populates="notification_preference")


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    unit = Column(String, nullable=False)
    street = Column(String, nullable=False)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip_code = Column(String, nullable=True)

    ownerships = orm_relationship("PropertyOwnership", back_populates="property", cascade="all, delete-orphan")
    accounts = orm_relationship("Account", back_populates="property")

    @property
    def address(self) -> str:
        return f"{self.unit} {self.street}"


class PropertyOwnership(Base):
    __tablename__ = "property_owner_map"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    owner_id = Column(Integer, ForeignKey("owners.id", ondelete="CASCADE"), nullable=False)
    purchase_date = Column(Date, nullable=False)
    sell_date = Column(Date, nullable=True)

    property = orm_relationship("Property", back_populates="ownerships")
    owner = orm_relationship("Owner", back_populates="ownerships")

    def is_active(self, today: date | None = None) -> bool:
        return is_active_window(self.purchase_date, self.sell_date, today or date.today())


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("property_id", "owner_id", name="uq_account_property_owner"),)

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=False)
    balance = Column(Numeric(10, 2), default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    property = orm_relationship("Property", back_populates="accounts")
    owner = orm_relationship("Owner", back_populates="accounts")
    charges = orm_relationship("Charge", back_populates="account", cascade="all, delete-orphan")
    payments = orm_relationship("Payment", back_populates="account", cascade="all, delete-orphan")
    cards = orm_relationship("CreditCard", back_populates="account", cascade="all, delete-orphan")


class ViolationType(Base):
    __tablename__ = "violation_types"

    id = Column(Integer, primary_key=True, index=True)
    description = Column(String, nullable=False)
    rate = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class AssessmentType(Base):
    __tablename__ = "assessment_types"

    id = Column(Integer, primary_key=True, index=True)
    description = Column(String, unique=True, nullable=False)


class AssessmentRate(Base):
    __tablename__ = "assessment_rates"

    id = Column(Integer, primary_key=True, index=True)
    year = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    is_yearly_assessment = Column(Boolean, default=False, nullable=False)


class Charge(Base):
    __tablename__ = "charges"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    charge_type = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_due_date = Column(Date, nullable=False)
    violation_date = Column(Date, nullable=True)
    violation_type_id = Column(Integer, ForeignKey("violation_types.id"), nullable=True)
    assessment_type_id = Column(Integer, ForeignKey("assessment_types.id"), nullable=True)
    assessment_rate_id = Column(Integer, ForeignKey("assessment_rates.id"), nullable=True)
    issued_by_owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    account = orm_relationship("Account", back_populates="charges")
    violation_type = orm_relationship("ViolationType")
    assessment_type = orm_relationship("AssessmentType")
    assessment_rate = orm_relationship("AssessmentRate")
    issued_by = orm_relationship("Owner", foreign_keys=[issued_by_owner_id])


class CreditCard(Base):
    __tablename__ = "credit_cards"
    __table_args__ = (UniqueConstraint("account_id", "card_hash", name="uq_card_account_hash"),)

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    card_hash = Column(String(64), nullable=False)
    last_four = Column(String(4), nullable=False)
    card_type = Column(String, nullable=False)
    expiration_date = Column(String, nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    account = orm_relationship("Account", back_populates="cards")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    card_id = Column(Integer, ForeignKey("credit_cards.id"), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_date = Column(DateTime, default=utcnow, nullable=False)

    account = orm_relationship("Account", back_populates="payments")
    card = orm_relationship("CreditCard")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    sender_kind = Column(String, nullable=False, default="OWNER")
    sender_id = Column(Integer, ForeignKey("owners.id"), nullable=True)
    subject = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    parent_message_id = Column(Integer, ForeignKey("messages.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    sender = orm_relationship("Owner", foreign_keys=[sender_id])
    parent = orm_relationship("Message", remote_side=[id], back_populates="replies")
    replies = orm_relationship("Message", back_populates="parent")
    recipients = orm_relationship("OwnerMessageMap", back_populates="message", cascade="all, delete-orphan")


class OwnerMessageMap(Base):
    __tablename__ = "owner_message_map"
    __table_args__ = (UniqueConstraint("owner_id", "message_id", name="uq_owner_message"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("owners.id", ondelete="CASCADE"), nullable=False, index=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    owner = orm_relationship("Owner", back_populates="message_maps")
    message = orm_relationship("Message", back_populates="recipients")


class Announcement(Base):
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    announcement_type = Column(String, nullable=False, default="ANNOUNCEMENT")
    status = Column(String, nullable=False, default="PUBLISHED", index=True)
    publish_date = Column(DateTime, nullable=True)
    event_date = Column(DateTime, nullable=True)
    image_data = Column(LargeBinary, nullable=True)
    image_filename = Column(String, nullable=True)
    image_content_type = Column(String, nullable=True)
    created_by_owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    created_by = orm_relationship("Owner")


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False, default="Other")
    file_data = Column(LargeBinary, nullable=False)
    file_name = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    uploaded_by_owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    uploaded_by = orm_relationship("Owner")


class Survey(Base):
    __tablename__ = "surveys"

    id = Column(Integer, primary_key=True, index=True)
    question = Column(Text, nullable=False)
    answer_1 = Column(String, nullable=True)
    answer_2 = Column(String, nullable=True)
    answer_3 = Column(String, nullable=True)
    answer_4 = Column(String, nullable=True)
    start_date = Column(Date, default=date.today, nullable=False)
    end_date = Column(Date, nullable=False, index=True)
    status = Column(String, nullable=False, default="ACTIVE", index=True)
    results_sent = Column(Boolean, default=False, nullable=False)
    created_by_owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    responses = orm_relationship("OwnerSurveyMap", back_populates="survey", cascade="all, delete-orphan")

    @property
    def answers(self) -> dict[int, str]:
        slots = {1: self.answer_1, 2: self.answer_2, 3: self.answer_3, 4: self.answer_4}
        return {slot: text for slot, text in slots.items() if text}


class OwnerSurveyMap(Base):
    __tablename__ = "owner_survey_map"
    __table_args__ = (UniqueConstraint("owner_id", "survey_id", name="uq_owner_survey"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("owners.id", ondelete="CASCADE"), nullable=False)
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)
    answer = Column(Integer, nullable=False)
    responded_at = Column(DateTime, default=utcnow, nullable=False)

    owner = orm_relationship("Owner", back_populates="survey_responses")
    survey = orm_relationship("Survey", back_populates="responses")


class BoardMemberRole(Base):
    __tablename__ = "board_member_roles"

    id = Column(Integer, primary_key=True, index=True)
    member_role = Column(String, unique=True, nullable=False)
    assess_fines = Column(Boolean, default=False, nullable=False)
    change_rates = Column(Boolean, default=False, nullable=False)
    change_members = Column(Boolean, default=False, nullable=False)

    memberships = orm_relationship("OwnerBoardMemberMap", back_populates="role")

    def allows(self, capability: str) -> bool:
        return bool(getattr(self, capability.lower(), False))


class OwnerBoardMemberMap(Base):
    __tablename__ = "owner_board_member_map"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("owners.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("board_member_roles.id"), nullable=False)
    start_date = Column(Date, default=date.today, nullable=False)
    end_date = Column(Date, nullable=True)

    owner = orm_relationship("Owner", back_populates="board_memberships")
    role = orm_relationship("BoardMemberRole", back_populates="memberships")

    def is_active(self, today: date | None = None) -> bool:
        today = today or date.today()
        return self.start_date <= today and (self.end_date is None or self.end_date > today)

    @classmethod
    def active_clause(cls, today: date):
        """A role ended today is already inactive."""
        return (
            cls.start_date <= today,
            or_(cls.end_date.is_(None), cls.end_date > today),
        )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    actor_owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)
    action = Column(String, nullable=False)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    before = Column(Text, nullable=True)
    after = Column(Text, nullable=True)

    actor = orm_relationship("Owner")
