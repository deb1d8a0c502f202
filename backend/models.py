import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base
from time_utils import now_utc

USER_NUMERIC_ID_MIN = 10001
USER_NUMERIC_ID_MAX = 99999


def _uuid() -> str:
    return str(uuid.uuid4())


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class EventCategory(str, enum.Enum):
    CENTRALIZED = "CENTRALIZED"
    TECHNICAL = "TECHNICAL"
    CULTURAL = "CULTURAL"
    FINEARTS = "FINEARTS"
    LITERARY = "LITERARY"


class PaymentStatus(str, enum.Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"
    REFUNDED = "REFUNDED"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            f"numeric_id BETWEEN {USER_NUMERIC_ID_MIN} AND {USER_NUMERIC_ID_MAX}",
            name="ck_users_numeric_id_range",
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    numeric_id = Column(Integer, unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    image = Column(String(500), nullable=True)
    role = Column(SQLEnum(Role), default=Role.USER, nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(String(200), nullable=True)
    department = Column(String(100), nullable=True)
    semester = Column(Integer, nullable=True)
    college = Column(String(100), nullable=True)
    usn = Column(String(20), unique=True, index=True, nullable=True)
    needs_accommodation = Column(Boolean, default=False, nullable=False)
    profile_completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    registrations = relationship("Registration", back_populates="user", cascade="all, delete-orphan")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(SQLEnum(EventCategory), nullable=False, index=True)
    date = Column(DateTime(timezone=True), nullable=False)
    time = Column(String(20), nullable=False)
    duration = Column(Integer, nullable=True)  # minutes
    location = Column(String(200), nullable=False)
    capacity = Column(Integer, nullable=False)
    fee = Column(Integer, default=0, nullable=False)
    details = Column(Text, nullable=True)
    registration_open = Column(Boolean, default=True, nullable=False)
    image = Column(String(500), nullable=True)
    department_code = Column(String(20), nullable=True)
    is_team_event = Column(Boolean, default=False, nullable=False)
    min_team_size = Column(Integer, nullable=True)
    max_team_size = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    registrations = relationship("Registration", back_populates="event", cascade="all, delete-orphan")


class Registration(Base):
    __tablename__ = "registrations"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_registrations_user_event"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    registration_id = Column(String(40), unique=True, index=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.UNPAID, nullable=False, index=True)
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    user = relationship("User", back_populates="registrations")
    event = relationship("Event", back_populates="registrations")
    team_members = relationship(
        "TeamMember",
        back_populates="registration",
        cascade="all, delete-orphan",
        order_by="TeamMember.position",
        passive_deletes=True,
    )


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(
        String(36), ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    usn = Column(String(20), nullable=False)
    phone = Column(String(20), nullable=False)
    is_leader = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False)  # 0 is the leader

    registration = relationship("Registration", back_populates="team_members")


class IdSequence(Base):
    __tablename__ = "id_sequences"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False)


class AdminLog(Base):
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(String(36), nullable=True)
    admin_email = Column(String(255), nullable=False)
    action = Column(String(255), nullable=False)
    method = Column(String(10), nullable=True)
    path = Column(String(255), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now())
