from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime, date
import re
from urllib.parse import urlparse


class RoleEnum(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class EventCategoryEnum(str, Enum):
    CENTRALIZED = "CENTRALIZED"
    TECHNICAL = "TECHNICAL"
    CULTURAL = "CULTURAL"
    FINEARTS = "FINEARTS"
    LITERARY = "LITERARY"


class PaymentStatusEnum(str, Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"
    REFUNDED = "REFUNDED"


class RegistrationSortKey(str, Enum):
    CREATED_AT = "createdAt"
    REGISTRATION_ID = "registrationId"
    USER_NAME = "userName"
    EVENT_TITLE = "eventTitle"
    PAYMENT_STATUS = "paymentStatus"


class EventSortKey(str, Enum):
    DATE = "date"
    TITLE = "title"
    CATEGORY = "category"
    FEE = "fee"
    REGISTRATIONS = "registrations"
    CREATED_AT = "createdAt"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


PHONE_RE = re.compile(r"^[+\d\s()-]+$")
USN_RE = re.compile(r"^[a-zA-Z0-9-]+$")
TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9](\s*(AM|PM|am|pm))?$")


def _strip_or_none(value):
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _normalize_optional_http_url(value: Optional[str], field_name: str, max_length: int = 500) -> Optional[str]:
    raw = str(value or "").strip()
    if not raw:
        return None
    if len(raw) > max_length:
        raise ValueError(f"{field_name} must be at most {max_length} characters")
    parsed = urlparse(raw)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"{field_name} must be a valid http/https URL")
    return raw


# Auth Schemas
class GoogleSignInRequest(BaseModel):
    credential: str = Field(..., min_length=10)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    numeric_id: int
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    role: RoleEnum
    phone: Optional[str] = None
    address: Optional[str] = None
    department: Optional[str] = None
    semester: Optional[int] = None
    college: Optional[str] = None
    usn: Optional[str] = None
    needs_accommodation: bool = False
    profile_completed: bool
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


# Profile Schemas
class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=15)
    address: Optional[str] = Field(None, max_length=200)
    department: Optional[str] = Field(None, max_length=100)
    semester: Optional[int] = Field(None, ge=1, le=8)
    college: Optional[str] = Field(None, max_length=100)
    usn: Optional[str] = Field(None, max_length=20)
    needs_accommodation: Optional[bool] = None

    @field_validator("semester", mode="before")
    @classmethod
    def blank_semester(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value):
        if value is None or not value.strip():
            return value
        cleaned = value.strip()
        if len(cleaned) < 10:
            raise ValueError("Phone number must be at least 10 characters")
        if not PHONE_RE.match(cleaned):
            raise ValueError("Phone number can only contain numbers, spaces and symbols +()-")
        return cleaned

    @field_validator("usn")
    @classmethod
    def validate_usn(cls, value):
        if value is None or not value.strip():
            return value
        cleaned = value.strip()
        if not USN_RE.match(cleaned):
            raise ValueError("USN can only contain letters, numbers and hyphens")
        return cleaned


class RegistrationSummary(BaseModel):
    id: str
    registration_id: str
    event_id: int
    event_name: str
    date: datetime
    time: str
    location: str
    fee: int
    is_team_event: bool = False
    team_size: int = 1
    payment_status: PaymentStatusEnum
    created_at: datetime


class ProfileResponse(UserResponse):
    registrations: List[RegistrationSummary] = Field(default_factory=list)


# Event Schemas
class EventBase(BaseModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    category: EventCategoryEnum
    date: datetime
    time: str = Field(..., min_length=1)
    duration: Optional[int] = Field(None, ge=1, le=24 * 60)
    location: str = Field(..., min_length=3, max_length=200)
    capacity: int = Field(..., gt=0, le=10000)
    fee: int = Field(0, ge=0, le=100000)
    details: str = Field(..., min_length=10, max_length=5000)
    image: Optional[str] = None
    department_code: Optional[str] = Field(None, max_length=20)
    registration_open: bool = True
    is_team_event: bool = False
    min_team_size: Optional[int] = Field(None, ge=1, le=50)
    max_team_size: Optional[int] = Field(None, ge=1, le=50)

    @field_validator("time")
    @classmethod
    def validate_time(cls, value):
        cleaned = value.strip()
        if not TIME_RE.match(cleaned):
            raise ValueError("Please provide a valid time format (e.g. 14:30 or 2:30 PM)")
        return cleaned

    @field_validator("image", mode="before")
    @classmethod
    def validate_image(cls, value):
        return _normalize_optional_http_url(value, "image")

    @field_validator("department_code", mode="before")
    @classmethod
    def normalize_department_code(cls, value):
        cleaned = _strip_or_none(value)
        return cleaned.upper() if cleaned else None


class EventCreate(EventBase):
    pass


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    category: Optional[EventCategoryEnum] = None
    date: Optional[datetime] = None
    time: Optional[str] = None
    duration: Optional[int] = Field(None, ge=1, le=24 * 60)
    location: Optional[str] = Field(None, min_length=3, max_length=200)
    capacity: Optional[int] = Field(None, gt=0, le=10000)
    fee: Optional[int] = Field(None, ge=0, le=100000)
    details: Optional[str] = Field(None, min_length=10, max_length=5000)
    image: Optional[str] = None
    department_code: Optional[str] = Field(None, max_length=20)
    registration_open: Optional[bool] = None
    is_team_event: Optional[bool] = None
    min_team_size: Optional[int] = Field(None, ge=1, le=50)
    max_team_size: Optional[int] = Field(None, ge=1, le=50)

    @field_validator("time")
    @classmethod
    def validate_time(cls, value):
        if value is None:
            return value
        cleaned = value.strip()
        if not TIME_RE.match(cleaned):
            raise ValueError("Please provide a valid time format (e.g. 14:30 or 2:30 PM)")
        return cleaned

    @field_validator("image", mode="before")
    @classmethod
    def validate_image(cls, value):
        return _normalize_optional_http_url(value, "image")

    @field_validator("department_code", mode="before")
    @classmethod
    def normalize_department_code(cls, value):
        cleaned = _strip_or_none(value)
        return cleaned.upper() if cleaned else None


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    category: EventCategoryEnum
    date: datetime
    time: str
    duration: Optional[int] = None
    location: str
    capacity: int
    fee: int
    details: Optional[str] = None
    image: Optional[str] = None
    department_code: Optional[str] = None
    registration_open: bool
    is_team_event: bool
    min_team_size: Optional[int] = None
    max_team_size: Optional[int] = None
    registration_count: int = 0
    seats_left: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PageMetadata(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class EventListResponse(BaseModel):
    data: List[EventResponse]
    metadata: PageMetadata


# Registration Schemas
class TeamMemberInput(BaseModel):
    name: str = Field("", max_length=255)
    usn: str = Field("", max_length=20)
    phone: str = Field("", max_length=20)


class TeamMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    usn: str
    phone: str
    is_leader: bool


class RegistrationRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)
    team_members: List[TeamMemberInput] = Field(default_factory=list)


class RegistrationCreatedResponse(BaseModel):
    success: bool = True
    id: str
    registration_id: str
    event_id: int
    payment_status: PaymentStatusEnum
    team_members: List[TeamMemberResponse] = Field(default_factory=list)
    message: str = "Successfully registered for the event"


class PaymentUpdateRequest(BaseModel):
    id: str = Field(..., min_length=1)
    payment_status: PaymentStatusEnum


class ActionResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


# Admin Query Schemas
class AdminRegistrationRow(BaseModel):
    id: str
    registration_id: str
    user_id: str
    user_name: Optional[str] = None
    user_email: str
    user_usn: Optional[str] = None
    user_college: Optional[str] = None
    user_phone: Optional[str] = None
    event_id: int
    event_title: str
    event_category: EventCategoryEnum
    event_date: datetime
    event_fee: int
    is_team_event: bool
    team_size: int
    payment_status: PaymentStatusEnum
    status: str
    created_at: datetime
    updated_at: datetime


class AdminRegistrationPage(BaseModel):
    items: List[AdminRegistrationRow]
    total: int
    page: int
    page_size: int
    total_pages: int


class AdminEventRow(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    category: EventCategoryEnum
    date: datetime
    time: str
    location: str
    capacity: int
    fee: int
    is_team_event: bool
    registration_open: bool
    registration_count: int


class AdminEventPage(BaseModel):
    items: List[AdminEventRow]
    total: int
    page: int
    page_size: int
    total_pages: int


# Analytics Schemas
class CategoryTotals(BaseModel):
    category: EventCategoryEnum
    total: int = 0
    paid: int = 0
    unpaid: int = 0
    refunded: int = 0
    revenue: int = 0


class TrendPoint(BaseModel):
    date: date
    count: int


class TopEvent(BaseModel):
    event_id: int
    title: str
    category: EventCategoryEnum
    registrations: int
    revenue: int


class AnalyticsResponse(BaseModel):
    by_category: List[CategoryTotals]
    trends: List[TrendPoint]
    top_events: List[TopEvent]


# Storage Schemas
class PresignRequest(BaseModel):
    filename: str = Field(..., min_length=1)
    content_type: str = Field(..., min_length=1)


class PresignResponse(BaseModel):
    upload_url: str
    public_url: str
    key: str
    content_type: str


class ImageUploadResponse(BaseModel):
    url: str


class AdminLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    admin_id: Optional[str] = None
    admin_email: str
    action: str
    method: Optional[str] = None
    path: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
