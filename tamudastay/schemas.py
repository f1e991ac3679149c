import datetime
import re
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import (
    AuditSeverity, BookingStatus, MessageStatus, PropertyStatus, UserRole, UserStatus,
)


class CamelModel(BaseModel):
    """Base for every request/response body; the API speaks camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Users & auth ---

class UserBase(CamelModel):
    username: str = Field(min_length=3)
    name: str = Field(min_length=2)
    email: Optional[str] = None
    phone: Optional[str] = None


def check_password_policy(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", value):
        raise ValueError("Password must contain at least one special character")
    return value


def check_email_shape(value: Optional[str]) -> Optional[str]:
    if value is not None and not re.fullmatch(r"[^@\s]+@[^@\s]+\.[^@\s]+", value):
        raise ValueError("Please enter a valid email address")
    return value


class UserCreate(UserBase):
    password: str
    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE

    password_policy = field_validator("password")(check_password_policy)
    email_shape = field_validator("email")(check_email_shape)


class UserUpdate(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    # Only admins may change these two
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None

    password_policy = field_validator("password")(check_password_policy)
    email_shape = field_validator("email")(check_email_shape)


class UserRead(CamelModel):
    id: int
    username: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole
    status: UserStatus
    created_at: datetime.datetime
    updated_at: datetime.datetime


class LoginRequest(CamelModel):
    username: str
    password: str


class LoginResponse(CamelModel):
    user: UserRead
    access_token: str
    token_type: str = "bearer"


# --- Properties ---

class PropertyBase(CamelModel):
    title: str
    description: str
    price: Decimal = Field(ge=0)
    price_unit: str = "night"
    images: List[str] = []
    location: str
    bedrooms: int = Field(ge=0)
    bathrooms: int = Field(ge=0)
    capacity: int = Field(ge=1)
    amenities: List[str] = []
    featured: bool = False


class PropertyCreate(PropertyBase):
    pass


class PropertyUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    price_unit: Optional[str] = None
    images: Optional[List[str]] = None
    location: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    capacity: Optional[int] = None
    amenities: Optional[List[str]] = None
    featured: Optional[bool] = None


class PropertyRead(PropertyBase):
    id: int
    owner_id: Optional[int] = None
    images: Optional[List[str]] = None
    amenities: Optional[List[str]] = None
    rating: Decimal = Decimal("0")
    review_count: int = 0
    status: PropertyStatus
    is_active: bool
    is_visible: bool
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime
    updated_at: datetime.datetime


class PropertyRejection(CamelModel):
    rejection_reason: Optional[str] = None


# --- Bookings ---

class BookedDateRange(CamelModel):
    check_in: datetime.date
    check_out: datetime.date


class AvailabilityResponse(CamelModel):
    available: bool
    booked_dates: Optional[List[BookedDateRange]] = None
    message: Optional[str] = None


class BookingCreate(CamelModel):
    property_id: int = Field(ge=1)
    user_id: Optional[int] = None
    guest_name: str
    guest_email: str
    guest_phone: Optional[str] = None
    check_in: datetime.date
    check_out: datetime.date
    guests: int
    amount: Decimal
    comments: Optional[str] = None


class BookingUpdate(CamelModel):
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    check_in: Optional[datetime.date] = None
    check_out: Optional[datetime.date] = None
    guests: Optional[int] = None
    amount: Optional[Decimal] = None
    comments: Optional[str] = None


class BookingStatusUpdate(CamelModel):
    status: BookingStatus


class BlockDatesRequest(CamelModel):
    check_in: datetime.date
    check_out: datetime.date
    reason: Optional[str] = None


class BookingRead(CamelModel):
    id: int
    property_id: int
    user_id: Optional[int] = None
    guest_name: str
    guest_email: str
    guest_phone: Optional[str] = None
    check_in: datetime.date
    check_out: datetime.date
    guests: int
    amount: Decimal
    status: BookingStatus
    comments: Optional[str] = None
    created_at: datetime.datetime
    updated_at: datetime.datetime


# --- Messages, notifications, audit ---

class MessageCreate(CamelModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1)


class MessageUpdate(CamelModel):
    status: MessageStatus


class MessageRead(MessageCreate):
    id: int
    status: MessageStatus
    created_at: datetime.datetime
    updated_at: datetime.datetime


class NotificationRead(CamelModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    property_id: Optional[int] = None
    is_read: bool
    created_at: datetime.datetime


class AuditLogRead(CamelModel):
    id: int
    user_id: Optional[int] = None
    action: str
    entity: str
    entity_id: Optional[int] = None
    old_values: Optional[str] = None
    new_values: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    severity: AuditSeverity
    description: Optional[str] = None
    created_at: datetime.datetime
