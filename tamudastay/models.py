import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean, Column, Date, ForeignKey, Index, Integer, JSON, Numeric, String, Text, TIMESTAMP,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


# --- ENUMS ---
class UserRole(str, PyEnum):
    ADMIN = "admin"
    STAFF = "staff"
    OWNER = "owner"
    USER = "user"


class UserStatus(str, PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PropertyStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DRAFT = "draft"


class BookingStatus(str, PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


# A user has at most one of these per property; new requests move it
OPEN_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class MessageStatus(str, PyEnum):
    NEW = "new"
    READ = "read"
    REPLIED = "replied"


class AuditSeverity(str, PyEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# --- User Model ---
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)
    status = Column(SQLEnum(UserStatus), default=UserStatus.ACTIVE, nullable=False)
    phone = Column(String(50), nullable=True)

    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow, nullable=False)

    properties = relationship("Property", back_populates="owner")
    bookings = relationship("Booking", back_populates="user")


# --- Property Model (rental listing) ---
class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)

    # Listing details
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    price_unit = Column(String(50), default="night", nullable=False)
    images = Column(JSON, nullable=True)
    location = Column(String(255), index=True, nullable=False)
    bedrooms = Column(Integer, nullable=False)
    bathrooms = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False)
    amenities = Column(JSON, nullable=True)
    featured = Column(Boolean, default=False, nullable=False)
    rating = Column(Numeric(3, 2), default=0, nullable=False)
    review_count = Column(Integer, default=0, nullable=False)

    # Review workflow. Public visibility needs APPROVED plus both flags.
    status = Column(SQLEnum(PropertyStatus), default=PropertyStatus.PENDING, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    is_visible = Column(Boolean, default=False, nullable=False)
    rejection_reason = Column(Text, nullable=True)
    approved_at = Column(TIMESTAMP, nullable=True)

    owner_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="properties")
    bookings = relationship("Booking", back_populates="property")

    __table_args__ = (
        Index("ix_properties_visibility", "status", "is_active", "is_visible"),
    )


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    property_id = Column(Integer, ForeignKey("properties.id"), index=True, nullable=False)
    # NULL for guest checkouts and host-blocked ranges
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)

    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(50), nullable=True)

    # Half-open stay: [check_in, check_out)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    guests = Column(Integer, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)

    status = Column(SQLEnum(BookingStatus), default=BookingStatus.PENDING, nullable=False)
    comments = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow, nullable=False)

    property = relationship("Property", back_populates="bookings")
    user = relationship("User", back_populates="bookings")

    # The availability scan filters on exactly these two columns
    __table_args__ = (
        Index("ix_bookings_property_status", "property_id", "status"),
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(SQLEnum(MessageStatus), default=MessageStatus.NEW, nullable=False)

    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)

    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    # Who performed the action; NULL for anonymous guest checkouts
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    action = Column(String(255), nullable=False)
    entity = Column(String(255), nullable=False)
    entity_id = Column(Integer, nullable=True)
    old_values = Column(Text, nullable=True)
    new_values = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    severity = Column(SQLEnum(AuditSeverity), default=AuditSeverity.INFO, nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True)

    # Status to track if the event has been sent
    status = Column(String(20), default="PENDING", nullable=False)

    # The Kafka topic to send the message to
    topic = Column(String(255), nullable=False)

    # The full JSON payload to be sent
    payload = Column(Text, nullable=False)

    created_at = Column(TIMESTAMP, default=utcnow)

    __table_args__ = (
        Index('ix_outbox_events_status', 'status'),
    )
