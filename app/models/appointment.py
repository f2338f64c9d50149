from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Time,
    CheckConstraint,
    Uuid,
)
from app.core.database import Base
import enum
import uuid
from datetime import datetime, timezone


class AppointmentStatus(enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    WAITING_APPROVAL = "waiting_approval"
    SUGGESTION_SENT = "suggestion_sent"
    REJECTED = "rejected"


# Statuses from which further lifecycle transitions are possible
ACTIVE_STATUSES = frozenset(
    {
        AppointmentStatus.PENDING,
        AppointmentStatus.ACCEPTED,
        AppointmentStatus.WAITING_APPROVAL,
        AppointmentStatus.SUGGESTION_SENT,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.REJECTED,
        AppointmentStatus.COMPLETED,
    }
)

# A finished visit keeps its historical slot
SLOT_HOLDING_STATUSES = ACTIVE_STATUSES | {AppointmentStatus.COMPLETED}


class BookingSource(enum.Enum):
    CLIENT = "client"
    OPERATOR = "operator"


class Appointment(Base):
    """A reservation of one fixed-length slot by a named client.

    Appointments are never deleted; cancelled, rejected and completed rows
    are kept for cooldown checks and client history.
    """

    __tablename__ = "appointments"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True)

    # Client
    client_name = Column(String(120), nullable=False)
    client_key = Column(String(120), nullable=False, index=True)
    phone = Column(String(50), nullable=True)

    # Scheduled slot
    date = Column(Date, nullable=False, index=True)
    time = Column(Time, nullable=False)

    # Status management
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value, index=True)
    previous_status = Column(String(20), nullable=True)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)

    # Operator proposal, present only while status is suggestion_sent
    suggestion_date = Column(Date, nullable=True)
    suggestion_time = Column(Time, nullable=True)

    # Booking details
    booking_source = Column(String(20), nullable=False, default=BookingSource.CLIENT.value)
    admin_note = Column(Text, nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)

    # Opaque push token; no notification is attempted when absent
    notification_target = Column(String(500), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("reschedule_count >= 0", name="check_non_negative_reschedule_count"),
        Index("ix_appointments_slot", "date", "time"),
    )

    @property
    def status_enum(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)

    @property
    def is_active(self) -> bool:
        """Check if appointment is in a non-terminal state."""
        return self.status_enum in ACTIVE_STATUSES

    @property
    def holds_slot(self) -> bool:
        return self.status_enum in SLOT_HOLDING_STATUSES

    @property
    def starts_at(self) -> datetime:
        """Naive local datetime of the scheduled slot."""
        return datetime.combine(self.date, self.time)

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, status='{self.status}', "
            f"date='{self.date}', time='{self.time}', "
            f"client='{self.client_name}')>"
        )
