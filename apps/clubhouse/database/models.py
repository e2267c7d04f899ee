"""
SQLAlchemy ORM models for the club ledger.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    Time,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from clubhouse.database.db import Base


class PlanType(str, enum.Enum):
    """Membership plan enum."""

    INDIVIDUAL = "INDIVIDUAL"
    FAMILY = "FAMILY"


class PaymentStatus(str, enum.Enum):
    """Payment status enum."""

    PENDING = "PENDING"
    PAID = "PAID"


class ObligationKind(str, enum.Enum):
    """What a payment settles."""

    DUE = "due"
    ENROLLMENT = "enrollment"
    RESERVATION = "reservation"


class Weekday(str, enum.Enum):
    """Weekday of a practice slot."""

    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


class NotificationTemplate(str, enum.Enum):
    """Notification template enum."""

    PRACTICE_RETIRED = "practice_retired"


class NotificationStatus(str, enum.Enum):
    """Outcome of a single notification attempt."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


def _in_enum(column: str, enum_cls) -> str:
    return f"{column} IN ({', '.join(repr(e.value) for e in enum_cls)})"


class Member(Base):
    """Club members."""

    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dni = Column(String(20), nullable=False, unique=True)  # National ID
    full_name = Column(String, nullable=False)
    email = Column(String(255), nullable=True)
    plan_type = Column(
        String(20),
        default=PlanType.INDIVIDUAL.value,
        nullable=False,
        server_default=PlanType.INDIVIDUAL.value,
    )
    family_group_id = Column(Integer, nullable=True)  # Shared by all members of a family plan
    head_of_family_id = Column(
        Integer, ForeignKey("members.id"), nullable=True
    )  # Null for the head of the group
    joined_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    enrollments = relationship("Enrollment", back_populates="member")
    reservations = relationship("Reservation", back_populates="member")
    dues = relationship("Due", back_populates="member")

    __table_args__ = (
        CheckConstraint(_in_enum("plan_type", PlanType), name="check_plan_type_valid"),
        Index("idx_members_family_group", "family_group_id"),
    )

    @property
    def is_family_head(self) -> bool:
        return self.plan_type == PlanType.FAMILY.value and self.head_of_family_id is None


class Trainer(Base):
    """Trainers (entrenadores)."""

    __tablename__ = "trainers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String, nullable=False)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    practice_links = relationship("PracticeTrainer", back_populates="trainer")


class Practice(Base):
    """Sports practices with a hard enrollment cap."""

    __tablename__ = "practices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)  # Monthly fee in whole currency units
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    schedules = relationship(
        "PracticeSchedule", back_populates="practice", order_by="PracticeSchedule.position"
    )
    trainer_links = relationship("PracticeTrainer", back_populates="practice")
    enrollments = relationship("Enrollment", back_populates="practice")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_practice_capacity_positive"),
        CheckConstraint("price > 0", name="check_practice_price_positive"),
    )


class PracticeSchedule(Base):
    """Weekly time slots of a practice."""

    __tablename__ = "practice_schedules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False)
    weekday = Column(String(10), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    position = Column(Integer, nullable=False, default=0)  # Order within the practice

    # Relationships
    practice = relationship("Practice", back_populates="schedules")

    __table_args__ = (
        CheckConstraint(_in_enum("weekday", Weekday), name="check_weekday_valid"),
        CheckConstraint("start_time < end_time", name="check_schedule_start_before_end"),
        Index("idx_practice_schedules_practice", "practice_id"),
    )


class PracticeTrainer(Base):
    """Join table (Trainer ↔ Practice)."""

    __tablename__ = "practice_trainers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False)
    trainer_id = Column(Integer, ForeignKey("trainers.id"), nullable=False)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    practice = relationship("Practice", back_populates="trainer_links")
    trainer = relationship("Trainer", back_populates="practice_links")

    __table_args__ = (
        UniqueConstraint("practice_id", "trainer_id"),
        Index("idx_practice_trainers_practice", "practice_id"),
    )


class Enrollment(Base):
    """
    A member's place in a practice.

    The (member, practice) pair is a stable identity: withdrawal flips
    ``active`` off and re-enrollment flips it back on. When a practice is
    retired its enrollments keep their history with a null practice_id.
    """

    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    practice_id = Column(
        Integer, ForeignKey("practices.id", ondelete="SET NULL"), nullable=True
    )
    active = Column(Boolean, default=True, nullable=False)
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    member = relationship("Member", back_populates="enrollments")
    practice = relationship("Practice", back_populates="enrollments")
    payments = relationship("Payment", back_populates="enrollment")
    attendances = relationship("Attendance", back_populates="enrollment")

    __table_args__ = (
        UniqueConstraint("member_id", "practice_id", name="uq_enrollments_member_practice"),
        Index("idx_enrollments_practice_active", "practice_id", "active"),
        Index("idx_enrollments_member", "member_id"),
    )


class Court(Base):
    """Bookable courts (canchas)."""

    __tablename__ = "courts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    price = Column(Integer, nullable=False)  # Fee per reservation
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    reservations = relationship("Reservation", back_populates="court")

    __table_args__ = (CheckConstraint("price >= 0", name="check_court_price_non_negative"),)


class Reservation(Base):
    """Court reservations (turnos). At most one per court, date and start time."""

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=False)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=True)  # Walk-ins have no owner
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    court = relationship("Court", back_populates="reservations")
    member = relationship("Member", back_populates="reservations")
    payments = relationship("Payment", back_populates="reservation")

    __table_args__ = (
        UniqueConstraint("court_id", "date", "start_time"),
        Index("idx_reservations_member", "member_id"),
    )


class Due(Base):
    """Monthly membership dues, billed to the responsible member."""

    __tablename__ = "dues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    member = relationship("Member", back_populates="dues")
    payments = relationship("Payment", back_populates="due")

    __table_args__ = (
        UniqueConstraint("member_id", "month", "year"),
        CheckConstraint("month >= 1 AND month <= 12", name="check_due_month_range"),
        CheckConstraint("amount >= 0", name="check_due_amount_non_negative"),
    )


class Payment(Base):
    """
    Append-only payment trail entry.

    Settles exactly one of a due, an enrollment or a reservation. An
    obligation is paid once any of its payments has status PAID.
    """

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    due_id = Column(Integer, ForeignKey("dues.id"), nullable=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id"), nullable=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)
    status = Column(
        String(20),
        default=PaymentStatus.PENDING.value,
        nullable=False,
        server_default=PaymentStatus.PENDING.value,
    )
    amount = Column(Integer, nullable=False)
    method = Column(String(30), nullable=False, default="card")
    card_last4 = Column(String(4), nullable=True)
    reference = Column(String(100), nullable=True)  # Gateway token, if any
    paid_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    due = relationship("Due", back_populates="payments")
    enrollment = relationship("Enrollment", back_populates="payments")
    reservation = relationship("Reservation", back_populates="payments")

    __table_args__ = (
        CheckConstraint(_in_enum("status", PaymentStatus), name="check_payment_status_valid"),
        CheckConstraint(
            "(CASE WHEN due_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN enrollment_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN reservation_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="check_payment_single_obligation",
        ),
        Index("idx_payments_due", "due_id"),
        Index("idx_payments_enrollment", "enrollment_id"),
        Index("idx_payments_reservation", "reservation_id"),
    )


class Attendance(Base):
    """Attendance of an enrolled member at one class date."""

    __tablename__ = "attendances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id"), nullable=False)
    class_date = Column(Date, nullable=False)
    present = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    enrollment = relationship("Enrollment", back_populates="attendances")

    __table_args__ = (UniqueConstraint("enrollment_id", "class_date"),)


class NotificationLog(Base):
    """One row per notification attempt, for operator visibility."""

    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    template = Column(String(50), nullable=False)  # NotificationTemplate enum value
    to_address = Column(String(255), nullable=True)
    subject = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False)  # NotificationStatus enum value
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(_in_enum("status", NotificationStatus), name="check_notification_status_valid"),
        Index("idx_notification_logs_member", "member_id", "created_at"),
    )


class Setting(Base):
    """Application configuration."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
