"""
Pydantic models for API request/response validation.

Business rules (positive capacity, slot overlap, known cards) are enforced
by the services so that they surface as 400 responses with details; these
models only check shape.
"""

from datetime import date
from typing import Optional, List
from pydantic import BaseModel, Field


class DueBreakdown(BaseModel):
    base_price: int
    group_size: int
    discount_percent: int
    subtotal: int
    discount: int
    total: int


class DueResponse(BaseModel):
    """Monthly due of a member."""

    member_id: int
    plan_type: str
    responsible_member_id: int
    payable_by_head: bool
    amount: int
    breakdown: DueBreakdown


class FamilyMemberSummary(BaseModel):
    id: int
    full_name: str


class QuotaResponse(BaseModel):
    """What a member pays as monthly due, shaped by plan and family role."""

    member_id: int
    plan_type: str
    is_head: Optional[bool] = None
    base_price: int
    amount: int
    payable_by_head: bool = False
    head_member_id: Optional[int] = None
    head_name: Optional[str] = None
    group_size: Optional[int] = None
    discount_percent: Optional[int] = None
    subtotal: Optional[int] = None
    discount: Optional[int] = None
    family_members: Optional[List[FamilyMemberSummary]] = None


class DebtItem(BaseModel):
    """One obligation with its derived payment status."""

    id: str
    kind: str
    source_id: int
    concept: str
    amount: int
    due_date: Optional[str] = None
    status: str


class EnrollmentRequest(BaseModel):
    member_id: int


class EnrollmentResult(BaseModel):
    status: str
    enrollment_id: int
    member_id: int
    practice_id: int
    practice_name: str
    price: int
    active_count: int
    capacity: int


class WithdrawalResult(BaseModel):
    status: str
    enrollment_id: Optional[int] = None
    member_id: int
    practice_id: int


class TrainerSummary(BaseModel):
    id: int
    full_name: str


class RetirementResult(BaseModel):
    status: str
    state: str
    practice_id: int
    practice_name: str
    affected_members: List[int]


class SlotInput(BaseModel):
    """A weekly slot; times are HH:MM strings."""

    weekday: str
    start_time: str
    end_time: str


class PracticeCreate(BaseModel):
    name: str
    description: Optional[str] = None
    capacity: int
    price: int
    slots: List[SlotInput] = Field(default_factory=list)


class PracticeUpdate(BaseModel):
    """Partial update; omitted fields keep their value and slots replace the schedule."""

    name: Optional[str] = None
    description: Optional[str] = None
    capacity: Optional[int] = None
    price: Optional[int] = None
    slots: Optional[List[SlotInput]] = None


class PracticeResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    capacity: int
    price: int
    schedules: List[SlotInput]
    active_count: Optional[int] = None
    remaining_slots: Optional[int] = None
    trainers: Optional[List[TrainerSummary]] = None
    is_enrolled: Optional[bool] = None


class TrainerAssignmentResult(BaseModel):
    status: str
    practice_id: int
    trainer_id: int


class PaymentCreate(BaseModel):
    """Pay one obligation by card."""

    kind: str  # "due", "enrollment" or "reservation"
    obligation_id: int
    card_last4: str


class PaymentResponse(BaseModel):
    payment_id: int
    kind: str
    obligation_id: int
    amount: int
    status: str
    card_last4: Optional[str] = None
    paid_at: Optional[str] = None


class ReservationCreate(BaseModel):
    court_id: int
    member_id: int
    day: date
    start_time: str  # HH:MM


class ReservationResponse(BaseModel):
    id: int
    court_id: int
    member_id: int
    date: str
    start_time: str
    price: int


class AttendanceEntry(BaseModel):
    enrollment_id: int
    present: bool


class AttendanceRecordRequest(BaseModel):
    class_date: date
    entries: List[AttendanceEntry]


class AttendanceRecordResult(BaseModel):
    practice_id: int
    class_date: str
    recorded: int
    updated: int


class AttendanceSummaryResponse(BaseModel):
    enrollment_id: int
    member_id: int
    practice_id: Optional[int] = None
    active: bool
    classes: int
    present: int
    percentage: float
    records: List[dict]


class BaseDuePriceResponse(BaseModel):
    base_due_price: int


class BaseDuePriceUpdate(BaseModel):
    price: float


class NotificationLogResponse(BaseModel):
    id: int
    member_id: Optional[int] = None
    template: str
    to_address: Optional[str] = None
    subject: Optional[str] = None
    status: str
    error: Optional[str] = None
    created_at: Optional[str] = None
