"""
Typed failures raised by the service layer.

Each exception carries a machine-readable ``code`` and a ``details`` dict with
enough context for a caller to explain the rejection without another request.
The API layer maps them to HTTP status codes.
"""

from typing import Any, Dict, List, Optional


class ClubError(Exception):
    """Base class for business-rule and store failures."""

    code = "club_error"
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class ValidationError(ClubError):
    """Input rejected before any write."""

    code = "validation_error"


class NotFoundError(ClubError):
    """A referenced entity does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=entity_id)


class CapacityExceededError(ClubError):
    """The practice has no free slot left."""

    code = "capacity_exceeded"

    def __init__(self, practice_id: int, current_count: int, capacity: int):
        super().__init__(
            f"Practice {practice_id} is full ({current_count}/{capacity})",
            practice_id=practice_id,
            current_count=current_count,
            capacity=capacity,
        )


class CapacityBelowEnrollmentsError(ClubError):
    """A practice's capacity cannot drop below its active enrollments."""

    code = "capacity_below_enrollments"

    def __init__(self, practice_id: int, current_count: int, capacity: int):
        super().__init__(
            f"Practice {practice_id} has {current_count} active enrollments; "
            f"capacity cannot be set to {capacity}",
            practice_id=practice_id,
            current_count=current_count,
            capacity=capacity,
        )


class SlotTakenError(ClubError):
    """The court is already booked at that date and time."""

    code = "slot_taken"


class InconsistentStateError(ClubError):
    """Stored data violates an invariant; needs an operator, never patched silently."""

    code = "inconsistent_state"


class TrainerStillAssignedError(ClubError):
    """A practice cannot be retired while trainers are assigned to it."""

    code = "trainer_still_assigned"

    def __init__(self, practice_id: int, trainers: List[Dict[str, Any]]):
        names = ", ".join(t["full_name"] for t in trainers)
        super().__init__(
            f"Practice {practice_id} still has assigned trainers: {names}",
            practice_id=practice_id,
            trainers=trainers,
        )


class PaymentDeclinedError(ClubError):
    """The payment gateway declined the charge. The attempt is still recorded."""

    code = "payment_declined"

    def __init__(self, message: str, payment_id: Optional[int] = None, **details: Any):
        super().__init__(message, payment_id=payment_id, **details)


class AlreadyPaidError(ClubError):
    """The obligation already has a PAID payment."""

    code = "already_paid"


class TransientStoreFailure(ClubError):
    """I/O-level store failure. The whole operation can be retried."""

    code = "transient_store_failure"
    retryable = True
