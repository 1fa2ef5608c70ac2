"""
Enumerations for batch tracking.

This module contains enums used across the batch models:
- BatchStatus: Lifecycle status of a production batch
- SourceKind: Discriminant of a consumption entry's upstream source
- ManualCategory: What kind of material an unregistered source describes
- CuringStatus: Status of an intermediate (curing) batch
- TimelineEventType: Provenance timeline event kinds
- CorrectiveActionStatus / CorrectiveActionPriority: Corrective action intake
- DeliveryStatus: Corrective-action request queue state
- DispatchOutcome: What happened to the side effect of a completion
"""

from enum import Enum


class BatchStatus(str, Enum):
    """
    Production batch lifecycle status.

    Values:
        IN_PRODUCTION: Initial state, no completion data
        COMPLETED: Thermal process finished, compliance decided
        RELEASED: Released for sale
        BLOCKED: Held, not to be shipped
        QUARANTINE: Isolated pending investigation
    """

    IN_PRODUCTION = "IN_PRODUCTION"
    COMPLETED = "COMPLETED"
    RELEASED = "RELEASED"
    BLOCKED = "BLOCKED"
    QUARANTINE = "QUARANTINE"


class SourceKind(str, Enum):
    """Which upstream record a consumption entry refers to."""

    RECEPTION = "RECEPTION"
    CURING_BATCH = "CURING_BATCH"
    MATERIAL_RECEIPT = "MATERIAL_RECEIPT"
    MANUAL = "MANUAL"


class ManualCategory(str, Enum):
    """Category of a manual/unregistered source."""

    RAW_MATERIAL = "RAW_MATERIAL"
    MATERIAL = "MATERIAL"


class CuringStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TimelineEventType(str, Enum):
    """
    Provenance timeline event kinds.

    Declaration order is the tie-break precedence when two events share a
    timestamp.
    """

    RECEPTION = "RECEPTION"
    CURING = "CURING"
    MATERIAL = "MATERIAL"
    PRODUCTION = "PRODUCTION"

    @property
    def precedence(self) -> int:
        return list(TimelineEventType).index(self)


class CorrectiveActionStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"


class CorrectiveActionPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class DeliveryStatus(str, Enum):
    """
    Delivery state of a queued corrective-action request.

    Values:
        PENDING: Not yet accepted by the intake (will be retried)
        DELIVERED: Accepted by the intake
        FAILED: Gave up after the maximum number of attempts
    """

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class DispatchOutcome(str, Enum):
    """
    Result of the corrective-action side effect of a batch completion.

    Values:
        NOT_REQUIRED: Batch was compliant, nothing issued
        DELIVERED: Corrective action accepted by the intake
        QUEUED: Intake failed; request is stored for retry
    """

    NOT_REQUIRED = "NOT_REQUIRED"
    DELIVERED = "DELIVERED"
    QUEUED = "QUEUED"
