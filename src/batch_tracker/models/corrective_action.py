"""
Corrective action models.

- CorrectiveAction: the record held by the corrective-action intake
- CorrectiveActionRequest: durable queue row written in the same
  transaction as a non-compliant completion, retried until the intake
  accepts it
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Text,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import CorrectiveActionPriority, CorrectiveActionStatus, DeliveryStatus


class CorrectiveAction(BaseModel):
    """
    CorrectiveAction model.

    Attributes:
        title: Short title
        description: What went wrong
        cause: Cause text
        action_taken: Remedy, filled in by the people handling it
        reason_code: Machine-readable reason
        status: CorrectiveActionStatus value
        priority: CorrectiveActionPriority value
        related_ccp: HACCP critical control point code
        batch_id: Production batch concerned (SET NULL on batch delete)
        expected_value / actual_value: Limit and measurement
        idempotency_key: Key of the request that created the action
    """

    __tablename__ = "corrective_actions"

    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    cause = Column(Text, nullable=True)
    action_taken = Column(Text, nullable=True)
    reason_code = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=CorrectiveActionStatus.OPEN.value)
    priority = Column(
        String(20), nullable=False, default=CorrectiveActionPriority.MEDIUM.value
    )
    related_ccp = Column(String(20), nullable=True)

    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    expected_value = Column(Float, nullable=True)
    actual_value = Column(Float, nullable=True)
    idempotency_key = Column(String(100), nullable=True, unique=True)

    due_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_corrective_action_status", "status"),
        Index("idx_corrective_action_priority", "priority"),
    )


class CorrectiveActionRequest(BaseModel):
    """
    CorrectiveActionRequest model (outbox row).

    Attributes:
        idempotency_key: ``<batch uuid>:<batch version>`` of the completion
        batch_id: Production batch concerned (SET NULL on batch delete)
        batch_number: Batch number, kept for delivery after batch deletion
        expected_value: Required temperature
        actual_value: Measured temperature
        reason_code: Reason code
        delivery_status: DeliveryStatus value
        attempts: Delivery attempts so far
        last_error: Message of the last failed attempt
        delivered_at: When the intake accepted the request
        corrective_action_id: Intake reference once delivered
    """

    __tablename__ = "corrective_action_requests"

    idempotency_key = Column(String(100), nullable=False, unique=True)
    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    batch_number = Column(String(50), nullable=False)
    product_name = Column(String(200), nullable=True)
    expected_value = Column(Float, nullable=False)
    actual_value = Column(Float, nullable=False)
    reason_code = Column(String(50), nullable=False)

    delivery_status = Column(String(20), nullable=False, default=DeliveryStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    corrective_action_id = Column(Integer, nullable=True)

    batch = relationship("ProductionBatch")

    __table_args__ = (Index("idx_corrective_action_request_status", "delivery_status"),)

    def __repr__(self) -> str:
        return (
            f"CorrectiveActionRequest(id={self.id}, batch_number='{self.batch_number}', "
            f"status={self.delivery_status}, attempts={self.attempts})"
        )
