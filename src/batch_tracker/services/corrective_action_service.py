"""Corrective Action Service - intake and durable delivery queue.

A non-compliant completion issues a corrective-action request. The request
is first written to the ``corrective_action_requests`` table in the same
transaction as the completion, then handed to a CorrectiveActionIntake.
If the intake fails, the row stays PENDING and is retried later by
retry_pending_corrective_actions(); it is never dropped silently.

Intakes:
- DatabaseCorrectiveActionIntake (default): records a CorrectiveAction in
  the caller's session, so completion and corrective action commit together
- Any other CorrectiveActionIntake subclass (e.g. an HTTP client to a QMS)
  must raise SideEffectFailure when the request is not accepted
"""

import logging
from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import (
    CorrectiveAction,
    CorrectiveActionPriority,
    CorrectiveActionRequest,
    CorrectiveActionStatus,
    DeliveryStatus,
    DispatchOutcome,
    ProductionBatch,
)
from ..utils.constants import (
    CORRECTIVE_ACTION_MAX_ATTEMPTS,
    THERMAL_CCP_CODE,
    THERMAL_REASON_CODE,
    THERMAL_REASON_TEXT,
)
from ..utils.datetime_utils import as_naive_utc, utc_now
from .database import session_scope
from .exceptions import SideEffectFailure
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


@dataclass(frozen=True)
class CorrectiveActionPayload:
    """What the intake receives for one request."""

    idempotency_key: str
    batch_id: Optional[int]
    batch_number: str
    product_name: Optional[str]
    expected_value: float
    actual_value: float
    reason_code: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "batchNumber": self.batch_number,
            "expectedValue": self.expected_value,
            "actualValue": self.actual_value,
            "reasonCode": self.reason_code,
            "idempotencyKey": self.idempotency_key,
        }


class CorrectiveActionIntake(ABC):
    """Receiver of corrective-action requests.

    ``submit`` must be idempotent on ``payload.idempotency_key`` and must
    raise SideEffectFailure when the request is not accepted.
    """

    @abstractmethod
    def submit(self, payload: CorrectiveActionPayload, session: Session) -> int:
        """Deliver one request; returns the intake's reference id."""


class DatabaseCorrectiveActionIntake(CorrectiveActionIntake):
    """Record corrective actions in the local corrective_actions table."""

    def submit(self, payload: CorrectiveActionPayload, session: Session) -> int:
        existing = (
            session.query(CorrectiveAction)
            .filter(CorrectiveAction.idempotency_key == payload.idempotency_key)
            .first()
        )
        if existing is not None:
            return existing.id

        product = f" ({payload.product_name})" if payload.product_name else ""
        action = CorrectiveAction(
            title=f"Temperature non-compliance - batch {payload.batch_number}",
            description=(
                f"Batch {payload.batch_number}{product} did not reach the required "
                f"temperature. Measured: {payload.actual_value}°C "
                f"(required: >= {payload.expected_value}°C)"
            ),
            cause="Insufficient thermal processing",
            reason_code=payload.reason_code,
            status=CorrectiveActionStatus.OPEN.value,
            priority=CorrectiveActionPriority.HIGH.value,
            related_ccp=THERMAL_CCP_CODE,
            batch_id=payload.batch_id,
            expected_value=payload.expected_value,
            actual_value=payload.actual_value,
            idempotency_key=payload.idempotency_key,
        )
        session.add(action)
        session.flush()
        return action.id


def payload_for(request: CorrectiveActionRequest) -> CorrectiveActionPayload:
    return CorrectiveActionPayload(
        idempotency_key=request.idempotency_key,
        batch_id=request.batch_id,
        batch_number=request.batch_number,
        product_name=request.product_name,
        expected_value=request.expected_value,
        actual_value=request.actual_value,
        reason_code=request.reason_code,
    )


def enqueue_request(
    batch: ProductionBatch,
    expected_value: float,
    actual_value: float,
    session: Session,
) -> CorrectiveActionRequest:
    """
    Write a thermal non-compliance request for a just-completed batch.

    The idempotency key is ``<batch uuid>:<batch version>``, unique per
    completion, so a completion issues at most one request.
    """
    key = f"{batch.uuid}:{batch.version_id}"
    request = (
        session.query(CorrectiveActionRequest)
        .filter(CorrectiveActionRequest.idempotency_key == key)
        .first()
    )
    if request is not None:
        return request

    request = CorrectiveActionRequest(
        idempotency_key=key,
        batch_id=batch.id,
        batch_number=batch.batch_number,
        product_name=batch.product.name if batch.product else None,
        expected_value=expected_value,
        actual_value=actual_value,
        reason_code=THERMAL_REASON_CODE,
        delivery_status=DeliveryStatus.PENDING.value,
        attempts=0,
    )
    session.add(request)
    session.flush()
    log_operation(
        logger,
        "enqueue_corrective_action",
        THERMAL_REASON_TEXT,
        level=logging.WARNING,
        request_id=request.id,
        batch_id=batch.id,
        batch_number=batch.batch_number,
        expected_value=expected_value,
        actual_value=actual_value,
    )
    return request


def dispatch_request(
    request: CorrectiveActionRequest,
    intake: Optional[CorrectiveActionIntake],
    session: Session,
) -> Tuple[DispatchOutcome, Optional[str]]:
    """
    Try to deliver one queued request.

    Returns:
        (DELIVERED, None) on success, (QUEUED, error message) when the intake
        failed; the request then stays PENDING, or becomes FAILED once it
        has used CORRECTIVE_ACTION_MAX_ATTEMPTS attempts.
    """
    intake = intake or DatabaseCorrectiveActionIntake()
    request.attempts += 1

    try:
        reference = intake.submit(payload_for(request), session)
    except SideEffectFailure as e:
        request.last_error = str(e)
        if request.attempts >= CORRECTIVE_ACTION_MAX_ATTEMPTS:
            request.delivery_status = DeliveryStatus.FAILED.value
        session.flush()
        log_operation(
            logger,
            "dispatch_corrective_action",
            request.delivery_status.lower(),
            level=logging.ERROR,
            request_id=request.id,
            batch_number=request.batch_number,
            attempts=request.attempts,
            error=str(e),
        )
        return DispatchOutcome.QUEUED, str(e)

    request.delivery_status = DeliveryStatus.DELIVERED.value
    request.delivered_at = as_naive_utc(utc_now())
    request.corrective_action_id = reference
    request.last_error = None
    session.flush()
    log_operation(
        logger,
        "dispatch_corrective_action",
        "delivered",
        request_id=request.id,
        batch_number=request.batch_number,
        corrective_action_id=reference,
    )
    return DispatchOutcome.DELIVERED, None


def retry_pending_corrective_actions(
    intake: Optional[CorrectiveActionIntake] = None,
    *,
    limit: Optional[int] = None,
    session: Optional[Session] = None,
) -> Dict[str, int]:
    """
    Re-attempt delivery of every PENDING request, oldest first.

    Args:
        intake: Intake to deliver to (defaults to the database intake)
        limit: Maximum number of requests to attempt
        session: Optional database session

    Returns:
        Counts: attempted, delivered, pending, failed
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        query = (
            session.query(CorrectiveActionRequest)
            .filter(CorrectiveActionRequest.delivery_status == DeliveryStatus.PENDING.value)
            .order_by(CorrectiveActionRequest.id)
        )
        if limit is not None:
            query = query.limit(limit)

        counts = {"attempted": 0, "delivered": 0, "pending": 0, "failed": 0}
        for request in query.all():
            counts["attempted"] += 1
            outcome, _error = dispatch_request(request, intake, session)
            if outcome == DispatchOutcome.DELIVERED:
                counts["delivered"] += 1
            elif request.delivery_status == DeliveryStatus.FAILED.value:
                counts["failed"] += 1
            else:
                counts["pending"] += 1

        log_operation(logger, "retry_pending_corrective_actions", "done", **counts)
        return counts


def list_pending_requests(session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """Requests not yet accepted by the intake (PENDING and FAILED)."""
    if session is not None:
        return _list_pending_requests_impl(session)
    with session_scope() as session:
        return _list_pending_requests_impl(session)


def _list_pending_requests_impl(session: Session) -> List[Dict[str, Any]]:
    requests = (
        session.query(CorrectiveActionRequest)
        .filter(CorrectiveActionRequest.delivery_status != DeliveryStatus.DELIVERED.value)
        .order_by(CorrectiveActionRequest.id)
        .all()
    )
    return [request.to_dict() for request in requests]


def list_corrective_actions(
    batch_id: Optional[int] = None, session: Optional[Session] = None
) -> List[Dict[str, Any]]:
    """Corrective actions recorded by the database intake, optionally for one batch."""
    if session is not None:
        return _list_corrective_actions_impl(batch_id, session)
    with session_scope() as session:
        return _list_corrective_actions_impl(batch_id, session)


def _list_corrective_actions_impl(batch_id: Optional[int], session: Session) -> List[Dict[str, Any]]:
    query = session.query(CorrectiveAction)
    if batch_id is not None:
        query = query.filter(CorrectiveAction.batch_id == batch_id)
    return [action.to_dict() for action in query.order_by(CorrectiveAction.id).all()]
