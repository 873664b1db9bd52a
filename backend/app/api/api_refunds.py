from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
import logging

from ..database import get_db
from .. import models
from ..models import RefundStatus, TransactionState, TransactionType
from ..schemas.admin import RefundRequestResponse
from ..schemas.payment import RefundRequestCreate
from ..services.fees import to_cents
from ..utils.errors import error_response, forbidden, not_found
from .dependencies import get_current_active_user

router = APIRouter(tags=["refunds"])
logger = logging.getLogger(__name__)

REFUNDABLE_TYPES = (
    TransactionType.TICKET_PURCHASE,
    TransactionType.BOOKING_PAYMENT,
)
REFUNDABLE_STATES = (
    TransactionState.HELD,
    TransactionState.RELEASED,
    TransactionState.SETTLED,
    TransactionState.PARTIAL_REFUND,
)


@router.post("", response_model=RefundRequestResponse, status_code=status.HTTP_201_CREATED)
def request_refund(
    payload: RefundRequestCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    txn = db.get(models.Transaction, payload.transaction_id)
    if txn is None:
        raise not_found("Transaction", "transaction_id")
    if txn.payer_id != current_user.id:
        raise forbidden("You can only request refunds for your own payments")
    if txn.type not in REFUNDABLE_TYPES or txn.state not in REFUNDABLE_STATES:
        raise error_response(
            "This transaction cannot be refunded",
            {"transaction_id": txn.state.value},
            status.HTTP_400_BAD_REQUEST,
        )
    remaining = int(txn.amount) - int(txn.refund_amount or 0)
    amount = to_cents(payload.amount) if payload.amount is not None else remaining
    if amount > remaining:
        raise error_response(
            "Refund amount exceeds what is left of the original payment",
            {"amount": "too_large"},
            status.HTTP_400_BAD_REQUEST,
        )
    open_request = (
        db.query(models.RefundRequest.id)
        .filter(
            models.RefundRequest.transaction_id == txn.id,
            models.RefundRequest.status.in_([RefundStatus.PENDING, RefundStatus.APPROVED]),
        )
        .first()
    )
    if open_request:
        raise error_response(
            "A refund request for this payment is already open",
            {"transaction_id": "duplicate"},
            status.HTTP_409_CONFLICT,
        )

    refund = models.RefundRequest(
        user_id=current_user.id,
        transaction_id=txn.id,
        booking_id=payload.booking_id or txn.booking_id,
        amount=amount,
        reason=payload.reason.strip(),
        refund_method=payload.refund_method,
        status=RefundStatus.PENDING,
    )
    db.add(refund)
    db.commit()
    db.refresh(refund)
    logger.info("Refund request %s for %s amount=%s", refund.id, txn.reference, amount)
    return refund


@router.get("", response_model=List[RefundRequestResponse])
def list_my_refunds(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    return (
        db.query(models.RefundRequest)
        .filter(models.RefundRequest.user_id == current_user.id)
        .order_by(models.RefundRequest.created_at.desc(), models.RefundRequest.id.desc())
        .all()
    )
