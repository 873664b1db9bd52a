from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
import logging

from ..database import atomic, get_db
from .. import models
from ..models import PayoutStatus
from ..schemas.admin import PayoutRequestResponse
from ..schemas.payment import PayoutRequestCreate
from ..services import paystack
from ..services.fees import MINIMUM_WITHDRAWAL, format_zar, to_cents
from ..utils.errors import error_response
from .dependencies import get_current_active_user

router = APIRouter(tags=["payouts"])
logger = logging.getLogger(__name__)


@router.post("", response_model=PayoutRequestResponse, status_code=status.HTTP_201_CREATED)
def request_payout(
    payload: PayoutRequestCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    """Queue a manual payout for admin approval.

    The amount leaves ``wallet_balance`` and sits in ``pending_balance``
    until an admin completes or rejects the request.
    """
    amount = to_cents(payload.amount)
    if amount < MINIMUM_WITHDRAWAL:
        raise error_response(
            f"Minimum payout is {format_zar(MINIMUM_WITHDRAWAL)}",
            {"amount": "below_minimum"},
            status.HTTP_400_BAD_REQUEST,
        )
    account_number = payload.account_number.strip()
    if not account_number.isdigit():
        raise error_response("Invalid account number", {"account_number": "invalid"}, status.HTTP_400_BAD_REQUEST)

    with atomic(db):
        db.refresh(current_user)
        if amount > int(current_user.wallet_balance or 0):
            raise error_response(
                "Insufficient balance",
                {"amount": "insufficient_balance"},
                status.HTTP_400_BAD_REQUEST,
            )
        current_user.wallet_balance = int(current_user.wallet_balance or 0) - amount
        current_user.pending_balance = int(current_user.pending_balance or 0) + amount
        payout = models.PayoutRequest(
            user_id=current_user.id,
            amount=amount,
            reference=paystack.generate_reference("PO"),
            bank_name=payload.bank_name.strip(),
            account_number_last4=account_number[-4:],
            account_holder=payload.account_holder.strip(),
            status=PayoutStatus.PENDING,
        )
        db.add(payout)
    db.refresh(payout)
    logger.info(
        "Payout request %s reference=%s amount=%s user_id=%s",
        payout.id,
        payout.reference,
        amount,
        current_user.id,
    )
    return payout


@router.get("", response_model=List[PayoutRequestResponse])
def list_my_payouts(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    return (
        db.query(models.PayoutRequest)
        .filter(models.PayoutRequest.user_id == current_user.id)
        .order_by(models.PayoutRequest.created_at.desc(), models.PayoutRequest.id.desc())
        .all()
    )
