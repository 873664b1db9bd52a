from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
import logging
import re

from .. import models
from ..core.config import settings
from ..database import atomic, get_db
from ..models import (
    BookingState,
    EventState,
    NotificationType,
    TransactionState,
    TransactionType,
    User,
)
from ..schemas.payment import (
    BookingPaymentRequest,
    DepositRequest,
    TicketPurchaseRequest,
    VerifyAccountRequest,
    WithdrawRequest,
)
from ..services import paystack
from ..services.fees import (
    MINIMUM_DEPOSIT,
    MINIMUM_WITHDRAWAL,
    calculate_booking_commission,
    calculate_deposit_fee,
    calculate_withdrawal_fee,
    format_zar,
    ticket_sale_breakdown,
    to_cents,
    to_rands,
)
from ..services.payments import credit_wallet, debit_wallet
from ..services.state_machine import TRANSACTION_TRANSITIONS, transition
from ..utils.errors import error_response, forbidden, not_found
from ..utils.notifications import notify, render
from ..utils import redis_cache
from .dependencies import get_current_active_user, get_optional_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])

ACCOUNT_NUMBER_RE = re.compile(r"^\d{10}$")

FALLBACK_BANKS = [
    {"code": "632005", "name": "Absa"},
    {"code": "470010", "name": "Capitec"},
    {"code": "580105", "name": "First National Bank (FNB)"},
    {"code": "198765", "name": "Nedbank"},
    {"code": "051001", "name": "Standard Bank"},
    {"code": "679000", "name": "TymeBank"},
    {"code": "460005", "name": "African Bank"},
    {"code": "462005", "name": "Bidvest Bank"},
    {"code": "430000", "name": "Discovery Bank"},
    {"code": "678910", "name": "Bank Zero"},
]


def _callback_url(kind: str) -> str:
    return f"{settings.APP_URL}/payments/callback?type={kind}"


def _start_checkout(
    db: Session,
    user: User,
    txn: models.Transaction,
    kind: str,
    metadata: dict,
) -> dict:
    """Persist ``txn`` and open a Paystack checkout for it in one unit."""
    try:
        with atomic(db):
            db.add(txn)
            db.flush()
            data = paystack.initialize_payment(
                email=user.email,
                amount=txn.amount,
                reference=txn.reference,
                callback_url=_callback_url(kind),
                metadata={"transaction_id": txn.id, "user_id": user.id, "user_name": user.full_name, **metadata},
            )
            txn.gateway_reference = data.get("access_code")
    except paystack.PaystackError as exc:
        raise error_response(
            "Payment initialization failed",
            {"gateway": exc.message},
            status.HTTP_502_BAD_GATEWAY,
        )
    logger.info(
        "Initialized %s checkout reference=%s amount=%s user_id=%s",
        txn.type.value,
        txn.reference,
        txn.amount,
        user.id,
    )
    return data


@router.post("/deposit")
def deposit(
    payload: DepositRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Top up the caller's wallet; the fee is added on top of ``amount``."""
    amount = to_cents(payload.amount or 0)
    if amount < MINIMUM_DEPOSIT:
        raise error_response(
            f"Minimum deposit is {format_zar(MINIMUM_DEPOSIT)}",
            {"amount": "too_small"},
            status.HTTP_400_BAD_REQUEST,
        )
    if not current_user.email:
        raise error_response("User profile not found", {"email": "required"}, status.HTTP_400_BAD_REQUEST)

    fee = calculate_deposit_fee(amount)
    txn = models.Transaction(
        reference=paystack.generate_reference("DEP"),
        type=TransactionType.WALLET_DEPOSIT,
        state=TransactionState.INITIATED,
        amount=fee["total_to_pay"],
        platform_fee=fee["fee"],
        net_amount=amount,
        currency=settings.DEFAULT_CURRENCY,
        payer_id=current_user.id,
        recipient_id=current_user.id,
        recipient_type="user",
        gateway_provider="paystack",
        meta={
            "deposit_amount_cents": amount,
            "fee_cents": fee["fee"],
            "total_cents": fee["total_to_pay"],
        },
    )
    data = _start_checkout(
        db,
        current_user,
        txn,
        "deposit",
        {"deposit_amount": amount, "fee": fee["fee"], "type": TransactionType.WALLET_DEPOSIT.value},
    )
    return {
        "success": True,
        "data": {
            "authorization_url": data.get("authorization_url"),
            "access_code": data.get("access_code"),
            "reference": txn.reference,
            "transaction_id": txn.id,
            "breakdown": {
                "deposit_amount": to_rands(amount),
                "fee": to_rands(fee["fee"]),
                "total": to_rands(fee["total_to_pay"]),
            },
        },
    }


@router.post("/withdraw")
def withdraw(
    payload: WithdrawRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Send wallet funds to a bank account via a Paystack transfer.

    The wallet is debited before the transfer starts; when the gateway
    refuses the transfer the debit is returned and the transaction fails.
    """
    missing = {
        field: "required"
        for field in ("amount", "bank_code", "account_number", "account_name")
        if not getattr(payload, field)
    }
    if missing:
        raise error_response("Missing required fields", missing, status.HTTP_400_BAD_REQUEST)

    amount = to_cents(payload.amount)
    if amount < MINIMUM_WITHDRAWAL:
        raise error_response(
            f"Minimum withdrawal is {format_zar(MINIMUM_WITHDRAWAL)}",
            {"amount": "too_small"},
            status.HTTP_400_BAD_REQUEST,
        )
    if amount > int(current_user.wallet_balance or 0):
        raise error_response("Insufficient balance", {"amount": "insufficient_funds"}, status.HTTP_400_BAD_REQUEST)

    fee = calculate_withdrawal_fee(amount)
    try:
        recipient = paystack.create_transfer_recipient(
            name=payload.account_name,
            account_number=payload.account_number,
            bank_code=payload.bank_code,
        )
    except paystack.PaystackError as exc:
        raise error_response("Failed to create transfer recipient", {"gateway": exc.message}, status.HTTP_400_BAD_REQUEST)
    recipient_code = recipient.get("recipient_code")

    last4 = payload.account_number[-4:]
    txn = models.Transaction(
        reference=paystack.generate_reference("WTH"),
        type=TransactionType.WITHDRAWAL,
        state=TransactionState.INITIATED,
        amount=amount,
        platform_fee=fee["fee"],
        net_amount=fee["net_amount"],
        currency=settings.DEFAULT_CURRENCY,
        payer_id=current_user.id,
        recipient_id=current_user.id,
        recipient_type="user",
        gateway_provider="paystack",
        meta={
            "bank_code": payload.bank_code,
            "account_last4": last4,
            "account_name": payload.account_name,
            "recipient_code": recipient_code,
        },
    )
    with atomic(db):
        db.add(txn)
        debit_wallet(current_user, amount)
        current_user.bank_code = payload.bank_code
        current_user.account_last4 = last4
        current_user.paystack_recipient_code = recipient_code

    try:
        transfer = paystack.initiate_transfer(
            amount=fee["net_amount"],
            recipient_code=recipient_code,
            reference=txn.reference,
            reason=f"{settings.APP_NAME} wallet withdrawal",
        )
    except paystack.PaystackError as exc:
        with atomic(db):
            credit_wallet(current_user, amount)
            transition(txn, TRANSACTION_TRANSITIONS, TransactionState.FAILED, kind="transaction")
            txn.failure_reason = exc.message
        logger.error("Withdrawal %s transfer failed: %s", txn.reference, exc.message)
        raise error_response("Transfer failed", {"gateway": exc.message}, status.HTTP_502_BAD_GATEWAY)

    with atomic(db):
        transition(txn, TRANSACTION_TRANSITIONS, TransactionState.PROCESSING, kind="transaction")
        txn.gateway_reference = transfer.get("transfer_code")
        txn.gateway_response = transfer
    logger.info("Withdrawal %s processing amount=%s net=%s", txn.reference, amount, fee["net_amount"])
    notify(
        db,
        current_user,
        NotificationType.PAYOUT_SENT,
        render("payout_sent", format_zar(fee["net_amount"])),
        "/wallet",
        transaction_id=txn.id,
    )
    return {
        "success": True,
        "data": {
            "reference": txn.reference,
            "transaction_id": txn.id,
            "status": txn.state.value,
            "breakdown": {
                "amount": to_rands(amount),
                "fee": to_rands(fee["fee"]),
                "net_amount": to_rands(fee["net_amount"]),
            },
            "new_balance": to_rands(current_user.wallet_balance),
        },
    }


@router.get("/banks")
def list_banks():
    cached = redis_cache.get_cached_banks()
    if cached:
        return {"banks": cached}
    try:
        banks = [{"code": b["code"], "name": b["name"]} for b in paystack.list_banks()]
    except paystack.PaystackError as exc:
        logger.warning("Falling back to built-in bank list: %s", exc.message)
        return {"banks": FALLBACK_BANKS}
    redis_cache.cache_banks(banks)
    return {"banks": banks}


@router.post("/verify-account")
def verify_account(payload: VerifyAccountRequest):
    if not payload.account_number or not payload.bank_code:
        raise error_response(
            "Account number and bank code are required",
            {
                k: "required"
                for k in ("account_number", "bank_code")
                if not getattr(payload, k)
            },
            status.HTTP_400_BAD_REQUEST,
        )
    if not ACCOUNT_NUMBER_RE.match(payload.account_number):
        raise error_response(
            "Account number must be 10 digits",
            {"account_number": "invalid"},
            status.HTTP_400_BAD_REQUEST,
        )
    try:
        data = paystack.resolve_account(account_number=payload.account_number, bank_code=payload.bank_code)
    except paystack.PaystackError as exc:
        raise error_response(
            exc.message or "Could not verify account",
            {"account_number": "unresolved"},
            status.HTTP_400_BAD_REQUEST,
        )
    return {
        "success": True,
        "data": {
            "account_name": data.get("account_name"),
            "account_number": data.get("account_number"),
            "bank_id": data.get("bank_id"),
        },
    }


@router.get("/verify")
def verify(
    reference: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    if not reference:
        raise error_response("Payment reference is required", {"reference": "required"}, status.HTTP_400_BAD_REQUEST)
    try:
        data = paystack.verify_payment(reference)
    except paystack.PaystackError as exc:
        raise error_response(
            "Payment verification failed with Paystack",
            {"gateway": exc.message},
            status.HTTP_400_BAD_REQUEST,
        )

    txn = db.query(models.Transaction).filter(models.Transaction.reference == reference).first()
    if current_user and txn and txn.payer_id != current_user.id:
        raise forbidden("Unauthorized")

    metadata = data.get("metadata") or {}
    payment = {
        "status": data.get("status"),
        "reference": reference,
        "amount": data.get("amount"),
        "type": metadata.get("type") or (txn.type.value if txn else None),
    }
    if txn and txn.type == TransactionType.TICKET_PURCHASE:
        payment["event_name"] = txn.event.title if txn.event else None
        payment["quantity"] = metadata.get("quantity") or (txn.meta or {}).get("quantity")
        if data.get("status") == "success":
            payment["ticket_codes"] = [t.ticket_code for t in txn.tickets]
    return {"payment": payment}


@router.post("/ticket")
def buy_ticket(
    payload: TicketPurchaseRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    event = db.get(models.Event, payload.event_id)
    if event is None:
        raise not_found("Event", "event_id")
    if event.state not in (EventState.PUBLISHED, EventState.LOCKED):
        raise error_response(
            "Event is not available for ticket sales",
            {"event_id": "not_on_sale"},
            status.HTTP_400_BAD_REQUEST,
        )
    quantity = payload.quantity
    if (event.tickets_sold or 0) + quantity > (event.capacity or 0):
        raise error_response(
            "Not enough tickets available",
            {"quantity": "sold_out"},
            status.HTTP_400_BAD_REQUEST,
        )
    if not current_user.email:
        raise error_response("User profile not found", {"email": "required"}, status.HTTP_400_BAD_REQUEST)

    unit = ticket_sale_breakdown(int(event.ticket_price or 0))
    total = unit.scaled(quantity)
    txn = models.Transaction(
        reference=paystack.generate_reference("TKT"),
        type=TransactionType.TICKET_PURCHASE,
        state=TransactionState.INITIATED,
        amount=total.buyer_total,
        platform_fee=total.platform_total,
        net_amount=total.organizer_net,
        currency=settings.DEFAULT_CURRENCY,
        payer_id=current_user.id,
        recipient_id=event.organizer_id,
        recipient_type="organizer",
        event_id=event.id,
        gateway_provider="paystack",
        meta={"quantity": quantity, "breakdown": unit.as_dict()},
    )
    data = _start_checkout(
        db,
        current_user,
        txn,
        "ticket",
        {
            "event_id": event.id,
            "event_title": event.title,
            "quantity": quantity,
            "ticket_price": unit.ticket_price,
            "booking_fee": unit.booking_fee,
            "type": TransactionType.TICKET_PURCHASE.value,
        },
    )
    return {
        "success": True,
        "data": {
            "authorization_url": data.get("authorization_url"),
            "access_code": data.get("access_code"),
            "reference": txn.reference,
            "transaction_id": txn.id,
            "breakdown": {
                "ticket_price": to_rands(unit.ticket_price),
                "booking_fee": to_rands(unit.booking_fee),
                "quantity": quantity,
                "total": to_rands(total.buyer_total),
            },
        },
    }


@router.post("/booking")
def pay_booking(
    payload: BookingPaymentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    booking = db.get(models.Booking, payload.booking_id)
    if booking is None:
        raise not_found("Booking", "booking_id")
    if booking.organizer_id != current_user.id:
        raise forbidden("Only the organizer can pay for this booking")
    if booking.state != BookingState.ACCEPTED:
        raise error_response(
            "Booking must be accepted before payment",
            {"state": booking.state.value},
            status.HTTP_400_BAD_REQUEST,
        )
    open_payment = (
        db.query(models.Transaction.reference)
        .filter(
            models.Transaction.booking_id == booking.id,
            models.Transaction.type == TransactionType.BOOKING_PAYMENT,
            models.Transaction.state.in_([TransactionState.INITIATED, TransactionState.HELD]),
        )
        .first()
    )
    if open_payment:
        raise error_response(
            "A payment for this booking is already in progress",
            {"booking_id": "payment_in_progress"},
            status.HTTP_409_CONFLICT,
        )

    amount = booking.agreed_amount
    commission = calculate_booking_commission(amount, booking.booking_type)
    booking.commission_percent = commission["percent"]
    booking.platform_fee = commission["commission"]
    booking.performer_payout = commission["payout"]
    txn = models.Transaction(
        reference=paystack.generate_reference("BKG"),
        type=TransactionType.BOOKING_PAYMENT,
        state=TransactionState.INITIATED,
        amount=amount,
        platform_fee=commission["commission"],
        net_amount=commission["payout"],
        currency=settings.DEFAULT_CURRENCY,
        payer_id=current_user.id,
        recipient_id=booking.performer_id,
        recipient_type=booking.booking_type.value,
        event_id=booking.event_id,
        booking_id=booking.id,
        gateway_provider="paystack",
        meta={"commission_percent": str(commission["percent"])},
    )
    data = _start_checkout(
        db,
        current_user,
        txn,
        "booking",
        {"booking_id": booking.id, "type": TransactionType.BOOKING_PAYMENT.value},
    )
    return {
        "success": True,
        "data": {
            "authorization_url": data.get("authorization_url"),
            "access_code": data.get("access_code"),
            "reference": txn.reference,
            "transaction_id": txn.id,
            "breakdown": {
                "amount": to_rands(amount),
                "commission_percent": float(commission["percent"]),
                "platform_fee": to_rands(commission["commission"]),
                "performer_payout": to_rands(commission["payout"]),
            },
        },
    }
