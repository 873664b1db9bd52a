from __future__ import annotations

from datetime import datetime, time
from typing import Any, Dict, List, Optional, Tuple
import logging
import math

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import crud, models
from ..core.config import settings
from ..crud import crud_audit
from ..database import atomic, get_db
from ..models import (
    AdminRole,
    AdminUser,
    EventState,
    NotificationType,
    PayoutStatus,
    RefundMethod,
    RefundStatus,
    ReportedType,
    ReportPriority,
    ReportStatus,
    TicketStatus,
    TransactionState,
    TransactionType,
    User,
    UserStatus,
)
from ..schemas.admin import (
    AuditLogResponse,
    BulkEmailRequest,
    PayoutAction,
    PayoutRequestResponse,
    RefundAction,
    RefundRequestResponse,
    ReportAction,
    ReviewVisibility,
    SendEmailRequest,
)
from ..schemas.report import ReportResponse
from ..services import paystack
from ..services.fees import format_zar, to_cents
from ..services.payments import credit_wallet
from ..services.state_machine import (
    PAYOUT_TRANSITIONS,
    REFUND_TRANSITIONS,
    REPORT_TRANSITIONS,
    TRANSACTION_TRANSITIONS,
    InvalidTransition,
    transition,
)
from ..utils import redis_cache
from ..utils.email import email_configured, personalize, send_branded_email
from ..utils.errors import error_response, invalid_transition, not_found
from ..utils.notifications import notify, render
from .dependencies import get_current_admin_user, require_roles

router = APIRouter(tags=["admin"])
logger = logging.getLogger(__name__)

AdminContext = Tuple[User, AdminUser]

finance_admin = require_roles(AdminRole.ADMIN)
moderator = require_roles(AdminRole.ADMIN, AdminRole.MODERATOR)


def _pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def _start_of_today() -> datetime:
    return datetime.combine(datetime.utcnow().date(), time.min)


def _require_email() -> None:
    if not email_configured():
        raise error_response(
            "Email service not configured",
            {"email": "disabled"},
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )


# ────────────────────────────────────────────────────────────────────────────────
# Email


@router.post("/send-email")
def send_email_to_user(
    payload: SendEmailRequest,
    db: Session = Depends(get_db),
    current: AdminContext = Depends(get_current_admin_user),
):
    """Send one branded email; ``{{name}}`` becomes the recipient's first name."""
    admin_user, _ = current
    _require_email()
    recipient = None
    if payload.to_user_id is not None:
        recipient = crud.user.get_user(db, payload.to_user_id)
    if recipient is None:
        recipient = crud.user.get_user_by_email(db, payload.to)

    body = personalize(payload.body, recipient.full_name if recipient else None)
    sent = send_branded_email(payload.to, payload.subject, body)

    with atomic(db):
        db.add(
            models.EmailLog(
                sender_id=admin_user.id,
                recipient_ids=[recipient.id] if recipient else [],
                recipient_emails=[payload.to],
                subject=payload.subject,
                body=payload.body,
                email_type="individual",
                status="sent" if sent else "failed",
                sent_count=1 if sent else 0,
            )
        )
        crud_audit.log_action(
            db,
            admin_user.id,
            f"Sent email to {payload.to}",
            "email_sent",
            "user",
            recipient.id if recipient else None,
            {"subject": payload.subject, "delivered": sent},
        )
    if not sent:
        raise error_response("Failed to send email", {"to": "delivery_failed"}, status.HTTP_502_BAD_GATEWAY)
    return {"success": True, "message": f"Email sent to {payload.to}"}


@router.post("/bulk-email")
def send_bulk_email(
    payload: BulkEmailRequest,
    db: Session = Depends(get_db),
    current: AdminContext = Depends(finance_admin),
):
    admin_user, _ = current
    _require_email()

    if payload.test_mode:
        body = personalize(payload.body, admin_user.full_name)
        sent = send_branded_email(admin_user.email, f"[TEST] {payload.subject}", body)
        return {"success": sent, "test_mode": True, "sent": int(sent), "total": 1}

    recipients = crud.user.list_by_audience(db, payload.audience)
    if not recipients:
        raise error_response(
            "No recipients found for this audience",
            {"audience": "empty"},
            status.HTTP_400_BAD_REQUEST,
        )

    batch_size = max(1, settings.BULK_EMAIL_BATCH_SIZE)
    sent_ids: List[int] = []
    failed = 0
    for start in range(0, len(recipients), batch_size):
        for user in recipients[start:start + batch_size]:
            if send_branded_email(user.email, payload.subject, personalize(payload.body, user.full_name)):
                sent_ids.append(user.id)
            else:
                failed += 1
        logger.info("Bulk email batch %s done: sent=%s failed=%s", start // batch_size + 1, len(sent_ids), failed)

    with atomic(db):
        db.add(
            models.EmailLog(
                sender_id=admin_user.id,
                recipient_ids=sent_ids,
                recipient_emails=None,
                subject=payload.subject,
                body=payload.body,
                email_type="bulk",
                status="sent" if not failed else "partial",
                sent_count=len(sent_ids),
            )
        )
        crud_audit.log_action(
            db,
            admin_user.id,
            f"Sent bulk email to {payload.audience}",
            "bulk_email_sent",
            details={
                "subject": payload.subject,
                "audience": payload.audience,
                "sent": len(sent_ids),
                "failed": failed,
            },
        )
    return {"success": True, "sent": len(sent_ids), "failed": failed, "total": len(recipients)}


# ────────────────────────────────────────────────────────────────────────────────
# Payouts

PAYOUT_ACTIONS = {
    "approve": PayoutStatus.APPROVED,
    "reject": PayoutStatus.REJECTED,
    "complete": PayoutStatus.COMPLETED,
}


@router.get("/payouts")
def list_payout_requests(
    status_filter: Optional[PayoutStatus] = Query(default=None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(get_current_admin_user),
):
    query = db.query(models.PayoutRequest)
    if status_filter is not None:
        query = query.filter(models.PayoutRequest.status == status_filter)
    total = query.count()
    items = (
        query.order_by(models.PayoutRequest.created_at.desc(), models.PayoutRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    pending_count, pending_total = (
        db.query(func.count(models.PayoutRequest.id), func.coalesce(func.sum(models.PayoutRequest.amount), 0))
        .filter(models.PayoutRequest.status == PayoutStatus.PENDING)
        .one()
    )
    completed_today = (
        db.query(func.coalesce(func.sum(models.PayoutRequest.amount), 0))
        .filter(
            models.PayoutRequest.status == PayoutStatus.COMPLETED,
            models.PayoutRequest.processed_at >= _start_of_today(),
        )
        .scalar()
    )
    return {
        "payouts": [PayoutRequestResponse.model_validate(p) for p in items],
        "pagination": _pagination(page, limit, total),
        "stats": {
            "pending_count": int(pending_count or 0),
            "pending_total": int(pending_total or 0),
            "completed_today": int(completed_today or 0),
        },
    }


@router.post("/payouts/{payout_id}/process", response_model=PayoutRequestResponse)
def process_payout(
    payout_id: int,
    payload: PayoutAction,
    db: Session = Depends(get_db),
    current: AdminContext = Depends(finance_admin),
):
    """Approve, reject or complete a queued payout.

    Completing takes the amount out of the user's pending balance and books a
    ``payout`` transaction; rejecting returns it to the wallet.
    """
    admin_user, _ = current
    payout = db.get(models.PayoutRequest, payout_id)
    if payout is None:
        raise not_found("Payout request")
    target = PAYOUT_ACTIONS[payload.action]
    user = payout.user
    now = datetime.utcnow()

    try:
        with atomic(db):
            transition(payout, PAYOUT_TRANSITIONS, target, field="status", kind="payout", now=now)
            payout.processed_by = admin_user.id
            payout.processed_at = now
            if payload.notes:
                payout.admin_notes = payload.notes
            if target == PayoutStatus.COMPLETED:
                if int(user.pending_balance or 0) < int(payout.amount):
                    raise error_response(
                        "Pending balance is lower than the payout amount",
                        {"amount": "pending_balance_mismatch"},
                        status.HTTP_409_CONFLICT,
                    )
                user.pending_balance = int(user.pending_balance) - int(payout.amount)
                db.add(
                    models.Transaction(
                        reference=f"PAYOUT-{payout.reference}",
                        type=TransactionType.PAYOUT,
                        state=TransactionState.SETTLED,
                        amount=payout.amount,
                        platform_fee=0,
                        net_amount=payout.amount,
                        currency=settings.DEFAULT_CURRENCY,
                        recipient_id=user.id,
                        recipient_type="user",
                        gateway_provider="manual",
                        settled_at=now,
                        meta={
                            "payout_request_id": payout.id,
                            "bank_name": payout.bank_name,
                            "account_last4": payout.account_number_last4,
                        },
                    )
                )
            elif target == PayoutStatus.REJECTED:
                user.pending_balance = max(0, int(user.pending_balance or 0) - int(payout.amount))
                credit_wallet(user, int(payout.amount))
            crud_audit.log_action(
                db,
                admin_user.id,
                f"Payout {payout.reference} {target.value}",
                f"payout_{payload.action}",
                "payout_request",
                payout.id,
                {"amount": payout.amount, "user_id": user.id, "notes": payload.notes},
            )
    except InvalidTransition as exc:
        raise invalid_transition(exc)
    logger.info("Payout %s -> %s amount=%s by admin %s", payout.reference, target.value, payout.amount, admin_user.id)

    if target == PayoutStatus.COMPLETED:
        notify(
            db,
            user,
            NotificationType.PAYOUT_COMPLETED,
            render("payout_completed", format_zar(payout.amount)),
            "/wallet",
            send_email=True,
        )
    db.refresh(payout)
    return payout


# ────────────────────────────────────────────────────────────────────────────────
# Refunds


@router.get("/refunds")
def list_refund_requests(
    status_filter: Optional[RefundStatus] = Query(default=None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(get_current_admin_user),
):
    query = db.query(models.RefundRequest)
    if status_filter is not None:
        query = query.filter(models.RefundRequest.status == status_filter)
    total = query.count()
    items = (
        query.order_by(models.RefundRequest.created_at.desc(), models.RefundRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    pending_count, pending_total = (
        db.query(func.count(models.RefundRequest.id), func.coalesce(func.sum(models.RefundRequest.amount), 0))
        .filter(models.RefundRequest.status.in_([RefundStatus.PENDING, RefundStatus.APPROVED]))
        .one()
    )
    refunded_today = (
        db.query(func.coalesce(func.sum(models.RefundRequest.refunded_amount), 0))
        .filter(
            models.RefundRequest.status.in_([RefundStatus.COMPLETED, RefundStatus.PARTIAL]),
            models.RefundRequest.processed_at >= _start_of_today(),
        )
        .scalar()
    )
    return {
        "refunds": [RefundRequestResponse.model_validate(r) for r in items],
        "pagination": _pagination(page, limit, total),
        "stats": {
            "pending_count": int(pending_count or 0),
            "pending_total": int(pending_total or 0),
            "refunded_today": int(refunded_today or 0),
        },
    }


def _refund_reference(db: Session, original: models.Transaction, refund: models.RefundRequest) -> str:
    reference = f"REFUND-{original.reference or original.id}"
    taken = db.query(models.Transaction.id).filter(models.Transaction.reference == reference).first()
    return f"{reference}-{refund.id}" if taken else reference


def _apply_refund(
    db: Session,
    refund: models.RefundRequest,
    amount: int,
    now: datetime,
) -> models.Transaction:
    """Book the refund ledger row and settle it to the user's wallet or card."""
    original = refund.transaction
    remaining = int(original.amount) - int(original.refund_amount or 0)
    if amount > remaining:
        raise error_response(
            f"Only {format_zar(remaining)} of the original payment is left to refund",
            {"amount": "exceeds_remaining"},
            status.HTTP_409_CONFLICT,
        )
    full = int(original.refund_amount or 0) + amount >= int(original.amount)
    target = TransactionState.REFUNDED if full else TransactionState.PARTIAL_REFUND
    if original.state != target:
        transition(original, TRANSACTION_TRANSITIONS, target, kind="transaction", now=now)
    original.refund_amount = int(original.refund_amount or 0) + amount
    original.refund_reason = refund.reason

    ledger = models.Transaction(
        reference=_refund_reference(db, original, refund),
        type=TransactionType.REFUND,
        state=TransactionState.SETTLED,
        amount=amount,
        platform_fee=0,
        net_amount=-amount,
        currency=original.currency or settings.DEFAULT_CURRENCY,
        recipient_id=refund.user_id,
        recipient_type="user",
        event_id=original.event_id,
        booking_id=refund.booking_id or original.booking_id,
        parent_id=original.id,
        gateway_provider="wallet" if refund.refund_method == RefundMethod.WALLET else "paystack",
        settled_at=now,
        meta={"refund_request_id": refund.id, "refund_method": refund.refund_method.value},
    )
    db.add(ledger)

    if refund.refund_method == RefundMethod.WALLET:
        credit_wallet(refund.user, amount)
    else:
        data = paystack.refund_payment(reference=original.reference, amount=amount, reason=refund.reason)
        ledger.gateway_response = data

    if full and original.type == TransactionType.TICKET_PURCHASE:
        tickets = (
            db.query(models.Ticket)
            .filter(
                models.Ticket.transaction_id == original.id,
                models.Ticket.status == TicketStatus.CONFIRMED,
            )
            .all()
        )
        for ticket in tickets:
            ticket.status = TicketStatus.REFUNDED
        if tickets and original.event is not None:
            event = original.event
            event.tickets_sold = max(0, int(event.tickets_sold or 0) - len(tickets))
            event.total_revenue = max(0, int(event.total_revenue or 0) - int(original.net_amount or 0))
    return ledger


@router.post("/refunds/{refund_id}/process", response_model=RefundRequestResponse)
def process_refund(
    refund_id: int,
    payload: RefundAction,
    db: Session = Depends(get_db),
    current: AdminContext = Depends(finance_admin),
):
    admin_user, _ = current
    refund = db.get(models.RefundRequest, refund_id)
    if refund is None:
        raise not_found("Refund request")
    now = datetime.utcnow()

    refunded = 0
    if payload.action == "approve":
        target = RefundStatus.APPROVED
    elif payload.action == "reject":
        target = RefundStatus.REJECTED
    else:
        refunded = int(refund.amount)
        target = RefundStatus.COMPLETED
        if payload.partial_amount is not None:
            partial = to_cents(payload.partial_amount)
            if partial > refunded:
                raise error_response(
                    "Partial amount exceeds the requested refund",
                    {"partial_amount": "too_large"},
                    status.HTTP_400_BAD_REQUEST,
                )
            if partial < refunded:
                refunded, target = partial, RefundStatus.PARTIAL

    try:
        with atomic(db):
            transition(refund, REFUND_TRANSITIONS, target, field="status", kind="refund", now=now)
            refund.processed_by = admin_user.id
            refund.processed_at = now
            if payload.notes:
                refund.admin_notes = payload.notes
            ledger = None
            if refunded:
                refund.refunded_amount = refunded
                ledger = _apply_refund(db, refund, refunded, now)
            crud_audit.log_action(
                db,
                admin_user.id,
                f"Refund request {refund.id} {target.value}",
                f"refund_{payload.action}",
                "refund_request",
                refund.id,
                {
                    "amount": refund.amount,
                    "refunded": refunded,
                    "transaction_id": refund.transaction_id,
                    "ledger_reference": ledger.reference if ledger is not None else None,
                },
            )
    except InvalidTransition as exc:
        raise invalid_transition(exc)
    except paystack.PaystackError as exc:
        raise error_response("Gateway refund failed", {"gateway": exc.message}, status.HTTP_502_BAD_GATEWAY)
    logger.info("Refund %s -> %s refunded=%s by admin %s", refund.id, target.value, refunded, admin_user.id)

    if refunded:
        notify(
            db,
            refund.user,
            NotificationType.REFUND_ISSUED,
            render("refund_issued", format_zar(refunded), refund.reason),
            "/wallet",
            send_email=True,
            transaction_id=refund.transaction_id,
        )
    db.refresh(refund)
    return refund


# ────────────────────────────────────────────────────────────────────────────────
# Reports and moderation

USER_TARGETS = (ReportedType.USER, ReportedType.ARTIST, ReportedType.PROVIDER)


@router.get("/reports")
def list_reports(
    status_filter: Optional[ReportStatus] = Query(default=None, alias="status"),
    priority: Optional[ReportPriority] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(get_current_admin_user),
):
    query = db.query(models.Report)
    if status_filter is not None:
        query = query.filter(models.Report.status == status_filter)
    if priority is not None:
        query = query.filter(models.Report.priority == priority)
    total = query.count()
    items = (
        query.order_by(models.Report.created_at.desc(), models.Report.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "reports": [ReportResponse.model_validate(r) for r in items],
        "pagination": _pagination(page, limit, total),
    }


@router.post("/reports/{report_id}/review", response_model=ReportResponse)
def start_report_review(
    report_id: int,
    db: Session = Depends(get_db),
    current: AdminContext = Depends(moderator),
):
    admin_user, _ = current
    report = db.get(models.Report, report_id)
    if report is None:
        raise not_found("Report")
    try:
        with atomic(db):
            transition(report, REPORT_TRANSITIONS, ReportStatus.UNDER_REVIEW, field="status", kind="report")
            crud_audit.log_action(
                db, admin_user.id, f"Started review of report {report.id}", "report_review", "report", report.id
            )
    except InvalidTransition as exc:
        raise invalid_transition(exc)
    db.refresh(report)
    return report


def _reported_user(db: Session, report: models.Report) -> Optional[User]:
    if report.reported_type in USER_TARGETS:
        return db.get(models.User, report.reported_id)
    if report.reported_type == ReportedType.EVENT:
        event = db.get(models.Event, report.reported_id)
        return event.organizer if event else None
    review = db.get(models.Review, report.reported_id)
    return review.author if review else None


def _apply_content_action(db: Session, report: models.Report, content_action: str, now: datetime) -> Dict[str, Any]:
    """Carry out a moderation action against the reported account or content."""
    if content_action in ("warn_user", "suspend_user", "ban_user"):
        target = _reported_user(db, report)
        if target is None:
            raise not_found("Reported user")
        if content_action == "suspend_user":
            target.status = UserStatus.SUSPENDED
            target.suspended_at = now
        elif content_action == "ban_user":
            target.status = UserStatus.BANNED
            target.banned_at = now
        else:
            notify(
                db,
                target,
                NotificationType.SYSTEM,
                render("account_warning", report.reason),
                commit=False,
                metadata={"report_id": report.id},
            )
        return {"user_id": target.id}

    if report.reported_type == ReportedType.REVIEW:
        review = db.get(models.Review, report.reported_id)
        if review is None:
            raise not_found("Reported review")
        if content_action == "delete_content":
            db.delete(review)
        else:
            review.is_visible = False
        return {"review_id": report.reported_id}

    if report.reported_type == ReportedType.EVENT and content_action == "remove_content":
        event = db.get(models.Event, report.reported_id)
        if event is None:
            raise not_found("Reported event")
        # takedown returns the listing to draft
        event.state = EventState.DRAFT
        return {"event_id": event.id}

    raise error_response(
        f"Cannot {content_action} a reported {report.reported_type.value}",
        {"content_action": "not_applicable"},
        status.HTTP_400_BAD_REQUEST,
    )


@router.post("/reports/{report_id}/action", response_model=ReportResponse)
def act_on_report(
    report_id: int,
    payload: ReportAction,
    db: Session = Depends(get_db),
    current: AdminContext = Depends(moderator),
):
    admin_user, _ = current
    report = db.get(models.Report, report_id)
    if report is None:
        raise not_found("Report")
    if payload.action == "action" and not payload.content_action:
        raise error_response(
            "A content action is required",
            {"content_action": "required"},
            status.HTTP_400_BAD_REQUEST,
        )
    now = datetime.utcnow()

    try:
        with atomic(db):
            details: Dict[str, Any] = {"action": payload.action, "notes": payload.notes}
            if payload.notes:
                report.admin_notes = payload.notes
            if payload.action == "escalate":
                report.priority = ReportPriority.URGENT
                if report.status == ReportStatus.PENDING:
                    transition(report, REPORT_TRANSITIONS, ReportStatus.UNDER_REVIEW, field="status", kind="report")
            elif payload.action == "dismiss":
                transition(report, REPORT_TRANSITIONS, ReportStatus.DISMISSED, field="status", kind="report")
                report.resolved_by = admin_user.id
                report.resolved_at = now
            else:
                transition(report, REPORT_TRANSITIONS, ReportStatus.RESOLVED, field="status", kind="report")
                report.resolved_by = admin_user.id
                report.resolved_at = now
                if payload.content_action:
                    details["content_action"] = payload.content_action
                    details.update(_apply_content_action(db, report, payload.content_action, now))
            crud_audit.log_action(
                db,
                admin_user.id,
                f"Report {report.id}: {payload.action}",
                f"report_{payload.action}",
                "report",
                report.id,
                details,
            )
    except InvalidTransition as exc:
        raise invalid_transition(exc)
    if payload.content_action == "remove_content" and report.reported_type == ReportedType.EVENT:
        redis_cache.invalidate_search_filters()
    logger.info("Report %s handled by admin %s: %s", report.id, admin_user.id, payload.action)
    db.refresh(report)
    return report


@router.post("/reviews/{review_id}/visibility")
def set_review_visibility(
    review_id: int,
    payload: ReviewVisibility,
    db: Session = Depends(get_db),
    current: AdminContext = Depends(moderator),
):
    admin_user, _ = current
    review = db.get(models.Review, review_id)
    if review is None:
        raise not_found("Review")
    with atomic(db):
        review.is_visible = payload.visible
        crud_audit.log_action(
            db,
            admin_user.id,
            f"{'Showed' if payload.visible else 'Hid'} review {review.id}",
            "review_visibility",
            "review",
            review.id,
            {"visible": payload.visible},
        )
    return {"success": True, "id": review.id, "is_visible": review.is_visible}


@router.get("/audit-logs")
def list_audit_logs(
    action_type: Optional[str] = None,
    admin_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _: AdminContext = Depends(get_current_admin_user),
):
    items, total = crud_audit.list_actions(
        db, action_type=action_type, admin_id=admin_id, offset=(page - 1) * limit, limit=limit
    )
    return {
        "logs": [AuditLogResponse.model_validate(entry) for entry in items],
        "pagination": _pagination(page, limit, total),
    }
