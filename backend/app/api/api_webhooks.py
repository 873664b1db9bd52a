from fastapi import APIRouter, Depends, Header, Request, status
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from ..services import paystack
from ..services import payments
from ..utils.errors import error_response
from ..utils.json import loads

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/paystack")
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db),
    x_paystack_signature: str | None = Header(default=None),
):
    """Handle Paystack webhook events.

    - Verifies the HMAC SHA512 signature of the raw request body.
    - ``charge.success`` settles tickets, deposits and booking payments.
    - ``transfer.*`` finishes withdrawals.
    - Idempotent: callbacks for already-processed references are acknowledged.
    """
    raw = await request.body()
    if not paystack.verify_webhook_signature(raw, x_paystack_signature):
        logger.warning("Paystack webhook signature mismatch")
        raise error_response("Invalid signature", {"signature": "invalid"}, status.HTTP_401_UNAUTHORIZED)

    try:
        payload = loads(raw)
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        raise error_response("Invalid JSON payload", {}, status.HTTP_400_BAD_REQUEST)

    event = str(payload.get("event", "")).lower()
    data = payload.get("data") or {}
    logger.info("Paystack webhook %s reference=%s", event, data.get("reference"))

    if event == "charge.success":
        try:
            outcome = await run_in_threadpool(payments.handle_charge_success, db, data)
        except paystack.PaystackError as exc:
            # Let Paystack retry once the gateway is reachable again
            logger.error("Could not re-verify charge %s: %s", data.get("reference"), exc.message)
            raise error_response("Verification unavailable", {}, status.HTTP_502_BAD_GATEWAY)
    elif event in payments.TRANSFER_OUTCOMES:
        outcome = await run_in_threadpool(payments.handle_transfer_event, db, event, data)
    else:
        logger.info("Unhandled Paystack event: %s", event)
        outcome = "ignored"
    return {"received": True, "outcome": outcome}
