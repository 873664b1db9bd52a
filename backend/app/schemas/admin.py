from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from ..models.payout import PayoutStatus
from ..models.refund import RefundMethod, RefundStatus


class SendEmailRequest(BaseModel):
    to: EmailStr
    to_user_id: Optional[int] = None
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)


class BulkEmailRequest(BaseModel):
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    audience: Literal["all", "organizers", "artists", "providers"] = "all"
    test_mode: bool = False


class PayoutAction(BaseModel):
    action: Literal["approve", "reject", "complete"]
    notes: Optional[str] = None


class RefundAction(BaseModel):
    action: Literal["approve", "reject", "process"]
    notes: Optional[str] = None
    partial_amount: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)  # Rands


class ReportAction(BaseModel):
    action: Literal["resolve", "dismiss", "escalate", "action"]
    content_action: Optional[
        Literal["warn_user", "suspend_user", "ban_user", "remove_content", "delete_content"]
    ] = None
    notes: Optional[str] = None


class ReviewVisibility(BaseModel):
    visible: bool


class PayoutRequestResponse(BaseModel):
    id: int
    user_id: int
    amount: int
    reference: str
    bank_name: str
    account_number_last4: str
    account_holder: str
    status: PayoutStatus
    admin_notes: str | None = None
    processed_by: int | None = None
    processed_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RefundRequestResponse(BaseModel):
    id: int
    user_id: int
    transaction_id: int
    booking_id: int | None = None
    amount: int
    reason: str
    refund_method: RefundMethod
    status: RefundStatus
    refunded_amount: int | None = None
    admin_notes: str | None = None
    processed_by: int | None = None
    processed_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditLogResponse(BaseModel):
    id: int
    admin_id: int
    action: str
    action_type: str
    entity_type: str | None = None
    entity_id: int | None = None
    details: dict[str, Any] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
