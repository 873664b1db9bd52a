from typing import Optional

from pydantic import BaseModel, Field

from ..models.refund import RefundMethod


class DepositRequest(BaseModel):
    amount: float = Field(allow_inf_nan=False)  # Rands


class WithdrawRequest(BaseModel):
    amount: Optional[float] = Field(default=None, allow_inf_nan=False)  # Rands
    bank_code: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None


class VerifyAccountRequest(BaseModel):
    account_number: Optional[str] = None
    bank_code: Optional[str] = None


class TicketPurchaseRequest(BaseModel):
    event_id: int
    quantity: int = Field(default=1, ge=1, le=20)


class BookingPaymentRequest(BaseModel):
    booking_id: int


class PayoutRequestCreate(BaseModel):
    amount: float = Field(gt=0, allow_inf_nan=False)  # Rands
    bank_name: str = Field(min_length=1)
    account_number: str = Field(min_length=4)
    account_holder: str = Field(min_length=1)


class RefundRequestCreate(BaseModel):
    transaction_id: int
    reason: str = Field(min_length=1)
    # Rands; defaults to the full transaction amount
    amount: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    booking_id: Optional[int] = None
    refund_method: RefundMethod = RefundMethod.WALLET
