"""Platform fee calculator.

Every amount here is an integer number of cents (ZAR x 100). Percentages are
applied with half-up rounding to the nearest cent so that totals shown to the
buyer match what is charged at the gateway.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Tuple

from ..models.booking import BookingType

MINIMUM_DEPOSIT = 5000  # R50
MINIMUM_WITHDRAWAL = 5000  # R50

TICKET_COMMISSION_PERCENT = Decimal("5")
TICKET_PLATFORM_FEE_PERCENT = Decimal("5")

# (upper bound inclusive, value); None marks the open-ended top tier
BOOKING_FEE_TIERS: List[Tuple[int | None, int]] = [
    (10000, 500),
    (30000, 700),
    (None, 1000),
]
ARTIST_COMMISSION_TIERS: List[Tuple[int | None, Decimal]] = [
    (2000000, Decimal("20")),
    (10000000, Decimal("15")),
    (None, Decimal("10")),
]
VENDOR_COMMISSION_TIERS: List[Tuple[int | None, Decimal]] = [
    (1500000, Decimal("10")),
    (7500000, Decimal("7.5")),
    (None, Decimal("5")),
]

DEPOSIT_PERCENT = Decimal("2.5")
DEPOSIT_FLAT_FEE = 300
WITHDRAWAL_FLAT_FEE = 2000


def percent_of(amount: int, percent: Decimal) -> int:
    """Return ``percent`` of ``amount`` rounded half-up to a whole cent."""
    value = Decimal(int(amount)) * percent / Decimal(100)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _tier_value(amount: int, tiers):
    for bound, value in tiers:
        if bound is None or amount <= bound:
            return value
    return tiers[-1][1]


def calculate_booking_fee(ticket_price: int) -> int:
    """Buyer-paid booking fee for a single ticket."""
    return _tier_value(ticket_price, BOOKING_FEE_TIERS)


def calculate_ticketing_fees(ticket_price: int) -> Dict[str, int]:
    commission = percent_of(ticket_price, TICKET_COMMISSION_PERCENT)
    platform_fee = percent_of(ticket_price, TICKET_PLATFORM_FEE_PERCENT)
    return {
        "commission": commission,
        "platform_fee": platform_fee,
        "total_fees": commission + platform_fee,
    }


@dataclass
class TicketSaleBreakdown:
    ticket_price: int
    booking_fee: int
    buyer_total: int
    ticketing_commission: int
    platform_fee: int
    organizer_net: int
    platform_total: int

    def scaled(self, quantity: int) -> "TicketSaleBreakdown":
        return TicketSaleBreakdown(**{k: v * quantity for k, v in asdict(self).items()})

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def ticket_sale_breakdown(ticket_price: int) -> TicketSaleBreakdown:
    """Split a single ticket sale between buyer, organizer and platform."""
    booking_fee = calculate_booking_fee(ticket_price)
    fees = calculate_ticketing_fees(ticket_price)
    return TicketSaleBreakdown(
        ticket_price=ticket_price,
        booking_fee=booking_fee,
        buyer_total=ticket_price + booking_fee,
        ticketing_commission=fees["commission"],
        platform_fee=fees["platform_fee"],
        organizer_net=ticket_price - fees["total_fees"],
        platform_total=booking_fee + fees["total_fees"],
    )


def calculate_booking_commission(amount: int, booking_type: BookingType | str) -> Dict[str, object]:
    """Tiered commission on an artist or vendor booking."""
    if BookingType(booking_type) == BookingType.VENDOR:
        percent = _tier_value(amount, VENDOR_COMMISSION_TIERS)
    else:
        percent = _tier_value(amount, ARTIST_COMMISSION_TIERS)
    commission = percent_of(amount, percent)
    return {
        "percent": percent,
        "commission": commission,
        "payout": amount - commission,
    }


def calculate_deposit_fee(deposit_amount: int) -> Dict[str, int]:
    fee = percent_of(deposit_amount, DEPOSIT_PERCENT) + DEPOSIT_FLAT_FEE
    return {"fee": fee, "total_to_pay": deposit_amount + fee}


def calculate_withdrawal_fee(amount: int) -> Dict[str, int]:
    return {"fee": WITHDRAWAL_FLAT_FEE, "net_amount": amount - WITHDRAWAL_FLAT_FEE}


def to_cents(rands: float | Decimal | int) -> int:
    return int((Decimal(str(rands)) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_rands(cents: int | None) -> float:
    return float(Decimal(int(cents or 0)) / Decimal(100))


def format_zar(cents: int | None) -> str:
    return f"R{to_rands(cents):,.2f}"
