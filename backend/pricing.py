"""
Order pricing rules: subtotal, tax, packaging fee and grand total.

All amounts are whole currency units (rupiah). The rules are configured
through environment variables and fixed at import time.
"""
import os
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

from dotenv import load_dotenv

from models import DiningMode

load_dotenv()

TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.10"))
PACKAGING_FEE = int(os.getenv("PACKAGING_FEE", "2000"))

# "takeaway": fee only for TAKE_AWAY orders, "always": fee on every order
PACKAGING_FEE_POLICY = os.getenv("PACKAGING_FEE_POLICY", "takeaway").lower()
PACKAGING_FEE_POLICIES = ("takeaway", "always")

if PACKAGING_FEE_POLICY not in PACKAGING_FEE_POLICIES:
    raise RuntimeError(
        f"PACKAGING_FEE_POLICY must be one of {PACKAGING_FEE_POLICIES}, got {PACKAGING_FEE_POLICY!r}"
    )


@dataclass(frozen=True)
class OrderTotals:
    subtotal: int
    tax: int
    packaging: int
    total: int


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_tax(subtotal: int, rate: Decimal = None) -> int:
    rate = TAX_RATE if rate is None else rate
    return round_half_up(Decimal(subtotal) * rate)


def packaging_fee(dining_mode, policy: str = None, fee: int = None) -> int:
    policy = PACKAGING_FEE_POLICY if policy is None else policy
    fee = PACKAGING_FEE if fee is None else fee
    if policy == "always":
        return fee
    return fee if DiningMode(dining_mode) == DiningMode.TAKE_AWAY else 0


def compute_totals(lines: Iterable[Tuple[int, int]], dining_mode, policy: str = None) -> OrderTotals:
    """Price a list of ``(unit_price, quantity)`` pairs.

    ``tax`` is 10% of the subtotal rounded half up, ``packaging`` follows
    the packaging policy for the dining mode.
    """
    subtotal = 0
    for unit_price, quantity in lines:
        if quantity <= 0:
            raise ValueError("Quantity must be a positive integer")
        subtotal += unit_price * quantity

    tax = compute_tax(subtotal)
    packaging = packaging_fee(dining_mode, policy=policy)
    return OrderTotals(subtotal=subtotal, tax=tax, packaging=packaging, total=subtotal + tax + packaging)
