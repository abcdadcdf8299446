"""Savings estimate for the energy subscription plan.

Two independent paths:

* ``calculate`` works from structured bill data (OCR of the electricity bill).
  The availability cost charged by the utility depends on the connection type
  and is never compensated, so it is removed from the base together with the
  municipal lighting fee (CIP).
* ``estimate_from_amount`` works from a bill amount typed by the customer and
  uses a flat deduction regardless of connection type.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

MINIMUM_FEE_KWH = {
    "MONOFASICO": Decimal("30"),
    "BIFASICO": Decimal("50"),
    "TRIFASICO": Decimal("100"),
}
DEFAULT_MINIMUM_FEE_KWH = Decimal("50")
DEFAULT_TARIFF = Decimal("0.8")
SAVING_RATE = Decimal("0.20")
FREE_FORM_DEDUCTION = Decimal("50")

_CENTS = Decimal("0.01")
# Leading number only: "200 reais" parses, "pago 200" does not.
_AMOUNT_PATTERN = re.compile(r"^\s*(?:R\$\s*)?(-?\d[\d.,]*)", re.IGNORECASE)


@dataclass(frozen=True)
class BillData:
    total_value: Any
    cip_fee: Any = None
    connection_type: Optional[str] = None
    tariff: Any = None


@dataclass(frozen=True)
class SavingsProposal:
    monthly_saving: Decimal
    annual_saving: Decimal
    five_year_saving: Decimal
    minimum_fee_value: Optional[Decimal] = None
    base: Optional[Decimal] = None

    def as_prompt_dict(self) -> dict[str, str]:
        return {
            "economiaMensal": format_brl(self.monthly_saving),
            "economiaAnual": format_brl(self.annual_saving),
            "economia5Anos": format_brl(self.five_year_saving),
        }


def _round(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def format_brl(value: Decimal) -> str:
    return f"{_round(value):.2f}".replace(".", ",")


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse numbers the way customers and OCR write them (``1.234,56``, ``R$ 200``)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return None
        return number if number.is_finite() else None

    match = _AMOUNT_PATTERN.match(str(value))
    if not match:
        return None
    number = match.group(1).rstrip(".,")
    if "," in number:
        number = number.replace(".", "").replace(",", ".")
    elif number.count(".") > 1 or re.fullmatch(r"-?\d{1,3}(\.\d{3})+", number):
        number = number.replace(".", "")
    try:
        return Decimal(number)
    except InvalidOperation:
        return None


def _savings(monthly: Decimal, **extra: Optional[Decimal]) -> SavingsProposal:
    return SavingsProposal(
        monthly_saving=_round(monthly),
        annual_saving=_round(monthly * 12),
        five_year_saving=_round(monthly * 60),
        **extra,
    )


def minimum_fee_kwh(connection_type: Optional[str]) -> Decimal:
    key = (connection_type or "").strip().upper()
    return MINIMUM_FEE_KWH.get(key, DEFAULT_MINIMUM_FEE_KWH)


def calculate(bill: BillData) -> Optional[SavingsProposal]:
    """Savings from structured bill data; None when nothing is left to compensate."""
    tariff = to_decimal(bill.tariff)
    if not tariff:
        tariff = DEFAULT_TARIFF
    minimum_fee_value = minimum_fee_kwh(bill.connection_type) * tariff
    total = to_decimal(bill.total_value) or Decimal("0")
    cip = to_decimal(bill.cip_fee) or Decimal("0")

    base = total - cip - minimum_fee_value
    if base <= 0:
        return None
    return _savings(base * SAVING_RATE, minimum_fee_value=_round(minimum_fee_value), base=_round(base))


def estimate_from_amount(amount: Any) -> Optional[SavingsProposal]:
    """Savings from a bill amount typed by the customer."""
    value = to_decimal(amount)
    if value is None:
        return None
    monthly = (value - FREE_FORM_DEDUCTION) * SAVING_RATE
    if monthly <= 0:
        return None
    return _savings(monthly)


def bill_from_extraction(fields: dict) -> Optional[BillData]:
    """Build BillData from the media extractor's cleaned bill fields."""
    if not fields or fields.get("error") or fields.get("total_value") is None:
        return None
    return BillData(
        total_value=fields.get("total_value"),
        cip_fee=fields.get("cip_fee"),
        connection_type=fields.get("connection_type"),
        tariff=fields.get("tariff"),
    )
