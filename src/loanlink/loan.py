"""Loan request parsing and payment reports.

Requests travel as ``"<amount> <years> <rate>"``. Amounts may carry thousands
separators (``150,000``), rates an optional trailing ``%``. Everything here is
pure; the transports only ever see the text.
"""
from __future__ import annotations

import math
from dataclasses import dataclass


class InvalidRequest(ValueError):
    pass


# the largest C int; bigger terms overflow the payment math
MAX_YEARS = 2**31 - 1


def validate_amount(text: str) -> float:
    cleaned = text.replace(",", "")
    try:
        amount = float(cleaned)
    except ValueError:
        raise InvalidRequest(f"invalid amount: {text!r} is not a number") from None
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidRequest(f"invalid amount: {text!r} must be positive")
    return amount


def validate_years(text: str) -> int:
    if "." in text:
        raise InvalidRequest(f"invalid years: {text!r} is not an integer (has decimal)")
    try:
        years = int(text)
    except ValueError:
        raise InvalidRequest(f"invalid years: {text!r} is not an integer") from None
    if years <= 0:
        raise InvalidRequest(f"invalid years: {text!r} must be positive")
    if years > MAX_YEARS:
        raise InvalidRequest(f"invalid years: {text!r} exceeds {MAX_YEARS}")
    return years


def validate_rate(text: str) -> float:
    cleaned = text[:-1] if text.endswith("%") else text
    try:
        rate = float(cleaned)
    except ValueError:
        raise InvalidRequest(f"invalid rate: {text!r} is not a number") from None
    if not math.isfinite(rate) or rate < 0:
        raise InvalidRequest(f"invalid rate: {text!r} must not be negative")
    return rate


@dataclass(frozen=True, slots=True)
class LoanTerms:
    amount_text: str
    amount: float
    years: int
    rate: float

    @staticmethod
    def from_fields(amount: str, years: str, rate: str) -> "LoanTerms":
        return LoanTerms(
            amount_text=amount.replace(",", ""),
            amount=validate_amount(amount),
            years=validate_years(years),
            rate=validate_rate(rate),
        )

    def to_message(self) -> str:
        """Canonical wire text: no thousands separators, no percent sign."""
        return f"{self.amount_text} {self.years} {self.rate!r}"


def build_request(amount: str, years: str, rate: str) -> str:
    """Validate the three fields and render them the way they go on the wire."""
    return LoanTerms.from_fields(amount, years, rate).to_message()


def parse_request(text: str) -> LoanTerms:
    fields = text.split()
    if len(fields) != 3:
        raise InvalidRequest(f"expected 3 fields <amount> <years> <rate>, got {len(fields)}")
    return LoanTerms.from_fields(*fields)


def round_to_cent(value: float) -> float:
    # half away from zero, not banker's rounding
    return math.floor(value * 100 + 0.5) / 100


def monthly_payment(amount: float, years: int, rate: float) -> float:
    """Standard amortization: L*r / (1 - (1+r)^-n), rounded to the cent."""
    monthly_rate = rate / 100 / 12
    total_payments = years * 12
    try:
        discount = 1 - (1 + monthly_rate) ** -total_payments
    except OverflowError:
        raise InvalidRequest("payment is out of range") from None

    # a rate too small to move 1 + r behaves like no interest at all
    interest_free = monthly_rate == 0 or discount == 0
    exact = amount / total_payments if interest_free else (amount * monthly_rate) / discount
    # cents and the yearly total must stay finite too
    if not math.isfinite(exact * 1200):
        raise InvalidRequest("payment is out of range")
    return exact if interest_free else round_to_cent(exact)


def format_amount(value: float) -> str:
    text = f"{value:.6f}".rstrip("0")
    return text.rstrip(".")


def generate_payment_report(terms: LoanTerms) -> str:
    monthly = monthly_payment(terms.amount, terms.years, terms.rate)
    yearly = monthly * 12
    return (
        f"\n${terms.amount_text} loan"
        f"\nmonthly payment is ${format_amount(monthly)}"
        f"\ntotal payment is ${format_amount(yearly)}"
    )


def handle_request(text: str) -> str:
    """Server-side dispatch: validate, then report. Raises InvalidRequest."""
    return generate_payment_report(parse_request(text))
