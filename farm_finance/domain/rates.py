"""Interest rate curves, product bounds and parameter validation"""

import logging
from typing import Optional

from farm_finance.domain.exceptions import DealValidationError
from farm_finance.domain.models import ItemKind
from farm_finance.domain.scoring import CreditScoreModel, get_rating

MINIMUM_AMOUNTS = {
    "VEHICLE_FINANCE": 2_500,
    "VEHICLE_LEASE": 5_000,  # Leasing has higher admin overhead
    "CASH_LOAN": 1_000,
    "REPAIR": 500,
    "LAND_FINANCE": 10_000,
}

# Term bounds in years
FINANCE_TERM_YEARS = (1, 20)
LAND_TERM_YEARS = (1, 30)
LEASE_TERM_YEARS = (1, 5)
LOAN_TERM_YEARS = (1, 30)

MAX_DOWN_PAYMENT_PCT = 0.50
MAX_LAND_DOWN_PAYMENT_PCT = 0.40
MAX_LEASE_DOWN_PAYMENT_PCT = 0.20

# Months of lease payment held as deposit, by credit tier level
SECURITY_DEPOSIT_MONTHS = {1: 0, 2: 1, 3: 2, 4: 3, 5: 6}

# Deposit deduction per missed lease payment
VEHICLE_MISS_DEDUCTION = 100.0
LAND_MISS_DEDUCTION = 200.0


class DefaultRateCurve:
    """
    Annual percentage rates from credit score, term and down payment ratio.

    Vehicle: 4.5 base, clamped to 2.0-15.0
    Land:    3.5 base, clamped to 2.5-8.0
    Lease:   5.5 base, clamped to 3.0-12.0
    """

    def __init__(self, credit_model: Optional[CreditScoreModel] = None):
        self.credit_model = credit_model or CreditScoreModel()

    def vehicle_rate(self, score: int, term_months: int, down_payment_pct: float) -> float:
        credit_adj = self.credit_model.interest_adjustment(score)

        # Longer term = higher rate
        if term_months > 180:
            term_adj = 1.5
        elif term_months > 120:
            term_adj = 1.0
        elif term_months > 60:
            term_adj = 0.5
        else:
            term_adj = 0.0

        # Larger down payment = lower rate
        if down_payment_pct >= 0.40:
            dp_adj = -1.0
        elif down_payment_pct >= 0.25:
            dp_adj = -0.5
        elif down_payment_pct >= 0.10:
            dp_adj = 0.0
        else:
            dp_adj = 1.0

        return _clamp(4.5 + credit_adj + term_adj + dp_adj, 2.0, 15.0)

    def land_rate(self, score: int, term_months: int, down_payment_pct: float) -> float:
        _, level = get_rating(score)
        credit_adj = {1: -1.0, 2: 0.0, 3: 0.5}.get(level, 1.5)

        term_years = term_months / 12
        if term_years > 20:
            term_adj = 1.0
        elif term_years > 15:
            term_adj = 0.5
        else:
            term_adj = 0.0

        if down_payment_pct >= 0.30:
            dp_adj = -0.5
        elif down_payment_pct < 0.10:
            dp_adj = 1.0
        else:
            dp_adj = 0.0

        return _clamp(3.5 + credit_adj + term_adj + dp_adj, 2.5, 8.0)

    def lease_rate(self, score: int, term_months: int, down_payment_pct: float) -> float:
        credit_adj = self.credit_model.interest_adjustment(score)
        dp_adj = -0.5 if down_payment_pct >= 0.15 else 1.0
        return _clamp(5.5 + credit_adj + dp_adj, 3.0, 12.0)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def minimum_amount(product: str) -> float:
    minimum = MINIMUM_AMOUNTS.get(product)
    if minimum is None:
        logging.warning(
            f"Unknown finance product for minimum amount: {product}",
            extra={"product": product},
        )
        minimum = MINIMUM_AMOUNTS["VEHICLE_FINANCE"]
    return minimum


def check_minimum_amount(amount: float, product: str) -> None:
    minimum = minimum_amount(product)
    if amount < minimum:
        raise DealValidationError(f"Amount {amount:.2f} is below the {minimum:.0f} minimum for {product}")


def _check_term(term_years: float, bounds: tuple) -> None:
    low, high = bounds
    if term_years < low or term_years > high:
        raise DealValidationError(f"Term must be between {low} and {high} years")


def validate_finance_params(price: float, down_payment: float, term_years: float, item_kind: ItemKind) -> None:
    """Raise DealValidationError for out-of-range finance parameters"""
    if price <= 0:
        raise DealValidationError("Price must be positive")
    if down_payment < 0:
        raise DealValidationError("Down payment cannot be negative")
    if down_payment >= price:
        raise DealValidationError("Down payment must be less than the price")

    is_land = item_kind == ItemKind.LAND
    max_pct = MAX_LAND_DOWN_PAYMENT_PCT if is_land else MAX_DOWN_PAYMENT_PCT
    if down_payment > price * max_pct:
        raise DealValidationError(f"Down payment cannot exceed {max_pct:.0%} of the price")

    _check_term(term_years, LAND_TERM_YEARS if is_land else FINANCE_TERM_YEARS)


def validate_lease_params(price: float, down_payment: float, term_years: float) -> None:
    if price <= 0:
        raise DealValidationError("Price must be positive")
    if down_payment < 0:
        raise DealValidationError("Down payment cannot be negative")
    if down_payment > price * MAX_LEASE_DOWN_PAYMENT_PCT:
        raise DealValidationError(f"Lease down payment cannot exceed {MAX_LEASE_DOWN_PAYMENT_PCT:.0%} of the price")
    _check_term(term_years, LEASE_TERM_YEARS)


def validate_loan_params(amount: float, term_years: float) -> None:
    if amount <= 0:
        raise DealValidationError("Loan amount must be positive")
    _check_term(term_years, LOAN_TERM_YEARS)
    check_minimum_amount(amount, "CASH_LOAN")


def finance_product(item_kind: ItemKind) -> str:
    return "LAND_FINANCE" if item_kind == ItemKind.LAND else "VEHICLE_FINANCE"


def security_deposit(monthly_payment: float, score: int) -> float:
    _, level = get_rating(score)
    return monthly_payment * SECURITY_DEPOSIT_MONTHS.get(level, 2)
