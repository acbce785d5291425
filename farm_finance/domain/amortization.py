"""Amortization math for finance and lease contracts"""

import math
from typing import NamedTuple

# Monthly rates below this are treated as interest-free
RATE_EPSILON = 0.0001

# Balance at or below this counts as paid off
PAID_OFF_EPSILON = 0.01

# Returned by remaining_months() when the payment never retires the debt
NEVER = 999

# Safety limit for month-by-month projections (50 years)
MAX_PROJECTION_MONTHS = 600


class MultiplierSavings(NamedTuple):
    months: int
    interest_at_base: float
    interest_at_multiplier: float
    interest_saved: float


def monthly_rate(annual_rate: float) -> float:
    """Annual decimal rate to monthly rate"""
    return annual_rate / 12


def monthly_payment(principal: float, annual_rate: float, term_months: int) -> float:
    """
    Level payment that retires `principal` in `term_months`.

    Formula: M = P * [r(1 + r)^n] / [(1 + r)^n - 1]
    Where P = principal, r = monthly rate, n = number of months.
    Falls back to P / n when r is below RATE_EPSILON.
    """
    if term_months <= 0:
        return principal

    r = monthly_rate(annual_rate)
    if r < RATE_EPSILON:
        return principal / term_months

    growth = math.pow(1 + r, term_months)
    return principal * (r * growth) / (growth - 1)


def balloon_payment(principal: float, residual: float, annual_rate: float, term_months: int) -> float:
    """
    Level payment that amortizes `principal` down to `residual` after `term_months`.

    Used for leases: the lessee pays the depreciation plus interest and the
    residual remains as the buyout balance at term end. With residual equal
    to principal this is an interest-only payment.
    """
    if term_months <= 0:
        return max(principal - residual, 0.0)

    r = monthly_rate(annual_rate)
    if r < RATE_EPSILON:
        return (principal - residual) / term_months
    if residual >= principal:
        return principal * r

    growth = math.pow(1 + r, term_months)
    return (principal * growth - residual) * r / (growth - 1)


def interest_for_period(balance: float, accrued_interest: float, annual_rate: float) -> float:
    """Interest charged on the full amount owed, including accrued interest"""
    return (balance + accrued_interest) * monthly_rate(annual_rate)


def prepayment_penalty(balance: float, months_remaining: int) -> float:
    """
    Early payoff penalty on the outstanding principal.

    2% when more than 12 months remain, 1% otherwise (hard step at 12).
    """
    if balance <= 0:
        return 0.0
    rate = 0.02 if months_remaining > 12 else 0.01
    return balance * rate


def remaining_months(amount_owed: float, annual_rate: float, payment: float) -> int:
    """
    Months until payoff at a fixed payment.

    n = -log(1 - r*P/M) / log(1 + r), rounded up.
    Returns NEVER when the payment does not cover the interest.
    """
    if amount_owed <= PAID_OFF_EPSILON:
        return 0
    if payment <= 0:
        return NEVER

    r = monthly_rate(annual_rate)
    if r < RATE_EPSILON:
        return math.ceil(amount_owed / payment)

    ratio = (r * amount_owed) / payment
    if ratio >= 1:
        return NEVER

    return math.ceil(-math.log(1 - ratio) / math.log(1 + r))


def _project(balance: float, annual_rate: float, payment: float) -> tuple[int, float]:
    """Month-by-month projection returning (months, interest) until payoff"""
    r = monthly_rate(annual_rate)
    months = 0
    interest = 0.0

    while balance > PAID_OFF_EPSILON and months < MAX_PROJECTION_MONTHS:
        interest_portion = r * balance
        principal_portion = payment - interest_portion
        if principal_portion <= 0:
            break  # Payment doesn't cover interest
        balance -= principal_portion
        interest += interest_portion
        months += 1

    return months, interest


def multiplier_savings(
    balance: float,
    annual_rate: float,
    base_payment: float,
    multiplier: float,
    fallback_months: int,
) -> MultiplierSavings:
    """
    Compare remaining interest at the base payment against a multiplied payment.

    When there is no balance or no acceleration, returns `fallback_months`
    (normally term minus months paid) with zero interest figures.
    """
    if balance <= 0 or multiplier <= 1.0:
        return MultiplierSavings(max(0, fallback_months), 0.0, 0.0, 0.0)

    _, normal_interest = _project(balance, annual_rate, base_payment)
    months, multiplied_interest = _project(balance, annual_rate, base_payment * multiplier)

    return MultiplierSavings(
        months=months,
        interest_at_base=normal_interest,
        interest_at_multiplier=multiplied_interest,
        interest_saved=normal_interest - multiplied_interest,
    )


def residual_value(price: float, term_months: int) -> float:
    """
    Value left after lease depreciation.

    Monthly depreciation: 1.5% for months 1-12, 1.0% for 13-24,
    0.8% for 25-36, 0.6% after that. Total depreciation caps at 75%.
    """
    depreciation = 0.0
    for month in range(1, term_months + 1):
        if month <= 12:
            depreciation += 0.015
        elif month <= 24:
            depreciation += 0.010
        elif month <= 36:
            depreciation += 0.008
        else:
            depreciation += 0.006

    depreciation = min(depreciation, 0.75)
    return price * (1 - depreciation)


def deposit_refund(deposit: float, missed_payments: int, per_miss_deduction: float) -> float:
    """Security deposit returned at lease end, less a fixed deduction per missed payment"""
    return max(0.0, deposit - missed_payments * per_miss_deduction)
