"""Credit scoring engine - 300-850 score, tiers and product eligibility"""

import logging
from typing import Dict, Optional, Tuple

from farm_finance.domain.credit_profile import CreditProfile
from farm_finance.domain.models import CreditReport, Eligibility, ScoreFactors

MIN_SCORE = 300
MAX_SCORE = 850
BASE_SCORE = 500  # Low starting point; credit has to be built

CAP_WITHOUT_EXCELLENT = 749
CAP_WITHOUT_HISTORY = 699

# (minimum score, name, level, interest adjustment, cash back multiplier)
TIERS = [
    (750, "Excellent", 1, -1.5, 2.0),
    (700, "Good", 2, -0.5, 1.5),
    (650, "Fair", 3, 0.5, 1.0),
    (600, "Poor", 4, 1.5, 0.5),
    (MIN_SCORE, "Very Poor", 5, 3.0, 0.25),
]

MIN_CREDIT_FOR_FINANCING: Dict[str, int] = {
    "REPAIR": 500,  # Small amounts, secured by the vehicle
    "VEHICLE_FINANCE": 550,
    "VEHICLE_LEASE": 600,
    "LAND_FINANCE": 600,
    "CASH_LOAN": 550,
}
DEFAULT_MIN_CREDIT = 600


class CreditScoreModel:
    """
    Combines payment history with balance-sheet factors into a clamped score.

    When the credit system is disabled every account gets `starting_score`
    and no interest adjustment.
    """

    def __init__(self, enabled: bool = True, starting_score: int = 650):
        self.enabled = enabled
        self.starting_score = starting_score

    def calculate(self, profile: Optional[CreditProfile], assets: float, debt: float, cash: float) -> int:
        if not self.enabled:
            return self.starting_score
        return self._score_with_factors(profile, assets, debt, cash)[0]

    def calculate_report(
        self,
        profile: Optional[CreditProfile],
        assets: float,
        debt: float,
        cash: float,
        history_adjustment: int = 0,
    ) -> CreditReport:
        """Score plus its factor breakdown for display"""
        if self.enabled:
            score, factors = self._score_with_factors(profile, assets, debt, cash)
        else:
            score, factors = self.starting_score, None

        rating, level = get_rating(score)
        return CreditReport(
            score=score,
            rating=rating,
            level=level,
            factors=factors,
            history_adjustment=history_adjustment,
            interest_adjustment=self.interest_adjustment(score),
            cash_back_multiplier=cash_back_multiplier(score),
        )

    def interest_adjustment(self, score: int) -> float:
        """Percentage points added to a base rate; 0 when disabled"""
        if not self.enabled:
            return 0.0
        return interest_adjustment(score)

    def _score_with_factors(
        self, profile: Optional[CreditProfile], assets: float, debt: float, cash: float
    ) -> Tuple[int, ScoreFactors]:
        history = profile.history_score() if profile is not None else 0
        total_payments = profile.stats.total_payments if profile is not None else 0

        asset_score = asset_debt_factor(assets, debt)
        cash_score = cash_reserve_factor(cash)
        clean_slate = clean_slate_bonus(total_payments, assets, debt)

        score = BASE_SCORE + history + asset_score + cash_score + clean_slate

        # Asset wealth alone cannot buy top-tier credit
        excellent = profile is not None and profile.qualifies_for_excellent()
        minimum_history = profile is not None and profile.has_minimum_history()
        if not excellent:
            score = min(score, CAP_WITHOUT_EXCELLENT)
        if not minimum_history:
            score = min(score, CAP_WITHOUT_HISTORY)

        score = int(max(MIN_SCORE, min(MAX_SCORE, score)))

        factors = ScoreFactors(
            base=BASE_SCORE,
            payment_history=history,
            asset_debt=asset_score,
            cash_reserve=cash_score,
            clean_slate=clean_slate,
            capped_below_excellent=not excellent,
            capped_below_good=not minimum_history,
        )
        return score, factors


def asset_debt_factor(assets: float, debt: float) -> int:
    """
    Balance-sheet factor, -75 to +75.

    Tiered by debt/assets ratio, plus a stability bonus for large holdings.
    Debt with no assets at all is the worst case.
    """
    if assets <= 0:
        return -75 if debt > 0 else 0

    ratio = debt / assets
    if ratio == 0:
        score = 60
    elif ratio < 0.2:
        score = 50
    elif ratio < 0.4:
        score = 35
    elif ratio < 0.6:
        score = 20
    elif ratio < 0.8:
        score = 0
    elif ratio < 1.0:
        score = -25
    else:
        score = -50  # Underwater

    if assets > 500_000:
        score += 15
    elif assets > 200_000:
        score += 10
    elif assets > 100_000:
        score += 5

    return max(-75, min(75, score))


def cash_reserve_factor(cash: float) -> int:
    if cash > 100_000:
        return 25
    elif cash > 50_000:
        return 15
    elif cash > 25_000:
        return 5
    return 0


def clean_slate_bonus(total_payments: int, assets: float, debt: float) -> int:
    """Collateral-backed head start; gone once any payment is on record"""
    if total_payments != 0 or assets <= 0 or debt != 0:
        return 0
    if assets > 500_000:
        return 40
    elif assets > 200_000:
        return 35
    elif assets > 100_000:
        return 30
    elif assets > 50_000:
        return 20
    return 0


def _tier(score: int) -> tuple:
    for tier in TIERS:
        if score >= tier[0]:
            return tier
    return TIERS[-1]


def get_rating(score: int) -> Tuple[str, int]:
    """Tier name and level (1 = Excellent ... 5 = Very Poor)"""
    _, name, level, _, _ = _tier(score)
    return name, level


def interest_adjustment(score: int) -> float:
    return _tier(score)[3]


def cash_back_multiplier(score: int) -> float:
    return _tier(score)[4]


def max_cash_back(down_payment: float) -> float:
    """Cash back is limited to half the down payment"""
    return float(int(down_payment * 0.5))


def can_finance(score: int, product: str) -> Eligibility:
    """
    Check a score against the minimum for a product type.

    Unknown products log a warning and fall back to a moderate threshold.
    """
    min_required = MIN_CREDIT_FOR_FINANCING.get(product)
    if min_required is None:
        logging.warning(
            f"Unknown finance product: {product}",
            extra={"product": product, "default_threshold": DEFAULT_MIN_CREDIT},
        )
        min_required = DEFAULT_MIN_CREDIT

    allowed = score >= min_required
    if allowed:
        return Eligibility(allowed=True, product=product, min_required=min_required, score=score)

    rating, _ = get_rating(score)
    deficit = min_required - score
    return Eligibility(
        allowed=False,
        product=product,
        min_required=min_required,
        score=score,
        deficit=deficit,
        reason=f"Credit score {score} ({rating}) is {deficit} points below the {min_required} required for {product}",
    )
