"""Payment history tracking - the dominant input to the credit score"""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterator, List, Optional

from farm_finance.domain.models import GameDate, PaymentRecord, PaymentStatus

# History sub-score tuning: slow to gain, quick to lose
ON_TIME_BASE = 2
STREAK_BONUS = 0.5
MAX_STREAK_COUNTED = 24
RECENT_MISS_WINDOW = 6
RECENT_MISS_PENALTY = 40
LONGEVITY_DIVISOR = 8
MAX_LONGEVITY_BONUS = 30
MIN_PAYMENTS_FOR_SCORE = 3
MAX_HISTORY_SCORE = 250

# (total payments required, bonus) - highest tier wins, zero misses only
PERFECT_RECORD_MILESTONES = [(48, 35), (24, 20), (12, 10)]

MINIMUM_HISTORY_ON_TIME = 12
EXCELLENT_ON_TIME = 36
EXCELLENT_STREAK = 18
EXCELLENT_CLEAN_WINDOW = 18

DEFAULT_HISTORY_LIMIT = 100


@dataclass
class PaymentStats:
    total_payments: int = 0
    on_time_payments: int = 0
    late_payments: int = 0
    missed_payments: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_missed_index: int = 0  # 1-based position in the lifetime sequence; 0 = never

    @property
    def payments_since_last_miss(self) -> int:
        return self.total_payments - self.last_missed_index


class CreditProfile:
    """
    Per-account payment log plus aggregate counters.

    The log is a bounded window; counters cover the account's whole lifetime,
    so on_time + late + missed always equals total even after eviction.
    """

    def __init__(self, account_id: str, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.account_id = account_id
        self.stats = PaymentStats()
        self.payments: Deque[PaymentRecord] = deque(maxlen=history_limit)

    def record_payment(
        self,
        status: PaymentStatus,
        amount: float,
        period: GameDate,
        deal_id: str = "",
        deal_kind: str = "unknown",
    ) -> PaymentRecord:
        record = PaymentRecord(
            status=status, amount=amount, period=period, deal_id=deal_id, deal_kind=deal_kind
        )
        self.payments.append(record)

        stats = self.stats
        stats.total_payments += 1

        if status == PaymentStatus.ON_TIME:
            stats.on_time_payments += 1
            stats.current_streak += 1
            stats.longest_streak = max(stats.longest_streak, stats.current_streak)
        elif status == PaymentStatus.LATE:
            stats.late_payments += 1
            stats.current_streak = 0
        else:
            stats.missed_payments += 1
            stats.current_streak = 0
            stats.last_missed_index = stats.total_payments

        return record

    def history_score(self) -> int:
        """
        Payment-history contribution to the credit score (0-250).

        Components:
        - 2 points per on-time payment
        - 0.5 per payment of current streak, counting at most 24
        - Perfect record milestone: +35 at 48, +20 at 24, +10 at 12 payments
        - Longevity: total payments / 8, at most 30
        - Minus 40 if the last miss is within the last 6 payments

        No score until 3 payments are recorded.
        """
        stats = self.stats
        if stats.total_payments < MIN_PAYMENTS_FOR_SCORE:
            return 0

        score = stats.on_time_payments * ON_TIME_BASE
        score += min(stats.current_streak, MAX_STREAK_COUNTED) * STREAK_BONUS

        if stats.missed_payments == 0:
            for required, bonus in PERFECT_RECORD_MILESTONES:
                if stats.total_payments >= required:
                    score += bonus
                    break

        score += min(stats.total_payments / LONGEVITY_DIVISOR, MAX_LONGEVITY_BONUS)

        if stats.last_missed_index > 0 and stats.payments_since_last_miss < RECENT_MISS_WINDOW:
            score -= RECENT_MISS_PENALTY

        score = max(0, min(MAX_HISTORY_SCORE, score))
        return int(score)

    def has_minimum_history(self) -> bool:
        """At least a year of on-time payments, required for Good (700+)"""
        return self.stats.on_time_payments >= MINIMUM_HISTORY_ON_TIME

    def qualifies_for_excellent(self) -> bool:
        stats = self.stats
        return (
            stats.on_time_payments >= EXCELLENT_ON_TIME
            and stats.current_streak >= EXCELLENT_STREAK
            and (stats.last_missed_index == 0 or stats.payments_since_last_miss >= EXCELLENT_CLEAN_WINDOW)
        )

    def on_time_rate(self) -> int:
        """On-time percentage, floored; 0 with no history"""
        if self.stats.total_payments == 0:
            return 0
        return int(self.stats.on_time_payments / self.stats.total_payments * 100)

    def recent_payments(self, limit: Optional[int] = None) -> List[PaymentRecord]:
        """Oldest first, restricted to the last `limit` records"""
        records = list(self.payments)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def clear(self) -> None:
        self.stats = PaymentStats()
        self.payments.clear()


class CreditProfileStore:
    """Profiles keyed by account, created lazily on first access"""

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.history_limit = history_limit
        self._profiles: Dict[str, CreditProfile] = {}

    def get(self, account_id: str) -> CreditProfile:
        profile = self._profiles.get(account_id)
        if profile is None:
            profile = CreditProfile(account_id, history_limit=self.history_limit)
            self._profiles[account_id] = profile
        return profile

    def peek(self, account_id: str) -> Optional[CreditProfile]:
        return self._profiles.get(account_id)

    def reset(self, account_id: str) -> None:
        profile = self._profiles.get(account_id)
        if profile is not None:
            profile.clear()

    def clear(self) -> None:
        self._profiles.clear()

    def __iter__(self) -> Iterator[CreditProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)
