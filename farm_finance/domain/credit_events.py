"""Credit event ledger - named financial events with fixed score deltas"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterator, List, Optional, Tuple

from farm_finance.domain.models import CreditEventEntry, GameDate, Notice, Severity
from farm_finance.domain.scoring import get_rating

# Deltas are small for good behaviour and large for bad: slow to build, fast to lose
EVENT_TYPES: Dict[str, Tuple[str, int]] = {
    # Payments
    "PAYMENT_ON_TIME": ("Payment On Time", 2),
    "PAYMENT_MISSED": ("Missed Payment", -50),
    "DEAL_PAID_OFF": ("Loan Paid Off", 15),
    "NEW_DEBT_TAKEN": ("New Finance", -5),
    "DEBT_RATIO_IMPROVED": ("Debt Ratio Improved", 5),
    "EXCELLENT_ACHIEVED": ("Excellent Credit", 10),
    # Loans
    "LOAN_TAKEN": ("Cash Loan Taken", -3),
    "REPAIR_FINANCED": ("Repair Financed", -2),
    # Land leases
    "LAND_LEASE_CREATED": ("Land Leased", -3),
    "LAND_LEASE_PAYMENT": ("Land Lease Payment", 2),
    "LAND_LEASE_MISSED_PAYMENT": ("Missed Land Payment", -50),
    "LAND_LEASE_BUYOUT": ("Land Lease Buyout", 10),
    "LAND_LEASE_TERMINATED": ("Land Lease Terminated", -75),
    "LAND_LEASE_EXPIRED": ("Land Lease Expired", 0),
    "LAND_SEIZED": ("Land Seized", -150),
    # Vehicle leases
    "LEASE_TERMINATED_EARLY": ("Lease Terminated Early", -40),
    "LEASE_BUYOUT": ("Lease Buyout", 10),
    # Configured payments
    "PAYMENT_SKIPPED": ("Payment Skipped", -50),
    "PAYMENT_PARTIAL": ("Partial Payment", -15),
    "PAYMENT_MINIMUM": ("Minimum Payment", 0),
    "PAYMENT_STANDARD": ("Standard Payment", 2),
    "PAYMENT_EXTRA": ("Extra Payment", 3),
    # Defaults
    "VEHICLE_REPOSSESSED": ("Vehicle Repossessed", -100),
    "LOAN_DEFAULTED": ("Loan Defaulted", -100),
}

MAX_ADJUSTMENT = 200
DEFAULT_EVENT_LIMIT = 100

# Event types counted as a payment made on time or as a missed payment
ON_TIME_PAYMENT_EVENTS = frozenset(
    {"PAYMENT_ON_TIME", "PAYMENT_STANDARD", "PAYMENT_EXTRA", "PAYMENT_MINIMUM", "LAND_LEASE_PAYMENT"}
)
MISSED_PAYMENT_EVENTS = frozenset({"PAYMENT_MISSED", "PAYMENT_SKIPPED", "LAND_LEASE_MISSED_PAYMENT"})


@dataclass
class CreditSummary:
    total_events: int = 0
    positive_events: int = 0
    negative_events: int = 0
    net_change: int = 0
    payments_on_time: int = 0
    payments_missed: int = 0
    deals_completed: int = 0


class CreditEventLedger:
    """Per-account bounded event log with a clamped cumulative adjustment"""

    def __init__(self, event_limit: int = DEFAULT_EVENT_LIMIT):
        self.event_limit = event_limit
        self._history: Dict[str, Deque[CreditEventEntry]] = {}
        self._adjustments: Dict[str, int] = {}

    def _entries(self, account_id: str) -> Deque[CreditEventEntry]:
        entries = self._history.get(account_id)
        if entries is None:
            entries = deque(maxlen=self.event_limit)
            self._history[account_id] = entries
            self._adjustments.setdefault(account_id, 0)
        return entries

    def record_event(self, account_id: str, event_type: str, details: str = "", period: Optional[GameDate] = None) -> int:
        """
        Append an event and apply its delta.

        Returns the delta applied. Unknown event types are logged and ignored.
        """
        event_info = EVENT_TYPES.get(event_type)
        if event_info is None:
            logging.warning(
                f"Unknown credit event type: {event_type}",
                extra={"account_id": account_id, "event_type": event_type},
            )
            return 0

        name, change = event_info
        self._entries(account_id).append(
            CreditEventEntry(
                event_type=event_type,
                name=name,
                change=change,
                details=details,
                period=period or GameDate(year=1, month=1),
            )
        )

        adjustment = self._adjustments.get(account_id, 0) + change
        self._adjustments[account_id] = max(-MAX_ADJUSTMENT, min(MAX_ADJUSTMENT, adjustment))

        logging.debug(
            f"Credit event recorded: {name} ({change:+d})",
            extra={"account_id": account_id, "event_type": event_type, "change": change},
        )
        return change

    def get_score_adjustment(self, account_id: str) -> int:
        return self._adjustments.get(account_id, 0)

    def get_history(self, account_id: str, limit: Optional[int] = None) -> List[CreditEventEntry]:
        """Newest first, optionally limited to the most recent `limit` entries"""
        entries = list(reversed(self._history.get(account_id, ())))
        if limit is not None and limit > 0:
            entries = entries[:limit]
        return entries

    def get_summary(self, account_id: str) -> CreditSummary:
        summary = CreditSummary()
        for entry in self._history.get(account_id, ()):
            summary.total_events += 1
            summary.net_change += entry.change
            if entry.change > 0:
                summary.positive_events += 1
            elif entry.change < 0:
                summary.negative_events += 1

            if entry.event_type in ON_TIME_PAYMENT_EVENTS:
                summary.payments_on_time += 1
            elif entry.event_type in MISSED_PAYMENT_EVENTS:
                summary.payments_missed += 1
            elif entry.event_type == "DEAL_PAID_OFF":
                summary.deals_completed += 1
        return summary

    def check_tier_change(self, account_id: str, old_score: int, new_score: int, notifier, period: Optional[GameDate] = None) -> int:
        """
        Notify on tier movement; returns the level change (negative = improved).

        Reaching Excellent also records EXCELLENT_ACHIEVED.
        """
        _, old_level = get_rating(old_score)
        new_rating, new_level = get_rating(new_score)

        if new_level == old_level:
            return 0

        if new_level < old_level:
            if new_level == 1:
                self.record_event(account_id, "EXCELLENT_ACHIEVED", "Reached excellent credit tier", period)
            notifier.notify(
                account_id,
                Severity.OK,
                Notice("credit_tier_improved", {"rating": new_rating, "score": new_score}),
            )
        else:
            notifier.notify(
                account_id,
                Severity.CRITICAL,
                Notice("credit_tier_declined", {"rating": new_rating, "score": new_score}),
            )

        return new_level - old_level

    def restore_account(self, account_id: str, entries: List[CreditEventEntry], adjustment: int) -> None:
        """Load saved entries without re-applying their deltas"""
        history = self._entries(account_id)
        history.clear()
        history.extend(entries)
        self._adjustments[account_id] = max(-MAX_ADJUSTMENT, min(MAX_ADJUSTMENT, adjustment))

    def accounts(self) -> Iterator[str]:
        return iter(list(self._history.keys()))

    def clear(self) -> None:
        self._history.clear()
        self._adjustments.clear()
