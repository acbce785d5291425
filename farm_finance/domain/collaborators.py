"""Interfaces the finance engine consumes from the surrounding game"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from farm_finance.domain.models import GameDate, Notice, Severity


class AccountLedger(Protocol):
    """The game's money store. Negative transfers charge the account."""

    def get_balance(self, account_id: str) -> float: ...

    def transfer(self, account_id: str, amount: float, reason: str) -> None: ...


class AssetRegistry(Protocol):
    """Spawned vehicles and equipment"""

    def find_asset(self, reference: str) -> Optional[Any]: ...

    def remove_asset(self, asset: Any, payout: float) -> None: ...

    def get_asset_value(self, asset: Any) -> float: ...

    def spawn_asset(self, account_id: str, item_id: str, configurations: Dict[str, Any]) -> Optional[str]: ...

    def owned_asset_value(self, account_id: str) -> float: ...


class LandRegistry(Protocol):
    def set_owner(self, land_id: str, account_id: Optional[str]) -> None: ...


class NotificationSink(Protocol):
    def notify(self, account_id: str, severity: Severity, notice: Notice) -> None: ...


class RateCurve(Protocol):
    """Annual percentage rates from credit score, term and down payment ratio"""

    def vehicle_rate(self, score: int, term_months: int, down_payment_pct: float) -> float: ...

    def land_rate(self, score: int, term_months: int, down_payment_pct: float) -> float: ...

    def lease_rate(self, score: int, term_months: int, down_payment_pct: float) -> float: ...


class Calendar(Protocol):
    def current_date(self) -> GameDate: ...

    def subscribe(self, callback: Callable[[GameDate], Any]) -> None: ...


class LeaseRenewalHandler(Protocol):
    """Receives leases that reached the end of their term"""

    def on_lease_term_complete(self, deal: Any) -> None: ...


class LoanPolicy(Protocol):
    """Lets a sibling subsystem claim exclusive ownership of cash loans"""

    def blocks_cash_loans(self) -> bool: ...


@dataclass
class FinanceContext:
    """Collaborators and bookkeeping handed to deal operations"""

    ledger: AccountLedger
    assets: AssetRegistry
    lands: LandRegistry
    notifier: NotificationSink
    events: Any  # CreditEventLedger
    today: GameDate

    def notify(self, account_id: str, severity: Severity, key: str, **params) -> None:
        self.notifier.notify(account_id, severity, Notice(key=key, params=params))
