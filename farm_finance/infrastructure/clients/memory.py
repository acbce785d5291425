"""In-memory collaborators for embedding the engine and for tests"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from farm_finance.domain.models import GameDate, Notice, Severity


class InMemoryLedger:
    """Account balances with a transfer journal"""

    def __init__(self, balances: Optional[Dict[str, float]] = None):
        self.balances: Dict[str, float] = dict(balances or {})
        self.journal: List[Tuple[str, float, str]] = []

    def get_balance(self, account_id: str) -> float:
        return self.balances.get(account_id, 0.0)

    def transfer(self, account_id: str, amount: float, reason: str) -> None:
        self.balances[account_id] = self.get_balance(account_id) + amount
        self.journal.append((account_id, amount, reason))

    def transfers(self, account_id: str, reason: Optional[str] = None) -> List[float]:
        return [
            amount
            for account, amount, tag in self.journal
            if account == account_id and (reason is None or tag == reason)
        ]


@dataclass
class Asset:
    reference: str
    account_id: str
    item_id: str
    value: float = 0.0
    financed: bool = False  # Financed assets do not count toward owned value


class InMemoryAssetRegistry:
    """Spawned vehicles keyed by reference"""

    def __init__(self):
        self.assets: Dict[str, Asset] = {}
        self.removed: List[Tuple[Asset, float]] = []
        self._ids = itertools.count(1)

    def add_asset(self, account_id: str, reference: str, value: float, item_id: str = "", financed: bool = False) -> Asset:
        asset = Asset(reference=reference, account_id=account_id, item_id=item_id or reference, value=value, financed=financed)
        self.assets[reference] = asset
        return asset

    def spawn_asset(self, account_id: str, item_id: str, configurations: Optional[Dict[str, Any]] = None) -> Optional[str]:
        reference = f"ASSET_{next(self._ids):04d}"
        self.add_asset(account_id, reference, 0.0, item_id=item_id, financed=True)
        return reference

    def find_asset(self, reference: str) -> Optional[Asset]:
        return self.assets.get(reference)

    def remove_asset(self, asset: Asset, payout: float) -> None:
        self.assets.pop(asset.reference, None)
        self.removed.append((asset, payout))

    def get_asset_value(self, asset: Asset) -> float:
        return asset.value

    def owned_asset_value(self, account_id: str) -> float:
        return sum(a.value for a in self.assets.values() if a.account_id == account_id and not a.financed)


class InMemoryLandRegistry:
    def __init__(self):
        self.owners: Dict[str, Optional[str]] = {}

    def set_owner(self, land_id: str, account_id: Optional[str]) -> None:
        self.owners[land_id] = account_id

    def owner_of(self, land_id: str) -> Optional[str]:
        return self.owners.get(land_id)


class RecordingNotifier:
    """Keeps every notice; also logs it for embedding without a UI"""

    def __init__(self):
        self.notices: List[Tuple[str, Severity, Notice]] = []

    def notify(self, account_id: str, severity: Severity, notice: Notice) -> None:
        self.notices.append((account_id, severity, notice))
        logging.info(
            f"Notice {notice.key}",
            extra={"account_id": account_id, "severity": severity.value, "notice_key": notice.key},
        )

    def keys(self, account_id: Optional[str] = None) -> List[str]:
        return [n.key for account, _, n in self.notices if account_id is None or account == account_id]


class SimulatedCalendar:
    """Month-stepping calendar that fires period-changed callbacks"""

    def __init__(self, start: Optional[GameDate] = None):
        self.today = start or GameDate(year=1, month=1)
        self._subscribers: List[Callable[[GameDate], Any]] = []

    def current_date(self) -> GameDate:
        return self.today

    def subscribe(self, callback: Callable[[GameDate], Any]) -> None:
        self._subscribers.append(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def fire(self) -> List[Any]:
        """Signal the current period again (simulates a duplicate signal)"""
        return [callback(self.today) for callback in self._subscribers]

    def advance_month(self) -> List[Any]:
        self.today = self.today.next_month()
        return self.fire()


@dataclass
class LeaseRenewalInbox:
    """Collects leases waiting for a return, buyout or renewal decision"""

    pending: List[str] = field(default_factory=list)

    def on_lease_term_complete(self, deal: Any) -> None:
        if deal.id not in self.pending:
            self.pending.append(deal.id)


@dataclass
class StaticLoanPolicy:
    blocked: bool = False

    def blocks_cash_loans(self) -> bool:
        return self.blocked
