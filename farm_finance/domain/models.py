"""Domain models - pure Python dataclasses representing finance entities"""

from dataclasses import dataclass, field, fields
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


class DealKind(str, Enum):
    FINANCE = "finance"
    LEASE = "lease"
    LAND_LEASE = "land_lease"
    CASH_LOAN = "cash_loan"

    @property
    def is_lease(self) -> bool:
        return self in (DealKind.LEASE, DealKind.LAND_LEASE)


class DealStatus(str, Enum):
    ACTIVE = "active"
    PAID_OFF = "paid_off"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"  # Lease returned at end of term

    @property
    def is_terminal(self) -> bool:
        return self is not DealStatus.ACTIVE


class ItemKind(str, Enum):
    VEHICLE = "vehicle"
    EQUIPMENT = "equipment"
    LAND = "land"
    LOAN = "loan"


class PaymentMode(IntEnum):
    SKIP = 0  # Negative amortization
    MINIMUM = 1  # Interest only
    STANDARD = 2  # Amortized payment times multiplier
    EXTRA = 3  # Legacy double payment
    CUSTOM = 4  # Player-set amount


class PaymentStatus(str, Enum):
    ON_TIME = "on_time"
    LATE = "late"
    MISSED = "missed"


class OutcomeKind(str, Enum):
    """What a single monthly processing pass did to a deal"""

    SKIPPED = "skipped"  # Player chose to skip
    MISSED = "missed"  # No funds at all
    PARTIAL = "partial"  # Paid less than interest due
    MINIMUM = "minimum"  # Covered interest, less than the nominal payment
    STANDARD = "standard"
    EXTRA = "extra"

    @property
    def payment_status(self) -> PaymentStatus:
        if self in (OutcomeKind.STANDARD, OutcomeKind.EXTRA):
            return PaymentStatus.ON_TIME
        if self in (OutcomeKind.MINIMUM, OutcomeKind.PARTIAL):
            return PaymentStatus.LATE
        return PaymentStatus.MISSED


class Severity(str, Enum):
    INFO = "info"
    OK = "ok"
    CRITICAL = "critical"


class LeaseAction(str, Enum):
    RETURN = "return"
    BUYOUT = "buyout"
    RENEW = "renew"


@dataclass(frozen=True, order=True)
class GameDate:
    """In-game calendar date; a billing period is one (year, month)"""

    year: int
    month: int
    day: int = 1

    @property
    def period_key(self) -> tuple[int, int]:
        return (self.year, self.month)

    def next_month(self) -> "GameDate":
        if self.month >= 12:
            return GameDate(year=self.year + 1, month=1, day=self.day)
        return GameDate(year=self.year, month=self.month + 1, day=self.day)

    def to_dict(self) -> Dict[str, int]:
        return {"day": self.day, "month": self.month, "year": self.year}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GameDate":
        data = data or {}
        return cls(
            year=int(data.get("year", 1)),
            month=int(data.get("month", 1)),
            day=int(data.get("day", 1)),
        )


@dataclass(frozen=True)
class Notice:
    """Message key plus parameters; rendering is left to the caller"""

    key: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ItemRef:
    """What a deal pays for"""

    kind: ItemKind
    item_id: str
    name: str
    asset_ref: Optional[str] = None  # Spawned vehicle reference, once acquired
    configurations: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CollateralItem:
    """Asset pledged against a cash loan"""

    asset_id: str
    reference: str
    name: str
    value: float


@dataclass
class RepossessedItem:
    """History record kept after a collateral seizure"""

    asset_id: str
    reference: str
    name: str
    value: float
    repossessed_on: GameDate
    not_found: bool = False


@dataclass
class LeaseTerms:
    """Variant payload carried only by lease kinds"""

    residual_value: float
    security_deposit: float = 0.0
    depreciation: float = 0.0
    trade_in_value: float = 0.0
    awaiting_renewal: bool = False


@dataclass
class PaymentRecord:
    status: PaymentStatus
    amount: float
    period: GameDate
    deal_id: str = ""
    deal_kind: str = "unknown"


@dataclass
class CreditEventEntry:
    event_type: str
    name: str
    change: int
    details: str
    period: GameDate


@dataclass
class FinanceStatistics:
    """Lifetime counters per account"""

    # Used vehicle search (sibling subsystem)
    searches_started: int = 0
    searches_succeeded: int = 0
    searches_failed: int = 0
    searches_cancelled: int = 0
    total_search_fees: float = 0.0
    total_savings_from_used: float = 0.0
    used_purchases: int = 0

    # Vehicle sales (sibling subsystem)
    sales_listed: int = 0
    sales_completed: int = 0
    sales_cancelled: int = 0
    total_sale_proceeds: float = 0.0

    # Finance deals
    deals_created: int = 0
    deals_completed: int = 0
    total_amount_financed: float = 0.0
    total_interest_paid: float = 0.0

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]


@dataclass
class PaymentOutcome:
    """Result of one monthly processing pass"""

    kind: OutcomeKind
    amount_paid: float
    interest_due: float
    paid_off: bool = False
    defaulted: bool = False
    term_complete: bool = False  # Lease reached the end of its term


@dataclass
class ScoreFactors:
    """Breakdown of the additive score components"""

    base: int
    payment_history: int
    asset_debt: int
    cash_reserve: int
    clean_slate: int
    capped_below_excellent: bool
    capped_below_good: bool


@dataclass
class CreditReport:
    score: int
    rating: str
    level: int
    factors: Optional[ScoreFactors]
    history_adjustment: int
    interest_adjustment: float
    cash_back_multiplier: float


@dataclass
class Eligibility:
    allowed: bool
    product: str
    min_required: int
    score: int
    deficit: int = 0
    reason: str = ""


@dataclass
class DealResult:
    """Outcome of a creation request; deal is None when declined"""

    deal: Optional[Any]
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.deal is not None


@dataclass
class PaymentResult:
    success: bool
    reason: str
    amount: float = 0.0
    paid_off: bool = False


@dataclass
class BatchReport:
    period: GameDate
    skipped: bool = False
    processed: int = 0
    paid_off: List[str] = field(default_factory=list)
    defaulted: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    lease_term_complete: List[str] = field(default_factory=list)
