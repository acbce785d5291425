"""Pydantic schemas for API request/response validation"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from farm_finance.domain.models import ItemKind, LeaseAction


class FinanceDealRequest(BaseModel):
    """Request body for POST /v1/deals/finance"""

    account_id: str = Field(..., min_length=1, description="Account identifier")
    item_kind: ItemKind = Field(..., description="vehicle, equipment or land")
    item_id: str = Field(..., min_length=1)
    item_name: str = ""
    price: float = Field(..., gt=0)
    down_payment: float = Field(0.0, ge=0)
    term_years: float = Field(..., gt=0)
    cash_back: float = Field(0.0, ge=0)
    configurations: Dict[str, Any] = Field(default_factory=dict)


class LeaseDealRequest(BaseModel):
    """Request body for POST /v1/deals/lease"""

    account_id: str = Field(..., min_length=1)
    item_kind: ItemKind
    item_id: str = Field(..., min_length=1)
    item_name: str = ""
    price: float = Field(..., gt=0)
    down_payment: float = Field(0.0, ge=0)
    term_years: float = Field(..., gt=0)


class CollateralSchema(BaseModel):
    asset_id: str
    reference: str
    name: str = ""
    value: float = Field(0.0, ge=0)


class CashLoanRequest(BaseModel):
    """Request body for POST /v1/deals/loan"""

    account_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    term_years: float = Field(..., gt=0)
    collateral: List[CollateralSchema] = Field(default_factory=list)


class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0, description="Manual payment amount")


class PaymentModeRequest(BaseModel):
    mode: int = Field(..., ge=0, le=4, description="0 skip, 1 minimum, 2 standard, 3 extra, 4 custom")
    custom_amount: Optional[float] = Field(None, ge=0)


class MultiplierRequest(BaseModel):
    multiplier: float


class LeaseResolutionRequest(BaseModel):
    action: LeaseAction
    renewal_term_months: Optional[int] = Field(None, gt=0)


class PeriodRequest(BaseModel):
    """Request body for POST /v1/periods"""

    year: int = Field(..., ge=1)
    month: int = Field(..., ge=1, le=12)


class LeaseSchema(BaseModel):
    residual_value: float
    security_deposit: float
    depreciation: float
    awaiting_renewal: bool


class DealResponse(BaseModel):
    """A deal as shown to the player"""

    deal_id: str
    account_id: str
    deal_kind: str
    status: str
    item_kind: str
    item_id: str
    item_name: str
    original_price: float
    down_payment: float
    cash_back: float
    amount_financed: float
    term_months: int
    interest_rate: float  # Percentage
    monthly_payment: float
    current_balance: float
    accrued_interest: float
    months_paid: int
    total_interest_paid: float
    missed_payments: int
    payment_mode: int
    payment_multiplier: float
    lease: Optional[LeaseSchema] = None


class DealListResponse(BaseModel):
    account_id: str
    deals: List[DealResponse]
    total_debt: float
    total_monthly_obligations: float


class DeclinedResponse(BaseModel):
    """Body returned with 422 when a creation request is declined"""

    approved: bool = False
    reason: str


class OperationResponse(BaseModel):
    success: bool
    reason: str
    amount: float = 0.0
    paid_off: bool = False


class PayoffResponse(BaseModel):
    deal_id: str
    payoff_amount: float
    prepayment_penalty: float
    remaining_months: int


class ScoreFactorsSchema(BaseModel):
    base: int
    payment_history: int
    asset_debt: int
    cash_reserve: int
    clean_slate: int
    capped_below_excellent: bool
    capped_below_good: bool


class CreditReportResponse(BaseModel):
    """Response for GET /v1/accounts/{account_id}/credit"""

    account_id: str
    score: int
    rating: str
    level: int
    history_adjustment: int
    interest_adjustment: float
    cash_back_multiplier: float
    on_time_rate: int
    factors: Optional[ScoreFactorsSchema] = None


class CreditEventItem(BaseModel):
    event_type: str
    name: str
    change: int
    details: str
    year: int
    month: int


class CreditHistoryResponse(BaseModel):
    account_id: str
    adjustment: int
    events: List[CreditEventItem]


class EligibilityResponse(BaseModel):
    account_id: str
    product: str
    allowed: bool
    score: int
    min_required: int
    deficit: int = 0
    reason: str = ""


class BatchReportResponse(BaseModel):
    year: int
    month: int
    skipped: bool
    processed: int
    paid_off: List[str]
    defaulted: List[str]
    removed: List[str]
    lease_term_complete: List[str]


class SaveGameResponse(BaseModel):
    slot: str
    version: int
    deal_count: int
