"""Credit endpoints - score report, event history, eligibility and statistics"""

from dataclasses import asdict
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from farm_finance.api.dependencies import get_registry
from farm_finance.api.v1.schemas import (
    CreditEventItem,
    CreditHistoryResponse,
    CreditReportResponse,
    EligibilityResponse,
    ScoreFactorsSchema,
)
from farm_finance.services.registry import DealRegistry

router = APIRouter()


@router.get("/accounts/{account_id}/credit", response_model=CreditReportResponse)
async def get_credit_report(account_id: str, registry: DealRegistry = Depends(get_registry)):
    """Current score with its factor breakdown"""
    report = registry.credit_report(account_id)
    profile = registry.profiles.peek(account_id)

    return CreditReportResponse(
        account_id=account_id,
        score=report.score,
        rating=report.rating,
        level=report.level,
        history_adjustment=report.history_adjustment,
        interest_adjustment=report.interest_adjustment,
        cash_back_multiplier=report.cash_back_multiplier,
        on_time_rate=profile.on_time_rate() if profile is not None else 0,
        factors=ScoreFactorsSchema(**asdict(report.factors)) if report.factors is not None else None,
    )


@router.get("/accounts/{account_id}/credit/history", response_model=CreditHistoryResponse)
async def get_credit_history(
    account_id: str,
    limit: int = Query(20, ge=1, le=100),
    registry: DealRegistry = Depends(get_registry),
):
    """Credit events, newest first"""
    entries = registry.events.get_history(account_id, limit=limit)
    return CreditHistoryResponse(
        account_id=account_id,
        adjustment=registry.events.get_score_adjustment(account_id),
        events=[
            CreditEventItem(
                event_type=e.event_type,
                name=e.name,
                change=e.change,
                details=e.details,
                year=e.period.year,
                month=e.period.month,
            )
            for e in entries
        ],
    )


@router.get("/accounts/{account_id}/eligibility/{product}", response_model=EligibilityResponse)
async def get_eligibility(account_id: str, product: str, registry: DealRegistry = Depends(get_registry)):
    eligibility = registry.can_finance(account_id, product.upper())
    return EligibilityResponse(
        account_id=account_id,
        product=eligibility.product,
        allowed=eligibility.allowed,
        score=eligibility.score,
        min_required=eligibility.min_required,
        deficit=eligibility.deficit,
        reason=eligibility.reason,
    )


@router.get("/accounts/{account_id}/statistics")
async def get_statistics(account_id: str, registry: DealRegistry = Depends(get_registry)) -> Dict[str, Any]:
    return {"account_id": account_id, **asdict(registry.get_statistics(account_id))}
