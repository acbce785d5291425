"""Deal endpoints - creation, payments, configuration, cancellation and lease resolution"""

import logging
from typing import Any, Awaitable, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from farm_finance.api.dependencies import get_authority_client, get_registry, get_request_id
from farm_finance.api.v1.schemas import (
    CashLoanRequest,
    DealListResponse,
    DealResponse,
    DeclinedResponse,
    FinanceDealRequest,
    LeaseDealRequest,
    LeaseResolutionRequest,
    LeaseSchema,
    MultiplierRequest,
    OperationResponse,
    PaymentModeRequest,
    PaymentRequest,
    PayoffResponse,
)
from farm_finance.domain.deal import Deal
from farm_finance.domain.exceptions import AuthorityAPIError
from farm_finance.domain.models import CollateralItem, DealResult, PaymentResult
from farm_finance.infrastructure.clients.authority import AuthorityClient
from farm_finance.services.registry import DealRegistry

router = APIRouter()


def deal_to_response(deal: Deal) -> DealResponse:
    lease = None
    if deal.lease is not None:
        lease = LeaseSchema(
            residual_value=deal.lease.residual_value,
            security_deposit=deal.lease.security_deposit,
            depreciation=deal.lease.depreciation,
            awaiting_renewal=deal.lease.awaiting_renewal,
        )
    return DealResponse(
        deal_id=deal.id,
        account_id=deal.account_id,
        deal_kind=deal.kind.value,
        status=deal.status.value,
        item_kind=deal.item.kind.value,
        item_id=deal.item.item_id,
        item_name=deal.item.name,
        original_price=deal.original_price,
        down_payment=deal.down_payment,
        cash_back=deal.cash_back,
        amount_financed=deal.amount_financed,
        term_months=deal.term_months,
        interest_rate=round(deal.interest_rate * 100, 4),
        monthly_payment=round(deal.monthly_payment, 2),
        current_balance=round(deal.current_balance, 2),
        accrued_interest=round(deal.accrued_interest, 2),
        months_paid=deal.months_paid,
        total_interest_paid=round(deal.total_interest_paid, 2),
        missed_payments=deal.missed_payments,
        payment_mode=int(deal.payment_mode),
        payment_multiplier=deal.payment_multiplier,
        lease=lease,
    )


async def _forward(call: Awaitable[Dict[str, Any]], request_id: str) -> Dict[str, Any]:
    """Await a proxied command, mapping authority failures to HTTP errors"""
    try:
        return await call
    except AuthorityAPIError as e:
        if e.status_code is not None and 400 <= e.status_code < 500:
            raise HTTPException(status_code=e.status_code, detail=str(e))
        logging.error(f"Authority API error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Authority service unavailable")


def _created(result: DealResult, request_id: str):
    if not result.ok:
        logging.info(
            f"Deal declined: {result.reason}",
            extra={"request_id": request_id, "reason": result.reason},
        )
        return JSONResponse(status_code=422, content=DeclinedResponse(reason=result.reason).model_dump())
    return deal_to_response(result.deal)


def _operation(result: PaymentResult) -> OperationResponse:
    if not result.success:
        status_code = 404 if result.reason == "deal_not_found" else 422
        raise HTTPException(status_code=status_code, detail=result.reason)
    return OperationResponse(
        success=True,
        reason=result.reason,
        amount=round(result.amount, 2),
        paid_off=result.paid_off,
    )


def _require_deal(registry: DealRegistry, deal_id: str) -> Deal:
    deal = registry.get_deal(deal_id)
    if deal is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    return deal


@router.post(
    "/deals/finance",
    response_model=DealResponse,
    status_code=201,
    responses={422: {"model": DeclinedResponse}},
)
async def create_finance_deal(
    body: FinanceDealRequest,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    authority: AuthorityClient = Depends(get_authority_client),
):
    """
    Finance a vehicle, equipment or land purchase.

    Flow:
    1. Observers forward the request to the authority
    2. Score, rate, validation and affordability checks
    3. Deal registered, down payment charged, item acquired
    """
    request_id = get_request_id(request)
    if not registry.is_authority:
        return await _forward(authority.create_finance_deal(body.model_dump(mode="json")), request_id)

    result = registry.create_finance_deal(
        account_id=body.account_id,
        item_kind=body.item_kind,
        item_id=body.item_id,
        item_name=body.item_name or body.item_id,
        price=body.price,
        down_payment=body.down_payment,
        term_years=body.term_years,
        cash_back=body.cash_back,
        configurations=body.configurations,
    )
    return _created(result, request_id)


@router.post(
    "/deals/lease",
    response_model=DealResponse,
    status_code=201,
    responses={422: {"model": DeclinedResponse}},
)
async def create_lease_deal(
    body: LeaseDealRequest,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    authority: AuthorityClient = Depends(get_authority_client),
):
    request_id = get_request_id(request)
    if not registry.is_authority:
        return await _forward(authority.create_lease_deal(body.model_dump(mode="json")), request_id)

    result = registry.create_lease_deal(
        account_id=body.account_id,
        item_kind=body.item_kind,
        item_id=body.item_id,
        item_name=body.item_name or body.item_id,
        price=body.price,
        down_payment=body.down_payment,
        term_years=body.term_years,
    )
    return _created(result, request_id)


@router.post(
    "/deals/loan",
    response_model=DealResponse,
    status_code=201,
    responses={422: {"model": DeclinedResponse}},
)
async def create_cash_loan(
    body: CashLoanRequest,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    authority: AuthorityClient = Depends(get_authority_client),
):
    request_id = get_request_id(request)
    if not registry.is_authority:
        return await _forward(authority.create_cash_loan(body.model_dump(mode="json")), request_id)

    collateral = [
        CollateralItem(asset_id=c.asset_id, reference=c.reference, name=c.name, value=c.value)
        for c in body.collateral
    ]
    result = registry.create_cash_loan(body.account_id, body.amount, body.term_years, collateral)
    return _created(result, request_id)


@router.get("/accounts/{account_id}/deals", response_model=DealListResponse)
async def list_deals(account_id: str, registry: DealRegistry = Depends(get_registry)):
    return DealListResponse(
        account_id=account_id,
        deals=[deal_to_response(d) for d in registry.get_deals_for_account(account_id)],
        total_debt=round(registry.total_debt(account_id), 2),
        total_monthly_obligations=round(registry.total_monthly_obligations(account_id), 2),
    )


@router.get("/deals/{deal_id}", response_model=DealResponse)
async def get_deal(deal_id: str, registry: DealRegistry = Depends(get_registry)):
    return deal_to_response(_require_deal(registry, deal_id))


@router.get("/deals/{deal_id}/payoff", response_model=PayoffResponse)
async def get_payoff(deal_id: str, registry: DealRegistry = Depends(get_registry)):
    payoff = registry.get_payoff_amount(deal_id)
    if payoff is None:
        raise HTTPException(status_code=404, detail="No active deal with that id")

    deal = registry.get_deal(deal_id)
    return PayoffResponse(
        deal_id=deal_id,
        payoff_amount=round(payoff, 2),
        prepayment_penalty=round(deal.prepayment_penalty(), 2),
        remaining_months=deal.remaining_months(),
    )


@router.post("/deals/{deal_id}/payments", response_model=OperationResponse)
async def make_payment(
    deal_id: str,
    body: PaymentRequest,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    authority: AuthorityClient = Depends(get_authority_client),
):
    if not registry.is_authority:
        return await _forward(authority.make_payment(deal_id, body.amount), get_request_id(request))
    return _operation(registry.make_payment(deal_id, body.amount))


@router.put("/deals/{deal_id}/payment-mode", response_model=DealResponse)
async def set_payment_mode(
    deal_id: str,
    body: PaymentModeRequest,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    authority: AuthorityClient = Depends(get_authority_client),
):
    if not registry.is_authority:
        return await _forward(
            authority.set_payment_mode(deal_id, body.mode, body.custom_amount), get_request_id(request)
        )

    deal = _require_deal(registry, deal_id)
    if not registry.set_payment_mode(deal_id, body.mode, body.custom_amount):
        raise HTTPException(status_code=422, detail="Payment mode rejected")
    return deal_to_response(deal)


@router.put("/deals/{deal_id}/multiplier", response_model=DealResponse)
async def set_payment_multiplier(
    deal_id: str,
    body: MultiplierRequest,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    authority: AuthorityClient = Depends(get_authority_client),
):
    if not registry.is_authority:
        return await _forward(authority.set_payment_multiplier(deal_id, body.multiplier), get_request_id(request))

    deal = _require_deal(registry, deal_id)
    if not registry.set_payment_multiplier(deal_id, body.multiplier):
        raise HTTPException(status_code=422, detail="Multiplier must be between 1.0 and 5.0")
    return deal_to_response(deal)


@router.post("/deals/{deal_id}/cancel", response_model=OperationResponse)
async def cancel_deal(
    deal_id: str,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    authority: AuthorityClient = Depends(get_authority_client),
):
    if not registry.is_authority:
        return await _forward(authority.cancel(deal_id), get_request_id(request))
    return _operation(registry.cancel(deal_id))


@router.post("/deals/{deal_id}/lease-resolution", response_model=OperationResponse)
async def resolve_lease(
    deal_id: str,
    body: LeaseResolutionRequest,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    authority: AuthorityClient = Depends(get_authority_client),
):
    if not registry.is_authority:
        return await _forward(
            authority.resolve_lease(deal_id, body.action.value, body.renewal_term_months),
            get_request_id(request),
        )
    return _operation(registry.resolve_lease(deal_id, body.action, body.renewal_term_months))
