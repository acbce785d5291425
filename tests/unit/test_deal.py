"""Unit tests for deal amortization, payment processing and default handling"""

import pytest

from farm_finance.domain.deal import Deal
from farm_finance.domain.exceptions import (
    AffordabilityError,
    AffordabilityReason,
    CorruptRecordError,
    DealStateError,
    DealValidationError,
)
from farm_finance.domain.models import (
    CollateralItem,
    DealKind,
    DealStatus,
    ItemKind,
    LeaseTerms,
    OutcomeKind,
    PaymentMode,
    Severity,
)

ACCOUNT = "farm_1"


def event_types(ctx) -> list:
    """Credit events recorded for the account, oldest first"""
    return [e.event_type for e in reversed(ctx.events.get_history(ACCOUNT))]


def test_new_deal_terms(make_deal):
    """Test amount financed and payment for 40k with 8k down over 60 months at 6%"""
    deal = make_deal()

    assert deal.amount_financed == 32_000
    assert deal.monthly_rate == pytest.approx(0.005)
    assert deal.monthly_payment == pytest.approx(618.65, abs=0.01)
    assert deal.current_balance == 32_000
    assert deal.status == DealStatus.ACTIVE


def test_cash_back_is_financed(make_deal):
    """Test cash back is added to the amount financed"""
    deal = make_deal(cash_back=2_000)

    assert deal.amount_financed == 34_000


def test_zero_rate_payment(make_deal):
    """Test a zero-rate deal pays principal over the term exactly"""
    deal = make_deal(rate=0.0)

    assert deal.monthly_payment == 32_000 / 60


def test_full_term_pays_off(make_deal, ctx, ledger):
    """Test 60 standard payments clear the balance and mark the deal paid off"""
    deal = make_deal()
    start_balance = ledger.get_balance(ACCOUNT)

    outcomes = [deal.process_monthly_payment(ctx) for _ in range(60)]

    assert all(not o.paid_off for o in outcomes[:-1])
    assert outcomes[-1].paid_off
    assert all(o.kind == OutcomeKind.STANDARD for o in outcomes)
    assert deal.status == DealStatus.PAID_OFF
    assert deal.current_balance == 0
    assert deal.months_paid == 60
    assert start_balance - ledger.get_balance(ACCOUNT) == pytest.approx(60 * deal.monthly_payment, abs=0.05)
    assert event_types(ctx)[-1] == "DEAL_PAID_OFF"


def test_interest_split_first_month(make_deal, ctx):
    """Test the first payment covers 160 of interest and the rest reduces principal"""
    deal = make_deal()

    outcome = deal.process_monthly_payment(ctx)

    assert outcome.interest_due == pytest.approx(160.0)
    assert deal.total_interest_paid == pytest.approx(160.0)
    assert deal.current_balance == pytest.approx(32_000 - (deal.monthly_payment - 160.0))
    assert event_types(ctx) == ["PAYMENT_STANDARD"]


def test_partial_payment_never_increases_balance(make_deal, ctx, ledger):
    """Test paying less than interest leaves principal alone and accrues the shortfall"""
    deal = make_deal()
    deal.set_payment_mode(PaymentMode.CUSTOM, 50.0)

    outcome = deal.process_monthly_payment(ctx)

    assert outcome.kind == OutcomeKind.PARTIAL
    assert deal.current_balance == 32_000
    assert deal.accrued_interest == pytest.approx(110.0)
    assert deal.months_paid == 0
    assert ledger.transfers(ACCOUNT, "finance_payment") == [-50.0]
    assert event_types(ctx) == ["PAYMENT_PARTIAL"]


def test_skip_accrues_interest_and_defaults_on_third_strike(make_deal, ctx, assets, notifier):
    """Test three skipped periods on a vehicle repossess it and extinguish the debt"""
    assets.add_asset(ACCOUNT, "ASSET_9", 30_000, financed=True)
    deal = make_deal(asset_ref="ASSET_9")
    deal.set_payment_mode(PaymentMode.SKIP)

    first = deal.process_monthly_payment(ctx)
    assert first.kind == OutcomeKind.SKIPPED
    assert deal.accrued_interest == pytest.approx(160.0)
    assert deal.missed_payments == 1

    second = deal.process_monthly_payment(ctx)
    assert deal.accrued_interest == pytest.approx(160.0 + 160.8)
    assert deal.missed_payments == 2
    assert not second.defaulted

    third = deal.process_monthly_payment(ctx)
    assert third.defaulted
    assert deal.status == DealStatus.DEFAULTED
    assert deal.current_balance == 0
    assert deal.accrued_interest == 0
    assert assets.find_asset("ASSET_9") is None
    assert assets.removed[0][1] == 0.0  # Seized at zero payout

    assert notifier.keys(ACCOUNT) == ["payment_missed_warning", "payment_missed_final_warning", "vehicle_repossessed"]
    assert notifier.notices[0][1] == Severity.INFO
    assert event_types(ctx) == ["PAYMENT_SKIPPED"] * 3 + ["VEHICLE_REPOSSESSED"]


def test_funds_exhausted_is_a_missed_payment(make_deal, ctx, ledger):
    """Test an empty account produces a missed outcome and no charge"""
    ledger.balances[ACCOUNT] = 0.0
    deal = make_deal()

    outcome = deal.process_monthly_payment(ctx)

    assert outcome.kind == OutcomeKind.MISSED
    assert outcome.amount_paid == 0
    assert deal.missed_payments == 1
    assert ledger.transfers(ACCOUNT, "finance_payment") == []
    assert event_types(ctx) == ["PAYMENT_MISSED"]


def test_short_funds_degrade_to_interest_only(make_deal, ctx, ledger, notifier):
    """Test an account that cannot cover the payment pays interest only"""
    ledger.balances[ACCOUNT] = 200.0
    deal = make_deal()

    outcome = deal.process_monthly_payment(ctx)

    assert outcome.kind == OutcomeKind.MINIMUM
    assert outcome.amount_paid == pytest.approx(160.0)
    assert deal.current_balance == 32_000
    assert deal.months_paid == 1
    assert "payment_shortfall" in notifier.keys(ACCOUNT)


def test_successful_payment_resets_strikes(make_deal, ctx):
    """Test the missed counter returns to zero after a qualifying payment"""
    deal = make_deal()
    deal.set_payment_mode(PaymentMode.SKIP)
    deal.process_monthly_payment(ctx)
    deal.process_monthly_payment(ctx)
    assert deal.missed_payments == 2

    deal.set_payment_mode(PaymentMode.STANDARD)
    deal.process_monthly_payment(ctx)

    assert deal.missed_payments == 0
    assert deal.accrued_interest == 0


def test_extra_payment_classification(make_deal, ctx):
    """Test a doubled payment is recorded as extra"""
    deal = make_deal()
    assert deal.set_payment_multiplier(2.0)

    outcome = deal.process_monthly_payment(ctx)

    assert outcome.kind == OutcomeKind.EXTRA
    assert outcome.amount_paid == pytest.approx(2 * deal.monthly_payment)
    assert event_types(ctx) == ["PAYMENT_EXTRA"]


def test_cash_loan_default_repossesses_collateral(make_deal, ctx, assets, notifier):
    """Test every pledged asset gets a history entry, found or not"""
    assets.add_asset(ACCOUNT, "ASSET_1", 20_000)
    collateral = [
        CollateralItem(asset_id="combine", reference="ASSET_1", name="Combine", value=20_000),
        CollateralItem(asset_id="trailer", reference="ASSET_404", name="Trailer", value=5_000),
    ]
    deal = make_deal(
        kind=DealKind.CASH_LOAN,
        item_kind=ItemKind.LOAN,
        item_id="cash_loan",
        price=10_000,
        down_payment=0,
        collateral=collateral,
    )
    deal.set_payment_mode(PaymentMode.SKIP)

    for _ in range(3):
        outcome = deal.process_monthly_payment(ctx)

    assert outcome.defaulted
    assert deal.status == DealStatus.DEFAULTED
    assert len(deal.repossessed_items) == 2
    assert [r.not_found for r in deal.repossessed_items] == [False, True]
    assert len(assets.removed) == 1
    assert event_types(ctx)[-1] == "LOAN_DEFAULTED"

    notice = notifier.notices[-1][2]
    assert notice.key == "loan_defaulted"
    assert notice.params["recovered_count"] == 1
    assert notice.params["recovered_value"] == 20_000


def test_land_default_returns_ownership(make_deal, ctx, lands):
    """Test the third strike on financed land makes it unowned"""
    lands.set_owner("field_7", ACCOUNT)
    deal = make_deal(item_kind=ItemKind.LAND, item_id="field_7", price=100_000, down_payment=20_000, term_months=240)
    deal.set_payment_mode(PaymentMode.SKIP)

    for _ in range(3):
        deal.process_monthly_payment(ctx)

    assert deal.status == DealStatus.DEFAULTED
    assert lands.owner_of("field_7") is None
    assert event_types(ctx)[-1] == "LAND_SEIZED"


def test_processing_terminal_deal_raises(make_deal, ctx):
    deal = make_deal()
    deal.status = DealStatus.PAID_OFF

    with pytest.raises(DealStateError):
        deal.process_monthly_payment(ctx)


def test_payment_multiplier_bounds(make_deal):
    """Test multipliers outside 1.0-5.0 are refused"""
    deal = make_deal()
    deal.set_payment_mode(PaymentMode.MINIMUM)

    assert not deal.set_payment_multiplier(0.5)
    assert not deal.set_payment_multiplier(5.1)
    assert deal.set_payment_multiplier(3.0)
    assert deal.payment_mode == PaymentMode.STANDARD
    assert deal.configured_payment() == pytest.approx(3 * deal.monthly_payment)


def test_payment_mode_parsing(make_deal):
    """Test custom amounts must be non-negative and unknown modes fall back to standard"""
    deal = make_deal()

    with pytest.raises(DealValidationError):
        deal.set_payment_mode(PaymentMode.CUSTOM, -1.0)

    assert deal.set_payment_mode("banana") == PaymentMode.STANDARD
    assert deal.set_payment_mode(1) == PaymentMode.MINIMUM
    assert deal.configured_payment() == pytest.approx(160.0)
    assert deal.set_payment_mode(3) == PaymentMode.EXTRA
    assert deal.configured_payment() == pytest.approx(2 * deal.monthly_payment)


def test_remaining_months_and_savings(make_deal):
    """Test doubling the payment roughly halves the remaining term"""
    deal = make_deal()
    deal.set_payment_multiplier(2.0)

    assert deal.remaining_months() == 28
    assert deal.multiplier_savings().interest_saved > 0


def test_make_payment_rejections(make_deal, ctx, ledger):
    """Test too-low, too-high and unaffordable manual payments"""
    deal = make_deal()

    with pytest.raises(AffordabilityError) as too_low:
        deal.make_payment(100.0, ctx)
    assert too_low.value.reason == AffordabilityReason.TOO_LOW

    with pytest.raises(AffordabilityError) as too_high:
        deal.make_payment(deal.payoff_amount() + 10, ctx)
    assert too_high.value.reason == AffordabilityReason.TOO_HIGH

    ledger.balances[ACCOUNT] = 1_000.0
    with pytest.raises(AffordabilityError) as broke:
        deal.make_payment(1_200.0, ctx)
    assert broke.value.reason == AffordabilityReason.INSUFFICIENT_FUNDS

    assert deal.current_balance == 32_000
    assert ledger.transfers(ACCOUNT) == []


def test_payoff_with_short_remaining_term(make_deal, ctx, ledger):
    """Test 10,000 owed with 8 months left costs 10,100 and closes the deal"""
    deal = make_deal()
    deal.current_balance = 10_000.0
    deal.months_paid = 52
    interest_before = deal.total_interest_paid

    assert deal.prepayment_penalty() == pytest.approx(100.0)
    assert deal.payoff_amount() == pytest.approx(10_100.0)

    result = deal.make_payment(10_100.0, ctx)

    assert result.success and result.paid_off
    assert deal.status == DealStatus.PAID_OFF
    assert deal.current_balance == 0
    assert deal.total_interest_paid - interest_before == pytest.approx(100.0)
    assert ledger.transfers(ACCOUNT, "finance_payment") == [-10_100.0]


def test_manual_payment_covers_whole_months(make_deal, ctx, notifier):
    """Test a two-payment amount is split as two months of interest then principal"""
    deal = make_deal()
    deal.missed_payments = 1
    m = deal.monthly_payment
    first_interest = 32_000 * 0.005
    interest = first_interest + (32_000 - (m - first_interest)) * 0.005

    result = deal.make_payment(2 * m, ctx)

    assert result.success and not result.paid_off
    assert deal.months_paid == 2
    assert deal.missed_payments == 0
    assert deal.current_balance == pytest.approx(32_000 - (2 * m - interest))
    assert deal.total_interest_paid == pytest.approx(interest)
    assert notifier.keys(ACCOUNT) == ["payment_made"]


def test_vehicle_lease_reaches_residual(make_deal, ctx, notifier):
    """Test a lease runs down to its residual and flags term completion"""
    deal = make_deal(
        kind=DealKind.LEASE,
        price=50_000,
        down_payment=0,
        term_months=36,
        lease=LeaseTerms(residual_value=30_000, security_deposit=1_000),
    )

    outcomes = [deal.process_monthly_payment(ctx) for _ in range(36)]

    assert outcomes[-1].term_complete
    assert not any(o.term_complete for o in outcomes[:-1])
    assert deal.status == DealStatus.ACTIVE
    assert deal.current_balance == pytest.approx(30_000, abs=0.01)
    assert "lease_term_complete" in notifier.keys(ACCOUNT)


def test_land_lease_payments_are_interest_only(make_deal, ctx):
    """Test a land lease payment leaves the balance untouched"""
    deal = make_deal(
        kind=DealKind.LAND_LEASE,
        item_kind=ItemKind.LAND,
        item_id="field_3",
        price=60_000,
        down_payment=0,
        term_months=24,
        lease=LeaseTerms(residual_value=60_000),
    )

    outcome = deal.process_monthly_payment(ctx)

    assert deal.monthly_payment == pytest.approx(300.0)
    assert outcome.kind == OutcomeKind.STANDARD
    assert deal.current_balance == pytest.approx(60_000)
    assert event_types(ctx) == ["LAND_LEASE_PAYMENT"]


def test_return_lease_refunds_deposit(make_deal, ctx, assets, ledger):
    """Test returning a lease refunds the deposit less $100 per miss and releases the vehicle"""
    assets.add_asset(ACCOUNT, "ASSET_5", 0.0, financed=True)
    deal = make_deal(
        kind=DealKind.LEASE,
        price=50_000,
        down_payment=0,
        term_months=36,
        asset_ref="ASSET_5",
        lease=LeaseTerms(residual_value=30_000, security_deposit=1_000),
    )
    deal.missed_payments = 2

    refund = deal.return_lease(ctx)

    assert refund == pytest.approx(800.0)
    assert ledger.transfers(ACCOUNT, "lease_deposit_refund") == [800.0]
    assert deal.status == DealStatus.EXPIRED
    assert assets.find_asset("ASSET_5") is None


def test_buyout_lease(make_deal, ctx, ledger):
    """Test buying out charges what is owed, refunds the deposit and closes the lease as paid off"""
    deal = make_deal(
        kind=DealKind.LEASE,
        price=50_000,
        down_payment=0,
        term_months=36,
        lease=LeaseTerms(residual_value=30_000, security_deposit=1_000),
    )

    price = deal.buyout_lease(ctx)

    assert price == pytest.approx(50_000)
    assert ledger.transfers(ACCOUNT, "lease_buyout") == [-50_000]
    assert ledger.transfers(ACCOUNT, "lease_deposit_refund") == [1_000]
    assert deal.status == DealStatus.PAID_OFF
    assert "LEASE_BUYOUT" in event_types(ctx)


def test_lease_payoff_refunds_deposit(make_deal, ctx, ledger):
    """Test paying off a lease in full returns the security deposit like a buyout"""
    deal = make_deal(
        kind=DealKind.LEASE,
        price=50_000,
        down_payment=0,
        term_months=36,
        lease=LeaseTerms(residual_value=30_000, security_deposit=1_500),
    )

    result = deal.make_payment(deal.payoff_amount(), ctx)

    assert result.paid_off
    assert deal.status == DealStatus.PAID_OFF
    assert ledger.transfers(ACCOUNT, "lease_deposit_refund") == [1_500]
    assert "LEASE_BUYOUT" in event_types(ctx)


def test_lease_payoff_deducts_standing_misses(make_deal, ctx, ledger):
    deal = make_deal(
        kind=DealKind.LEASE,
        price=50_000,
        down_payment=0,
        term_months=36,
        lease=LeaseTerms(residual_value=30_000, security_deposit=1_500),
    )
    deal.missed_payments = 1

    deal.make_payment(deal.payoff_amount(), ctx)

    assert ledger.transfers(ACCOUNT, "lease_deposit_refund") == [1_400]


def test_buyout_requires_funds(make_deal, ctx, ledger):
    ledger.balances[ACCOUNT] = 100.0
    deal = make_deal(kind=DealKind.LEASE, price=50_000, down_payment=0, lease=LeaseTerms(residual_value=30_000))

    with pytest.raises(AffordabilityError):
        deal.buyout_lease(ctx)
    assert deal.status == DealStatus.ACTIVE


def test_renew_lease_extends_term(make_deal, ctx):
    """Test renewal keeps the payment and projects a lower residual"""
    deal = make_deal(kind=DealKind.LEASE, price=50_000, down_payment=0, term_months=12, lease=LeaseTerms(residual_value=40_000))
    payment = deal.monthly_payment
    deal.lease.awaiting_renewal = True

    deal.renew_lease(12, ctx)

    assert deal.term_months == 24
    assert deal.monthly_payment == payment
    assert deal.lease.residual_value < 50_000
    assert deal.lease.awaiting_renewal is False


def test_lease_operations_require_a_lease(make_deal, ctx):
    with pytest.raises(DealStateError):
        make_deal().return_lease(ctx)


def test_cancel_before_payment(make_deal, ctx, ledger, assets):
    """Test cancellation refunds the net down payment and releases the vehicle"""
    assets.add_asset(ACCOUNT, "ASSET_2", 0.0, financed=True)
    deal = make_deal(cash_back=1_000, asset_ref="ASSET_2")

    net = deal.cancel(ctx)

    assert net == pytest.approx(7_000)
    assert ledger.transfers(ACCOUNT, "deal_cancelled") == [7_000]
    assert deal.status == DealStatus.CANCELLED
    assert assets.find_asset("ASSET_2") is None


def test_cancel_after_payment_refused(make_deal, ctx):
    deal = make_deal()
    deal.process_monthly_payment(ctx)

    with pytest.raises(DealStateError):
        deal.cancel(ctx)


def test_cancel_after_skipped_period_refused(make_deal, ctx, ledger):
    """Test a skipped period blocks cancellation and keeps the strike and accrued interest"""
    deal = make_deal()
    deal.set_payment_mode(PaymentMode.SKIP)
    deal.process_monthly_payment(ctx)

    with pytest.raises(DealStateError):
        deal.cancel(ctx)
    assert deal.missed_payments == 1
    assert deal.accrued_interest == pytest.approx(160.0)
    assert ledger.transfers(ACCOUNT, "deal_cancelled") == []


def test_cancel_cash_loan_reclaims_disbursement(make_deal, ctx, ledger):
    deal = make_deal(kind=DealKind.CASH_LOAN, item_kind=ItemKind.LOAN, price=5_000, down_payment=0)

    assert deal.cancel(ctx) == pytest.approx(-5_000)
    assert ledger.transfers(ACCOUNT, "deal_cancelled") == [-5_000]


def test_record_persists_rate_as_percentage(make_deal):
    record = make_deal().to_record()

    assert record["interest_rate"] == pytest.approx(6.0)
    assert record["deal_kind"] == "finance"
    assert record["created_at"] == {"day": 1, "month": 1, "year": 2025}


def test_from_record_accepts_legacy_kind_codes(make_deal):
    """Test integer kind 4 loads as a land lease with default lease terms"""
    record = make_deal().to_record()
    record["deal_kind"] = 4
    record.pop("lease", None)

    deal = Deal.from_record(record)

    assert deal.kind == DealKind.LAND_LEASE
    assert deal.lease is not None
    assert deal.interest_rate == pytest.approx(0.06)


def test_from_record_rejects_corrupt_records(make_deal):
    """Test a missing id or unknown kind is corrupt; an unknown status falls back"""
    deal_cls = Deal
    record = make_deal().to_record()

    with pytest.raises(CorruptRecordError):
        deal_cls.from_record({**record, "id": ""})
    with pytest.raises(CorruptRecordError):
        deal_cls.from_record({**record, "deal_kind": "timeshare"})

    assert deal_cls.from_record({**record, "status": "levitating"}).status == DealStatus.ACTIVE
