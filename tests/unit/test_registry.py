"""Unit tests for the deal registry and the monthly batch"""

import pytest

from farm_finance.config import Settings
from farm_finance.domain.amortization import residual_value
from farm_finance.domain.exceptions import DealStateError, NotAuthorityError
from farm_finance.domain.models import (
    CollateralItem,
    DealKind,
    DealStatus,
    GameDate,
    ItemKind,
    PaymentMode,
)
from farm_finance.infrastructure.clients.memory import SimulatedCalendar
from farm_finance.services.registry import DealRegistry

ACCOUNT = "farm_1"


def finance_tractor(registry, **overrides):
    params = dict(
        account_id=ACCOUNT,
        item_kind="vehicle",
        item_id="tractor_01",
        item_name="Tractor",
        price=40_000.0,
        down_payment=8_000.0,
        term_years=5,
    )
    params.update(overrides)
    return registry.create_finance_deal(**params)


def run_periods(registry, count: int, start: GameDate = GameDate(year=2025, month=2)) -> list:
    """Fire `count` consecutive periods and return their batch reports"""
    reports = []
    period = start
    for _ in range(count):
        reports.append(registry.on_period_changed(period))
        period = period.next_month()
    return reports


class TestCreation:
    def test_finance_vehicle(self, registry, ledger, assets):
        """Test a financed vehicle charges the down payment and spawns the asset"""
        result = finance_tractor(registry)

        assert result.ok
        deal = result.deal
        assert deal.id == "DEAL_00000001"
        assert deal.kind == DealKind.FINANCE
        assert deal.interest_rate == pytest.approx(0.06)
        assert deal.term_months == 60
        assert deal.amount_financed == 32_000
        assert ledger.transfers(ACCOUNT, "down_payment") == [-8_000.0]
        assert deal.item.asset_ref is not None
        assert assets.find_asset(deal.item.asset_ref).financed
        assert registry.get_deal(deal.id) is deal
        assert [e.event_type for e in registry.events.get_history(ACCOUNT)] == ["NEW_DEBT_TAKEN"]

        stats = registry.get_statistics(ACCOUNT)
        assert stats.deals_created == 1
        assert stats.total_amount_financed == 32_000

    def test_finance_land_transfers_ownership(self, registry, lands):
        result = registry.create_finance_deal(ACCOUNT, "land", "field_7", "Field 7", 100_000, 20_000, 20)

        assert result.ok
        assert lands.owner_of("field_7") == ACCOUNT
        assert result.deal.term_months == 240

    def test_cash_back_charged_net_of_down_payment(self, registry, ledger):
        result = finance_tractor(registry, cash_back=2_000)

        assert result.deal.amount_financed == 34_000
        assert ledger.transfers(ACCOUNT, "down_payment") == [-6_000.0]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"down_payment": 25_000},  # Over half the price
            {"term_years": 25},
            {"cash_back": 5_000},  # Over half the down payment
            {"price": 9_000, "down_payment": 4_000, "item_kind": "land"},
            {"item_kind": "loan"},
            {"item_kind": "spaceship"},
        ],
    )
    def test_invalid_requests_are_declined(self, registry, ledger, overrides):
        """Test invalid parameters decline without moving money or registering a deal"""
        result = finance_tractor(registry, **overrides)

        assert not result.ok
        assert result.reason
        assert ledger.journal == []
        assert registry.get_deals_for_account(ACCOUNT) == []
        assert registry.next_deal_id == 1

    def test_insufficient_funds_declined(self, registry, ledger):
        ledger.balances[ACCOUNT] = 1_000.0

        result = finance_tractor(registry)

        assert not result.ok
        assert result.reason == "insufficient_funds"
        assert ledger.get_balance(ACCOUNT) == 1_000.0

    def test_credit_gate(self, strict_registry, ledger):
        """Test a 560 score may finance a vehicle but not lease one"""
        ledger.balances[ACCOUNT] = 10_000.0
        assert strict_registry.calculate_credit_score(ACCOUNT) == 560

        lease = strict_registry.create_lease_deal(ACCOUNT, "vehicle", "baler", "Baler", 9_000, 0, 1)
        assert not lease.ok
        assert "below the 600 required for VEHICLE_LEASE" in lease.reason

        finance = strict_registry.create_finance_deal(ACCOUNT, "vehicle", "baler", "Baler", 9_000, 1_000, 1)
        assert finance.ok

    def test_vehicle_lease(self, registry, ledger, assets):
        """Test a vehicle lease depreciates to its residual and takes a tiered deposit"""
        result = registry.create_lease_deal(ACCOUNT, "vehicle", "harvester", "Harvester", 50_000, 5_000, 3)

        deal = result.deal
        assert deal.kind == DealKind.LEASE
        assert deal.lease.residual_value == pytest.approx(residual_value(50_000, 36))
        assert deal.lease.depreciation == pytest.approx(50_000 - residual_value(50_000, 36))
        # Score 620 is Poor: three payments held as deposit
        assert deal.lease.security_deposit == pytest.approx(3 * deal.monthly_payment)
        charges = ledger.transfers(ACCOUNT, "lease_down_payment")
        assert len(charges) == 1
        assert charges[0] == pytest.approx(-(5_000 + 3 * deal.monthly_payment))
        assert assets.find_asset(deal.item.asset_ref) is not None

    def test_land_lease_is_interest_only(self, registry, lands):
        result = registry.create_lease_deal(ACCOUNT, "land", "field_3", "Field 3", 60_000, 0, 2)

        deal = result.deal
        assert deal.kind == DealKind.LAND_LEASE
        assert deal.lease.residual_value == 60_000
        assert deal.monthly_payment == pytest.approx(300.0)
        assert lands.owner_of("field_3") == ACCOUNT
        assert registry.events.get_history(ACCOUNT)[0].event_type == "LAND_LEASE_CREATED"

    def test_lease_down_payment_cap(self, registry):
        result = registry.create_lease_deal(ACCOUNT, "vehicle", "harvester", "Harvester", 50_000, 15_000, 3)

        assert not result.ok
        assert "20%" in result.reason

    def test_cash_loan_disburses(self, registry, ledger):
        collateral = [CollateralItem(asset_id="combine", reference="ASSET_1", name="Combine", value=20_000)]

        result = registry.create_cash_loan(ACCOUNT, 20_000, 5, collateral)

        assert result.ok
        assert result.deal.item.kind == ItemKind.LOAN
        assert result.deal.collateral == collateral
        assert ledger.transfers(ACCOUNT, "loan_disbursement") == [20_000]
        assert registry.events.get_history(ACCOUNT)[0].event_type == "LOAN_TAKEN"

    def test_cash_loan_blocked_by_policy(self, registry, loan_policy, ledger):
        loan_policy.blocked = True

        result = registry.create_cash_loan(ACCOUNT, 20_000, 5)

        assert not result.ok
        assert "another subsystem" in result.reason
        assert ledger.journal == []

    def test_cash_loans_disabled(self, ledger, assets, lands, notifier):
        registry = DealRegistry(ledger, assets, lands, notifier, config=Settings(cash_loans_enabled=False))

        assert not registry.create_cash_loan(ACCOUNT, 20_000, 5).ok

    def test_ids_stay_ahead_of_loaded_ids(self, registry, make_deal):
        """Test generated ids never collide with an indexed numeric id"""
        assert finance_tractor(registry).deal.id == "DEAL_00000001"

        loaded = make_deal()
        loaded.id = "DEAL_00000010"
        registry.index_deal(loaded)

        assert finance_tractor(registry).deal.id == "DEAL_00000011"

    def test_observer_cannot_mutate(self, observer_registry):
        with pytest.raises(NotAuthorityError):
            finance_tractor(observer_registry)
        with pytest.raises(NotAuthorityError):
            observer_registry.on_period_changed(GameDate(year=2025, month=2))

        assert observer_registry.get_deals_for_account(ACCOUNT) == []


class TestMonthlyBatch:
    def test_batch_charges_once_per_period(self, registry, ledger):
        """Test a repeated or stale period signal does not charge again"""
        deal = finance_tractor(registry).deal

        first = registry.on_period_changed(GameDate(year=2025, month=2))
        repeat = registry.on_period_changed(GameDate(year=2025, month=2))
        stale = registry.on_period_changed(GameDate(year=2025, month=1))

        assert first.processed == 1
        assert repeat.skipped and stale.skipped
        assert len(ledger.transfers(ACCOUNT, "finance_payment")) == 1
        assert deal.months_paid == 1
        assert registry.profiles.get(ACCOUNT).stats.on_time_payments == 1
        assert registry.today == GameDate(year=2025, month=2)

    def test_statistics_track_interest(self, registry):
        deal = finance_tractor(registry).deal

        run_periods(registry, 2)

        assert registry.get_statistics(ACCOUNT).total_interest_paid == pytest.approx(deal.total_interest_paid)

    def test_calendar_subscription(self, registry, calendar, ledger):
        """Test attaching twice subscribes once and duplicate signals are ignored"""
        finance_tractor(registry)
        registry.attach(calendar)
        registry.attach(calendar)
        assert calendar.subscriber_count == 1

        reports = calendar.advance_month()
        duplicate = calendar.fire()

        assert reports[0].processed == 1
        assert duplicate[0].skipped
        assert len(ledger.transfers(ACCOUNT, "finance_payment")) == 1

        with pytest.raises(DealStateError):
            registry.attach(SimulatedCalendar())

    def test_default_removes_deal(self, registry, assets):
        """Test three skipped periods default the deal and drop it from the index"""
        deal = finance_tractor(registry).deal
        assert registry.set_payment_mode(deal.id, int(PaymentMode.SKIP))

        reports = run_periods(registry, 3)

        assert reports[-1].defaulted == [deal.id]
        assert reports[-1].removed == [deal.id]
        assert deal.status == DealStatus.DEFAULTED
        assert registry.get_deal(deal.id) is None
        assert registry.get_deals_for_account(ACCOUNT) == []
        assert assets.find_asset(deal.item.asset_ref) is None
        assert registry.profiles.get(ACCOUNT).stats.missed_payments == 3

    def test_paid_off_deal_leaves_registry(self, registry):
        deal = registry.create_finance_deal(ACCOUNT, "vehicle", "mower", "Mower", 6_000, 1_000, 1).deal

        reports = run_periods(registry, 12)

        assert reports[-1].paid_off == [deal.id]
        assert registry.get_deal(deal.id) is None
        assert registry.get_statistics(ACCOUNT).deals_completed == 1

    def test_lease_term_end_waits_for_decision(self, registry, inbox, ledger):
        """Test a completed lease is routed once and not charged while awaiting a decision"""
        deal = registry.create_lease_deal(ACCOUNT, "vehicle", "harvester", "Harvester", 50_000, 0, 1).deal

        reports = run_periods(registry, 13)

        assert reports[11].lease_term_complete == [deal.id]
        assert reports[12].processed == 0
        assert reports[12].lease_term_complete == []
        assert inbox.pending == [deal.id]
        assert deal.lease.awaiting_renewal
        assert len(ledger.transfers(ACCOUNT, "finance_payment")) == 12

        result = registry.resolve_lease(deal.id, "return")

        assert result.success
        assert result.reason == "lease_return"
        assert deal.status == DealStatus.EXPIRED
        assert registry.get_deal(deal.id) is None

    def test_renewed_lease_is_charged_again(self, registry):
        deal = registry.create_lease_deal(ACCOUNT, "vehicle", "harvester", "Harvester", 50_000, 0, 1).deal
        run_periods(registry, 12)

        result = registry.resolve_lease(deal.id, "renew", 6)
        report = registry.on_period_changed(GameDate(year=2026, month=2))

        assert result.reason == "lease_renew"
        assert deal.term_months == 18
        assert report.processed == 1


class TestPlayerOperations:
    def test_payoff_removes_deal(self, registry):
        deal = finance_tractor(registry).deal

        result = registry.make_payment(deal.id, registry.get_payoff_amount(deal.id))

        assert result.success and result.paid_off
        assert registry.get_deal(deal.id) is None
        stats = registry.get_statistics(ACCOUNT)
        assert stats.deals_completed == 1
        assert stats.total_interest_paid == pytest.approx(640.0)  # 2% penalty on 32,000

    def test_payment_failures(self, registry):
        deal = finance_tractor(registry).deal

        assert registry.make_payment("DEAL_99999999", 1_000).reason == "deal_not_found"
        assert registry.make_payment(deal.id, 10).reason == "payment_too_low"
        assert registry.make_payment(deal.id, 1_000_000).reason == "payment_too_high"

    def test_payment_configuration(self, registry):
        deal = finance_tractor(registry).deal

        assert not registry.set_payment_multiplier(deal.id, 6.0)
        assert registry.set_payment_multiplier(deal.id, 2.5)
        assert deal.payment_multiplier == 2.5
        assert not registry.set_payment_mode(deal.id, int(PaymentMode.CUSTOM), -5)
        assert not registry.set_payment_mode("DEAL_99999999", 1)

    def test_cancel_before_first_payment(self, registry, ledger):
        deal = finance_tractor(registry).deal

        result = registry.cancel(deal.id)

        assert result.success
        assert result.amount == 8_000
        assert ledger.get_balance(ACCOUNT) == 150_000
        assert registry.get_deal(deal.id) is None

    def test_cancel_refused_after_payment(self, registry):
        deal = finance_tractor(registry).deal
        registry.on_period_changed(GameDate(year=2025, month=2))

        assert registry.cancel(deal.id).reason == "deal_has_payments"
        assert registry.cancel("DEAL_99999999").reason == "deal_not_found"

    def test_cancel_refused_after_skipped_periods(self, registry, ledger):
        """Test skipping periods counts as billing activity and blocks cancellation"""
        deal = finance_tractor(registry).deal
        registry.set_payment_mode(deal.id, int(PaymentMode.SKIP))
        run_periods(registry, 2)
        assert deal.missed_payments == 2
        balance = ledger.get_balance(ACCOUNT)

        result = registry.cancel(deal.id)

        assert not result.success
        assert result.reason == "deal_has_payments"
        assert ledger.get_balance(ACCOUNT) == balance
        assert deal.missed_payments == 2
        assert deal.accrued_interest > 0
        assert registry.get_deal(deal.id) is deal

    def test_unknown_lease_action(self, registry):
        deal = registry.create_lease_deal(ACCOUNT, "vehicle", "harvester", "Harvester", 50_000, 0, 1).deal

        assert registry.resolve_lease(deal.id, "sell").reason == "unknown_lease_action"

    def test_obligations_and_debt(self, registry):
        first = finance_tractor(registry).deal
        second = registry.create_cash_loan(ACCOUNT, 10_000, 2).deal

        assert registry.total_monthly_obligations(ACCOUNT) == pytest.approx(first.monthly_payment + second.monthly_payment)
        assert registry.total_debt(ACCOUNT) == pytest.approx(42_000)


class TestCreditAndStatistics:
    def test_score_without_history(self, registry):
        """Test 150k cash and no debt scores 620 (Poor)"""
        report = registry.credit_report(ACCOUNT)

        assert report.score == 620
        assert report.rating == "Poor"
        assert report.factors.clean_slate == 30

    def test_eligibility(self, registry):
        assert registry.can_finance(ACCOUNT, "LAND_FINANCE").allowed
        assert not registry.can_finance("farm_broke", "VEHICLE_LEASE").allowed

    def test_disabled_credit_system_uses_starting_score(self, ledger, assets, lands, notifier):
        registry = DealRegistry(
            ledger, assets, lands, notifier, config=Settings(credit_system_enabled=False, starting_credit_score=700)
        )

        assert registry.calculate_credit_score(ACCOUNT) == 700
        assert registry.credit_report(ACCOUNT).factors is None

    def test_increment_statistic(self, registry):
        assert registry.increment_statistic(ACCOUNT, "searches_started")
        assert registry.increment_statistic(ACCOUNT, "total_search_fees", 250.0)
        assert not registry.increment_statistic(ACCOUNT, "bogus_counter")

        stats = registry.get_statistics(ACCOUNT)
        assert stats.searches_started == 1
        assert stats.total_search_fees == 250.0
