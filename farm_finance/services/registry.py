"""Deal registry - creation, indexing, the monthly batch and player operations"""

import logging
import time
from typing import Any, Dict, Iterator, List, Optional

from farm_finance.config import Settings, settings as default_settings
from farm_finance.domain import scoring
from farm_finance.domain.amortization import residual_value
from farm_finance.domain.collaborators import (
    AccountLedger,
    AssetRegistry,
    Calendar,
    FinanceContext,
    LandRegistry,
    LeaseRenewalHandler,
    LoanPolicy,
    NotificationSink,
    RateCurve,
)
from farm_finance.domain.credit_events import CreditEventLedger
from farm_finance.domain.credit_profile import CreditProfileStore
from farm_finance.domain.deal import Deal
from farm_finance.domain.exceptions import (
    AffordabilityError,
    AffordabilityReason,
    CreditRequirementError,
    DealNotFoundError,
    DealStateError,
    DealValidationError,
    DomainException,
    NotAuthorityError,
    PolicyBlockedError,
)
from farm_finance.domain.models import (
    BatchReport,
    CollateralItem,
    CreditReport,
    DealKind,
    DealResult,
    DealStatus,
    Eligibility,
    FinanceStatistics,
    GameDate,
    ItemKind,
    ItemRef,
    LeaseAction,
    LeaseTerms,
    PaymentResult,
)
from farm_finance.domain.rates import (
    DefaultRateCurve,
    check_minimum_amount,
    finance_product,
    security_deposit,
    validate_finance_params,
    validate_lease_params,
    validate_loan_params,
)
from farm_finance.infrastructure.observability.logging import log_batch_completed, log_payment_outcome
from farm_finance.infrastructure.observability.metrics import (
    batch_duration_histogram,
    record_creation_declined,
    record_deal_closed,
    record_deal_created,
    record_payment_outcome,
)

DEFAULT_RENEWAL_MONTHS = 12

# Credit event emitted when a deal is registered
REGISTRATION_EVENTS = {
    DealKind.FINANCE: "NEW_DEBT_TAKEN",
    DealKind.LEASE: "NEW_DEBT_TAKEN",
    DealKind.LAND_LEASE: "LAND_LEASE_CREATED",
    DealKind.CASH_LOAN: "LOAN_TAKEN",
}

DECLINE_REASONS = {
    DealValidationError: "validation",
    CreditRequirementError: "credit",
    AffordabilityError: "affordability",
    PolicyBlockedError: "policy",
}


def _years_to_months(term_years: float) -> int:
    return int(round(term_years * 12))


class DealRegistry:
    """
    Owns every deal plus the per-account credit stores and statistics.

    Only the authority role may mutate state; everything else raises
    NotAuthorityError. Recoverable failures come back as DealResult or
    PaymentResult objects with a reason.
    """

    def __init__(
        self,
        ledger: AccountLedger,
        assets: AssetRegistry,
        lands: LandRegistry,
        notifier: NotificationSink,
        rate_curve: Optional[RateCurve] = None,
        renewal_handler: Optional[LeaseRenewalHandler] = None,
        loan_policy: Optional[LoanPolicy] = None,
        config: Optional[Settings] = None,
    ):
        self.ledger = ledger
        self.assets = assets
        self.lands = lands
        self.notifier = notifier
        self.renewal_handler = renewal_handler
        self.loan_policy = loan_policy
        self.config = config or default_settings

        self.credit_model = scoring.CreditScoreModel(
            enabled=self.config.credit_system_enabled,
            starting_score=self.config.starting_credit_score,
        )
        self.rate_curve = rate_curve or DefaultRateCurve(self.credit_model)
        self.profiles = CreditProfileStore(history_limit=self.config.payment_history_limit)
        self.events = CreditEventLedger(event_limit=self.config.credit_event_limit)

        self.deals_by_account: Dict[str, List[Deal]] = {}
        self.deals_by_id: Dict[str, Deal] = {}
        self.statistics: Dict[str, FinanceStatistics] = {}
        self.next_deal_id = 1
        self.last_processed_period: Optional[tuple] = None
        self.today = GameDate(year=1, month=1)
        self.calendar: Optional[Calendar] = None

    # -- Wiring ---------------------------------------------------------------

    @property
    def is_authority(self) -> bool:
        return self.config.is_authority

    def _require_authority(self) -> None:
        if not self.is_authority:
            raise NotAuthorityError("Finance state can only be changed by the authority")

    def attach(self, calendar: Calendar) -> None:
        """Subscribe to the calendar's period-changed signal exactly once"""
        if self.calendar is calendar:
            return
        if self.calendar is not None:
            raise DealStateError("Registry is already attached to a calendar")
        self.calendar = calendar
        self.today = calendar.current_date()
        calendar.subscribe(self.on_period_changed)

    def _context(self) -> FinanceContext:
        return FinanceContext(
            ledger=self.ledger,
            assets=self.assets,
            lands=self.lands,
            notifier=self.notifier,
            events=self.events,
            today=self.today,
        )

    # -- Creation -------------------------------------------------------------

    def create_finance_deal(
        self,
        account_id: str,
        item_kind: Any,
        item_id: str,
        item_name: str,
        price: float,
        down_payment: float,
        term_years: float,
        cash_back: float = 0.0,
        configurations: Optional[Dict[str, Any]] = None,
    ) -> DealResult:
        """
        Finance a vehicle, equipment or land purchase.

        All-or-nothing: every check runs before money moves or the deal is
        registered. The down payment net of cash back is charged and the item
        is acquired (vehicle spawn or land ownership transfer).
        """
        self._require_authority()
        try:
            kind = ItemKind(item_kind)
            if kind == ItemKind.LOAN:
                raise DealValidationError("Use create_cash_loan for cash loans")

            validate_finance_params(price, down_payment, term_years, kind)
            product = finance_product(kind)
            term_months = _years_to_months(term_years)

            score = self.calculate_credit_score(account_id)
            self._check_credit(score, product)

            if cash_back < 0 or cash_back > scoring.max_cash_back(down_payment):
                raise DealValidationError("Cash back cannot exceed half of the down payment")
            check_minimum_amount(price - down_payment + cash_back, product)

            down_pct = down_payment / price
            if kind == ItemKind.LAND:
                rate = self.rate_curve.land_rate(score, term_months, down_pct)
            else:
                rate = self.rate_curve.vehicle_rate(score, term_months, down_pct)

            net_down = down_payment - cash_back
            self._check_funds(account_id, net_down)

            deal = Deal.new(
                account_id=account_id,
                kind=DealKind.FINANCE,
                item=ItemRef(kind=kind, item_id=item_id, name=item_name, configurations=dict(configurations or {})),
                price=price,
                down_payment=down_payment,
                term_months=term_months,
                interest_rate=rate / 100,
                created_at=self.today,
                cash_back=cash_back,
            )
        except (DomainException, ValueError) as e:
            return self._decline(account_id, "finance", e)

        self.register_deal(deal)
        if net_down != 0:
            self.ledger.transfer(account_id, -net_down, "down_payment")
        self._acquire_item(deal)
        return DealResult(deal=deal)

    def create_lease_deal(
        self,
        account_id: str,
        item_kind: Any,
        item_id: str,
        item_name: str,
        price: float,
        down_payment: float,
        term_years: float,
    ) -> DealResult:
        """
        Lease a vehicle or land.

        Vehicles amortize down to a depreciated residual; land keeps its full
        value so payments are interest only. A security deposit of 0-6 monthly
        payments, depending on credit tier, is charged with the down payment.
        """
        self._require_authority()
        try:
            kind = ItemKind(item_kind)
            if kind == ItemKind.LOAN:
                raise DealValidationError("Cash loans cannot be leased")

            validate_lease_params(price, down_payment, term_years)
            is_land = kind == ItemKind.LAND
            product = "LAND_FINANCE" if is_land else "VEHICLE_LEASE"
            term_months = _years_to_months(term_years)

            score = self.calculate_credit_score(account_id)
            self._check_credit(score, product)

            amount = price - down_payment
            check_minimum_amount(amount, product)

            if is_land:
                residual = amount
                depreciation = 0.0
            else:
                depreciated = residual_value(price, term_months)
                depreciation = price - depreciated
                residual = min(depreciated, amount)

            rate = self.rate_curve.lease_rate(score, term_months, down_payment / price)
            deal = Deal.new(
                account_id=account_id,
                kind=DealKind.LAND_LEASE if is_land else DealKind.LEASE,
                item=ItemRef(kind=kind, item_id=item_id, name=item_name),
                price=price,
                down_payment=down_payment,
                term_months=term_months,
                interest_rate=rate / 100,
                created_at=self.today,
                lease=LeaseTerms(residual_value=residual, depreciation=depreciation),
            )
            deal.lease.security_deposit = security_deposit(deal.monthly_payment, score)

            upfront = down_payment + deal.lease.security_deposit
            self._check_funds(account_id, upfront)
        except (DomainException, ValueError) as e:
            return self._decline(account_id, "lease", e)

        self.register_deal(deal)
        if upfront > 0:
            self.ledger.transfer(account_id, -upfront, "lease_down_payment")
        self._acquire_item(deal)
        return DealResult(deal=deal)

    def create_cash_loan(
        self,
        account_id: str,
        amount: float,
        term_years: float,
        collateral: Optional[List[CollateralItem]] = None,
    ) -> DealResult:
        """Unsecured or collateral-backed loan; the amount is paid out to the account"""
        self._require_authority()
        try:
            if not self.config.cash_loans_enabled or (
                self.loan_policy is not None and self.loan_policy.blocks_cash_loans()
            ):
                raise PolicyBlockedError("Cash loans are handled by another subsystem")

            validate_loan_params(amount, term_years)
            term_months = _years_to_months(term_years)

            score = self.calculate_credit_score(account_id)
            self._check_credit(score, "CASH_LOAN")

            rate = self.rate_curve.vehicle_rate(score, term_months, 0.0)
            deal = Deal.new(
                account_id=account_id,
                kind=DealKind.CASH_LOAN,
                item=ItemRef(kind=ItemKind.LOAN, item_id="cash_loan", name="Cash Loan"),
                price=amount,
                down_payment=0.0,
                term_months=term_months,
                interest_rate=rate / 100,
                created_at=self.today,
                collateral=collateral,
            )
        except (DomainException, ValueError) as e:
            return self._decline(account_id, "cash_loan", e)

        self.register_deal(deal)
        self.ledger.transfer(account_id, amount, "loan_disbursement")
        return DealResult(deal=deal)

    def _check_credit(self, score: int, product: str) -> None:
        if not self.config.enforce_credit_requirements:
            return
        eligibility = scoring.can_finance(score, product)
        if not eligibility.allowed:
            raise CreditRequirementError(eligibility.reason)

    def _check_funds(self, account_id: str, amount: float) -> None:
        if amount > 0 and self.ledger.get_balance(account_id) < amount:
            raise AffordabilityError(AffordabilityReason.INSUFFICIENT_FUNDS)

    def _decline(self, account_id: str, request: str, error: Exception) -> DealResult:
        reason = error.reason.value if isinstance(error, AffordabilityError) else str(error)
        category = next((label for cls, label in DECLINE_REASONS.items() if isinstance(error, cls)), "validation")
        record_creation_declined(category)

        logging.info(
            f"Deal creation declined: {reason}",
            extra={"account_id": account_id, "request": request, "decline_category": category},
        )
        return DealResult(deal=None, reason=reason)

    def _acquire_item(self, deal: Deal) -> None:
        if deal.item.kind == ItemKind.LAND:
            self.lands.set_owner(deal.item.item_id, deal.account_id)
        elif deal.item.kind in (ItemKind.VEHICLE, ItemKind.EQUIPMENT):
            deal.item.asset_ref = self.assets.spawn_asset(deal.account_id, deal.item.item_id, deal.item.configurations)

    # -- Indexing -------------------------------------------------------------

    def register_deal(self, deal: Deal) -> Deal:
        """Assign identity if absent, index the deal, emit its credit event and count it"""
        self.index_deal(deal)

        self.events.record_event(deal.account_id, REGISTRATION_EVENTS[deal.kind], deal.item.name, self.today)
        stats = self.get_statistics(deal.account_id)
        stats.deals_created += 1
        stats.total_amount_financed += deal.amount_financed
        record_deal_created(deal.kind.value, deal.amount_financed)
        return deal

    def index_deal(self, deal: Deal) -> None:
        """Index without side effects; used on registration and on load"""
        if not deal.id:
            deal.id = f"DEAL_{self.next_deal_id:08d}"
            self.next_deal_id += 1
        else:
            self._reserve_id(deal.id)

        self.deals_by_account.setdefault(deal.account_id, []).append(deal)
        self.deals_by_id[deal.id] = deal

    def _reserve_id(self, deal_id: str) -> None:
        # Keep generated ids ahead of any numeric id already in use
        prefix, _, number = deal_id.rpartition("_")
        if prefix == "DEAL" and number.isdigit():
            self.next_deal_id = max(self.next_deal_id, int(number) + 1)

    def remove_deal(self, deal_id: str) -> Optional[Deal]:
        deal = self.deals_by_id.pop(deal_id, None)
        if deal is None:
            return None
        deals = self.deals_by_account.get(deal.account_id, [])
        self.deals_by_account[deal.account_id] = [d for d in deals if d.id != deal_id]
        if not self.deals_by_account[deal.account_id]:
            del self.deals_by_account[deal.account_id]
        return deal

    def get_deal(self, deal_id: str) -> Optional[Deal]:
        return self.deals_by_id.get(deal_id)

    def get_deals_for_account(self, account_id: str) -> List[Deal]:
        return list(self.deals_by_account.get(account_id, []))

    def accounts(self) -> Iterator[str]:
        return iter(list(self.deals_by_account.keys()))

    def _active_deal(self, deal_id: str) -> Deal:
        deal = self.deals_by_id.get(deal_id)
        if deal is None:
            raise DealNotFoundError(f"Deal {deal_id} not found")
        return deal

    # -- Monthly batch --------------------------------------------------------

    def on_period_changed(self, period: Optional[GameDate] = None) -> BatchReport:
        """
        Run the monthly payment batch.

        Idempotent per (year, month): a repeated or stale period is skipped.
        Accounts run in index order; within an account each deal is visited
        once over a snapshot and the list is rebuilt from the deals kept.
        """
        self._require_authority()
        if period is None:
            period = self.calendar.current_date() if self.calendar is not None else self.today

        report = BatchReport(period=period)
        if self.last_processed_period is not None and period.period_key <= self.last_processed_period:
            logging.info(
                "Monthly batch already processed for period",
                extra={"period": f"{period.year}-{period.month:02d}"},
            )
            report.skipped = True
            return report

        self.last_processed_period = period.period_key
        self.today = period

        start = time.perf_counter()
        for account_id in self.accounts():
            self._process_account(account_id, report)
        duration = time.perf_counter() - start
        batch_duration_histogram.observe(duration)

        log_batch_completed(
            period=f"{period.year}-{period.month:02d}",
            processed=report.processed,
            paid_off=len(report.paid_off),
            defaulted=len(report.defaulted),
            duration_ms=round(duration * 1000, 3),
        )
        return report

    def _process_account(self, account_id: str, report: BatchReport) -> None:
        ctx = self._context()
        profile = self.profiles.get(account_id)
        stats = self.get_statistics(account_id)
        old_score = self.calculate_credit_score(account_id)

        kept: List[Deal] = []
        removed: List[Deal] = []

        for deal in list(self.deals_by_account.get(account_id, [])):
            if not deal.is_active:
                removed.append(deal)
                continue

            # Leases at term end wait for a decision instead of being charged again
            if deal.lease is not None and (deal.lease.awaiting_renewal or deal.lease_term_complete):
                if not deal.lease.awaiting_renewal:
                    self._route_lease(deal, report)
                kept.append(deal)
                continue

            interest_before = deal.total_interest_paid
            outcome = deal.process_monthly_payment(ctx)
            report.processed += 1

            profile.record_payment(outcome.kind.payment_status, outcome.amount_paid, self.today, deal.id, deal.kind.value)
            stats.total_interest_paid += deal.total_interest_paid - interest_before
            record_payment_outcome(outcome.kind.value)
            log_payment_outcome(
                account_id=account_id,
                deal_id=deal.id,
                outcome=outcome.kind.value,
                amount_paid=outcome.amount_paid,
                interest_due=outcome.interest_due,
                balance=deal.amount_owed,
            )

            if outcome.paid_off:
                stats.deals_completed += 1
                report.paid_off.append(deal.id)
                removed.append(deal)
                record_deal_closed(DealStatus.PAID_OFF.value)
            elif outcome.defaulted:
                report.defaulted.append(deal.id)
                removed.append(deal)
                record_deal_closed(DealStatus.DEFAULTED.value, repossessed=self._seized_count(deal))
            else:
                kept.append(deal)
                if outcome.term_complete:
                    self._route_lease(deal, report)

        for deal in removed:
            self.deals_by_id.pop(deal.id, None)
            report.removed.append(deal.id)
        if kept:
            self.deals_by_account[account_id] = kept
        else:
            self.deals_by_account.pop(account_id, None)

        new_score = self.calculate_credit_score(account_id)
        self.events.check_tier_change(account_id, old_score, new_score, self.notifier, self.today)

    def _route_lease(self, deal: Deal, report: BatchReport) -> None:
        deal.lease.awaiting_renewal = True
        report.lease_term_complete.append(deal.id)
        if self.renewal_handler is not None:
            self.renewal_handler.on_lease_term_complete(deal)

    @staticmethod
    def _seized_count(deal: Deal) -> int:
        if deal.item.kind == ItemKind.LOAN:
            return sum(1 for item in deal.repossessed_items if not item.not_found)
        if deal.item.kind == ItemKind.LAND:
            return 0
        return 1

    # -- Player operations ----------------------------------------------------

    def make_payment(self, deal_id: str, amount: float) -> PaymentResult:
        self._require_authority()
        try:
            deal = self._active_deal(deal_id)
            interest_before = deal.total_interest_paid
            result = deal.make_payment(amount, self._context())
        except DealNotFoundError:
            return PaymentResult(success=False, reason="deal_not_found")
        except DealStateError:
            return PaymentResult(success=False, reason="deal_not_active")
        except AffordabilityError as e:
            return PaymentResult(success=False, reason=e.reason.value)

        stats = self.get_statistics(deal.account_id)
        stats.total_interest_paid += deal.total_interest_paid - interest_before
        if result.paid_off:
            stats.deals_completed += 1
            self.remove_deal(deal.id)
            record_deal_closed(DealStatus.PAID_OFF.value)
        return result

    def set_payment_mode(self, deal_id: str, mode: Any, custom_amount: Optional[float] = None) -> bool:
        self._require_authority()
        deal = self.deals_by_id.get(deal_id)
        if deal is None or not deal.is_active:
            return False
        try:
            deal.set_payment_mode(mode, custom_amount)
        except DealValidationError:
            return False
        return True

    def set_payment_multiplier(self, deal_id: str, multiplier: float) -> bool:
        self._require_authority()
        deal = self.deals_by_id.get(deal_id)
        if deal is None or not deal.is_active:
            return False
        return deal.set_payment_multiplier(multiplier)

    def cancel(self, deal_id: str) -> PaymentResult:
        """Unwind a deal before its first payment"""
        self._require_authority()
        try:
            deal = self._active_deal(deal_id)
            net = deal.cancel(self._context())
        except DealNotFoundError:
            return PaymentResult(success=False, reason="deal_not_found")
        except DealStateError:
            return PaymentResult(success=False, reason="deal_has_payments")
        except AffordabilityError as e:
            return PaymentResult(success=False, reason=e.reason.value)

        self.remove_deal(deal.id)
        record_deal_closed(DealStatus.CANCELLED.value)
        return PaymentResult(success=True, reason="deal_cancelled", amount=net)

    def resolve_lease(self, deal_id: str, action: Any, renewal_term_months: Optional[int] = None) -> PaymentResult:
        """Return, buy out or renew a lease"""
        self._require_authority()
        try:
            deal = self._active_deal(deal_id)
            action = LeaseAction(action)
            ctx = self._context()
            if action == LeaseAction.RETURN:
                amount = deal.return_lease(ctx)
            elif action == LeaseAction.BUYOUT:
                amount = deal.buyout_lease(ctx)
            else:
                deal.renew_lease(renewal_term_months or DEFAULT_RENEWAL_MONTHS, ctx)
                amount = 0.0
        except DealNotFoundError:
            return PaymentResult(success=False, reason="deal_not_found")
        except ValueError:
            return PaymentResult(success=False, reason="unknown_lease_action")
        except (DealStateError, DealValidationError) as e:
            return PaymentResult(success=False, reason=str(e))
        except AffordabilityError as e:
            return PaymentResult(success=False, reason=e.reason.value)

        if not deal.is_active:
            if deal.status == DealStatus.PAID_OFF:
                self.get_statistics(deal.account_id).deals_completed += 1
            self.remove_deal(deal.id)
            record_deal_closed(deal.status.value)
        return PaymentResult(success=True, reason=f"lease_{action.value}", amount=amount, paid_off=deal.status == DealStatus.PAID_OFF)

    def get_payoff_amount(self, deal_id: str) -> Optional[float]:
        deal = self.deals_by_id.get(deal_id)
        if deal is None or not deal.is_active:
            return None
        return deal.payoff_amount()

    # -- Statistics -----------------------------------------------------------

    def get_statistics(self, account_id: str) -> FinanceStatistics:
        stats = self.statistics.get(account_id)
        if stats is None:
            stats = FinanceStatistics()
            self.statistics[account_id] = stats
        return stats

    def increment_statistic(self, account_id: str, name: str, amount: float = 1) -> bool:
        """Bump a named counter; unknown names are logged and ignored"""
        if name not in FinanceStatistics.field_names():
            logging.warning(
                f"Unknown statistic: {name}",
                extra={"account_id": account_id, "statistic": name},
            )
            return False
        stats = self.get_statistics(account_id)
        setattr(stats, name, getattr(stats, name) + amount)
        return True

    def total_monthly_obligations(self, account_id: str) -> float:
        return sum(d.monthly_payment for d in self.deals_by_account.get(account_id, []) if d.is_active)

    def total_debt(self, account_id: str) -> float:
        return sum(d.amount_owed for d in self.deals_by_account.get(account_id, []) if d.is_active)

    # -- Credit ---------------------------------------------------------------

    def _balance_sheet(self, account_id: str) -> tuple:
        cash = self.ledger.get_balance(account_id)
        assets = cash + self.assets.owned_asset_value(account_id)
        return assets, self.total_debt(account_id), cash

    def calculate_credit_score(self, account_id: str) -> int:
        assets, debt, cash = self._balance_sheet(account_id)
        return self.credit_model.calculate(self.profiles.peek(account_id), assets, debt, cash)

    def credit_report(self, account_id: str) -> CreditReport:
        assets, debt, cash = self._balance_sheet(account_id)
        return self.credit_model.calculate_report(
            self.profiles.peek(account_id),
            assets,
            debt,
            cash,
            history_adjustment=self.events.get_score_adjustment(account_id),
        )

    def can_finance(self, account_id: str, product: str) -> Eligibility:
        return scoring.can_finance(self.calculate_credit_score(account_id), product)

    def reset_credit(self, account_id: str) -> None:
        self._require_authority()
        self.profiles.reset(account_id)

    def clear(self) -> None:
        """Drop all state, ahead of a load"""
        self.deals_by_account.clear()
        self.deals_by_id.clear()
        self.statistics.clear()
        self.profiles.clear()
        self.events.clear()
        self.next_deal_id = 1
        self.last_processed_period = None
