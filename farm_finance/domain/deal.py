"""Deal - an amortized finance, lease or cash-loan contract"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from farm_finance.domain import amortization
from farm_finance.domain.collaborators import FinanceContext
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
    GameDate,
    ItemKind,
    ItemRef,
    LeaseTerms,
    OutcomeKind,
    PaymentMode,
    PaymentOutcome,
    PaymentResult,
    RepossessedItem,
    Severity,
)
from farm_finance.domain.rates import LAND_MISS_DEDUCTION, VEHICLE_MISS_DEDUCTION

MIN_MULTIPLIER = 1.0
MAX_MULTIPLIER = 5.0
EXTRA_PAYMENT_RATIO = 1.5  # Paying 1.5x the nominal payment counts as extra
STRIKES_TO_DEFAULT = 3

# Tolerance when comparing money amounts that went through float math
CENT = 0.005

# Integer tags used by legacy saves
LEGACY_KIND_CODES = {1: DealKind.FINANCE, 2: DealKind.LEASE, 3: DealKind.CASH_LOAN, 4: DealKind.LAND_LEASE}


def parse_payment_mode(value: Any) -> PaymentMode:
    """Unknown modes fall back to STANDARD with a warning"""
    try:
        return PaymentMode(int(value))
    except (TypeError, ValueError):
        logging.warning(f"Unknown payment mode: {value}", extra={"payment_mode": value})
        return PaymentMode.STANDARD


def _parse_enum(enum_cls, value: Any, fallback):
    try:
        return enum_cls(value)
    except ValueError:
        logging.warning(
            f"Unknown {enum_cls.__name__} value: {value}",
            extra={"value": value, "fallback": fallback.value},
        )
        return fallback


@dataclass
class Deal:
    """
    A financial contract between an account and the lender.

    Shared terms live on the deal itself; lease kinds carry their
    variant-only fields in `lease`. Terminal statuses are permanent.
    """

    account_id: str
    kind: DealKind
    item: ItemRef
    original_price: float
    down_payment: float
    cash_back: float
    amount_financed: float
    term_months: int
    interest_rate: float  # Annual, decimal (0.06 = 6%)
    monthly_payment: float
    current_balance: float
    created_at: GameDate
    id: str = ""
    accrued_interest: float = 0.0
    months_paid: int = 0
    total_interest_paid: float = 0.0
    missed_payments: int = 0
    status: DealStatus = DealStatus.ACTIVE
    payment_mode: PaymentMode = PaymentMode.STANDARD
    payment_multiplier: float = 1.0
    configured_payment_amount: float = 0.0
    last_payment_amount: float = 0.0
    collateral: List[CollateralItem] = field(default_factory=list)
    repossessed_items: List[RepossessedItem] = field(default_factory=list)
    lease: Optional[LeaseTerms] = None

    @classmethod
    def new(
        cls,
        account_id: str,
        kind: DealKind,
        item: ItemRef,
        price: float,
        down_payment: float,
        term_months: int,
        interest_rate: float,
        created_at: GameDate,
        cash_back: float = 0.0,
        lease: Optional[LeaseTerms] = None,
        collateral: Optional[List[CollateralItem]] = None,
    ) -> "Deal":
        """Build a deal with its amount financed and monthly payment computed"""
        if term_months <= 0:
            raise DealValidationError("Term must be at least one month")
        if kind.is_lease and lease is None:
            raise DealValidationError("Lease deals require lease terms")

        amount_financed = price - down_payment + cash_back
        deal = cls(
            account_id=account_id,
            kind=kind,
            item=item,
            original_price=price,
            down_payment=down_payment,
            cash_back=cash_back,
            amount_financed=amount_financed,
            term_months=term_months,
            interest_rate=interest_rate,
            monthly_payment=0.0,
            current_balance=amount_financed,
            created_at=created_at,
            lease=lease,
            collateral=list(collateral or []),
        )
        deal.calculate_payment()
        return deal

    # -- Amortization ---------------------------------------------------------

    @property
    def monthly_rate(self) -> float:
        return amortization.monthly_rate(self.interest_rate)

    @property
    def amount_owed(self) -> float:
        return self.current_balance + self.accrued_interest

    @property
    def is_active(self) -> bool:
        return self.status == DealStatus.ACTIVE

    @property
    def months_remaining(self) -> int:
        return max(0, self.term_months - self.months_paid)

    @property
    def lease_term_complete(self) -> bool:
        return self.kind.is_lease and self.months_paid >= self.term_months

    def calculate_payment(self) -> float:
        """Compute the level monthly payment once, at creation"""
        if self.lease is not None:
            self.monthly_payment = amortization.balloon_payment(
                self.amount_financed, self.lease.residual_value, self.interest_rate, self.term_months
            )
        else:
            self.monthly_payment = amortization.monthly_payment(
                self.amount_financed, self.interest_rate, self.term_months
            )
        return self.monthly_payment

    def minimum_payment(self) -> float:
        """Interest-only payment on everything owed"""
        return amortization.interest_for_period(self.current_balance, self.accrued_interest, self.interest_rate)

    def configured_payment(self) -> float:
        """Payment this period under the selected mode, before affordability"""
        mode = self.payment_mode
        if mode == PaymentMode.SKIP:
            return 0.0
        elif mode == PaymentMode.MINIMUM:
            return self.minimum_payment()
        elif mode == PaymentMode.EXTRA:
            return self.monthly_payment * 2
        elif mode == PaymentMode.CUSTOM:
            return self.configured_payment_amount
        return self.monthly_payment * self.payment_multiplier

    def prepayment_penalty(self) -> float:
        return amortization.prepayment_penalty(self.current_balance, self.months_remaining)

    def payoff_amount(self) -> float:
        """Balance plus accrued interest plus the prepayment penalty"""
        return self.current_balance + self.accrued_interest + self.prepayment_penalty()

    def remaining_months(self) -> int:
        """Months to payoff at the configured payment; 999 if it never amortizes"""
        return amortization.remaining_months(self.amount_owed, self.interest_rate, self.configured_payment())

    def multiplier_savings(self) -> amortization.MultiplierSavings:
        return amortization.multiplier_savings(
            self.current_balance,
            self.interest_rate,
            self.monthly_payment,
            self.payment_multiplier,
            self.months_remaining,
        )

    # -- Configuration --------------------------------------------------------

    def set_payment_mode(self, mode: Any, custom_amount: Optional[float] = None) -> PaymentMode:
        self.payment_mode = parse_payment_mode(mode)
        if self.payment_mode == PaymentMode.CUSTOM:
            amount = self.monthly_payment if custom_amount is None else custom_amount
            if amount < 0:
                raise DealValidationError("Custom payment cannot be negative")
            self.configured_payment_amount = amount
        return self.payment_mode

    def set_payment_multiplier(self, multiplier: float) -> bool:
        """Accepts 1.0-5.0 and switches the deal to STANDARD mode"""
        if multiplier is None or not (MIN_MULTIPLIER <= multiplier <= MAX_MULTIPLIER):
            return False
        self.payment_multiplier = float(multiplier)
        self.payment_mode = PaymentMode.STANDARD
        return True

    # -- Monthly processing ---------------------------------------------------

    def process_monthly_payment(self, ctx: FinanceContext) -> PaymentOutcome:
        """
        Run one billing period for this deal.

        Steps:
        1. Interest due on balance plus accrued interest
        2. Configured payment, degraded to the interest-only minimum and then
           to zero when the account cannot afford it
        3. Zero pays nothing and accrues all interest (a strike); less than
           interest due accrues the shortfall; otherwise interest is covered,
           accrued interest retired, then principal reduced
        4. Balance within a cent of zero marks the deal paid off
        """
        if not self.is_active:
            raise DealStateError(f"Deal {self.id} is {self.status.value}")

        interest_due = self.minimum_payment()
        total_due = self.amount_owed + interest_due

        requested = min(self.configured_payment(), total_due)
        payment = requested
        funds_exhausted = False

        available = ctx.ledger.get_balance(self.account_id)
        if payment > 0 and available < payment:
            minimum = min(interest_due, total_due)
            if minimum > 0 and available >= minimum:
                payment = minimum
            else:
                payment = 0.0
                funds_exhausted = True

        if payment <= 0:
            return self._process_zero_payment(ctx, interest_due, funds_exhausted)
        if payment < interest_due:
            return self._process_partial_payment(ctx, payment, interest_due)
        return self._process_full_payment(
            ctx, payment, interest_due, total_due, shortfall=payment < requested - CENT
        )

    def _process_zero_payment(self, ctx: FinanceContext, interest_due: float, funds_exhausted: bool) -> PaymentOutcome:
        # Negative amortization
        self.accrued_interest += interest_due
        self.last_payment_amount = 0.0

        if funds_exhausted:
            kind = OutcomeKind.MISSED
            event_type = "LAND_LEASE_MISSED_PAYMENT" if self.kind == DealKind.LAND_LEASE else "PAYMENT_MISSED"
        else:
            kind = OutcomeKind.SKIPPED
            event_type = "PAYMENT_SKIPPED"

        defaulted = self._register_strike(ctx, event_type, interest_due)
        return PaymentOutcome(kind=kind, amount_paid=0.0, interest_due=interest_due, defaulted=defaulted)

    def _process_partial_payment(self, ctx: FinanceContext, payment: float, interest_due: float) -> PaymentOutcome:
        self.accrued_interest += interest_due - payment
        self.total_interest_paid += payment
        self.last_payment_amount = payment
        self._charge(ctx, payment, "finance_payment")

        ctx.events.record_event(self.account_id, "PAYMENT_PARTIAL", self.item.name, ctx.today)
        ctx.notify(
            self.account_id,
            Severity.INFO,
            "payment_shortfall",
            item=self.item.name,
            paid=payment,
            unpaid_interest=interest_due - payment,
        )
        return PaymentOutcome(kind=OutcomeKind.PARTIAL, amount_paid=payment, interest_due=interest_due)

    def _process_full_payment(
        self, ctx: FinanceContext, payment: float, interest_due: float, total_due: float, shortfall: bool
    ) -> PaymentOutcome:
        excess = payment - interest_due

        # Accrued interest is retired before principal
        if self.accrued_interest > 0 and excess > 0:
            retired = min(excess, self.accrued_interest)
            self.accrued_interest -= retired
            self.total_interest_paid += retired
            excess -= retired

        principal = min(excess, self.current_balance)
        self.current_balance -= principal
        self.total_interest_paid += interest_due + (excess - principal)
        self.months_paid += 1
        self.last_payment_amount = payment
        self.missed_payments = 0
        self._charge(ctx, payment, "finance_payment")

        kind = self._classify_payment(payment, total_due)
        ctx.events.record_event(self.account_id, self._payment_event(kind), self.item.name, ctx.today)

        if self.current_balance <= amortization.PAID_OFF_EPSILON:
            self._mark_paid_off(ctx)
            return PaymentOutcome(kind=kind, amount_paid=payment, interest_due=interest_due, paid_off=True)

        if shortfall:
            ctx.notify(self.account_id, Severity.INFO, "payment_shortfall", item=self.item.name, paid=payment)
        else:
            ctx.notify(self.account_id, Severity.INFO, "payment_processed", item=self.item.name, paid=payment)

        term_complete = False
        if self.lease_term_complete:
            term_complete = True
            ctx.notify(self.account_id, Severity.INFO, "lease_term_complete", item=self.item.name)

        return PaymentOutcome(kind=kind, amount_paid=payment, interest_due=interest_due, term_complete=term_complete)

    def _classify_payment(self, payment: float, total_due: float) -> OutcomeKind:
        # The final period may owe less than a full payment
        nominal = min(self.monthly_payment, total_due)
        if payment >= nominal * EXTRA_PAYMENT_RATIO and payment > nominal + CENT:
            return OutcomeKind.EXTRA
        if payment >= nominal - CENT:
            return OutcomeKind.STANDARD
        return OutcomeKind.MINIMUM

    def _payment_event(self, kind: OutcomeKind) -> str:
        if kind == OutcomeKind.EXTRA:
            return "PAYMENT_EXTRA"
        if kind == OutcomeKind.STANDARD:
            return "LAND_LEASE_PAYMENT" if self.kind == DealKind.LAND_LEASE else "PAYMENT_STANDARD"
        return "PAYMENT_MINIMUM"

    def _mark_paid_off(self, ctx: FinanceContext) -> None:
        self.status = DealStatus.PAID_OFF
        self.current_balance = 0.0
        self.accrued_interest = 0.0
        ctx.events.record_event(self.account_id, "DEAL_PAID_OFF", self.item.name, ctx.today)
        ctx.notify(self.account_id, Severity.OK, "deal_paid_off", item=self.item.name)

    def _charge(self, ctx: FinanceContext, amount: float, reason: str) -> None:
        if amount > 0:
            ctx.ledger.transfer(self.account_id, -amount, reason)

    # -- Missed-payment escalation --------------------------------------------

    def _register_strike(self, ctx: FinanceContext, event_type: str, interest_added: float) -> bool:
        """Count a strike; the third one triggers the terminal action. Returns True on default."""
        self.missed_payments += 1
        ctx.events.record_event(self.account_id, event_type, self.item.name, ctx.today)

        strike = self.missed_payments
        if strike < STRIKES_TO_DEFAULT:
            key = "payment_missed_warning" if strike == 1 else "payment_missed_final_warning"
            severity = Severity.CRITICAL
            if strike == 1 and self.item.kind in (ItemKind.VEHICLE, ItemKind.EQUIPMENT):
                severity = Severity.INFO
            ctx.notify(
                self.account_id,
                severity,
                key,
                item=self.item.name,
                interest_added=interest_added,
                strike=strike,
                collateral_count=len(self.collateral),
            )
            return False

        if self.item.kind == ItemKind.LAND:
            self._seize_land(ctx)
        elif self.item.kind == ItemKind.LOAN:
            self._repossess_collateral(ctx)
        else:
            self._repossess_vehicle(ctx)
        return True

    def _seize_land(self, ctx: FinanceContext) -> None:
        ctx.lands.set_owner(self.item.item_id, None)
        self.status = DealStatus.DEFAULTED
        ctx.events.record_event(self.account_id, "LAND_SEIZED", self.item.name, ctx.today)
        ctx.notify(self.account_id, Severity.CRITICAL, "land_seized", item=self.item.name)
        logging.info(
            f"Land seized for deal {self.id}",
            extra={"deal_id": self.id, "account_id": self.account_id, "land_id": self.item.item_id},
        )

    def _repossess_vehicle(self, ctx: FinanceContext) -> None:
        reference = self.item.asset_ref or self.item.item_id
        asset = ctx.assets.find_asset(reference)
        if asset is not None:
            ctx.assets.remove_asset(asset, 0.0)
            logging.info(
                f"Vehicle repossessed for deal {self.id}",
                extra={"deal_id": self.id, "account_id": self.account_id, "asset_ref": reference},
            )
        else:
            logging.warning(
                f"Could not find vehicle for repossession (deal {self.id})",
                extra={"deal_id": self.id, "asset_ref": reference},
            )

        # Debt is extinguished by the seizure
        self.status = DealStatus.DEFAULTED
        self.current_balance = 0.0
        self.accrued_interest = 0.0
        ctx.events.record_event(self.account_id, "VEHICLE_REPOSSESSED", self.item.name, ctx.today)
        ctx.notify(self.account_id, Severity.CRITICAL, "vehicle_repossessed", item=self.item.name)

    def _repossess_collateral(self, ctx: FinanceContext) -> None:
        recovered = 0
        recovered_value = 0.0

        for pledged in self.collateral:
            asset = ctx.assets.find_asset(pledged.reference)
            if asset is not None:
                ctx.assets.remove_asset(asset, 0.0)
                recovered += 1
                recovered_value += pledged.value
            else:
                logging.warning(
                    f"Could not find pledged asset for repossession: {pledged.name}",
                    extra={"deal_id": self.id, "asset_id": pledged.asset_id, "reference": pledged.reference},
                )

            # Recorded either way so history stays consistent with what was pledged
            self.repossessed_items.append(
                RepossessedItem(
                    asset_id=pledged.asset_id,
                    reference=pledged.reference,
                    name=pledged.name,
                    value=pledged.value,
                    repossessed_on=ctx.today,
                    not_found=asset is None,
                )
            )

        self.status = DealStatus.DEFAULTED
        self.current_balance = 0.0
        self.accrued_interest = 0.0
        ctx.events.record_event(self.account_id, "LOAN_DEFAULTED", self.item.name, ctx.today)
        ctx.notify(
            self.account_id,
            Severity.CRITICAL,
            "loan_defaulted",
            item=self.item.name,
            recovered_count=recovered,
            recovered_value=recovered_value,
        )

    # -- Manual payments ------------------------------------------------------

    def make_payment(self, amount: float, ctx: FinanceContext) -> PaymentResult:
        """
        Player-initiated payment toward the deal.

        Must be at least one monthly payment (or the payoff, when smaller) and
        no more than the payoff amount. The amount is split as if it covered
        floor(amount / monthly payment) whole months; paying the full payoff
        closes the deal and books the prepayment penalty as interest.
        """
        if not self.is_active:
            raise DealStateError(f"Deal {self.id} is {self.status.value}")

        payoff = self.payoff_amount()
        if amount < min(self.monthly_payment, payoff) - CENT:
            raise AffordabilityError(AffordabilityReason.TOO_LOW)
        if amount > payoff + CENT:
            raise AffordabilityError(AffordabilityReason.TOO_HIGH)
        if ctx.ledger.get_balance(self.account_id) < amount:
            raise AffordabilityError(AffordabilityReason.INSUFFICIENT_FUNDS)

        months_covered = int(math.floor(amount / self.monthly_payment)) if self.monthly_payment > 0 else 0
        # Deposit deductions reflect the misses standing before this payment
        refund = self.deposit_refund()

        if amount >= payoff - CENT:
            self.total_interest_paid += self.accrued_interest + self.prepayment_penalty()
            self.current_balance = 0.0
            self.accrued_interest = 0.0
        else:
            self._apply_manual_split(amount, months_covered)

        self.months_paid = min(self.term_months, self.months_paid + months_covered)
        self.missed_payments = 0
        self.last_payment_amount = amount
        self._charge(ctx, amount, "finance_payment")

        paid_off = self.current_balance <= amortization.PAID_OFF_EPSILON
        if paid_off:
            if self.kind.is_lease:
                event = "LAND_LEASE_BUYOUT" if self.kind == DealKind.LAND_LEASE else "LEASE_BUYOUT"
                ctx.events.record_event(self.account_id, event, self.item.name, ctx.today)
                if refund > 0:
                    ctx.ledger.transfer(self.account_id, refund, "lease_deposit_refund")
            self._mark_paid_off(ctx)
        else:
            ctx.notify(self.account_id, Severity.OK, "payment_made", item=self.item.name, paid=amount)

        return PaymentResult(success=True, reason="payment_made", amount=amount, paid_off=paid_off)

    def _apply_manual_split(self, amount: float, months_covered: int) -> None:
        # Accrued interest first, then the simulated months of interest
        interest = min(amount, self.accrued_interest)
        self.accrued_interest -= interest

        r = self.monthly_rate
        projected = self.current_balance
        for _ in range(months_covered):
            month_interest = r * projected
            interest += month_interest
            projected -= self.monthly_payment - month_interest

        interest = min(interest, amount)
        principal = min(amount - interest, self.current_balance)
        self.current_balance -= principal
        self.total_interest_paid += amount - principal

    # -- Lease end of term ----------------------------------------------------

    def deposit_refund(self) -> float:
        if self.lease is None:
            return 0.0
        per_miss = LAND_MISS_DEDUCTION if self.item.kind == ItemKind.LAND else VEHICLE_MISS_DEDUCTION
        return amortization.deposit_refund(self.lease.security_deposit, self.missed_payments, per_miss)

    def return_lease(self, ctx: FinanceContext) -> float:
        """Hand the item back; returns the deposit refunded"""
        self._require_lease()
        refund = self.deposit_refund()
        if refund > 0:
            ctx.ledger.transfer(self.account_id, refund, "lease_deposit_refund")

        self._release_item(ctx)
        self.status = DealStatus.EXPIRED
        self.current_balance = 0.0
        self.accrued_interest = 0.0
        self.lease.awaiting_renewal = False

        if self.kind == DealKind.LAND_LEASE:
            ctx.events.record_event(self.account_id, "LAND_LEASE_EXPIRED", self.item.name, ctx.today)
        ctx.notify(self.account_id, Severity.INFO, "lease_returned", item=self.item.name, refund=refund)
        return refund

    def buyout_lease(self, ctx: FinanceContext) -> float:
        """Purchase the leased item for what is still owed; returns the price paid"""
        self._require_lease()
        price = self.amount_owed
        if ctx.ledger.get_balance(self.account_id) < price:
            raise AffordabilityError(AffordabilityReason.INSUFFICIENT_FUNDS)

        self._charge(ctx, price, "lease_buyout")
        refund = self.deposit_refund()
        if refund > 0:
            ctx.ledger.transfer(self.account_id, refund, "lease_deposit_refund")

        self.total_interest_paid += self.accrued_interest
        self.lease.awaiting_renewal = False
        event = "LAND_LEASE_BUYOUT" if self.kind == DealKind.LAND_LEASE else "LEASE_BUYOUT"
        ctx.events.record_event(self.account_id, event, self.item.name, ctx.today)
        self._mark_paid_off(ctx)
        return price

    def renew_lease(self, renewal_months: int, ctx: FinanceContext) -> None:
        """Extend the lease on the same payment basis"""
        self._require_lease()
        if renewal_months <= 0:
            raise DealValidationError("Renewal term must be at least one month")

        # Project the balance forward at the unchanged payment
        projected = self.amount_owed
        r = self.monthly_rate
        for _ in range(renewal_months):
            projected = max(0.0, projected * (1 + r) - self.monthly_payment)

        self.term_months += renewal_months
        self.lease.residual_value = projected
        self.lease.awaiting_renewal = False
        ctx.notify(self.account_id, Severity.OK, "lease_renewed", item=self.item.name, months=renewal_months)

    def _require_lease(self) -> None:
        if self.lease is None:
            raise DealStateError(f"Deal {self.id} is not a lease")
        if not self.is_active:
            raise DealStateError(f"Deal {self.id} is {self.status.value}")

    # -- Cancellation ---------------------------------------------------------

    @property
    def has_payments(self) -> bool:
        """True once a payment was collected or a billing period left a strike or interest behind"""
        return (
            self.months_paid > 0
            or self.total_interest_paid > 0
            or self.last_payment_amount > 0
            or self.missed_payments > 0
            or self.accrued_interest > 0
        )

    def cancel(self, ctx: FinanceContext) -> float:
        """
        Unwind a deal that has not seen a payment yet.

        Returns the net amount moved back to the account (negative when a
        cash loan's disbursement is reclaimed).
        """
        if not self.is_active:
            raise DealStateError(f"Deal {self.id} is {self.status.value}")
        if self.has_payments:
            raise DealStateError(f"Deal {self.id} already has payments")

        if self.kind == DealKind.CASH_LOAN:
            net = -self.amount_financed
            if ctx.ledger.get_balance(self.account_id) < self.amount_financed:
                raise AffordabilityError(AffordabilityReason.INSUFFICIENT_FUNDS)
        else:
            net = self.down_payment - self.cash_back
            if self.lease is not None:
                net += self.lease.security_deposit
            self._release_item(ctx)

        if net != 0:
            ctx.ledger.transfer(self.account_id, net, "deal_cancelled")

        self.status = DealStatus.CANCELLED
        self.current_balance = 0.0
        self.accrued_interest = 0.0
        ctx.notify(self.account_id, Severity.INFO, "deal_cancelled", item=self.item.name)
        return net

    def _release_item(self, ctx: FinanceContext) -> None:
        if self.item.kind == ItemKind.LAND:
            ctx.lands.set_owner(self.item.item_id, None)
            return
        if self.item.kind == ItemKind.LOAN:
            return

        reference = self.item.asset_ref or self.item.item_id
        asset = ctx.assets.find_asset(reference)
        if asset is not None:
            ctx.assets.remove_asset(asset, 0.0)
        else:
            logging.warning(
                f"Could not find asset to release for deal {self.id}",
                extra={"deal_id": self.id, "asset_ref": reference},
            )

    # -- Persistence ----------------------------------------------------------

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "deal_kind": self.kind.value,
            "account_id": self.account_id,
            "item": {
                "kind": self.item.kind.value,
                "id": self.item.item_id,
                "name": self.item.name,
                "asset_ref": self.item.asset_ref,
                "configurations": dict(self.item.configurations),
            },
            "original_price": self.original_price,
            "down_payment": self.down_payment,
            "cash_back": self.cash_back,
            "amount_financed": self.amount_financed,
            "term_months": self.term_months,
            "interest_rate": self.interest_rate * 100,  # Persisted as a percentage
            "monthly_payment": self.monthly_payment,
            "current_balance": self.current_balance,
            "months_paid": self.months_paid,
            "total_interest_paid": self.total_interest_paid,
            "status": self.status.value,
            "created_at": self.created_at.to_dict(),
            "missed_payments": self.missed_payments,
            "payment_mode": int(self.payment_mode),
            "payment_multiplier": self.payment_multiplier,
            "configured_payment": self.configured_payment_amount,
            "last_payment_amount": self.last_payment_amount,
            "accrued_interest": self.accrued_interest,
        }
        if self.lease is not None:
            record["lease"] = {
                "residual_value": self.lease.residual_value,
                "security_deposit": self.lease.security_deposit,
                "depreciation": self.lease.depreciation,
                "trade_in_value": self.lease.trade_in_value,
                "awaiting_renewal": self.lease.awaiting_renewal,
            }
        if self.collateral:
            record["collateral"] = [
                {"asset_id": c.asset_id, "reference": c.reference, "name": c.name, "value": c.value}
                for c in self.collateral
            ]
        if self.repossessed_items:
            record["repossessed_items"] = [
                {
                    "asset_id": r.asset_id,
                    "reference": r.reference,
                    "name": r.name,
                    "value": r.value,
                    "repossessed_on": r.repossessed_on.to_dict(),
                    "not_found": r.not_found,
                }
                for r in self.repossessed_items
            ]
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Deal":
        """
        Rebuild a deal from its persisted layout.

        Raises CorruptRecordError when the id or the deal kind is unusable.
        Unknown status, item kind and payment mode values fall back to
        defaults with a warning.
        """
        deal_id = record.get("id")
        if not deal_id:
            raise CorruptRecordError("Deal record has no id")

        raw_kind = record.get("deal_kind")
        if raw_kind in LEGACY_KIND_CODES:
            kind = LEGACY_KIND_CODES[raw_kind]
        else:
            try:
                kind = DealKind(raw_kind)
            except ValueError:
                raise CorruptRecordError(f"Deal {deal_id} has unknown kind {raw_kind!r}")

        item_data = record.get("item") or {}
        item = ItemRef(
            kind=_parse_enum(ItemKind, item_data.get("kind", "vehicle"), ItemKind.VEHICLE),
            item_id=str(item_data.get("id", "")),
            name=item_data.get("name", ""),
            asset_ref=item_data.get("asset_ref"),
            configurations=dict(item_data.get("configurations") or {}),
        )

        lease = None
        lease_data = record.get("lease")
        if lease_data is not None or kind.is_lease:
            lease_data = lease_data or {}
            lease = LeaseTerms(
                residual_value=float(lease_data.get("residual_value", 0.0)),
                security_deposit=float(lease_data.get("security_deposit", 0.0)),
                depreciation=float(lease_data.get("depreciation", 0.0)),
                trade_in_value=float(lease_data.get("trade_in_value", 0.0)),
                awaiting_renewal=bool(lease_data.get("awaiting_renewal", False)),
            )

        collateral = [
            CollateralItem(
                asset_id=str(c.get("asset_id", "")),
                reference=str(c.get("reference", "")),
                name=c.get("name", ""),
                value=float(c.get("value", 0.0)),
            )
            for c in record.get("collateral") or []
        ]
        repossessed = [
            RepossessedItem(
                asset_id=str(r.get("asset_id", "")),
                reference=str(r.get("reference", "")),
                name=r.get("name", ""),
                value=float(r.get("value", 0.0)),
                repossessed_on=GameDate.from_dict(r.get("repossessed_on")),
                not_found=bool(r.get("not_found", False)),
            )
            for r in record.get("repossessed_items") or []
        ]

        amount_financed = float(record.get("amount_financed", 0.0))
        return cls(
            id=str(deal_id),
            account_id=str(record.get("account_id", "")),
            kind=kind,
            item=item,
            original_price=float(record.get("original_price", 0.0)),
            down_payment=float(record.get("down_payment", 0.0)),
            cash_back=float(record.get("cash_back", 0.0)),
            amount_financed=amount_financed,
            term_months=int(record.get("term_months", 0)),
            interest_rate=float(record.get("interest_rate", 0.0)) / 100,
            monthly_payment=float(record.get("monthly_payment", 0.0)),
            current_balance=float(record.get("current_balance", amount_financed)),
            created_at=GameDate.from_dict(record.get("created_at")),
            accrued_interest=float(record.get("accrued_interest", 0.0)),
            months_paid=int(record.get("months_paid", 0)),
            total_interest_paid=float(record.get("total_interest_paid", 0.0)),
            missed_payments=int(record.get("missed_payments", 0)),
            status=_parse_enum(DealStatus, record.get("status", "active"), DealStatus.ACTIVE),
            payment_mode=parse_payment_mode(record.get("payment_mode", PaymentMode.STANDARD)),
            payment_multiplier=float(record.get("payment_multiplier", 1.0)),
            configured_payment_amount=float(record.get("configured_payment", 0.0)),
            last_payment_amount=float(record.get("last_payment_amount", 0.0)),
            collateral=collateral,
            repossessed_items=repossessed,
            lease=lease,
        )
