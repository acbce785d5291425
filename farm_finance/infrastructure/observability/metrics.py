"""Prometheus metrics for deal volume, payment outcomes, defaults and batch timing"""

from prometheus_client import Counter, Histogram

# Deal metrics
deals_created_counter = Counter(
    "farm_finance_deals_created_total",
    "Deals created",
    ["kind"],  # finance | lease | land_lease | cash_loan
)

amount_financed_counter = Counter(
    "farm_finance_amount_financed_total",
    "Total principal financed",
    ["kind"],
)

deals_closed_counter = Counter(
    "farm_finance_deals_closed_total",
    "Deals leaving the active registry",
    ["status"],  # paid_off | defaulted | cancelled | expired
)

creation_declined_counter = Counter(
    "farm_finance_creation_declined_total",
    "Deal creation requests declined",
    ["reason"],  # validation | credit | affordability | policy
)

# Payment metrics
payment_outcome_counter = Counter(
    "farm_finance_payment_outcomes_total",
    "Monthly payment outcomes",
    ["outcome"],  # skipped | missed | partial | minimum | standard | extra
)

repossessed_assets_counter = Counter(
    "farm_finance_repossessed_assets_total",
    "Assets seized on default",
)

# Batch metrics
batch_duration_histogram = Histogram(
    "farm_finance_batch_duration_seconds",
    "Monthly batch processing time",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
)

# Authority API client
state_fetch_failures_counter = Counter(
    "farm_finance_state_fetch_failures_total",
    "Failed authority state fetches",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_deal_created(kind: str, amount_financed: float) -> None:
    deals_created_counter.labels(kind=kind).inc()
    if amount_financed > 0:
        amount_financed_counter.labels(kind=kind).inc(amount_financed)


def record_deal_closed(status: str, repossessed: int = 0) -> None:
    """Record a deal leaving the registry, with any seized assets"""
    deals_closed_counter.labels(status=status).inc()
    if repossessed:
        repossessed_assets_counter.inc(repossessed)


def record_payment_outcome(outcome: str) -> None:
    payment_outcome_counter.labels(outcome=outcome).inc()


def record_creation_declined(reason: str) -> None:
    creation_declined_counter.labels(reason=reason).inc()
