"""Prometheus metrics for settlement outcomes, loan recovery and bookkeeping failures"""

from decimal import Decimal
from prometheus_client import Counter, Histogram

# Settlement metrics
settlement_counter = Counter(
    "settlement_total",
    "Delivery settlement attempts",
    ["outcome"],  # settled | already_processed | not_found | invalid_delivery | persistence_failure | error
)

deduction_amount_counter = Counter(
    "settlement_deduction",
    "Loan deductions withheld from payouts",
)

gross_amount_counter = Counter(
    "settlement_gross",
    "Gross value of settled deliveries",
)

# Post-commit bookkeeping
ledger_failure_counter = Counter(
    "ledger_bookkeeping_failures_total",
    "Per-loan balance update or ledger insert failures after payout commit",
)

balance_update_conflicts_counter = Counter(
    "balance_update_conflicts_total",
    "Conditional loan balance decrements rejected by a concurrent change",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_settlement(outcome: str, gross_amount: Decimal = Decimal("0"), loan_deduction: Decimal = Decimal("0")) -> None:
    """Record settlement outcome and, for settled deliveries, money moved"""
    settlement_counter.labels(outcome=outcome).inc()

    if outcome == "settled":
        gross_amount_counter.inc(float(gross_amount))
        deduction_amount_counter.inc(float(loan_deduction))
