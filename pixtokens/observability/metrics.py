"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from pixtokens.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    PLAN_ID = "plan_id"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class PurchaseMetrics:
    """
    Centralized metrics for the token purchase API.

    Minimum viable metrics covering:
    - HTTP requests (rate, duration, errors)
    - Purchase creation (rate by plan and outcome)
    - Reconciliation (rate by resulting status)
    - Token crediting (credit gate wins vs. already-credited)
    - Gateway calls (duration by operation and HTTP status)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "pixtokens_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "pixtokens_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "pixtokens_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "pixtokens_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Purchase Metrics
        # ====================================================================
        self.purchases_created_total = Counter(
            "pixtokens_purchases_created_total",
            "Purchase initiations by plan and outcome",
            [MetricLabels.PLAN_ID, MetricLabels.OUTCOME],
        )

        self.reconciliations_total = Counter(
            "pixtokens_reconciliations_total",
            "Reconciliation passes by resulting purchase status",
            [MetricLabels.OUTCOME],
        )

        self.credit_gate_total = Counter(
            "pixtokens_credit_gate_total",
            "Credit gate evaluations (credited vs already_credited)",
            [MetricLabels.OUTCOME],
        )

        self.tokens_credited_total = Counter(
            "pixtokens_tokens_credited_total",
            "Tokens added to purchaser balances",
            [MetricLabels.PLAN_ID],
        )

        # ====================================================================
        # Gateway Metrics
        # ====================================================================
        self.gateway_request_duration_seconds = Histogram(
            "pixtokens_gateway_request_duration_seconds",
            "Payment gateway request duration in seconds",
            [MetricLabels.OPERATION, MetricLabels.STATUS_CODE],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "pixtokens_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_purchase_created(self, plan_id: str, outcome: str) -> None:
        """Record a purchase initiation outcome."""
        self.purchases_created_total.labels(plan_id=plan_id, outcome=outcome).inc()

    def record_reconciliation(self, outcome: str) -> None:
        """Record the status a reconciliation pass ended in."""
        self.reconciliations_total.labels(outcome=outcome).inc()

    def record_credit(self, plan_id: str, credited: bool, tokens: int) -> None:
        """Record a credit gate evaluation."""
        self.credit_gate_total.labels(
            outcome="credited" if credited else "already_credited"
        ).inc()
        if credited:
            self.tokens_credited_total.labels(plan_id=plan_id).inc(tokens)

    def record_gateway_request(self, operation: str, status_code: str, duration: float) -> None:
        """Record a payment gateway round-trip."""
        self.gateway_request_duration_seconds.labels(
            operation=operation, status_code=status_code
        ).observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = PurchaseMetrics()
