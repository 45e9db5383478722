"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from chatgate.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    OUTCOME = "outcome"


class ChatGateMetrics:
    """
    Centralized metrics for the chat backend.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Conversation turns (outcome, failing stage)
    - Model calls (duration)
    - Entitlement debits and reconciled purchases
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "chatgate_service",
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
            "chatgate_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "chatgate_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "chatgate_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Turn Metrics
        # ====================================================================
        self.turns_total = Counter(
            "chatgate_turns_total",
            "Conversation turns by outcome and the stage reached",
            [MetricLabels.OUTCOME, "stage"],
        )

        self.model_call_duration_seconds = Histogram(
            "chatgate_model_call_duration_seconds",
            "Model inference call duration in seconds",
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0),
        )

        # ====================================================================
        # Entitlement Metrics
        # ====================================================================
        self.messages_debited_total = Counter(
            "chatgate_messages_debited_total",
            "Messages debited from user balances",
            ["balance", "applied"],
        )

        self.purchases_reconciled_total = Counter(
            "chatgate_purchases_reconciled_total",
            "Billing provider purchase line items by reconciliation outcome",
            [MetricLabels.OUTCOME],
        )

        self.users_created_total = Counter(
            "chatgate_users_created_total",
            "Total users signed up",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "chatgate_errors_total",
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

    def record_turn(self, outcome: str, stage: str) -> None:
        """Record a finished or aborted turn."""
        self.turns_total.labels(outcome=outcome, stage=stage).inc()

    def record_debit(self, used_paid: bool, applied: bool) -> None:
        """Record a message debit."""
        self.messages_debited_total.labels(
            balance="paid" if used_paid else "free", applied=str(applied)
        ).inc()

    def record_purchase(self, outcome: str) -> None:
        """Record one reconciled purchase line item."""
        self.purchases_reconciled_total.labels(outcome=outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = ChatGateMetrics()
