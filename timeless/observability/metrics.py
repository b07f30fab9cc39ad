"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from timeless.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    FAMILY = "family"
    TOOL = "tool"
    PROVIDER = "provider"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"
    OPERATION = "operation"


class GatewayMetrics:
    """
    Centralized metrics for the generation gateway.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Tool dispatches (rate, credits charged)
    - Provider calls (rate, latency, failures)
    - Reconciliation (row outcomes, refunds)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info(
            "timeless_service",
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
            "timeless_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "timeless_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
        )

        self.http_requests_in_progress = Gauge(
            "timeless_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Dispatch Metrics
        # ====================================================================
        self.dispatches_total = Counter(
            "timeless_tool_dispatches_total",
            "Tool dispatches by outcome",
            [MetricLabels.FAMILY, MetricLabels.TOOL, MetricLabels.OUTCOME],
        )

        self.credits_charged_total = Counter(
            "timeless_credits_charged_total",
            "Credits deducted for tool usage",
            [MetricLabels.FAMILY],
        )

        # ====================================================================
        # Provider Metrics
        # ====================================================================
        self.provider_requests_total = Counter(
            "timeless_provider_requests_total",
            "Outbound provider requests",
            [MetricLabels.PROVIDER, MetricLabels.OPERATION, "success"],
        )

        self.provider_request_duration_seconds = Histogram(
            "timeless_provider_request_duration_seconds",
            "Outbound provider request duration in seconds",
            [MetricLabels.PROVIDER, MetricLabels.OPERATION],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
        )

        # ====================================================================
        # Reconciliation Metrics
        # ====================================================================
        self.reconciliations_total = Counter(
            "timeless_reconciliations_total",
            "Generation rows reconciled by reported status",
            [MetricLabels.OUTCOME],
        )

        self.credits_refunded_total = Counter(
            "timeless_credits_refunded_total",
            "Credits refunded after failed generations",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "timeless_errors_total",
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

    def record_dispatch(self, family: str, tool: str, outcome: str, credits: int = 0) -> None:
        """Record a tool dispatch."""
        self.dispatches_total.labels(family=family, tool=tool, outcome=outcome).inc()
        if credits > 0:
            self.credits_charged_total.labels(family=family).inc(credits)

    def record_provider_request(
        self, provider: str, operation: str, success: bool, duration: float
    ) -> None:
        """Record an outbound provider call."""
        self.provider_requests_total.labels(
            provider=provider, operation=operation, success=str(success)
        ).inc()
        self.provider_request_duration_seconds.labels(
            provider=provider, operation=operation
        ).observe(duration)

    def record_reconciliation(self, outcome: str, credits_refunded: int = 0) -> None:
        """Record a reconciled row."""
        self.reconciliations_total.labels(outcome=outcome).inc()
        if credits_refunded > 0:
            self.credits_refunded_total.inc(credits_refunded)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = GatewayMetrics()
