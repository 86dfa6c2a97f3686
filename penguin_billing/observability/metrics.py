"""
Prometheus metrics for the entitlement service.

All series share the ``entitlement_`` prefix and live in the default
registry, which the /metrics route renders.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

from penguin_billing.config import settings

PREFIX = "entitlement"

HTTP_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
# Google Play round trips; the client timeout caps these around 10s
UPSTREAM_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
STORE_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)


class MetricLabels:
    """Label names shared across series."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    TIER = "tier"
    SOURCE = "source"
    ERROR_TYPE = "error_type"
    SUCCESS = "success"


def _name(suffix: str) -> str:
    return f"{PREFIX}_{suffix}"


class EntitlementMetrics:
    """
    Counters and histograms for every path that touches a purchase.

    Outcome labels carry the failure reason from VerificationError or the
    notification disposition, so dashboards can split them without parsing logs.
    """

    def __init__(self) -> None:
        self.service_info = Info(_name("service"), "Service information")
        self.service_info.info(
            {"version": settings.api_version, "service_name": settings.service_name}
        )

        http_labels = [MetricLabels.ENDPOINT, MetricLabels.METHOD]
        self.http_requests_total = Counter(
            _name("http_requests_total"),
            "Total HTTP requests",
            [*http_labels, MetricLabels.STATUS_CODE],
        )
        self.http_request_duration_seconds = Histogram(
            _name("http_request_duration_seconds"),
            "HTTP request duration in seconds",
            http_labels,
            buckets=HTTP_BUCKETS,
        )
        self.http_requests_in_progress = Gauge(
            _name("http_requests_in_progress"),
            "HTTP requests currently being handled",
            http_labels,
        )

        self.verifications_total = Counter(
            _name("verifications_total"),
            "Subscription verifications against Google Play",
            [MetricLabels.OUTCOME],
        )
        self.verification_duration_seconds = Histogram(
            _name("verification_duration_seconds"),
            "Google Play verification call duration in seconds",
            buckets=UPSTREAM_BUCKETS,
        )
        self.notifications_total = Counter(
            _name("notifications_total"),
            "Real-time developer notifications by disposition",
            [MetricLabels.OUTCOME],
        )
        self.resolutions_total = Counter(
            _name("resolutions_total"),
            "Entitlement snapshots resolved",
            [MetricLabels.TIER, MetricLabels.SOURCE],
        )

        self.store_operations_total = Counter(
            _name("store_operations_total"),
            "Purchase store operations",
            [MetricLabels.OPERATION, MetricLabels.SUCCESS],
        )
        self.store_operation_duration_seconds = Histogram(
            _name("store_operation_duration_seconds"),
            "Purchase store operation duration in seconds",
            [MetricLabels.OPERATION],
            buckets=STORE_BUCKETS,
        )
        self.errors_total = Counter(
            _name("errors_total"),
            "Errors by type and operation",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_verification(self, outcome: str, duration: float) -> None:
        """Count one Google Play lookup; ``outcome`` is "verified" or a failure reason."""
        self.verifications_total.labels(outcome=outcome).inc()
        self.verification_duration_seconds.observe(duration)

    def record_notification(self, outcome: str) -> None:
        self.notifications_total.labels(outcome=outcome).inc()

    def record_resolution(self, tier: str, source: str) -> None:
        self.resolutions_total.labels(tier=tier, source=source).inc()

    def record_store_operation(self, operation: str, success: bool, duration: float) -> None:
        self.store_operations_total.labels(operation=operation, success=str(success)).inc()
        self.store_operation_duration_seconds.labels(operation=operation).observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


metrics = EntitlementMetrics()
