"""
Prometheus metrics configuration for the Skirmish server.

This module provides metrics collection for monitoring socket traffic,
session bootstrapping, and document store access.
"""

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from server.src.core.logging_config import get_logger
from common.src import __version__

logger = get_logger(__name__)

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# =============================================================================
# APPLICATION INFO METRICS
# =============================================================================

app_info = Info(
    "skirmish_server_info", "Skirmish server application information", registry=REGISTRY
)

# =============================================================================
# WEBSOCKET METRICS
# =============================================================================

websocket_connections_total = Counter(
    "skirmish_websocket_connections_total",
    "Total number of WebSocket connections",
    ["status"],
    registry=REGISTRY,
)

websocket_connections_active = Gauge(
    "skirmish_websocket_connections_active",
    "Current number of active WebSocket connections",
    registry=REGISTRY,
)

websocket_messages_total = Counter(
    "skirmish_websocket_messages_total",
    "Total number of WebSocket messages",
    ["event", "direction"],
    registry=REGISTRY,
)

websocket_connection_duration_seconds = Histogram(
    "skirmish_websocket_connection_duration_seconds",
    "WebSocket connection duration in seconds",
    registry=REGISTRY,
)

# =============================================================================
# REQUEST ROUTING METRICS
# =============================================================================

requests_total = Counter(
    "skirmish_requests_total",
    "Total number of routed requests",
    ["category", "action", "outcome"],
    registry=REGISTRY,
)

request_duration_seconds = Histogram(
    "skirmish_request_duration_seconds",
    "Time spent handling routed requests",
    ["category"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
    registry=REGISTRY,
)

session_logins_total = Counter(
    "skirmish_session_logins_total",
    "Total number of login and account creation attempts",
    ["kind", "status"],
    registry=REGISTRY,
)

# =============================================================================
# SESSION METRICS
# =============================================================================

sessions_active = Gauge(
    "skirmish_sessions_active", "Current number of sessions held in memory", registry=REGISTRY
)

sessions_evicted_total = Counter(
    "skirmish_sessions_evicted_total",
    "Total number of sessions evicted for inactivity",
    registry=REGISTRY,
)

bootstrap_stage_duration_seconds = Histogram(
    "skirmish_bootstrap_stage_duration_seconds",
    "Duration of each session bootstrap stage in seconds",
    ["stage"],
    registry=REGISTRY,
)

bootstrap_halts_total = Counter(
    "skirmish_bootstrap_halts_total",
    "Total number of session bootstraps that stopped before READY",
    ["stage", "reason"],
    registry=REGISTRY,
)

# =============================================================================
# DOCUMENT STORE METRICS
# =============================================================================

store_operations_total = Counter(
    "skirmish_store_operations_total",
    "Total number of document store operations",
    ["operation", "collection", "result"],
    registry=REGISTRY,
)

store_operation_duration_seconds = Histogram(
    "skirmish_store_operation_duration_seconds",
    "Document store operation duration in seconds",
    ["operation", "collection"],
    registry=REGISTRY,
)

# =============================================================================
# ERROR METRICS
# =============================================================================

errors_total = Counter(
    "skirmish_errors_total",
    "Total number of errors",
    ["component", "error_type"],
    registry=REGISTRY,
)

# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def init_metrics(environment: str = "development"):
    """Initialize metrics with application information."""
    app_info.info(
        {
            "version": __version__,
            "service": "skirmish-server",
            "environment": environment,
        }
    )
    logger.info("Prometheus metrics initialized")


def get_metrics() -> bytes:
    """Get current metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


# =============================================================================
# HELPER FUNCTIONS FOR MANUAL METRICS
# =============================================================================


class MetricsHelper:
    """Helper class for manual metrics tracking."""

    @staticmethod
    def track_websocket_connection(status: str):
        """Track WebSocket connection events."""
        websocket_connections_total.labels(status=status).inc()

    @staticmethod
    def set_active_connections(count: int):
        """Set the current number of active WebSocket connections."""
        websocket_connections_active.set(count)

    @staticmethod
    def track_websocket_message(event: str, direction: str):
        """Track WebSocket message events."""
        websocket_messages_total.labels(event=event, direction=direction).inc()

    @staticmethod
    def track_request(category: str, action: str, outcome: str, duration: float):
        """Track a routed request and how it ended."""
        requests_total.labels(category=category, action=action, outcome=outcome).inc()
        request_duration_seconds.labels(category=category).observe(duration)

    @staticmethod
    def track_session_login(kind: str, status: str):
        """Track login / account creation attempts."""
        session_logins_total.labels(kind=kind, status=status).inc()

    @staticmethod
    def set_active_sessions(count: int):
        sessions_active.set(count)

    @staticmethod
    def track_session_eviction(count: int = 1):
        sessions_evicted_total.inc(count)

    @staticmethod
    def track_bootstrap_stage(stage: str, duration: float):
        """Track how long a bootstrap stage took."""
        bootstrap_stage_duration_seconds.labels(stage=stage).observe(duration)

    @staticmethod
    def track_bootstrap_halt(stage: str, reason: str):
        bootstrap_halts_total.labels(stage=stage, reason=reason).inc()

    @staticmethod
    def track_store_operation(
        operation: str, collection: str, duration: float, result: str = "ok"
    ):
        """Track document store operations."""
        store_operations_total.labels(
            operation=operation, collection=collection, result=result
        ).inc()
        store_operation_duration_seconds.labels(
            operation=operation, collection=collection
        ).observe(duration)

    @staticmethod
    def track_error(component: str, error_type: str):
        """Track application errors."""
        errors_total.labels(component=component, error_type=error_type).inc()


# Stateless facade over the registry above
metrics = MetricsHelper()
