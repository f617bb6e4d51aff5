"""Prometheus metrics for dutywatch."""

import logging
import threading
from typing import Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

logger = logging.getLogger(__name__)

DEFAULT_METRICS_PORT = 8009

# Tracker info
tracker_info = Info(
    "dutywatch_tracker",
    "Tracker information",
)

# Chain time
current_slot = Gauge(
    "dutywatch_current_slot",
    "Current wall-clock slot",
)

current_epoch = Gauge(
    "dutywatch_current_epoch",
    "Current wall-clock epoch",
)

# Registry / duties
tracked_validators = Gauge(
    "dutywatch_tracked_validators",
    "Number of tracked validators",
)

duties_tracked = Gauge(
    "dutywatch_duties",
    "Number of duties held for tracked validators",
    ["kind"],
)

unmatched_duties = Counter(
    "dutywatch_unmatched_duties_total",
    "Duties that could not be matched to a tracked validator",
)

duty_fetches = Counter(
    "dutywatch_duty_fetches_total",
    "Duty fetch cycles",
    ["outcome"],
)

# Notifications
notifications_sent = Counter(
    "dutywatch_notifications_sent_total",
    "Notifications dispatched",
    ["kind", "urgency"],
)

notification_failures = Counter(
    "dutywatch_notification_failures_total",
    "Notifications whose delivery failed",
    ["kind"],
)

missed_attestations = Counter(
    "dutywatch_missed_attestations_total",
    "Attestations recorded as missed",
)

scheduler_tick_time = Histogram(
    "dutywatch_scheduler_tick_seconds",
    "Time spent in a notification scheduler tick",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Beacon API metrics
beacon_api_requests = Counter(
    "dutywatch_beacon_api_requests_total",
    "Total Beacon API requests",
    ["endpoint"],
)

beacon_api_errors = Counter(
    "dutywatch_beacon_api_errors_total",
    "Total Beacon API errors",
    ["endpoint", "error_type"],
)

beacon_api_latency = Histogram(
    "dutywatch_beacon_api_latency_seconds",
    "Beacon API request latency",
    ["endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


_server_started = False
_server_lock = threading.Lock()


def start_metrics_server(port: int = DEFAULT_METRICS_PORT) -> bool:
    """Start the Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default 8009)

    Returns:
        True if server started successfully, False if already running
    """
    global _server_started

    with _server_lock:
        if _server_started:
            logger.warning("Metrics server already running")
            return False

        try:
            start_http_server(port)
            _server_started = True
            logger.info(f"Prometheus metrics server started on port {port}")
            return True
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False


def set_tracker_info(version: str, beacon_url: str) -> None:
    """Set tracker information metric."""
    tracker_info.info({
        "version": version,
        "beacon_url": beacon_url,
    })


def update_chain_time(slot: int, epoch: int) -> None:
    current_slot.set(slot)
    current_epoch.set(epoch)


def update_registry(count: int) -> None:
    tracked_validators.set(count)


def update_duties(proposer: int, attester: int, sync: int) -> None:
    """Update per-kind duty gauges."""
    duties_tracked.labels(kind="proposer").set(proposer)
    duties_tracked.labels(kind="attester").set(attester)
    duties_tracked.labels(kind="sync").set(sync)


def record_unmatched_duty() -> None:
    unmatched_duties.inc()


def record_duty_fetch(outcome: str) -> None:
    """Record a fetch cycle outcome ('ok', 'superseded', 'error')."""
    duty_fetches.labels(outcome=outcome).inc()


def record_notification(kind: str, urgency: str) -> None:
    notifications_sent.labels(kind=kind, urgency=urgency).inc()


def record_notification_failure(kind: str) -> None:
    notification_failures.labels(kind=kind).inc()


def record_missed_attestation() -> None:
    missed_attestations.inc()


def record_beacon_api_call(endpoint: str, latency: float, error: Optional[str] = None) -> None:
    """Record a Beacon API call.

    Args:
        endpoint: Logical endpoint name (e.g., 'proposer_duties')
        latency: Request latency in seconds
        error: Error type if the call failed, None if successful
    """
    beacon_api_requests.labels(endpoint=endpoint).inc()
    beacon_api_latency.labels(endpoint=endpoint).observe(latency)
    if error:
        beacon_api_errors.labels(endpoint=endpoint, error_type=error).inc()
