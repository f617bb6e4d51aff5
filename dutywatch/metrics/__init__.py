"""Prometheus metrics."""

from .metrics import (
    DEFAULT_METRICS_PORT,
    start_metrics_server,
    set_tracker_info,
    update_chain_time,
    update_registry,
    update_duties,
    record_unmatched_duty,
    record_duty_fetch,
    record_notification,
    record_notification_failure,
    record_missed_attestation,
    record_beacon_api_call,
    scheduler_tick_time,
)

__all__ = [
    "DEFAULT_METRICS_PORT",
    "start_metrics_server",
    "set_tracker_info",
    "update_chain_time",
    "update_registry",
    "update_duties",
    "record_unmatched_duty",
    "record_duty_fetch",
    "record_notification",
    "record_notification_failure",
    "record_missed_attestation",
    "record_beacon_api_call",
    "scheduler_tick_time",
]
