"""Prometheus metrics definitions for the BatModule API."""
from __future__ import annotations

from prometheus_client import Counter

CSRF_REJECTIONS = Counter(
    "csrf_rejections_total",
    "State-changing requests rejected by the CSRF guard",
    ["reason"],  # missing/invalid
)

SESSION_STORE_ERRORS = Counter(
    "session_store_errors_total",
    "Session store failures (timeouts included)",
    ["operation"],  # connect/get/set/touch/destroy/ping
)

AUTH_EVENTS = Counter(
    "auth_events_total",
    "Authentication events",
    ["event"],  # login/login_failed/logout/register
)
