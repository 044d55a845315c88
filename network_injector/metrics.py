"""Prometheus metrics for the network injector.

Exposes reconciliation counters and per-network HAProxy statistics. The
``/metrics`` endpoint is served by prometheus_client's HTTP server thread.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, start_http_server

from .config import parse_bind_address
from .exceptions import InjectorError

logger = logging.getLogger(__name__)

scans_total = Counter(
    "network_injector_scans_total",
    "Reconciliation scans, by result",
    ["result"],
)

network_operations_total = Counter(
    "network_injector_network_operations_total",
    "Per-network enable/disable attempts, by operation and result",
    ["operation", "result"],
)

tagged_networks = Gauge(
    "network_injector_tagged_networks",
    "Networks carrying the injector tag in the last successful scan",
)

running_instances = Gauge(
    "network_injector_running_instances",
    "HAProxy instances currently recorded as running",
)

last_scan_duration_seconds = Gauge(
    "network_injector_last_scan_duration_seconds",
    "Duration of the last reconciliation scan",
)

haproxy_current_sessions = Gauge(
    "network_injector_haproxy_current_sessions",
    "HAProxy current sessions (scur)",
    ["network_id", "proxy", "server"],
)

haproxy_sessions_total = Gauge(
    "network_injector_haproxy_sessions",
    "HAProxy cumulative sessions (stot) as reported by the instance",
    ["network_id", "proxy", "server"],
)

haproxy_bytes_in = Gauge(
    "network_injector_haproxy_bytes_in",
    "HAProxy bytes in (bin) as reported by the instance",
    ["network_id", "proxy", "server"],
)

haproxy_bytes_out = Gauge(
    "network_injector_haproxy_bytes_out",
    "HAProxy bytes out (bout) as reported by the instance",
    ["network_id", "proxy", "server"],
)

HAPROXY_STAT_GAUGES = {
    "scur": haproxy_current_sessions,
    "stot": haproxy_sessions_total,
    "bin": haproxy_bytes_in,
    "bout": haproxy_bytes_out,
}


def start_metrics_server(bind_address: str) -> None:
    """Serve ``/metrics`` on ``[host]:port`` in a background thread.

    An empty host binds ``::``, which on Linux accepts IPv4 and IPv6 clients.
    """
    host, port = parse_bind_address(bind_address)
    try:
        start_http_server(port, addr=host or "::")
    except OSError as exc:
        raise InjectorError(f"Could not serve metrics on {bind_address}: {exc}") from exc
    logger.info("Prometheus metrics server listening on %s", bind_address)
