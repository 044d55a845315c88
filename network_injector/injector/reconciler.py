"""Desired/actual reconciliation of tagged networks against running instances."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from .. import metrics
from ..discovery import NetworkingClient
from ..discovery.models import TaggedNetwork
from ..haproxy.instances import InstanceRegistry
from .activator import Activator

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Outcome of one scan, by network id."""

    desired: list[str] = field(default_factory=list)
    enabled: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    disabled: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class Reconciler:
    """Converges the running instance set onto the set of tagged networks."""

    def __init__(
        self,
        networking: NetworkingClient,
        activator: Activator,
        registry: InstanceRegistry,
        network_tag: str,
    ):
        self._networking = networking
        self._activator = activator
        self._registry = registry
        self._tag = network_tag

    def scan(self) -> ScanResult:
        """Run one reconciliation pass.

        A failure to list networks propagates and nothing is touched. Errors
        for individual networks are logged and recorded in the result; they
        never stop the remaining networks. All enables run before any disable.
        """
        start = time.monotonic()
        try:
            networks = self._desired_networks()
        except Exception:
            metrics.scans_total.labels(result="error").inc()
            raise

        result = ScanResult(desired=[n.id for n in networks])
        logger.info(
            "Found %d networks tagged '%s'", len(networks), self._tag,
            extra={"desired": len(networks)},
        )

        for network in networks:
            self._enable(network, result)

        known = self._registry.network_ids() | self._registry.pending_teardowns()
        stale = sorted(known - set(result.desired))
        for network_id in stale:
            self._disable(network_id, result)

        elapsed = time.monotonic() - start
        metrics.scans_total.labels(result="success").inc()
        metrics.tagged_networks.set(len(networks))
        metrics.running_instances.set(len(self._registry))
        metrics.last_scan_duration_seconds.set(elapsed)

        logger.info(
            "Scan complete",
            extra={
                "elapsed_seconds": round(elapsed, 2),
                "enabled": len(result.enabled),
                "disabled": len(result.disabled),
                "failed": len(result.failed),
                "running": len(self._registry),
            },
        )
        return result

    def _desired_networks(self) -> list[TaggedNetwork]:
        """Tagged networks, de-duplicated; the tag is rechecked client-side."""
        seen: dict[str, TaggedNetwork] = {}
        for network in self._networking.list_tagged_networks(self._tag):
            if network.has_tag(self._tag) and network.id not in seen:
                seen[network.id] = network
        return list(seen.values())

    def _enable(self, network: TaggedNetwork, result: ScanResult) -> None:
        try:
            started = self._activator.enable_network(network)
        except Exception as exc:
            logger.exception(
                "Enabling network %s (%s) failed", network.name, network.id,
                extra={"network_id": network.id},
            )
            metrics.network_operations_total.labels(operation="enable", result="error").inc()
            result.failed[network.id] = str(exc)
            return

        if started:
            metrics.network_operations_total.labels(operation="enable", result="success").inc()
            result.enabled.append(network.id)
        else:
            result.unchanged.append(network.id)

    def _disable(self, network_id: str, result: ScanResult) -> None:
        try:
            self._activator.disable_network(network_id)
        except Exception as exc:
            logger.exception("Disabling network %s failed", network_id, extra={"network_id": network_id})
            metrics.network_operations_total.labels(operation="disable", result="error").inc()
            result.failed[network_id] = str(exc)
            return

        metrics.network_operations_total.labels(operation="disable", result="success").inc()
        result.disabled.append(network_id)
