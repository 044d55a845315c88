"""Periodic HAProxy statistics collection for all running instances."""

from __future__ import annotations

import logging

from .. import metrics
from .instances import InstanceRegistry
from .supervisor import InstanceSupervisor

logger = logging.getLogger(__name__)


class StatsCollector:
    """Forwards one stats request per interval to the supervisor and publishes the result."""

    def __init__(self, supervisor: InstanceSupervisor, registry: InstanceRegistry):
        self._supervisor = supervisor
        self._registry = registry

    def collect(self) -> dict[str, list[dict[str, str]]]:
        stats = self._supervisor.collect_stats(self._registry.instances())
        self._publish(stats)
        logger.debug(
            "Collected stats from %d of %d instances", len(stats), len(self._registry),
            extra={"running": len(self._registry)},
        )
        return stats

    def _publish(self, stats: dict[str, list[dict[str, str]]]) -> None:
        metrics.running_instances.set(len(self._registry))
        # Drop series of networks that went away since the last collection
        for gauge in metrics.HAPROXY_STAT_GAUGES.values():
            gauge.clear()

        for network_id, rows in stats.items():
            for row in rows:
                labels = (network_id, row.get("pxname", ""), row.get("svname", ""))
                for field_name, gauge in metrics.HAPROXY_STAT_GAUGES.items():
                    value = _to_float(row.get(field_name))
                    if value is not None:
                        gauge.labels(*labels).set(value)


def _to_float(raw: str | None) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError:
        return None
