"""Tests for the instance registry and stats publishing."""

import pytest
from prometheus_client import REGISTRY

from network_injector.haproxy.instances import HAProxyInstance, InstanceRegistry
from network_injector.haproxy.stats import StatsCollector


def _instance(network_id, pid=100):
    return HAProxyInstance(
        network_id=network_id,
        pid=pid,
        config_path=f"/run/{network_id}.cfg",
        pidfile=f"/run/{network_id}.pid",
        stats_socket=f"/run/{network_id}.sock",
    )


def _sample(name, network_id, proxy="injector", server="FRONTEND"):
    return REGISTRY.get_sample_value(name, {"network_id": network_id, "proxy": proxy, "server": server})


class TestInstanceRegistry:
    def test_add_and_query(self):
        registry = InstanceRegistry()
        registry.add(_instance("A"))
        registry.add(_instance("B"))

        assert registry.is_running("A")
        assert "B" in registry
        assert registry.get("A").pid == 100
        assert registry.network_ids() == {"A", "B"}
        assert len(registry) == 2
        assert sorted(registry) == ["A", "B"]

    def test_duplicate_add_rejected(self):
        registry = InstanceRegistry()
        registry.add(_instance("A"))
        with pytest.raises(ValueError, match="already registered"):
            registry.add(_instance("A", pid=200))
        assert registry.get("A").pid == 100

    def test_remove(self):
        registry = InstanceRegistry()
        registry.add(_instance("A"))
        assert registry.remove("A").network_id == "A"
        assert registry.remove("A") is None
        assert not registry.is_running("A")

    def test_pending_teardowns(self):
        registry = InstanceRegistry()
        registry.mark_teardown("A")
        registry.mark_teardown("A")
        assert registry.pending_teardowns() == {"A"}
        assert "A" not in registry

        registry.teardown_done("A")
        registry.teardown_done("B")
        assert registry.pending_teardowns() == set()

    def test_iteration_is_a_snapshot(self):
        registry = InstanceRegistry()
        registry.add(_instance("A"))
        registry.add(_instance("B"))
        for network_id in registry:
            registry.remove(network_id)
        assert len(registry) == 0


class TestStatsCollector:
    def test_forwards_running_instances(self, supervisor, registry, events):
        registry.add(_instance("stats-A"))
        registry.add(_instance("stats-B"))

        stats = StatsCollector(supervisor, registry).collect()

        assert events == [("collect_stats", ("stats-A", "stats-B"))]
        assert set(stats) == {"stats-A", "stats-B"}

    def test_publishes_gauges(self, supervisor, registry):
        registry.add(_instance("stats-C"))

        StatsCollector(supervisor, registry).collect()

        assert REGISTRY.get_sample_value("network_injector_running_instances") == 1
        assert _sample("network_injector_haproxy_current_sessions", "stats-C") == 2
        assert _sample("network_injector_haproxy_sessions", "stats-C") == 40
        assert _sample("network_injector_haproxy_bytes_in", "stats-C") == 100
        assert _sample("network_injector_haproxy_bytes_out", "stats-C") == 200

    def test_series_of_stopped_networks_are_dropped(self, supervisor, registry):
        registry.add(_instance("stats-D"))
        collector = StatsCollector(supervisor, registry)
        collector.collect()

        registry.remove("stats-D")
        collector.collect()

        assert _sample("network_injector_haproxy_current_sessions", "stats-D") is None
        assert REGISTRY.get_sample_value("network_injector_running_instances") == 0

    def test_blank_fields_are_skipped(self, registry):
        class BlankSupervisor:
            def collect_stats(self, instances):
                return {"stats-E": [{"pxname": "injector", "svname": "FRONTEND", "scur": "", "stot": "7"}]}

        registry.add(_instance("stats-E"))
        StatsCollector(BlankSupervisor(), registry).collect()

        assert _sample("network_injector_haproxy_current_sessions", "stats-E") is None
        assert _sample("network_injector_haproxy_sessions", "stats-E") == 7
