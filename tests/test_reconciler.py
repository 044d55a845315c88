"""Tests for the reconciler scan."""

import pytest

from conftest import TAG, network
from network_injector.exceptions import OpenStackAPIError


def _enables(events):
    return [nid for op, nid in events if op == "start"]


def _disables(events):
    return [nid for op, nid in events if op == "stop"]


class TestScan:
    def test_injected_scenario(self, reconciler, networking, registry, namespaces, events):
        networking.networks = [network("A"), network("B")]

        result = reconciler.scan()

        assert sorted(result.enabled) == ["A", "B"]
        assert registry.network_ids() == {"A", "B"}
        assert {p.device_owner for p in networking.ports.values()} == {"network:injected-injector"}
        assert [e for e in events if e[0] == "activate"] == [("activate", "A"), ("activate", "B")]
        assert [e for e in events if e[0] == "deactivate"] == [("deactivate", "A"), ("deactivate", "B")]

        # A loses its tag
        networking.networks = [network("A", tags=()), network("B")]
        events.clear()

        result = reconciler.scan()

        assert result.unchanged == ["B"]
        assert result.disabled == ["A"]
        assert registry.network_ids() == {"B"}
        assert events == [
            ("open", "B"), ("close", "B"),
            ("stop", "A"), ("destroy", "A"), ("delete_port", "A"),
        ]
        assert [p.network_id for p in networking.ports.values()] == ["B"]
        assert namespaces.existing == {"B"}

    def test_set_convergence_enables_before_disables(self, reconciler, networking, registry, events):
        networking.networks = [network("A"), network("B"), network("C")]
        reconciler.scan()

        networking.networks = [network("B"), network("C"), network("D"), network("E")]
        events.clear()
        result = reconciler.scan()

        assert registry.network_ids() == {"B", "C", "D", "E"}
        assert _enables(events) == ["D", "E"]
        assert _disables(events) == ["A"]
        last_enable = max(i for i, e in enumerate(events) if e[0] == "start")
        first_disable = min(i for i, e in enumerate(events) if e[0] == "stop")
        assert last_enable < first_disable
        assert result.failed == {}

    def test_failure_isolation(self, reconciler, networking, supervisor, registry):
        networking.networks = [network("X"), network("Y")]
        reconciler.scan()

        supervisor.start_errors.add("Z")
        networking.create_errors.add("W")
        networking.networks = [network("W"), network("Y"), network("Z"), network("V")]

        result = reconciler.scan()

        assert set(result.failed) == {"W", "Z"}
        assert result.enabled == ["V"]
        assert result.unchanged == ["Y"]
        assert result.disabled == ["X"]
        assert registry.network_ids() == {"Y", "V"}

    def test_failed_enable_is_retried_next_scan(self, reconciler, networking, supervisor, registry):
        networking.networks = [network("A")]
        supervisor.start_errors.add("A")
        reconciler.scan()
        assert not registry.is_running("A")

        supervisor.start_errors.clear()
        result = reconciler.scan()

        assert result.enabled == ["A"]
        assert len(networking.ports) == 1

    def test_listing_failure_aborts_cycle(self, reconciler, networking, registry, events):
        networking.networks = [network("A")]
        reconciler.scan()
        events.clear()

        networking.list_error = OpenStackAPIError("Failed to list networks: 503")
        with pytest.raises(OpenStackAPIError):
            reconciler.scan()

        # Nothing is torn down just because the listing failed
        assert events == []
        assert registry.is_running("A")

    def test_tag_rechecked_client_side(self, reconciler, networking, registry):
        other = network("O", tags=("something-else",))
        networking.list_tagged_networks = lambda tag: [network("A"), other]

        result = reconciler.scan()

        assert result.desired == ["A"]
        assert registry.network_ids() == {"A"}

    def test_duplicate_listing_entries_enable_once(self, reconciler, networking, events):
        networking.list_tagged_networks = lambda tag: [network("A"), network("A")]

        reconciler.scan()

        assert _enables(events) == ["A"]

    def test_empty_scan_disables_everything(self, reconciler, networking, registry):
        networking.networks = [network("A"), network("B")]
        reconciler.scan()

        networking.networks = []
        result = reconciler.scan()

        assert sorted(result.disabled) == ["A", "B"]
        assert len(registry) == 0
        assert networking.ports == {}

    def test_port_uniqueness_over_repeated_scans(self, reconciler, networking):
        networking.networks = [network("A")]
        for _ in range(3):
            reconciler.scan()
            assert len([p for p in networking.ports.values() if p.network_id == "A"]) == 1

        networking.networks = []
        reconciler.scan()
        networking.networks = [network("A")]
        reconciler.scan()
        assert len([p for p in networking.ports.values() if p.network_id == "A"]) == 1

    def test_uses_configured_tag(self, reconciler, networking):
        networking.networks = [network("A", tags=(TAG, "other"))]
        assert reconciler.scan().desired == ["A"]

    def test_failed_teardown_is_retried_next_scan(self, reconciler, networking, namespaces, registry):
        networking.networks = [network("A")]
        reconciler.scan()

        networking.networks = []
        namespaces.fail_destroy.add("A")
        result = reconciler.scan()

        assert set(result.failed) == {"A"}
        assert not registry.is_running("A")
        assert len(networking.ports) == 1

        namespaces.fail_destroy.clear()
        result = reconciler.scan()

        assert result.disabled == ["A"]
        assert networking.ports == {}
        assert namespaces.existing == set()
        assert registry.pending_teardowns() == set()

        # Nothing left to retry
        assert reconciler.scan().disabled == []
