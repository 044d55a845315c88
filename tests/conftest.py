"""Shared fakes for the networking, namespace and supervisor capabilities."""

from __future__ import annotations

import pytest

from network_injector.config import InjectorConfig
from network_injector.discovery.models import FixedIP, InjectorPort, PortRequest, TaggedNetwork
from network_injector.exceptions import HAProxyError, NamespaceError, OpenStackAPIError
from network_injector.haproxy.instances import HAProxyInstance, InstanceRegistry
from network_injector.injector.activator import Activator
from network_injector.injector.ports import PortManager
from network_injector.injector.reconciler import Reconciler

TAG = "injected"


def network(network_id: str, tags=(TAG,), name: str | None = None) -> TaggedNetwork:
    return TaggedNetwork(
        id=network_id,
        name=name or f"net-{network_id}",
        project_id="project-1",
        tags=frozenset(tags),
    )


class FakeNetworking:
    """In-memory Neutron: networks, ports, and a call log."""

    def __init__(self, events: list):
        self.events = events
        self.networks: list[TaggedNetwork] = []
        self.ports: dict[str, InjectorPort] = {}
        self.requests: list[PortRequest] = []
        self.list_error: Exception | None = None
        self.create_errors: set[str] = set()
        self._counter = 0

    def list_tagged_networks(self, tag: str) -> list[TaggedNetwork]:
        if self.list_error is not None:
            raise self.list_error
        return [n for n in self.networks if tag in n.tags]

    def list_ports(self, network_id: str, device_owner: str) -> list[InjectorPort]:
        return [
            p for p in self.ports.values()
            if p.network_id == network_id and p.device_owner == device_owner
        ]

    def create_port(self, request: PortRequest) -> InjectorPort:
        if request.network_id in self.create_errors:
            raise OpenStackAPIError(f"Failed to create port on network {request.network_id}", status_code=500)
        self._counter += 1
        port = InjectorPort(
            id=f"port-{self._counter}",
            network_id=request.network_id,
            device_owner=request.device_owner,
            device_id=request.device_id,
            binding_host_id=request.binding_host_id,
            dns_name=request.dns_name,
            project_id=request.project_id,
            mac_address=f"fa:16:3e:00:00:{self._counter:02x}",
            fixed_ips=(FixedIP(subnet_id="subnet-1", ip_address=f"10.0.0.{self._counter + 10}"),),
        )
        self.ports[port.id] = port
        self.requests.append(request)
        self.events.append(("create_port", request.network_id))
        return port

    def delete_port(self, port_id: str) -> None:
        port = self.ports.pop(port_id)
        self.events.append(("delete_port", port.network_id))

    def get_subnet_cidr(self, subnet_id: str) -> str:
        return "10.0.0.0/24"

    def add_port(self, network_id: str, port_id: str, device_owner: str) -> InjectorPort:
        port = InjectorPort(id=port_id, network_id=network_id, device_owner=device_owner)
        self.ports[port_id] = port
        return port


class FakeNamespaceHandle:
    def __init__(self, network_id: str, events: list, fail_activate: bool = False):
        self.network_id = network_id
        self.name = f"injector-{network_id}"
        self.active = False
        self.closed = False
        self._events = events
        self._fail_activate = fail_activate

    def activate(self) -> None:
        if self._fail_activate:
            raise NamespaceError(f"cannot activate {self.name}")
        self.active = True
        self._events.append(("activate", self.network_id))

    def deactivate(self) -> None:
        self.active = False
        self._events.append(("deactivate", self.network_id))

    def exec_argv(self, argv: list[str]) -> list[str]:
        return ["ip", "netns", "exec", self.name, *argv]

    def close(self) -> None:
        self.active = False
        self.closed = True
        self._events.append(("close", self.network_id))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class FakeNamespaces:
    def __init__(self, events: list):
        self.events = events
        self.existing: set[str] = set()
        self.handles: list[FakeNamespaceHandle] = []
        self.fail_activate: set[str] = set()
        self.fail_destroy: set[str] = set()

    def open(self, port: InjectorPort) -> FakeNamespaceHandle:
        self.existing.add(port.network_id)
        self.events.append(("open", port.network_id))
        handle = FakeNamespaceHandle(port.network_id, self.events, port.network_id in self.fail_activate)
        self.handles.append(handle)
        return handle

    def destroy(self, network_id: str) -> None:
        if network_id in self.fail_destroy:
            raise NamespaceError(f"cannot delete injector-{network_id}")
        if network_id in self.existing:
            self.existing.discard(network_id)
            self.events.append(("destroy", network_id))


class FakeSupervisor:
    def __init__(self, events: list):
        self.events = events
        self.running: dict[str, HAProxyInstance] = {}
        self.start_errors: set[str] = set()
        self.recovered: list[HAProxyInstance] = []
        self._pid = 1000

    def start(self, network_id, port, namespace) -> HAProxyInstance:
        if not namespace.active:
            raise HAProxyError("namespace not active")
        if network_id in self.start_errors:
            raise HAProxyError(f"haproxy for network {network_id} failed to start")
        self._pid += 1
        instance = HAProxyInstance(
            network_id=network_id,
            pid=self._pid,
            config_path=f"/run/{network_id}.cfg",
            pidfile=f"/run/{network_id}.pid",
            stats_socket=f"/run/{network_id}.sock",
        )
        self.running[network_id] = instance
        self.events.append(("start", network_id))
        return instance

    def stop(self, instance: HAProxyInstance) -> None:
        self.running.pop(instance.network_id, None)
        self.events.append(("stop", instance.network_id))

    def recover(self) -> list[HAProxyInstance]:
        return list(self.recovered)

    def collect_stats(self, instances):
        self.events.append(("collect_stats", tuple(sorted(i.network_id for i in instances))))
        return {
            i.network_id: [{"pxname": "injector", "svname": "FRONTEND", "scur": "2", "stot": "40", "bin": "100", "bout": "200"}]
            for i in instances
        }


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def networking(events) -> FakeNetworking:
    return FakeNetworking(events)


@pytest.fixture
def namespaces(events) -> FakeNamespaces:
    return FakeNamespaces(events)


@pytest.fixture
def supervisor(events) -> FakeSupervisor:
    return FakeSupervisor(events)


@pytest.fixture
def registry() -> InstanceRegistry:
    return InstanceRegistry()


@pytest.fixture
def injector_config() -> InjectorConfig:
    return InjectorConfig(network_tag=TAG, dns_name="injected-svc", hostname="injector-host-1")


@pytest.fixture
def port_manager(networking, injector_config) -> PortManager:
    return PortManager(networking, injector_config)


@pytest.fixture
def activator(port_manager, namespaces, supervisor, registry) -> Activator:
    return Activator(port_manager, namespaces, supervisor, registry)


@pytest.fixture
def reconciler(networking, activator, registry) -> Reconciler:
    return Reconciler(networking, activator, registry, TAG)
