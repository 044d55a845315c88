"""Network namespaces that hold an injector port's interface.

Each injected network gets a named namespace ``<prefix><network_id>`` with one
OVS internal interface carrying the Neutron port's MAC and fixed IPs. The
interface is plugged into the integration bridge with ``iface-id`` set to the
port id so the local Neutron agent wires it up like any other VIF.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..cmd import check_cmd, list_netns, ovs_vsctl, run_cmd
from ..config import NamespaceConfig
from ..exceptions import NamespaceError

if TYPE_CHECKING:
    from ..discovery import NetworkingClient
    from ..discovery.models import InjectorPort

logger = logging.getLogger(__name__)

IFNAMSIZ = 15


class NetworkNamespace:
    """Handle to one injector namespace.

    Usage:
        with manager.open(port) as ns:
            ns.activate()
            supervisor.start(network_id, port, ns)
            ns.deactivate()
        # The handle is closed on exit, the namespace itself stays.

    While active, ``exec_argv`` wraps commands so they run inside the
    namespace. Deactivating only leaves that execution context; interface
    configuration is not touched, so processes started while active keep
    their sockets.
    """

    def __init__(self, name: str, interface: str, timeout: int = 30):
        self.name = name
        self.interface = interface
        self._timeout = timeout
        self._active = False
        self._closed = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def closed(self) -> bool:
        return self._closed

    def activate(self) -> None:
        """Bring the namespace's links up and make it the execution context."""
        self._check_open()
        check_cmd(["ip", "-n", self.name, "link", "set", "lo", "up"], timeout=self._timeout)
        check_cmd(["ip", "-n", self.name, "link", "set", self.interface, "up"], timeout=self._timeout)
        self._active = True
        logger.debug("Namespace %s activated", self.name, extra={"namespace": self.name})

    def deactivate(self) -> None:
        """Leave the namespace execution context."""
        self._check_open()
        self._active = False
        logger.debug("Namespace %s deactivated", self.name, extra={"namespace": self.name})

    def exec_argv(self, argv: list[str]) -> list[str]:
        """Return ``argv`` wrapped to run inside this namespace."""
        self._check_open()
        if not self._active:
            raise NamespaceError(f"Namespace {self.name} is not active")
        return ["ip", "netns", "exec", self.name, *argv]

    def close(self) -> None:
        self._active = False
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise NamespaceError(f"Namespace handle {self.name} is closed")

    def __enter__(self) -> NetworkNamespace:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


@runtime_checkable
class NamespaceProvider(Protocol):
    """Capability to create and destroy per-network namespaces."""

    def open(self, port: InjectorPort) -> NetworkNamespace:
        """Ensure the namespace for ``port`` exists and return a handle to it."""
        ...

    def destroy(self, network_id: str) -> None:
        """Remove the namespace for ``network_id``; a no-op if it does not exist."""
        ...


class NamespaceManager:
    """Creates namespaces with ``ip`` and plugs interfaces with ``ovs-vsctl``."""

    def __init__(self, config: NamespaceConfig, networking: NetworkingClient):
        self._config = config
        self._networking = networking
        self._prefix_cache: dict[str, int] = {}

    def namespace_name(self, network_id: str) -> str:
        return f"{self._config.prefix}{network_id}"

    def interface_name(self, network_id: str) -> str:
        return f"{self._config.interface_prefix}{network_id.replace('-', '')}"[:IFNAMSIZ]

    def open(self, port: InjectorPort) -> NetworkNamespace:
        name = self.namespace_name(port.network_id)
        interface = self.interface_name(port.network_id)
        timeout = self._config.command_timeout

        if name not in list_netns(timeout=timeout):
            logger.info("Creating namespace %s", name, extra={"namespace": name, "port_id": port.id})
            check_cmd(["ip", "netns", "add", name], timeout=timeout)

        self._plug(port, name, interface)
        return NetworkNamespace(name, interface, timeout=timeout)

    def destroy(self, network_id: str) -> None:
        name = self.namespace_name(network_id)
        interface = self.interface_name(network_id)
        timeout = self._config.command_timeout

        ovs_vsctl("--if-exists", "del-port", self._config.integration_bridge, interface, timeout=timeout)
        if name in list_netns(timeout=timeout):
            logger.info("Deleting namespace %s", name, extra={"namespace": name, "network_id": network_id})
            check_cmd(["ip", "netns", "delete", name], timeout=timeout)
        else:
            logger.debug("Namespace %s does not exist, nothing to delete", name)

    def _plug(self, port: InjectorPort, name: str, interface: str) -> None:
        """Attach the port's interface to the namespace. Safe to repeat."""
        timeout = self._config.command_timeout
        ovs_vsctl(
            "--may-exist", "add-port", self._config.integration_bridge, interface,
            "--", "set", "Interface", interface, "type=internal",
            f"external_ids:iface-id={port.id}",
            "external_ids:iface-status=active",
            f"external_ids:attached-mac={port.mac_address}",
            timeout=timeout,
        )

        # A freshly created internal port shows up in the host namespace
        code, _, _ = run_cmd(["ip", "link", "show", interface], timeout=timeout)
        if code == 0:
            check_cmd(["ip", "link", "set", interface, "netns", name], timeout=timeout)

        if port.mac_address:
            check_cmd(["ip", "-n", name, "link", "set", interface, "address", port.mac_address], timeout=timeout)

        for fixed_ip in port.fixed_ips:
            prefixlen = self._prefixlen(fixed_ip.subnet_id)
            check_cmd(
                ["ip", "-n", name, "addr", "replace", f"{fixed_ip.ip_address}/{prefixlen}", "dev", interface],
                timeout=timeout,
            )

    def _prefixlen(self, subnet_id: str) -> int:
        if subnet_id not in self._prefix_cache:
            cidr = self._networking.get_subnet_cidr(subnet_id)
            self._prefix_cache[subnet_id] = ipaddress.ip_network(cidr, strict=False).prefixlen
        return self._prefix_cache[subnet_id]
