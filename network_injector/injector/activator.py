"""Per-network enable/disable sequences around the HAProxy instance."""

from __future__ import annotations

import logging

from ..discovery.models import TaggedNetwork
from ..haproxy.instances import InstanceRegistry
from ..haproxy.supervisor import InstanceSupervisor
from .namespace import NamespaceProvider
from .ports import PortManager

logger = logging.getLogger(__name__)


class Activator:
    """Drives a network between ABSENT and PORT_READY + INSTANCE_RUNNING.

    Enable: ensure port -> open namespace -> (stop here if already running)
    -> activate -> start instance -> deactivate. The namespace handle is
    released on every exit path.

    Disable: stop instance -> destroy namespace -> delete port.

    Failures propagate to the caller; nothing already done is rolled back.
    A failed disable leaves the network in the registry's pending teardowns,
    which the reconciler disables again on every scan until it succeeds.
    """

    def __init__(
        self,
        ports: PortManager,
        namespaces: NamespaceProvider,
        supervisor: InstanceSupervisor,
        registry: InstanceRegistry,
    ):
        self._ports = ports
        self._namespaces = namespaces
        self._supervisor = supervisor
        self._registry = registry

    def enable_network(self, network: TaggedNetwork) -> bool:
        """Make sure ``network`` has a port, a namespace and a running instance.

        Returns True if an instance was started, False if one was already running.
        A teardown left pending from an earlier scan is dropped once the network
        is wanted again, since the port and namespace are reused.
        """
        port = self._ports.ensure_port(network)

        with self._namespaces.open(port) as ns:
            if self._registry.is_running(port.network_id):
                self._registry.teardown_done(network.id)
                return False

            logger.info(
                "Starting instance for network %s (%s)", network.name, network.id,
                extra={"network_id": network.id, "port_id": port.id, "namespace": ns.name},
            )
            ns.activate()
            instance = self._supervisor.start(port.network_id, port, ns)
            self._registry.add(instance)
            ns.deactivate()

        self._registry.teardown_done(network.id)
        return True

    def disable_network(self, network_id: str) -> None:
        """Tear down everything the injector owns on ``network_id``.

        Safe to call for a network that has nothing left: no instance is
        stopped, the namespace removal is a no-op and no port is deleted.
        The network stays marked as pending teardown until every step has
        succeeded.
        """
        logger.info("Disabling network %s", network_id, extra={"network_id": network_id})
        self._registry.mark_teardown(network_id)

        instance = self._registry.get(network_id)
        if instance is not None:
            self._supervisor.stop(instance)
            self._registry.remove(network_id)

        self._namespaces.destroy(network_id)

        # Several ports only exist after an inconsistency; tearing down removes all of them
        for port in self._ports.injector_ports(network_id):
            self._ports.delete_port(port)

        self._registry.teardown_done(network_id)
