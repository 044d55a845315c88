"""Find-or-create of the single injector port per network."""

from __future__ import annotations

import logging

from ..config import InjectorConfig
from ..discovery import NetworkingClient
from ..discovery.device_owner import device_owner
from ..discovery.models import InjectorPort, PortRequest, TaggedNetwork
from ..exceptions import InconsistentPortsError

logger = logging.getLogger(__name__)


class PortManager:
    """Keeps at most one injector-owned port on each network."""

    def __init__(self, networking: NetworkingClient, config: InjectorConfig):
        self._networking = networking
        self._config = config
        self._device_owner = device_owner(config.network_tag)

    @property
    def device_owner(self) -> str:
        return self._device_owner

    def find_injector_port(self, network_id: str) -> InjectorPort | None:
        """Return the injector port on ``network_id``, or None.

        Raises InconsistentPortsError when several ports carry the device
        owner, instead of guessing which one is ours.
        """
        ports = self.injector_ports(network_id)
        if not ports:
            return None
        if len(ports) > 1:
            raise InconsistentPortsError(network_id, sorted(p.id for p in ports))
        return ports[0]

    def injector_ports(self, network_id: str) -> list[InjectorPort]:
        """Return every port on ``network_id`` carrying the device owner."""
        return self._networking.list_ports(network_id, self._device_owner)

    def ensure_port(self, network: TaggedNetwork) -> InjectorPort:
        """Return the network's injector port, creating it if missing."""
        port = self.find_injector_port(network.id)
        if port is not None:
            return port

        logger.info(
            "Creating port for network %s (%s)", network.name, network.id,
            extra={"network_id": network.id},
        )
        port = self._networking.create_port(PortRequest(
            name=f"{self._config.network_tag} injection port",
            network_id=network.id,
            project_id=network.project_id,
            device_owner=self._device_owner,
            device_id=self._config.device_id,
            binding_host_id=self._config.hostname,
            dns_name=self._config.dns_name,
        ))
        logger.info("Port '%s' created", port.id, extra={"network_id": network.id, "port_id": port.id})
        return port

    def delete_port(self, port: InjectorPort) -> None:
        logger.info("Deleting port '%s'", port.id, extra={"network_id": port.network_id, "port_id": port.id})
        self._networking.delete_port(port.id)
