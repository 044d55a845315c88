"""Network discovery package — networking capability Protocol and public exports."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import InjectorPort, PortRequest, TaggedNetwork


@runtime_checkable
class NetworkingClient(Protocol):
    """Protocol that every cloud networking client must satisfy."""

    def list_tagged_networks(self, tag: str) -> list[TaggedNetwork]:
        """Return all networks carrying ``tag`` (all pages)."""
        ...

    def list_ports(self, network_id: str, device_owner: str) -> list[InjectorPort]:
        """Return ports on ``network_id`` whose device owner equals ``device_owner``."""
        ...

    def create_port(self, request: PortRequest) -> InjectorPort:
        ...

    def delete_port(self, port_id: str) -> None:
        ...

    def get_subnet_cidr(self, subnet_id: str) -> str:
        ...
