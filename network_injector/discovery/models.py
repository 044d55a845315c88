"""Data models for tagged networks and injector ports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TaggedNetwork:
    """A Neutron network snapshot taken during one scan."""

    id: str
    name: str
    project_id: str
    tags: frozenset[str] = field(default_factory=frozenset)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    @classmethod
    def from_resource(cls, resource: Any) -> TaggedNetwork:
        """Build from an openstacksdk ``Network`` resource."""
        return cls(
            id=resource.id,
            name=resource.name or "",
            project_id=resource.project_id or "",
            tags=frozenset(resource.tags or ()),
        )


@dataclass(frozen=True)
class FixedIP:
    subnet_id: str
    ip_address: str


@dataclass(frozen=True)
class InjectorPort:
    """A Neutron port owned by the injector."""

    id: str
    network_id: str
    device_owner: str
    device_id: str = ""
    binding_host_id: str = ""
    dns_name: str = ""
    project_id: str = ""
    mac_address: str = ""
    fixed_ips: tuple[FixedIP, ...] = ()

    @property
    def ip_addresses(self) -> list[str]:
        return [ip.ip_address for ip in self.fixed_ips]

    @classmethod
    def from_resource(cls, resource: Any) -> InjectorPort:
        """Build from an openstacksdk ``Port`` resource."""
        fixed_ips = tuple(
            FixedIP(subnet_id=ip.get("subnet_id", ""), ip_address=ip.get("ip_address", ""))
            for ip in (resource.fixed_ips or [])
        )
        return cls(
            id=resource.id,
            network_id=resource.network_id,
            device_owner=resource.device_owner or "",
            device_id=resource.device_id or "",
            binding_host_id=resource.binding_host_id or "",
            dns_name=resource.dns_name or "",
            project_id=resource.project_id or "",
            mac_address=resource.mac_address or "",
            fixed_ips=fixed_ips,
        )


@dataclass(frozen=True)
class PortRequest:
    """Attributes for a new injector port."""

    name: str
    network_id: str
    project_id: str
    device_owner: str
    device_id: str
    binding_host_id: str
    dns_name: str = ""

    def to_attrs(self) -> dict[str, Any]:
        """Keyword arguments for ``conn.network.create_port``."""
        attrs: dict[str, Any] = {
            "name": self.name,
            "network_id": self.network_id,
            "device_owner": self.device_owner,
            "device_id": self.device_id,
            "binding_host_id": self.binding_host_id,
        }
        if self.project_id:
            attrs["project_id"] = self.project_id
        if self.dns_name:
            attrs["dns_name"] = self.dns_name
        return attrs
