"""openstacksdk client for the Neutron calls the injector needs."""

from __future__ import annotations

import logging
from typing import Any

import openstack
from openstack import exceptions as os_exc

from ..config import OpenStackConfig
from ..exceptions import OpenStackAPIError
from .models import InjectorPort, PortRequest, TaggedNetwork

logger = logging.getLogger(__name__)


class NeutronClient:
    """Lists tagged networks and manages injector ports through openstacksdk.

    Credentials come from the usual openstacksdk sources: ``clouds.yaml``
    selected by ``openstack.cloud`` / ``OS_CLOUD``, or ``OS_*`` variables.
    """

    def __init__(self, config: OpenStackConfig):
        connect_kwargs: dict[str, Any] = {}
        if config.cloud:
            connect_kwargs["cloud"] = config.cloud
        if config.region_name:
            connect_kwargs["region_name"] = config.region_name
        if config.interface:
            connect_kwargs["interface"] = config.interface

        try:
            self._conn = openstack.connect(**connect_kwargs)
        except os_exc.SDKException as exc:
            raise OpenStackAPIError(f"Could not configure OpenStack connection: {exc}") from exc

    def authenticate(self) -> None:
        """Force a token request so bad credentials fail at startup."""
        try:
            self._conn.authorize()
        except os_exc.SDKException as exc:
            raise OpenStackAPIError(f"OpenStack authentication failed: {exc}") from exc
        logger.info("Authenticated against OpenStack")

    # ── Networks ────────────────────────────────────────────────────

    def list_tagged_networks(self, tag: str) -> list[TaggedNetwork]:
        """List networks carrying ``tag``; the generator walks every page."""
        with _translate_errors("list networks"):
            networks = [TaggedNetwork.from_resource(n) for n in self._conn.network.networks(tags=tag)]
        logger.debug("Neutron returned %d networks tagged '%s'", len(networks), tag)
        return networks

    # ── Ports ───────────────────────────────────────────────────────

    def list_ports(self, network_id: str, device_owner: str) -> list[InjectorPort]:
        with _translate_errors(f"list ports on network {network_id}"):
            return [
                InjectorPort.from_resource(p)
                for p in self._conn.network.ports(network_id=network_id, device_owner=device_owner)
            ]

    def create_port(self, request: PortRequest) -> InjectorPort:
        with _translate_errors(f"create port on network {request.network_id}"):
            port = self._conn.network.create_port(**request.to_attrs())
        return InjectorPort.from_resource(port)

    def delete_port(self, port_id: str) -> None:
        with _translate_errors(f"delete port {port_id}"):
            self._conn.network.delete_port(port_id, ignore_missing=True)

    # ── Subnets ─────────────────────────────────────────────────────

    def get_subnet_cidr(self, subnet_id: str) -> str:
        with _translate_errors(f"get subnet {subnet_id}"):
            return self._conn.network.get_subnet(subnet_id).cidr


class _translate_errors:
    """Context manager that re-raises SDK errors as OpenStackAPIError."""

    def __init__(self, action: str):
        self._action = action

    def __enter__(self) -> _translate_errors:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is not None and isinstance(exc_val, os_exc.SDKException):
            status = getattr(exc_val, "status_code", None)
            raise OpenStackAPIError(f"Failed to {self._action}: {exc_val}", status_code=status) from exc_val
        return False
