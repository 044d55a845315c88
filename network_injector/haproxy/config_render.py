"""HAProxy configuration file for one injected network."""

from __future__ import annotations

import ipaddress

from ..config import HAProxyConfig

_TEMPLATE = """\
# Generated by network-injector for network {network_id}. Do not edit.
global
    maxconn 1024
    stats socket {stats_socket} mode 600 level admin

defaults
    mode http
    option httplog
    timeout connect 5s
    timeout client 60s
    timeout server 60s

frontend injector
{binds}
    default_backend upstream

backend upstream
    http-request set-header Host {upstream_host}
    server upstream unix@{proxy_path}
"""


def bind_line(address: str, port: int) -> str:
    """Return an HAProxy ``bind`` line with an explicit address family."""
    family = "ipv6" if ipaddress.ip_address(address).version == 6 else "ipv4"
    return f"    bind {family}@{address}:{port}"


def render_config(network_id: str, addresses: list[str], stats_socket: str, config: HAProxyConfig) -> str:
    """Render the configuration; binds on every fixed IP of the injector port.

    Without addresses the frontend binds the wildcard address of the
    namespace, which only contains the injector interface anyway.
    """
    if addresses:
        binds = "\n".join(bind_line(addr, config.listen_port) for addr in addresses)
    else:
        binds = f"    bind :{config.listen_port}"
    return _TEMPLATE.format(
        network_id=network_id,
        stats_socket=stats_socket,
        binds=binds,
        upstream_host=config.upstream_host,
        proxy_path=config.proxy_path,
    )
