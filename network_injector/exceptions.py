"""Custom exception hierarchy for the network injector."""


class InjectorError(Exception):
    """Base exception for all injector errors."""


class ConfigError(InjectorError):
    """Invalid or missing configuration."""


class OpenStackAPIError(InjectorError):
    """Error communicating with the OpenStack networking API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InconsistentPortsError(InjectorError):
    """More than one port on a network carries the injector device owner."""

    def __init__(self, network_id: str, port_ids: list[str]):
        super().__init__(
            f"Network {network_id} has {len(port_ids)} injector ports: {', '.join(port_ids)}"
        )
        self.network_id = network_id
        self.port_ids = port_ids


class NamespaceError(InjectorError):
    """A network namespace command failed."""

    def __init__(self, message: str, cmd: list[str] | None = None,
                 returncode: int | None = None, stderr: str | None = None):
        super().__init__(message)
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr


class HAProxyError(InjectorError):
    """Starting, stopping or querying an HAProxy instance failed."""
