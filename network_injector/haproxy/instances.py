"""Running HAProxy instances, keyed by network id."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HAProxyInstance:
    """One HAProxy process serving one injected network."""

    network_id: str
    pid: int
    config_path: str
    pidfile: str
    stats_socket: str


class InstanceRegistry:
    """The injector's record of which networks have a running instance.

    This is the only memory of "actual state" between scans. It is mutated
    only from the reconciliation thread.

    Besides running instances it remembers networks whose teardown started
    but did not finish, so later scans keep retrying them.
    """

    def __init__(self) -> None:
        self._instances: dict[str, HAProxyInstance] = {}
        self._pending_teardown: set[str] = set()

    def is_running(self, network_id: str) -> bool:
        return network_id in self._instances

    def get(self, network_id: str) -> HAProxyInstance | None:
        return self._instances.get(network_id)

    def add(self, instance: HAProxyInstance) -> None:
        if instance.network_id in self._instances:
            raise ValueError(f"An instance for network {instance.network_id} is already registered")
        self._instances[instance.network_id] = instance

    def remove(self, network_id: str) -> HAProxyInstance | None:
        return self._instances.pop(network_id, None)

    def network_ids(self) -> set[str]:
        return set(self._instances)

    def instances(self) -> list[HAProxyInstance]:
        return list(self._instances.values())

    def mark_teardown(self, network_id: str) -> None:
        self._pending_teardown.add(network_id)

    def teardown_done(self, network_id: str) -> None:
        self._pending_teardown.discard(network_id)

    def pending_teardowns(self) -> set[str]:
        return set(self._pending_teardown)

    def __contains__(self, network_id: object) -> bool:
        return network_id in self._instances

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._instances))

    def __len__(self) -> int:
        return len(self._instances)
