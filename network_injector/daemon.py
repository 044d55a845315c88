"""Main scan loop with signal handling."""

from __future__ import annotations

import logging
import signal
import time
from types import FrameType

from . import metrics
from .config import AppConfig
from .discovery import NetworkingClient
from .haproxy.instances import InstanceRegistry
from .haproxy.stats import StatsCollector
from .haproxy.supervisor import HAProxySupervisor, InstanceSupervisor
from .injector.activator import Activator
from .injector.namespace import NamespaceManager, NamespaceProvider
from .injector.ports import PortManager
from .injector.reconciler import Reconciler

logger = logging.getLogger(__name__)


class Daemon:
    """Scan loop: list tagged networks -> enable -> disable stale -> collect stats -> sleep.

    The registry of running instances is owned here and handed to the
    reconciler and the stats collector; only the loop thread touches it.
    """

    def __init__(
        self,
        config: AppConfig,
        networking: NetworkingClient | None = None,
        namespaces: NamespaceProvider | None = None,
        supervisor: InstanceSupervisor | None = None,
    ):
        self._config = config
        self._networking = networking if networking is not None else self._build_client(config)
        self._namespaces = namespaces or NamespaceManager(config.namespace, self._networking)
        self._supervisor = supervisor or HAProxySupervisor(config.haproxy)
        self._registry = InstanceRegistry()

        ports = PortManager(self._networking, config.injector)
        activator = Activator(ports, self._namespaces, self._supervisor, self._registry)
        self._reconciler = Reconciler(self._networking, activator, self._registry, config.injector.network_tag)
        self._stats = StatsCollector(self._supervisor, self._registry)

        self._shutdown = False
        self._wake = False

    @property
    def registry(self) -> InstanceRegistry:
        return self._registry

    @staticmethod
    def _build_client(config: AppConfig) -> NetworkingClient:
        """Create and authenticate the Neutron client; raises OpenStackAPIError on failure."""
        # lazy import: openstacksdk is only needed without an injected client
        from .discovery.neutron_client import NeutronClient

        client = NeutronClient(config.openstack)
        client.authenticate()
        return client

    def recover(self) -> None:
        """Re-populate the registry from instances a previous process left running."""
        for instance in self._supervisor.recover():
            self._registry.add(instance)
        metrics.running_instances.set(len(self._registry))
        if len(self._registry):
            logger.info("Recovered %d running instances", len(self._registry), extra={"running": len(self._registry)})

    def run_once(self) -> None:
        """Execute a single scan + stats cycle."""
        self.recover()
        self._cycle()

    def run(self) -> None:
        """Serve metrics and run the scan loop until a shutdown signal."""
        self._install_signal_handlers()
        metrics.start_metrics_server(self._config.metrics.bind_address)
        self.recover()

        inj = self._config.injector
        logger.info(
            "The network injector %s for service '%s' is ready to scan for networks tagged '%s'. "
            "Interval=%ds, Upstream=%s",
            inj.hostname, inj.dns_name, inj.network_tag,
            self._config.polling.interval_seconds, self._config.haproxy.upstream_host,
        )

        while not self._shutdown:
            cycle_start = time.monotonic()

            try:
                self._cycle()
            except Exception:
                logger.exception("Cycle failed")

            elapsed = time.monotonic() - cycle_start
            sleep_time = max(0.0, self._config.polling.interval_seconds - elapsed)
            logger.debug("Sleeping %.1fs before next cycle", sleep_time)
            self._interruptible_sleep(sleep_time)

        logger.info("Daemon stopped")

    def _cycle(self) -> None:
        """One scan followed by stats collection; a failed scan still collects stats."""
        try:
            self._reconciler.scan()
        except Exception:
            logger.exception("Scan for tagged networks failed")

        self._stats.collect()

    def _interruptible_sleep(self, seconds: float) -> None:
        """Sleep in short increments so we can respond to signals."""
        end = time.monotonic() + seconds
        while not self._shutdown and not self._wake and time.monotonic() < end:
            remaining = end - time.monotonic()
            time.sleep(min(remaining, 1.0))
        self._wake = False

    def _install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGHUP, self._handle_rescan)

    def _handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down", sig_name)
        self._shutdown = True

    def _handle_rescan(self, signum: int, frame: FrameType | None) -> None:
        logger.info("Received SIGHUP, scanning now")
        self._wake = True
