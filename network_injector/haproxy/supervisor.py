"""Starts, stops and queries one HAProxy process per injected network."""

from __future__ import annotations

import csv
import io
import logging
import os
import signal
import socket
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..cmd import run_cmd
from ..config import HAProxyConfig
from ..exceptions import HAProxyError
from .config_render import render_config
from .instances import HAProxyInstance

if TYPE_CHECKING:
    from ..discovery.models import InjectorPort
    from ..injector.namespace import NetworkNamespace

logger = logging.getLogger(__name__)

STATS_SOCKET_TIMEOUT = 5.0


@runtime_checkable
class InstanceSupervisor(Protocol):
    """Capability to run load-balancer instances keyed by network id."""

    def start(self, network_id: str, port: InjectorPort, namespace: NetworkNamespace) -> HAProxyInstance:
        """Start an instance inside the (active) namespace."""
        ...

    def stop(self, instance: HAProxyInstance) -> None:
        ...

    def recover(self) -> list[HAProxyInstance]:
        """Return instances still running from an earlier process."""
        ...

    def collect_stats(self, instances: list[HAProxyInstance]) -> dict[str, list[dict[str, str]]]:
        """Return ``show stat`` rows per network id; unreachable instances are skipped."""
        ...


class HAProxySupervisor:
    """Runs ``haproxy -D`` inside the network namespace and tracks it by pidfile.

    Run files live in ``run_dir``: ``<network_id>.cfg``, ``<network_id>.pid``
    and the stats socket ``<network_id>.sock``.
    """

    def __init__(self, config: HAProxyConfig):
        self._config = config
        self._run_dir = Path(config.run_dir)

    def _paths(self, network_id: str) -> tuple[Path, Path, Path]:
        return (
            self._run_dir / f"{network_id}.cfg",
            self._run_dir / f"{network_id}.pid",
            self._run_dir / f"{network_id}.sock",
        )

    # ── Lifecycle ───────────────────────────────────────────────────

    def start(self, network_id: str, port: InjectorPort, namespace: NetworkNamespace) -> HAProxyInstance:
        """Launch haproxy for ``network_id``.

        On any failure the run files are removed and a daemon that got as far
        as forking is killed, so the next attempt starts from a clean slate.
        """
        config_path, pidfile, stats_socket = self._paths(network_id)
        self._run_dir.mkdir(parents=True, exist_ok=True)
        config_path.write_text(
            render_config(network_id, port.ip_addresses, str(stats_socket), self._config)
        )

        argv = namespace.exec_argv(
            [self._config.binary, "-D", "-f", str(config_path), "-p", str(pidfile)]
        )
        code, _, stderr = run_cmd(argv, timeout=self._config.start_timeout)
        if code != 0:
            self._discard(network_id)
            raise HAProxyError(f"haproxy for network {network_id} failed to start ({code}): {stderr.strip()}")

        pid = _read_pidfile(pidfile)
        if pid is None:
            self._discard(network_id)
            raise HAProxyError(f"haproxy for network {network_id} started but wrote no pid to {pidfile}")

        logger.info(
            "Started haproxy (pid %d) for network %s", pid, network_id,
            extra={"network_id": network_id, "namespace": namespace.name},
        )
        return HAProxyInstance(
            network_id=network_id,
            pid=pid,
            config_path=str(config_path),
            pidfile=str(pidfile),
            stats_socket=str(stats_socket),
        )

    def stop(self, instance: HAProxyInstance) -> None:
        """Terminate the process (SIGTERM, then SIGKILL after stop_timeout) and remove its run files."""
        logger.info(
            "Stopping haproxy (pid %d) for network %s", instance.pid, instance.network_id,
            extra={"network_id": instance.network_id},
        )
        self._terminate(instance.pid)
        for path in (instance.config_path, instance.pidfile, instance.stats_socket):
            Path(path).unlink(missing_ok=True)

    def recover(self) -> list[HAProxyInstance]:
        """Adopt instances left running by a previous injector process.

        A pid is adopted only if it is alive and its command line is the
        configured haproxy binary reading this network's config file. Any
        other pidfile is stale and is removed together with its run files;
        the next scan re-enables those networks.
        """
        if not self._run_dir.is_dir():
            return []

        recovered: list[HAProxyInstance] = []
        for pidfile in sorted(self._run_dir.glob("*.pid")):
            network_id = pidfile.stem
            config_path, _, stats_socket = self._paths(network_id)
            pid = _read_pidfile(pidfile)
            if pid is not None and self._owns(pid, config_path):
                logger.info(
                    "Adopted running haproxy (pid %d) for network %s", pid, network_id,
                    extra={"network_id": network_id},
                )
                recovered.append(HAProxyInstance(
                    network_id=network_id,
                    pid=pid,
                    config_path=str(config_path),
                    pidfile=str(pidfile),
                    stats_socket=str(stats_socket),
                ))
            else:
                logger.info("Removing stale run files for network %s", network_id, extra={"network_id": network_id})
                for path in (config_path, pidfile, stats_socket):
                    path.unlink(missing_ok=True)
        return recovered

    def _owns(self, pid: int, config_path: Path) -> bool:
        """True if ``pid`` is a live haproxy started with ``-f config_path``."""
        return _pid_alive(pid) and _runs_config(_read_cmdline(pid), self._config.binary, str(config_path))

    def _discard(self, network_id: str) -> None:
        """Kill whatever a failed start left running and remove the run files."""
        config_path, pidfile, stats_socket = self._paths(network_id)
        pids = set(_find_pids(self._config.binary, str(config_path)))
        pid = _read_pidfile(pidfile)
        if pid is not None and self._owns(pid, config_path):
            pids.add(pid)

        for leftover in sorted(pids):
            logger.warning(
                "Killing leftover haproxy (pid %d) for network %s", leftover, network_id,
                extra={"network_id": network_id},
            )
            self._terminate(leftover)

        for path in (config_path, pidfile, stats_socket):
            path.unlink(missing_ok=True)

    def _terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.debug("haproxy pid %d already gone", pid)
            return
        except PermissionError as exc:
            raise HAProxyError(f"Not allowed to stop haproxy pid {pid}: {exc}") from exc

        if not self._wait_for_exit(pid, self._config.stop_timeout):
            logger.warning("haproxy pid %d ignored SIGTERM, killing", pid)
            try:
                os.kill(pid, signal.SIGKILL)
            except ProcessLookupError:
                pass

    # ── Stats ───────────────────────────────────────────────────────

    def collect_stats(self, instances: list[HAProxyInstance]) -> dict[str, list[dict[str, str]]]:
        stats: dict[str, list[dict[str, str]]] = {}
        for instance in instances:
            try:
                raw = query_stats_socket(instance.stats_socket, "show stat")
            except OSError as exc:
                logger.warning(
                    "Could not read stats for network %s: %s", instance.network_id, exc,
                    extra={"network_id": instance.network_id},
                )
                continue
            stats[instance.network_id] = parse_show_stat(raw)
        return stats

    @staticmethod
    def _wait_for_exit(pid: int, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if not _pid_alive(pid):
                return True
            time.sleep(0.1)
        return not _pid_alive(pid)


def query_stats_socket(path: str, command: str, timeout: float = STATS_SOCKET_TIMEOUT) -> str:
    """Send one command to an HAProxy stats socket and return the full reply."""
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.settimeout(timeout)
        sock.connect(path)
        sock.sendall(command.encode() + b"\n")
        chunks: list[bytes] = []
        while True:
            data = sock.recv(65536)
            if not data:
                break
            chunks.append(data)
    return b"".join(chunks).decode(errors="replace")


def parse_show_stat(raw: str) -> list[dict[str, str]]:
    """Parse ``show stat`` CSV output; the header line starts with ``# ``."""
    text = raw.lstrip()
    if text.startswith("#"):
        text = text[1:].lstrip()
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return []
    reader = csv.DictReader(io.StringIO("\n".join(lines)))
    return [{k: v for k, v in row.items() if k} for row in reader]


def _read_pidfile(path: Path) -> int | None:
    try:
        # haproxy writes one pid per line; the first is the master / daemon
        first = path.read_text().split()[0]
        return int(first)
    except (OSError, IndexError, ValueError):
        return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _read_cmdline(pid: int) -> list[str] | None:
    try:
        raw = Path(f"/proc/{pid}/cmdline").read_bytes()
    except OSError:
        return None
    return [arg.decode(errors="replace") for arg in raw.split(b"\0") if arg]


def _runs_config(cmdline: list[str] | None, binary: str, config_path: str) -> bool:
    """True if ``cmdline`` is ``binary`` invoked with ``-f config_path``."""
    if not cmdline or os.path.basename(cmdline[0]) != os.path.basename(binary):
        return False
    return any(flag == "-f" and value == config_path for flag, value in zip(cmdline, cmdline[1:]))


def _find_pids(binary: str, config_path: str) -> list[int]:
    """Pids of every running ``binary`` that reads ``config_path``."""
    pids: list[int] = []
    for entry in Path("/proc").iterdir():
        if entry.name.isdigit() and _runs_config(_read_cmdline(int(entry.name)), binary, config_path):
            pids.append(int(entry.name))
    return pids
