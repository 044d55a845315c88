"""Argument parsing, configuration loading, and daemon bootstrap."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from .config import AppConfig, load_config
from .daemon import Daemon
from .exceptions import ConfigError, InjectorError
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="network-injector",
        description="Injects an HAProxy endpoint into every OpenStack network carrying a tag",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to an optional YAML configuration file; flags take precedence",
    )
    parser.add_argument(
        "--metrics-bind-address",
        help="The address the metric endpoint binds to (default :8080)",
    )
    parser.add_argument("--host", help="Use host name (default: system host name)")
    parser.add_argument(
        "--proxy-path",
        help="Use unix domain socket for upstream connections",
    )
    parser.add_argument(
        "--upstream-host",
        help="Use host name override for upstream connection",
    )
    parser.add_argument(
        "--injector-dns",
        help="Name for injected service, will be used for DNS resolving inside the private network",
    )
    parser.add_argument("--network-tag", help="OpenStack network tag to scan for")
    parser.add_argument(
        "--interval",
        type=int,
        help="Interval in seconds for scanning tagged networks (default 60)",
    )
    parser.add_argument("--os-cloud", help="Cloud name from clouds.yaml (default: OS_CLOUD)")
    parser.add_argument("--log-level", help="Log level (default INFO)")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scan cycle and exit",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the configuration and exit",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Map parsed flags onto dotted configuration keys."""
    return {
        "metrics.bind_address": args.metrics_bind_address,
        "injector.hostname": args.host,
        "injector.dns_name": args.injector_dns,
        "injector.network_tag": args.network_tag,
        "polling.interval_seconds": args.interval,
        "haproxy.upstream_host": args.upstream_host,
        "haproxy.proxy_path": args.proxy_path,
        "openstack.cloud": args.os_cloud,
        "logging.level": args.log_level,
    }


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load config (minimal logging until config is loaded)
    try:
        config: AppConfig = load_config(args.config, overrides_from_args(args))
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(config.logging)

    if args.validate:
        logger.info("Configuration is valid")
        return 0

    try:
        daemon = Daemon(config)
        if args.once:
            logger.info("Running single scan cycle (--once)")
            daemon.run_once()
        else:
            daemon.run()
    except InjectorError as exc:
        logger.error("Fatal error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0

    return 0
