"""Structured logging configuration (JSON or text format).

Log calls attach network context (``network_id``, ``port_id``, ``namespace``)
and scan summaries (``enabled``, ``failed``, ...) through ``extra=``. The JSON
format emits them as fields; the text format appends them as ``key=value``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import LoggingConfig

CONTEXT_FIELDS = ("network_id", "port_id", "namespace")
SUMMARY_FIELDS = ("elapsed_seconds", "desired", "enabled", "disabled", "failed", "running")

_NOISY_LOGGERS = ("openstack", "keystoneauth", "urllib3", "stevedore", "os_client_config")


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Context and summary values set on ``record``, in a stable order."""
    fields: dict[str, Any] = {}
    for key in CONTEXT_FIELDS + SUMMARY_FIELDS:
        val = getattr(record, key, None)
        if val is not None:
            fields[key] = val
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_fields(record),
        }
        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Daemon-style line with the network context appended.

    ``2024-05-01 10:00:00 INFO     network-injector [...reconciler] Scan complete enabled=1 failed=0``
    """

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s network-injector [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = record_fields(record)
        if not fields:
            return line
        context = " ".join(f"{key}={value}" for key, value in fields.items())
        # Tracebacks stay on the lines after the message
        first, sep, rest = line.partition("\n")
        return f"{first} {context}{sep}{rest}"


def configure_logging(config: LoggingConfig) -> None:
    """Install a single stderr handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if config.format == "json" else TextFormatter())
    root.addHandler(handler)

    # Third-party client libraries
    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
