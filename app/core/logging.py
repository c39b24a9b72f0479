"""Logging configuration for credential-service.

LOGS AND METRICS
------------------
The service reports on itself through two separate signals:

  1. LOGS: "what happened to this credential"
     One line per notable event: a credential issued, a revocation, a
     signature that failed to verify, an import rejected as malformed.
     This is what you read when one badge holder says their credential
     shows as invalid. Logs make a poor answer to "how many verifications
     failed in the last hour?": counting lines is slow and breaks as soon
     as someone rewords a message.

  2. METRICS: "how often it happened"
     Counters and histograms (credentials issued by proof kind, verification
     outcomes by source, request latency). They feed dashboards and
     alerts, and they say nothing about which credential was involved.

This module configures logs. Metrics live in app/core/metrics.py.

TWO FORMATTERS
----------------
  _ContainerFormatter: human-readable, single-line, for local dev.
    Meant for a terminal. WARNING and above carry [file:line] so a
    rejected proof can be traced back to the check that rejected it.

  _JsonFormatter: one JSON object per line, for production.
    Log aggregators (ELK, Datadog, CloudWatch Logs) parse JSON natively:

      {"timestamp": "2025-...", "level": "WARNING",
       "credential_id": "urn:uuid:...", "message": "Credential ... failed proof"}

    Context passed via ``extra=`` becomes a top-level key, so the
    aggregator can filter on it directly:

      level == "WARNING" AND credential_id == "urn:uuid:..."

    Request context (request_id, method, path, status_code) is attached the
    same way by the request logging middleware.

    Set LOG_JSON=true in production to switch to JSON output.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - WARNING+: appends [filename:lineno]
    - ERROR/CRITICAL: stack trace included when exc_info is present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter for machine-parseable log output."""

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "credential_id",
        "issuer_id",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: If True, emit JSON lines. If False, human-readable.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Keep third-party loggers from flooding at DEBUG
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
