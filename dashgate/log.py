"""
Dashgate - Logging

Named loggers under `dashgate.*` and the JSON audit trail.

Every authentication decision is written by log_auth_event as one JSON line
on the `dashgate.audit` logger. OTPs, hashes and secrets never go in
`details`.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

audit_logger = logging.getLogger("dashgate.audit")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"dashgate.{name}")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def log_auth_event(
    event_type: str,
    email: str | None = None,
    level: int = logging.INFO,
    details: Mapping[str, Any] | None = None,
) -> None:
    """Emit one JSON line per authentication event."""
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "email": email,
        "details": dict(details) if details else {},
    }
    audit_logger.log(level, json.dumps(entry, default=str))
