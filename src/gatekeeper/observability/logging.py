"""
gatekeeper.observability.logging

Structured logging for gate instances.

Responsibilities:
- Configure `structlog` (JSON in deployed envs, console renderer for local dev).
- Stamp every event with service and instance identity so decisions from many
  instances sharing one store can be told apart.
- Scrub credentials (bearer tokens, signing keys) before rendering.
"""

from __future__ import annotations

import logging
import os
import socket
import sys
from typing import Any

import structlog

_SECRET_FIELDS = frozenset({"token", "access_token", "refresh_token", "authorization", "jwt_signing_key"})


def configure_logging(*, service_name: str, level: str, json_logs: bool = True) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer: Any = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _bind_identity(service_name, f"{socket.gethostname()}:{os.getpid()}"),
            _redact_secrets,
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _bind_identity(service_name: str, instance: str):
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("instance", instance)
        return event_dict

    return processor


def _redact_secrets(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _SECRET_FIELDS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
