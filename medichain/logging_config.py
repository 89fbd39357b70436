"""
Logging setup for the wallet service and the CLI.

stdlib and structlog loggers share one formatter: JSON lines by default,
the colored console renderer when running at DEBUG.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, TextIO

import structlog

from .config import settings
from .services.address import format_address

_ADDRESS_KEYS = ("address", "wallet_address", "previous_address")


def add_service_context(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", "medichain")
    event_dict.setdefault("network", settings.sui_network)
    return event_dict


def shorten_addresses(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Wallet addresses are logged in their shortened display form."""
    for key in _ADDRESS_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and value:
            event_dict[key] = format_address(value)
    return event_dict


def setup_logging(log_level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """Install the root handler.

    Args:
        log_level: Override log level (default: settings.log_level)
        stream: Where log lines go (default: stdout; the CLI passes stderr)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        shorten_addresses,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if level == logging.DEBUG:
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain covers records from logging.getLogger(__name__)
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Per-request and per-poll chatter
    for name in ("uvicorn.access", "httpcore", "httpx", "redis"):
        logging.getLogger(name).setLevel(logging.WARNING)
