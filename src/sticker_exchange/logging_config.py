"""Structured logging configuration using structlog.

JSON lines in production, colored console output in development. Several
parties can share one process (the simulation, the test suite), so the
acting party is bound as a context variable with `party_context` and shows
up on every entry logged inside it. Inside the signing-authority service
every entry also carries a correlation request_id.

Console output abbreviates the `did:plc:` identifiers that fill exchange logs,
including those inside `at://` URIs; JSON output keeps them whole.

Usage:
    from sticker_exchange.logging_config import get_logger, party_context, setup_logging
    setup_logging(log_level="DEBUG", json_logs=False)
    logger = get_logger(__name__)
    with party_context("did:plc:abc"):
        logger.info("exchange.offer_created", offer_uri="at://did:plc:abc/...")
"""

from __future__ import annotations

import logging
import re
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator, MutableMapping

_DID_PLC = re.compile(r"did:plc:([a-z2-7]{4})[a-z2-7]{8,}([a-z2-7]{4})")

NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def shorten_identifiers(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Abbreviate did:plc identifiers in string values: did:plc:abcd…wxyz."""
    for key, value in event_dict.items():
        if isinstance(value, str) and "did:plc:" in value:
            event_dict[key] = _DID_PLC.sub(r"did:plc:\1…\2", value)
    return event_dict


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Configure structlog with shared processors.

    Args:
        log_level: Standard Python log level string (DEBUG, INFO, WARNING, etc.)
        json_logs: If True, output JSON (for production). If False, colored console
            with abbreviated identifiers.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    render_chain: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_logs:
        render_chain.append(structlog.processors.JSONRenderer())
    else:
        render_chain += [shorten_identifiers, structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processors=render_chain))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


@contextmanager
def party_context(did: str) -> Iterator[None]:
    """Bind `party=did` on every entry logged inside the block."""
    with structlog.contextvars.bound_contextvars(party=did):
        yield


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Optional logger name. If None, uses the calling module's name.

    Returns:
        A bound structlog logger with context variable support.
    """
    return structlog.get_logger(name)
