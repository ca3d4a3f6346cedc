"""Structured logging for hosts that embed the journal engine.

Library modules log through the stdlib ``logging`` tree; a host that
wants structured output calls :func:`setup_logging` once.  structlog
then renders every record (stdlib or structlog) as JSON or console
lines carrying a ``report_id`` and whatever report context was bound
via :func:`report_context`.
"""

from __future__ import annotations

import contextlib
import logging
import sys
import uuid
from collections.abc import Iterator
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from trade_journal.core.config import ObservabilityConfig

# One id per analytics / ledger run
_report_id: ContextVar[str] = ContextVar("report_id", default="")


def get_report_id() -> str:
    """Return the current report id, creating one if unset."""
    rid = _report_id.get()
    if not rid:
        rid = uuid.uuid4().hex[:12]
        _report_id.set(rid)
    return rid


def new_report_id() -> str:
    rid = uuid.uuid4().hex[:12]
    _report_id.set(rid)
    return rid


def _add_report_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: stamp report_id on every entry."""
    event_dict.setdefault("report_id", get_report_id())
    return event_dict


@contextlib.contextmanager
def report_context(**fields: Any) -> Iterator[str]:
    """Bind *fields* (timezone, position count, ...) for one report run.

    Yields the fresh report id.  Bindings are removed on exit.
    """
    rid = new_report_id()
    structlog.contextvars.bind_contextvars(report_id=rid, **fields)
    try:
        yield rid
    finally:
        structlog.contextvars.unbind_contextvars("report_id", *fields)


def setup_logging(
    config: ObservabilityConfig | None = None,
    *,
    level: str | None = None,
    format: str | None = None,
) -> None:
    """Configure structlog + stdlib logging.

    Args:
        config: Observability section of :class:`Settings`.
        level: Overrides ``config.log_level``.
        format: Overrides ``config.log_format`` ("json" or "console").
    """
    level = level or (config.log_level if config else "INFO")
    format = format or (config.log_format if config else "json")
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_report_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route plain stdlib records (the library modules) through the same renderer
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module."""
    return structlog.get_logger(name)
