"""
Structured logging configuration for the HubSpot sync worker.

Uses structlog for structured, context-aware logging with:
- JSON output for production
- Pretty console output for development
- Per-stage timing for account sweeps
- Run, tenant and HubSpot account context propagation
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator

import structlog
from structlog.types import Processor

from .config import get_settings

# Context variables for run-scoped data
_run_id: ContextVar[str | None] = ContextVar('run_id', default=None)
_tenant_id: ContextVar[str | None] = ContextVar('tenant_id', default=None)
_hub_id: ContextVar[str | None] = ContextVar('hub_id', default=None)


def get_run_id() -> str | None:
    """Get the current sync run ID from context."""
    return _run_id.get()


def get_tenant_id() -> str | None:
    """Get the current tenant ID from context."""
    return _tenant_id.get()


def get_hub_id() -> str | None:
    """Get the current HubSpot account (hub) ID from context."""
    return _hub_id.get()


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that adds context variables to log entries."""
    run_id = get_run_id()
    tenant_id = get_tenant_id()
    hub_id = get_hub_id()

    if run_id:
        event_dict['run_id'] = run_id
    if tenant_id:
        event_dict['tenant_id'] = tenant_id
    if hub_id:
        event_dict.setdefault('hub_id', hub_id)

    return event_dict


def configure_logging(
    json_output: bool = False,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog for the worker.

    Args:
        json_output: If True, output JSON logs (for production).
                    If False, output pretty console logs (for development).
        log_level: Override log level (defaults to LOG_LEVEL setting)
    """
    level = log_level or get_settings().LOG_LEVEL
    level_num = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format='%(message)s',
        stream=sys.stdout,
        level=level_num,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


@contextmanager
def logging_context(
    run_id: str | None = None,
    tenant_id: str | None = None,
    hub_id: str | None = None,
) -> Generator[None, None, None]:
    """
    Context manager for setting logging context variables.

    Usage:
        with logging_context(tenant_id="dom_1", hub_id="4412"):
            logger.info("worker.account_started")  # Includes tenant_id and hub_id
    """
    old_run = _run_id.get()
    old_tenant = _tenant_id.get()
    old_hub = _hub_id.get()

    try:
        if run_id is not None:
            _run_id.set(run_id)
        if tenant_id is not None:
            _tenant_id.set(tenant_id)
        if hub_id is not None:
            _hub_id.set(hub_id)
        yield
    finally:
        _run_id.set(old_run)
        _tenant_id.set(old_tenant)
        _hub_id.set(old_hub)


class SyncTimer:
    """
    Timer for tracking per-account sweep stage durations.

    Usage:
        timer = SyncTimer()
        with timer.stage("contacts"):
            await contacts.fetch(account, buffer)
        print(timer.summary())
    """

    def __init__(self):
        self.stages: dict[str, float] = {}
        self.start_time: float = time.perf_counter()
        self._stage_start: float | None = None

    @contextmanager
    def stage(self, name: str) -> Generator[None, None, None]:
        """Time a sweep stage, recording it even when the stage raises."""
        self._stage_start = time.perf_counter()
        try:
            yield
        finally:
            if self._stage_start is not None:
                self.stages[name] = (time.perf_counter() - self._stage_start) * 1000
            self._stage_start = None

    @property
    def total_ms(self) -> float:
        """Total elapsed time since timer creation in milliseconds."""
        return (time.perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        """Get timing summary as a dictionary."""
        return {
            'total_ms': round(self.total_ms, 2),
            'stages': {k: round(v, 2) for k, v in self.stages.items()},
        }


# Development mode by default; the CLI reconfigures from settings
configure_logging(json_output=False)
