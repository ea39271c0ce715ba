"""Structlog-based logging for the family graph engine.

Library modules log through ``structlog.get_logger(__name__)`` with dotted
event names; only the CLI prints. Operations run by the transaction runner
bind their name into the context so every event logged inside them carries it.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Literal

import logging

import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _level_number(level: str) -> int:
    number = logging.getLevelName(str(level).upper())
    return number if isinstance(number, int) else logging.INFO


def configure_logging(level: LogLevel | str = "INFO") -> None:
    """Route structlog events as JSON lines at the given level.

    Unknown level names fall back to INFO so a bad environment value never
    stops the engine from starting.
    """
    number = _level_number(level)
    logging.basicConfig(format="%(message)s", level=number)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(number),
        # Reconfigured by the CLI after import
        cache_logger_on_first_use=False,
    )


@contextmanager
def operation_context(**values) -> Iterator[None]:
    """Bind values into every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str = "family_graph"):
    return structlog.get_logger(name)


configure_logging()
