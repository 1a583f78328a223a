"""Structlog setup for the pedigree layout engine.

Library modules log through ``structlog.get_logger(__name__)`` with dotted
event names (``layout.built``, ``pedigree.from_json.failed``). Events go to
stderr so that CLI tables on stdout stay clean.
"""
from __future__ import annotations

import logging
import sys
from typing import Literal

import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _stderr_logger(*args) -> structlog.PrintLogger:
    # Looked up per logger so redirected streams (CliRunner, capsys) are honoured
    return structlog.PrintLogger(sys.stderr)


def configure_logging(level: LogLevel = "INFO", *, json_output: bool = True) -> None:
    """(Re)configure structlog; safe to call once per CLI command.

    Loggers are not cached, so a new level also applies to module loggers
    that were already bound.
    """
    numeric = getattr(logging, level)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric)
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


configure_logging()
