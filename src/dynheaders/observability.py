"""Structured logging setup and the default render-failure sink."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from dynheaders.engine import RenderFailure

logger = structlog.get_logger()


def configure_logging(level: str = "info", json_output: bool = False) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum log level (debug, info, warning, error).
        json_output: Render events as JSON lines instead of console output.
    """
    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


def log_render_failure(event: RenderFailure) -> None:
    """Log a rule that could not render; the request continues."""
    logger.warning(
        "failed to format header value",
        header=event.header_name,
        target=event.target_value,
        regex=event.pattern,
        format=event.template,
        error=event.reason,
    )
