# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for discovery runs.

Interactive runs render with ``ConsoleRenderer``; batch workers emit JSON
lines.  Leaf module, no taxonomap imports, so it can be configured before
anything else is imported.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog

# Chatty at DEBUG/INFO during every page visit or SQLite round trip.
NOISY_LOGGERS = ("asyncio", "aiosqlite")


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
    quiet: tuple[str, ...] = NOISY_LOGGERS,
) -> None:
    """Route stdlib and structlog records through one renderer on the root logger.

    Args:
        json_output: JSON lines (batch workers) instead of console output.
        level: Root logger level name; unknown names fall back to INFO.
        stream: Destination, stderr by default.
        quiet: Third-party loggers raised to WARNING.
    """
    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_from_settings(settings: Any) -> None:
    """``configure`` driven by an object with ``log_level`` and ``json_logs``."""
    configure(json_output=bool(settings.json_logs), level=str(settings.log_level))


@contextmanager
def bound_context(**values: object) -> Iterator[None]:
    """Bind *values* into structlog contextvars for the duration of the block."""
    structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*values)
