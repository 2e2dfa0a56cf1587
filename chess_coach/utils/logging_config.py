# chess_coach/utils/logging_config.py
"""
Structured logging for the command line, the session and the engine bridge.

All records, including those of `asyncio`, `aiosqlite` and the OpenAI SDK,
pass through one structlog `ProcessorFormatter`. Console output goes to
stderr so that stdout stays reserved for reports (`main.py --json`).
"""

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import structlog
from structlog.types import Processor

ENGINE_IO_LOGGER = "chess_coach.services.engine_channel"

# Chatty third-party loggers and the level they are capped at.
QUIET_LOGGERS: Dict[str, str] = {
    "aiosqlite": "WARNING",
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "openai": "WARNING",
}


def _shared_processors() -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _formatter(shared: List[Processor], renderer: Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(foreign_pre_chain=shared, processor=renderer)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    json_console: bool = False,
    engine_io_level: Optional[str] = None,
    extra_processors: Optional[List[Processor]] = None,
) -> None:
    """
    Configures structlog over the standard library's root logger.

    Args:
        log_level: Minimum level for application events.
        log_file: Optional JSON-lines log file; parent directories are created.
        json_console: Render the console stream as JSON instead of colored text.
        engine_io_level: Separate level for the engine channel logger, which
            logs every raw UCI line at DEBUG. Inherits `log_level` if omitted.
        extra_processors: Processors run before rendering, e.g. an `AlertProcessor`.
    """
    shared = _shared_processors()

    structlog.configure(
        processors=shared + list(extra_processors or []) + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_renderer: Processor = (
        structlog.processors.JSONRenderer() if json_console else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_formatter(shared, console_renderer))
    handlers: List[logging.Handler] = [console_handler]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(_formatter(shared, structlog.processors.JSONRenderer()))
        handlers.append(file_handler)

    logging.basicConfig(handlers=handlers, level=log_level.upper(), force=True)

    if engine_io_level:
        logging.getLogger(ENGINE_IO_LOGGER).setLevel(engine_io_level.upper())
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
