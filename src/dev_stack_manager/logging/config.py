"""Structured logging for devstack runs.

Progress of the orchestration steps is reported through structlog, so the
console handler is the tool's main output channel. It writes to stderr to
keep ``--output json|yaml`` documents on stdout parseable. Every run is
also recorded as JSON lines in a rotating file under the user's state
directory, which is what to attach when a setup fails half way.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

LOG_DIR_ENV = "DEVSTACK_LOG_DIR"
LOG_FILE_NAME = "devstack.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5
RETENTION_DAYS = 30

CONSOLE_HANDLER_NAME = "devstack-console"
FILE_HANDLER_NAME = "devstack-file"

# Libraries that log every request at INFO
CHATTY_LOGGERS = ("httpx", "httpcore")

SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def default_log_dir() -> Path:
    """Resolve the log directory.

    ``DEVSTACK_LOG_DIR`` wins, then ``$XDG_STATE_HOME/devstack``, then
    ``~/.local/state/devstack``.
    """
    if override := os.environ.get(LOG_DIR_ENV):
        return Path(override).expanduser()
    state_home = os.environ.get("XDG_STATE_HOME")
    base = Path(state_home) if state_home else Path.home() / ".local" / "state"
    return base / "devstack"


def prune_old_logs(log_dir: Path, retention_days: int = RETENTION_DAYS) -> int:
    """Delete rotated log files not written to within the retention window.

    Returns:
        Number of files deleted.
    """
    if not log_dir.is_dir():
        return 0
    cutoff = time.time() - retention_days * 86400
    removed = 0
    for path in log_dir.glob(f"{LOG_FILE_NAME}*"):
        if path.stat().st_mtime < cutoff:
            path.unlink(missing_ok=True)
            removed += 1
    return removed


def _replace_handler(root: logging.Logger, handler: logging.Handler) -> None:
    """Install a handler, dropping the one a previous call installed under its name."""
    for existing in [h for h in root.handlers if h.get_name() == handler.get_name()]:
        root.removeHandler(existing)
        existing.close()
    root.addHandler(handler)


def _console_handler(level: int, json_output: bool, show_locals: bool) -> logging.Handler:
    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=show_locals),
        )
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(CONSOLE_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=SHARED_PROCESSORS)
    )
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
    )
    handler.set_name(FILE_HANDLER_NAME)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=SHARED_PROCESSORS,
        )
    )
    return handler


def configure_logging(
    quiet: bool = False,
    debug: bool = False,
    json_output: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Configure structlog and the console and file handlers.

    Safe to call more than once; handlers from an earlier call are replaced.

    Args:
        quiet: Only show warnings and errors on the console.
        debug: Show debug events and HTTP traffic. Wins over ``quiet``.
        json_output: Render console events as JSON lines.
        log_dir: Directory for the rotating log file. Defaults to
            ``default_log_dir()``.
    """
    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    structlog.configure(
        processors=[
            *SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        # The file handler records DEBUG regardless of the console level
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    _replace_handler(root, _console_handler(level, json_output, show_locals=debug))

    directory = log_dir or default_log_dir()
    prune_old_logs(directory)
    _replace_handler(root, _file_handler(directory))

    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)
