"""
Logging configuration for remote-explorer.

Everything logs under ``remote_explorer``. The terminal gets a rich handler
tuned for long scans: the resolver, extractor and queue log once per
variable or path, so below WARNING they stay off the terminal unless
``--verbose`` is given. The console then shows session lifecycle, batch
progress, timeouts and auto-pause notices. A ``--log-file`` always
receives the full DEBUG trail.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "remote_explorer"

# Modules that log once per variable or candidate path
CHATTY_LOGGERS = (
    "remote_explorer.exploration.variables",
    "remote_explorer.exploration.extractor",
    "remote_explorer.exploration.queue",
)

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ChattyModuleFilter(logging.Filter):
    """Drop sub-WARNING records from per-path loggers."""

    def __init__(self, prefixes: tuple[str, ...] = CHATTY_LOGGERS):
        super().__init__()
        self.prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        return not record.name.startswith(self.prefixes)


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure the terminal handler and optional log file.

    Args:
        verbose: Show DEBUG output, including per-path resolver detail
        quiet: Show only errors on the terminal
        log_file: Optional file path that receives every record at DEBUG

    Returns:
        The ``remote_explorer`` logger
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    terminal = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        markup=False,
        show_time=True,
        show_path=verbose,
    )
    terminal.setLevel(level)
    if not verbose:
        terminal.addFilter(ChattyModuleFilter())
    handlers: list[logging.Handler] = [terminal]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)

    logging.basicConfig(format="%(message)s", datefmt="[%X]", handlers=handlers, force=True)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else level)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for ``name``, placed under the ``remote_explorer`` tree."""
    if name is None:
        return logging.getLogger(ROOT_LOGGER)
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
