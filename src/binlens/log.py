"""Logging setup: rich console output plus an optional rotating file."""

import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler

from rich.theme import Theme
from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "binlens"

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bold bright_blue",
        "log.level.warning": "bold yellow",
        "log.level.error": "bold red",
    }
)

_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(
    level: str | int = "WARNING",
    log_file: str | Path | None = None,
    *,
    max_bytes: int = 10_485_760,
    backup_count: int = 3,
) -> logging.Logger:
    """Attach handlers to the package logger, replacing any installed before."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = RichHandler(
        console=Console(theme=_LOG_THEME, stderr=True),
        level=level,
        show_path=False,
        show_time=False,
        rich_tracebacks=True,
    )
    logger.addHandler(console)

    if log_file is not None:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            filename=str(file_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
        logger.addHandler(fh)

    return logger
