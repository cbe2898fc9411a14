"""Logging setup for the ScanOrder service."""
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER = "scanorder"

# Modules whose records also go to imports.log (audit trail of uploaded price lists)
IMPORT_LOGGERS = ("session", "parsers", "spreadsheet", "assist", "storage")

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Chatty third-party loggers (HTTP client used by openai, multipart parser)
QUIET_LOGGERS = ("httpx", "openai", "multipart", "python_multipart")


class _ModuleFilter(logging.Filter):
    def __init__(self, modules):
        super().__init__()
        self._prefixes = tuple(f"{ROOT_LOGGER}.{m}" for m in modules)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(self._prefixes)


def _rotating(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``scanorder`` logger tree.

    Handlers:
        stdout      - everything at ``log_level`` and above
        app.log     - everything (DEBUG)
        error.log   - ERROR and above
        imports.log - INFO from the import pipeline modules

    Calling it again only updates the level.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    log_path = Path(log_dir or settings.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    logger.addHandler(_rotating(log_path / "app.log", logging.DEBUG, formatter))
    logger.addHandler(_rotating(log_path / "error.log", logging.ERROR, formatter))

    imports = _rotating(log_path / "imports.log", logging.INFO, formatter)
    imports.addFilter(_ModuleFilter(IMPORT_LOGGERS))
    logger.addHandler(imports)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child of the ``scanorder`` logger, e.g. ``get_logger("parsers")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
