"""Logging setup shared by the API process and the orchestrator packages."""

import logging
import sys
from pathlib import Path
from typing import List, Optional

from common.config import settings
from common.utils import DateTimeUtils

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
FILE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)

# Library loggers that are too chatty at INFO
THIRD_PARTY_LOGGERS = ("openai", "httpx", "httpcore", "redis", "uvicorn.access", "asyncio")

# Packages whose module loggers should print under the service's handlers
SHARED_PACKAGES = ("common", "translator")


def _resolve_level(level: Optional[str], default: int = logging.INFO) -> int:
    return getattr(logging, (level or "").upper(), default)


def _build_handlers(level: int, log_file: Optional[str]) -> List[logging.Handler]:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    handlers: List[logging.Handler] = [console_handler]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_logging(
    service_name: str, log_file: Optional[str] = None, log_level: Optional[str] = None
) -> logging.Logger:
    """
    Attach console (and optionally file) handlers to a named logger.

    Calling it again for the same name replaces the handlers instead of
    stacking duplicates.

    Args:
        service_name: Logger name, e.g. 'manager' or 'translator'
        log_file: Optional file that receives detailed records
        log_level: Level override, settings.log_level when omitted

    Returns:
        The configured logger
    """
    level = _resolve_level(log_level or settings.log_level)

    logger = logging.getLogger(service_name)
    logger.setLevel(level)
    logger.handlers.clear()
    for handler in _build_handlers(level, log_file):
        logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_log_file_path(service_name: str, log_dir: Optional[str] = None) -> str:
    """
    Build the dated log file path of a service.

    Example:
        >>> get_log_file_path("manager", "./logs")  # doctest: +SKIP
        './logs/manager_20260315.log'
    """
    directory = (log_dir or settings.log_dir).rstrip("/")
    return f"{directory}/{service_name}_{DateTimeUtils.get_date_string_for_log_file()}.log"


def configure_third_party_loggers(level: str = "WARNING") -> None:
    """Raise the level of noisy library loggers."""
    resolved = _resolve_level(level, logging.WARNING)
    for logger_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(resolved)


def setup_service_logging(
    service_name: str, enable_file_logging: bool = True
) -> logging.Logger:
    """
    Configure logging for a service process.

    The shared package loggers get the same handlers as the service logger, so
    orchestrator and store messages end up in the service's console and file.

    Args:
        service_name: Name of the service
        enable_file_logging: Whether to also write a dated log file

    Returns:
        The service logger
    """
    configure_third_party_loggers()

    log_file = get_log_file_path(service_name) if enable_file_logging else None
    for package_name in SHARED_PACKAGES:
        setup_logging(package_name, log_file)

    return setup_logging(service_name, log_file)
