import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure logging for the sync service.

    Console always; `log_file` adds a size-rotated file next to it (the
    service usually runs unattended for weeks).
    """

    # Convert "INFO" -> logging.INFO etc.
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"))

    # Configure root logger.
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, handlers=handlers)

    # urllib3 logs every digest handshake at DEBUG.
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.WARNING))
