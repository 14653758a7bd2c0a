import logging
import sys
from typing import Optional

# Third-party loggers that drown out ingestion logs at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "asyncpg", "uvicorn.access")


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure logging for the data layer.

    Ingestion logs are prefixed with the meeting id (``[ff-123] ...``) by the
    services themselves, so one pipe-separated line format is enough.
    """
    log_level = logging.getLevelName((level or "INFO").upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured at {logging.getLevelName(log_level)} level")
