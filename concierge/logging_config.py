import datetime
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings

LOGGER_NAME = "concierge"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

_LOGGING_CONFIGURED = False


class LocalTimezoneFormatter(logging.Formatter):
    """ISO timestamps in LOG_TIMEZONE, or system local time when unset or unknown."""

    def __init__(self, fmt: str, *, timezone_name: str | None = None) -> None:
        super().__init__(fmt)
        tzinfo: datetime.tzinfo | None = None
        if timezone_name:
            try:
                tzinfo = ZoneInfo(timezone_name)
            except ZoneInfoNotFoundError:
                tzinfo = None
        self._tzinfo = tzinfo or datetime.datetime.now().astimezone().tzinfo

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.datetime.fromtimestamp(record.created, tz=self._tzinfo)
        return dt.strftime(datefmt) if datefmt else dt.isoformat(timespec="milliseconds")


def setup_logging() -> None:
    """
    Configure logging once per process.

    "concierge" records go to LOG_DIR/concierge.log, rotated at midnight with
    seven days kept, and propagate to a console handler on the root logger
    that uvicorn shares.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = LocalTimezoneFormatter(LOG_FORMAT, timezone_name=settings.log_timezone)

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = TimedRotatingFileHandler(
        log_dir / f"{LOGGER_NAME}.log", when="midnight", backupCount=7, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(level)
    app_logger.addHandler(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _LOGGING_CONFIGURED = True


logger = logging.getLogger(LOGGER_NAME)


__all__ = ["LocalTimezoneFormatter", "logger", "setup_logging"]
