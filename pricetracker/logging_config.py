"""Structured logging: readable console output plus JSON log files."""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from pythonjsonlogger import jsonlogger

from pricetracker.config import settings

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
JSON_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"

# Third-party loggers that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


class PipelineJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON records for log shipping.

    Every record gets a UTC timestamp, its level, its source location and
    the ``component`` (``ingest``, ``detect``, ``worker``...) it came from.
    Context passed through ``get_logger(..., provider=...)`` is kept as
    top-level keys.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat() + "Z"
        log_record["level"] = record.levelname
        log_record["source"] = f"{record.filename}:{record.lineno}:{record.funcName}"

        parts = record.name.split(".")
        if parts[0] == "pricetracker" and len(parts) > 1:
            log_record["component"] = parts[1]


def _file_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(base_dir: str | Path | None = None) -> logging.Logger:
    """Configure the root logger.

    Writes human-readable lines to stdout, every record as JSON to
    ``logs/app.log`` and errors only to ``logs/error.log``.

    Args:
        base_dir: Directory that holds ``logs/`` (defaults to the working
                  directory)

    Returns:
        The root logger
    """
    logs_dir = (Path(base_dir) if base_dir else Path.cwd()) / "logs"
    logs_dir.mkdir(exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)

    json_formatter = PipelineJsonFormatter(JSON_FORMAT)
    root_logger.addHandler(_file_handler(logs_dir / "app.log", logging.DEBUG, json_formatter))
    root_logger.addHandler(_file_handler(logs_dir / "error.log", logging.ERROR, json_formatter))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that merges fixed context into each record's ``extra``."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **context) -> ContextLogger:
    """
    Get a logger that tags every record with ``context``.

    Args:
        name: Logger name (usually __name__)
        **context: Fields added to every record (e.g. provider='OVHCLOUD')
    """
    return ContextLogger(logging.getLogger(name), context)
