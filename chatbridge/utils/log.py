"""Logging utilities for Chatbridge.

Every module logs through the adapter returned by ``get_logger()``. Messages
start with a bracketed component tag (``[chat]``, ``[discovery]``) and carry
context in ``extra=``; the file handler renders that context as JSON.
"""

import json
import logging
import os
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

LOG_LEVEL_ENV = "CHATBRIDGE_LOG_LEVEL"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

# Attributes every LogRecord has; anything else came in through ``extra=``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "stacklevel", "taskName"}


def log_file_for(log_dir: Path, day: Optional[date] = None) -> Path:
    day = day or datetime.now().date()
    return log_dir / f"chatbridge_{day:%Y%m%d}.log"


class StructuredFormatter(logging.Formatter):
    """UTC millisecond timestamps, with ``extra=`` fields appended as sorted JSON."""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return f"{created:%Y-%m-%dT%H:%M:%S}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if not context:
            return line
        try:
            rendered = json.dumps(context, sort_keys=True, default=str)
        except (TypeError, ValueError):
            rendered = repr(context)
        return f"{line} | {rendered}"


class ChatbridgeLogger(logging.LoggerAdapter):
    """Adapter over the ``chatbridge`` logger that keeps per-call ``extra``.

    The underlying logger runs at DEBUG so an attached log file sees
    everything; the stderr handler honours ``CHATBRIDGE_LOG_LEVEL``.
    """

    def __init__(self, name: str = "chatbridge", log_dir: Optional[Path] = None):
        base = logging.getLogger(name)
        base.setLevel(logging.DEBUG)
        base.propagate = False
        if not base.handlers:
            level_name = os.getenv(LOG_LEVEL_ENV, "WARNING").upper()
            level = logging.getLevelName(level_name)
            stderr_handler = logging.StreamHandler(sys.stderr)
            stderr_handler.setLevel(level if isinstance(level, int) else logging.WARNING)
            stderr_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
            base.addHandler(stderr_handler)
        super().__init__(base, {})
        self.log_file: Optional[Path] = None
        self._file_handler: Optional[logging.FileHandler] = None

        if log_dir:
            self.attach_file_handler(log_file_for(log_dir))

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        return msg, kwargs

    def attach_file_handler(self, log_file: Path) -> Path:
        """Route records to ``log_file``, replacing any earlier log file."""
        if self._file_handler is not None and self.log_file == log_file:
            return log_file
        log_file.parent.mkdir(parents=True, exist_ok=True)
        self.detach_file_handler()

        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(StructuredFormatter(FILE_FORMAT))
        self.logger.addHandler(handler)
        self._file_handler = handler
        self.log_file = log_file
        return log_file

    def detach_file_handler(self) -> None:
        handler, self._file_handler = self._file_handler, None
        self.log_file = None
        if handler is None:
            return
        self.logger.removeHandler(handler)
        handler.close()


_logger: Optional[ChatbridgeLogger] = None


def get_logger() -> ChatbridgeLogger:
    global _logger
    if _logger is None:
        _logger = ChatbridgeLogger()
    return _logger


def init_logger(log_dir: Optional[Path] = None) -> ChatbridgeLogger:
    """Replace the global logger, optionally logging to ``log_dir``."""
    global _logger
    if _logger is not None:
        _logger.detach_file_handler()
    _logger = ChatbridgeLogger(log_dir=log_dir)
    return _logger


def enable_file_logging(log_dir: Path) -> Path:
    """Also write the global logger to today's file under ``log_dir``."""
    logger = get_logger()
    log_file = logger.attach_file_handler(log_file_for(log_dir))
    logger.debug("[logging] File logging enabled", extra={"log_file": str(log_file)})
    return log_file


def mask_secret(value: Optional[str]) -> str:
    """Return a log-safe rendition of a credential."""
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return f"{value[:3]}...{value[-4:]}"
