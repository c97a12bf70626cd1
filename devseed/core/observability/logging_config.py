"""
Logging configuration — set up once by the CLI before the run starts.

Modules log through ``logging.getLogger(__name__)``; step progress itself is
user output (click), so records only carry the diagnostic detail beneath it.

Level precedence:
    --debug / --verbose / --quiet  >  DEVSEED_LOG_LEVEL  >  WARNING

``DEVSEED_LOG_FILE`` adds a full-detail file (created 0600) with its own
level from ``DEVSEED_LOG_FILE_LEVEL``.

Nothing secret is handed to a logger. As a backstop every handler also
carries ``RedactKeyMaterial``, which masks armored private key blocks should
one ever end up in a message (e.g. inside captured tool stderr).
"""

from __future__ import annotations

import logging
import os
import re
import sys

_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FMT_PLAIN = "%(message)s"
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"

# Library loggers that chatter below WARNING.
_NOISY_LOGGERS = ("asyncio",)

_KEY_BLOCK = re.compile(
    r"-----BEGIN ([A-Z ]*PRIVATE KEY[A-Z ]*)-----.*?(?:-----END \1-----|\Z)",
    re.DOTALL,
)


class RedactKeyMaterial(logging.Filter):
    """Replace armored private key blocks in a record with a marker."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "PRIVATE KEY" in message:
            record.msg = _KEY_BLOCK.sub(r"[redacted \1]", message)
            record.args = None
        return True


def _console_formatter(level: int) -> logging.Formatter:
    for threshold in (logging.DEBUG, logging.INFO):
        if level <= threshold:
            fmt, datefmt = _FORMATS[threshold]
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_FMT_PLAIN)


def _private_file_handler(path: str, level: int) -> logging.FileHandler:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
    os.close(fd)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name.
        log_file: Optional log file path.
        log_file_level: Level for the file; defaults to ``level``.
        quiet_third_party: Hold library loggers at WARNING unless debugging.
    """
    console_level = _parse_level(level)
    redact = RedactKeyMaterial()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))
    handlers: list[logging.Handler] = [console]

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_private_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        handler.addFilter(redact)
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # A closed stderr (e.g. after the terminal went away) must not crash the run.
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown or empty names give WARNING."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) and level else logging.WARNING
