"""Logging configuration for the plaudsync CLI.

Library code only ever calls ``logging.getLogger(__name__)`` (or uses the
logger handed to it); handlers are installed here, once, by the CLI:

- console: INFO by default, DEBUG with --verbose, or $LOG_LEVEL
- _state/run_logs.ndjson: every DEBUG+ record as one JSON object per line
- with --redact: bearer tokens and cookie values masked in both
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from pathlib import Path

from plaudsync.core.timestamps import from_epoch, to_iso
from plaudsync.storage.paths import run_logs_path

ROOT_LOGGER = "plaudsync"
LOG_LEVEL_ENV = "LOG_LEVEL"
REDACTED = "[REDACTED]"

# Attributes every LogRecord has; anything else was passed via extra=
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_SECRET_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*"),
    re.compile(
        r"(?i)((?:cookie|authorization|auth_token|authToken)[\"']?\s*[:=]\s*[\"']?)"
        r"[^\s\"',;]+"
    ),
    re.compile(r"(?i)(X-Amz-Signature=)[0-9a-f]+"),
)


class NDJSONFormatter(logging.Formatter):
    """Format records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": to_iso(from_epoch(record.created)),
            "level": record.levelname.lower(),
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class RedactFilter(logging.Filter):
    """Mask bearer tokens, cookie values and URL signatures in messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def redact_secrets(text: str) -> str:
    """Replace secrets in text with [REDACTED]."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
    return text


def configure_logging(
    out_dir: Path | None = None,
    verbose: bool = False,
    redact: bool = False,
) -> logging.Logger:
    """Install console and run-log handlers on the plaudsync logger.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        out_dir: Data directory; the run log goes to _state/run_logs.ndjson.
            No file handler is installed when None.
        verbose: Show DEBUG messages on the console.
        redact: Mask secrets in every handler's output.

    Returns:
        The configured plaudsync logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG)
    console_level = os.environ.get(LOG_LEVEL_ENV, "DEBUG" if verbose else "INFO").upper()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(console)

    if out_dir is not None:
        log_path = run_logs_path(out_dir)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(NDJSONFormatter())
        logger.addHandler(file_handler)

    if redact:
        for handler in logger.handlers:
            handler.addFilter(RedactFilter())

    return logger
