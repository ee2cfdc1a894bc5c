from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from typing import Optional

from privgate.core.pii.detector import detect_pii

LOG_FILENAME = "privgate.log"
FIELD_SEP = " | "
FILE_FORMAT = FIELD_SEP.join(["%(asctime)s", "%(levelname)s", "%(message)s"])

_SENSITIVE_KV = re.compile(r"\b(password|passwd|token|secret|api_?key|prompt|response)=(\"[^\"]*\"|'[^']*'|\S+)", re.IGNORECASE)


def scrub_message(message: str) -> str:
    """
    Log-line scrubber: key=value pairs with a credential or content key lose
    their value, and any detected PII is replaced by its type label.
    """
    out = _SENSITIVE_KV.sub(lambda m: f"{m.group(1)}=[REDACTED]", message)
    ents = detect_pii(out)
    if not ents:
        return out
    parts = []
    last = 0
    for e in ents:
        parts.append(out[last : e.start])
        parts.append(f"[{e.type.value}]")
        last = e.end
    parts.append(out[last:])
    return "".join(parts)


class PiiScrubFilter(logging.Filter):
    """Handler filter; rewrites the record in place and never drops it."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        clean = scrub_message(msg)
        if clean != msg:
            record.msg = clean
            record.args = None
        return True


def _file_handler(logger: logging.Logger) -> Optional[RotatingFileHandler]:
    for h in logger.handlers:
        if isinstance(h, RotatingFileHandler):
            return h
    return None


def setup_logging(log_dir: str = "logs", *, level: int = logging.INFO, console: bool = True) -> logging.Logger:
    """
    Configure the 'privgate' logger: a rotating text file under log_dir and,
    optionally, a bare console stream. Both handlers scrub PII. Calling it
    again with another log_dir moves the file handler there.
    """
    os.makedirs(log_dir, exist_ok=True)
    text_path = os.path.abspath(os.path.join(log_dir, LOG_FILENAME))

    logger = logging.getLogger("privgate")
    logger.setLevel(level)
    logger.propagate = False

    current = _file_handler(logger)
    if current is not None and current.baseFilename != text_path:
        logger.removeHandler(current)
        current.close()
        current = None
    if current is None:
        h = RotatingFileHandler(text_path, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        h.setFormatter(logging.Formatter(FILE_FORMAT))
        h.addFilter(PiiScrubFilter())
        logger.addHandler(h)

    if console and not any(isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler) for h in logger.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(message)s"))
        sh.addFilter(PiiScrubFilter())
        logger.addHandler(sh)

    return logger
