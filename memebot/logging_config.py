"""Logging setup for the lookup core.

Console plus two rotating files: ``memebot.log`` at the configured level and
``errors.log`` for warnings and above. Connection strings and API keys pass
through the store, HTTP and text generation loggers, so those loggers (and
the error file) mask credentials before anything is written.
"""

from __future__ import annotations

import logging
import re
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from pathlib import Path

MAIN_LOG = "memebot.log"
ERROR_LOG = "errors.log"

SCRUBBED_LOGGERS = ("memebot.kv_store", "memebot.http_client", "memebot.utils_ai")

# order matters: URL credentials must be masked before the email rule sees "user:pass@host"
_MASKS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(rediss?://[^:/@\s]*:)[^@\s]+(?=@)"), r"\1<password>"),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._-]{4,}"), r"\1<token>"),
    (re.compile(r"((?:token|api_key|key)\s*[=:]\s*)[A-Za-z0-9._-]{4,}", re.IGNORECASE), r"\1<token>"),
    (re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE), "<email>"),
)


def mask_secrets(text: str) -> str:
    for pattern, replacement in _MASKS:
        text = pattern.sub(replacement, text)
    return text


class SecretScrubbingFilter(logging.Filter):
    """Render the record once and store the masked message."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = mask_secrets(record.getMessage())
        record.args = ()
        return True


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _file_handler(path: Path, level: int, max_bytes: int, backups: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: str = "logs", level: int | str = logging.INFO) -> None:
    """Configure console and rotating file handlers; safe to call repeatedly."""

    level = _resolve_level(level)
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        with suppress(Exception):  # pragma: no cover - best effort cleanup
            handler.close()

    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s", "%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)
    root.addHandler(_file_handler(log_path / MAIN_LOG, level, 5_000_000, 5, formatter))

    errors = _file_handler(log_path / ERROR_LOG, logging.WARNING, 2_000_000, 3, formatter)
    errors.addFilter(SecretScrubbingFilter())
    root.addHandler(errors)

    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    for name in SCRUBBED_LOGGERS:
        logger = logging.getLogger(name)
        logger.filters = [f for f in logger.filters if not isinstance(f, SecretScrubbingFilter)]
        logger.addFilter(SecretScrubbingFilter())

    root.info("logging initialized, level=%s dir=%s", logging.getLevelName(level), log_path.resolve())


__all__ = ["SecretScrubbingFilter", "mask_secrets", "setup_logging"]
