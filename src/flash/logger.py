import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.text import Text

APP_NAME = "flash"
LOG_DIR = Path.home() / f".{APP_NAME}" / "logs"
LOG_FILE = LOG_DIR / "debug.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_file_handler = None

console = Console()

# Debug logs carry prompts, reviewed code and raw replies, which may contain keys.
_SECRET_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)([A-Za-z0-9._\-]+)"),
    re.compile(r"(?i)(api[-_]key[\"']?\s*[:=]\s*[\"']?)([A-Za-z0-9._\-]+)"),
    re.compile(r"()(sk-[A-Za-z0-9_\-]{8,})"),
)


def redact_secret(value: str) -> str:
    s = (value or "").strip()
    if not s:
        return ""
    if len(s) <= 6:
        return "***"
    return s[:2] + "***" + s[-2:]


def redact(message: str) -> str:
    """Mask bearer tokens, api-key values and OpenAI-style keys in a log line."""
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub(lambda m: m.group(1) + redact_secret(m.group(2)), message)
    return message


class RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


def _resolve_level(level_name: str) -> int:
    if isinstance(level_name, int):
        return level_name
    if not level_name:
        return logging.INFO
    level = getattr(logging, str(level_name).upper(), None)
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str = APP_NAME, log_level: str = None) -> logging.Logger:
    """
    Returns a logger under the `flash` namespace. Every flash.* logger writes through
    one rotating file handler at ~/.flash/logs/debug.log with secrets masked.
    Level comes from `log_level`, then FLASH_LOG_LEVEL, then INFO.
    """
    effective_level = _resolve_level(log_level or os.getenv("FLASH_LOG_LEVEL", "INFO"))

    if not LOG_DIR.exists():
        try:
            os.makedirs(LOG_DIR, exist_ok=True)
        except OSError as e:
            print(f"Error creating log directory {LOG_DIR}: {e}")
            return logging.getLogger(name)

    global _file_handler

    base_logger = logging.getLogger(APP_NAME)
    base_logger.setLevel(effective_level)
    base_logger.propagate = False

    if _file_handler is None:
        try:
            _file_handler = RotatingFileHandler(
                LOG_FILE, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
            )
            _file_handler.setFormatter(RedactingFormatter(LOG_FORMAT))
            base_logger.addHandler(_file_handler)
        except OSError as e:
            print(f"Failed to setup file logging: {e}")
    if _file_handler is not None:
        _file_handler.setLevel(effective_level)

    logger = logging.getLogger(name)
    logger.setLevel(effective_level)
    if logger is not base_logger:
        logger.propagate = True

    return logger


def _status_logger() -> logging.Logger:
    return logging.getLogger(f"{APP_NAME}.console")


def info(message: str, out: Optional[Console] = None) -> None:
    """Print an [INF] status line and mirror it to the debug log."""
    (out or console).print(Text(f"[INF] {message}", style="green"), soft_wrap=True)
    _status_logger().info(message)


def warn(message: str, out: Optional[Console] = None) -> None:
    (out or console).print(Text(f"[WRN] {message}", style="yellow"), soft_wrap=True)
    _status_logger().warning(message)


def error(message: str, out: Optional[Console] = None) -> None:
    (out or console).print(Text(f"[ERR] {message}", style="red"), soft_wrap=True)
    _status_logger().error(message)
