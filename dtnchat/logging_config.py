from __future__ import annotations

import logging
import threading
from pathlib import Path

from .config import ChatRuntimeConfig
from .constants import TRAFFIC_LOGGER
from .util import expand_path

# Held while anything writes to the terminal: chat lines and log records.
OUTPUT_LOCK = threading.RLock()


class ConsoleHandler(logging.StreamHandler):
    """stderr handler that never interleaves with a chat line being printed."""

    def emit(self, record: logging.LogRecord) -> None:
        with OUTPUT_LOCK:
            super().emit(record)


class ChatFormatter(logging.Formatter):
    """Daemon traffic prints bare (``[*] 200 tx mode: bundle``), the rest formatted."""

    def format(self, record: logging.LogRecord) -> str:
        if record.name == TRAFFIC_LOGGER:
            return record.getMessage()
        return super().format(record)


def _level(value: str | None, default: int) -> int:
    if not value or not str(value).strip():
        return default
    return logging.getLevelNamesMapping().get(str(value).strip().upper(), default)


def configure_logging(
    cfg: ChatRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Configure logging for dtnchat / dtneliza.

    The terminal is shared with chat output, so the root level defaults to
    WARNING. Verbose mode lowers it to INFO (unless a level was given) and
    opens the ``dtnchat.traffic`` logger, which echoes the daemon control
    exchange to the console without timestamps. A log file, when configured,
    gets every record in the full format.
    """

    level = _level(override_level or cfg.log_level, logging.WARNING)
    if cfg.verbose and override_level is None:
        level = min(level, logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = cfg.log_format.strip() or None
    datefmt = cfg.log_datefmt or None

    if cfg.log_console:
        console = ConsoleHandler()
        console.setFormatter(ChatFormatter(fmt, datefmt))
        root.addHandler(console)

    log_file = cfg.log_file if override_file is None else override_file
    if log_file and log_file.strip():
        path = Path(expand_path(log_file))
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(fmt, datefmt))
        root.addHandler(file_handler)

    root.setLevel(level)
    logging.getLogger(TRAFFIC_LOGGER).setLevel(
        logging.DEBUG if cfg.verbose else logging.WARNING
    )
    logging.getLogger("aiohttp").setLevel(_level(cfg.log_aiohttp_level, logging.WARNING))

    logging.captureWarnings(True)
