"""
Logging setup.

Every state transition, retry and terminal outcome is logged with a severity
tag. Besides the standard levels there is a SUCCESS level between INFO and
WARNING for confirmed trades and completed lifecycles.

Records go to the console and to an append-only daily log file.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def daily_log_path(log_dir: Union[str, Path], now: Optional[datetime] = None) -> Path:
    """Path of the log file for the given day (sniper_YYYY-MM-DD.log)."""
    now = now or datetime.now(timezone.utc)
    return Path(log_dir) / f"sniper_{now.date().isoformat()}.log"


class DailyFileHandler(logging.FileHandler):
    """
    Append-only file handler that moves to a new file when the UTC date changes.

    Earlier files are left untouched; nothing is renamed or deleted.
    """

    def __init__(
        self,
        log_dir: Union[str, Path],
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.log_dir = Path(log_dir)
        self._now = now
        self._day = now().date()
        super().__init__(daily_log_path(self.log_dir, now()), mode="a", encoding="utf-8", delay=True)

    def emit(self, record: logging.LogRecord) -> None:
        today = self._now().date()
        if today != self._day:
            self.acquire()
            try:
                if self.stream:
                    self.stream.close()
                    self.stream = None
                self._day = today
                self.baseFilename = str(daily_log_path(self.log_dir, self._now()).resolve())
            finally:
                self.release()
        super().emit(record)


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """
    Configure the root logger.

    Args:
        level: Log level name (DEBUG/INFO/WARNING/ERROR)
        log_dir: Directory for the append-only daily log files. No file is
            written when omitted.

    Returns:
        Path of today's log file, or None when logging to console only
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    if log_dir is None:
        return None

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    for handler in root.handlers:
        if isinstance(handler, DailyFileHandler) and handler.log_dir.resolve() == log_dir.resolve():
            return daily_log_path(log_dir)

    file_handler = DailyFileHandler(log_dir)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    return daily_log_path(log_dir)
