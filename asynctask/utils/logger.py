"""Rich-formatted logging setup."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme

if TYPE_CHECKING:
    from asynctask.config import Settings

# Custom theme for logging
CUSTOM_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "task": "bold magenta",
        "state": "bold blue",
    }
)

console = Console(theme=CUSTOM_THEME, stderr=True)


class TaskFormatter(logging.Formatter):
    """Prefixes task-related records with their task key."""

    def __init__(self, *args, escape_markup: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self._escape_markup = escape_markup

    def format(self, record: logging.LogRecord) -> str:
        task_key = getattr(record, "task_key", None)
        if task_key:
            prefix = f"[{task_key}]"
            if self._escape_markup:
                prefix = escape(prefix)
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"{prefix} {record.msg}"
        return super().format(record)


def setup_logging(
    log_dir: str | Path = "logs",
    level: int | str = logging.INFO,
    log_to_file: bool = False,
) -> None:
    """
    Setup logging with Rich console handler and optional file handler.

    Args:
        log_dir: Directory to store log files
        level: Logging level
        log_to_file: Whether to also log to file
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        markup=True,
    )
    rich_handler.setFormatter(TaskFormatter("%(message)s", escape_markup=True))
    root_logger.addHandler(rich_handler)

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"asynctask_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            TaskFormatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def setup_logging_from_settings(settings: Settings) -> None:
    """Setup logging from the logging fields of Settings."""
    setup_logging(
        log_dir=settings.log_dir,
        level=settings.log_level,
        log_to_file=settings.log_to_file,
    )


class TaskLogger:
    """Logger wrapper for task-specific logging."""

    def __init__(self, task_key: str):
        self.task_key = task_key
        self._logger = logging.getLogger(f"asynctask.task.{task_key}")

    def _log(self, level: int, msg: str, *args, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = kwargs.pop("extra", {})
        extra["task_key"] = self.task_key
        self._logger.log(level, msg, *args, extra=extra, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def state_change(self, from_state: str, to_state: str) -> None:
        """Log a state transition."""
        self.info(f"State: [state]{from_state}[/state] -> [state]{to_state}[/state]")
