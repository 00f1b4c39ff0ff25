"""
Carve Structured Logger
========================

:class:`CarveLogger` sends records to a Rich handler on stderr and,
optionally, to a rotating log file as plain text or JSON lines.

Parsers, scanners and the merge registry take a logger from their caller.
Without one they build :meth:`CarveLogger.quiet`, which has no output
handlers, so using Carve as a library never prints.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bold bright_blue",
        "log.level.warning": "bold yellow",
        "log.level.error": "bold red",
    }
)

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class _JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``timestamp``, ``level``, ``logger``, ``message``, plus
    ``component`` and ``operation`` when the record carries them.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr in ("component", "operation"):
            value = getattr(record, attr, None)
            if value is not None:
                entry[attr] = value
        return json.dumps(entry, ensure_ascii=False, default=str)


def _stderr_handler(level: int) -> RichHandler:
    # stderr keeps stdout free for --json output
    return RichHandler(
        level=level,
        console=Console(theme=_LOG_THEME, stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )


def _file_handler(
    path: str | Path,
    level: int,
    json_lines: bool,
    max_bytes: int,
    backup_count: int,
) -> RotatingFileHandler:
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(file_path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if json_lines:
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
        )
    return handler


class CarveLogger:
    """Logger bound to one Carve component.

    Usage::

        log = CarveLogger("cli", log_file="carve.log", json_logs=True)
        with log.operation(".eh_frame"):
            log.debug(f"Skipping FDE at 0x{offset:x}")

    Args:
        component:       Name used as ``carve.<component>``.
        log_level:       Minimum severity name, e.g. ``"DEBUG"``.
        log_file:        Rotating log file; ``None`` disables it.
        json_logs:       Write the file as JSON lines.
        max_bytes:       Rotation threshold (default 10 MiB).
        backup_count:    Rotated files kept.
        console_output:  Attach the Rich stderr handler.
    """

    def __init__(
        self,
        component: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
        console_output: bool = True,
    ) -> None:
        level = getattr(logging, log_level.upper(), logging.INFO)
        self._component = component
        self._operation: str | None = None

        self._logger = logging.getLogger(f"carve.{component}")
        self._logger.setLevel(level)
        self._logger.propagate = False
        self._logger.handlers.clear()

        if console_output:
            self._logger.addHandler(_stderr_handler(level))
        if log_file is not None:
            self._logger.addHandler(
                _file_handler(log_file, level, json_logs, max_bytes, backup_count)
            )
        if not self._logger.handlers:
            # Keeps records away from logging.lastResort
            self._logger.addHandler(logging.NullHandler())

    @classmethod
    def quiet(cls, component: str) -> CarveLogger:
        """A logger with no output handlers, for library use."""
        return cls(component, log_level="DEBUG", console_output=False)

    @contextmanager
    def operation(self, name: str) -> Iterator[CarveLogger]:
        """Tag every record logged inside the block with ``operation=name``."""
        previous = self._operation
        self._operation = name
        try:
            yield self
        finally:
            self._operation = previous

    @contextmanager
    def timed(self, label: str) -> Iterator[CarveLogger]:
        """Log *label* at DEBUG on entry and again with the elapsed time."""
        started = time.perf_counter()
        self.debug(f"Started: {label}")
        try:
            yield self
        finally:
            self.debug(f"Completed: {label} ({time.perf_counter() - started:.3f} sec)")

    def _log(self, level: int, msg: str) -> None:
        self._logger.log(
            level,
            msg,
            extra={"component": self._component, "operation": self._operation},
        )

    def debug(self, msg: str) -> None:
        self._log(logging.DEBUG, msg)

    def info(self, msg: str) -> None:
        self._log(logging.INFO, msg)

    def warning(self, msg: str) -> None:
        self._log(logging.WARNING, msg)
