"""Named loggers that write HTML-coloured markdown files and colour the console."""

from __future__ import annotations

import os
import sys
import threading
from datetime import datetime
from enum import IntEnum, IntFlag
from pathlib import Path
from typing import TextIO


class LogLevel(IntEnum):
    """Severity of a log message."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4


class LogOptions(IntFlag):
    """Options that shape the log file's location and name."""

    DEFAULT = 0
    DATE_DIR = 0b001
    DATE_SUFFIX = 0b010
    OVER_WRITE = 0b100


_FILE_TEMPLATES = {
    LogLevel.DEBUG: '<font color="#9B9B9B">{}</font>',
    LogLevel.INFO: '<font color="#FFFFFF">{}</font>',
    LogLevel.WARN: '<font color="#FFFF00">{}</font>',
    LogLevel.ERROR: '<font color="#FF0000">{}</font>',
    LogLevel.FATAL: '<font color="#0000FF">{}</font>',
}

_CONSOLE_COLORS = {
    LogLevel.DEBUG: (0x80, 0x80, 0x80),
    LogLevel.INFO: (0xFF, 0xFF, 0xFF),
    LogLevel.WARN: (0xFF, 0xFF, 0x00),
    LogLevel.ERROR: (0xFF, 0x00, 0x00),
    LogLevel.FATAL: (0x00, 0x00, 0xFF),
}


class LoggerNotFoundError(LookupError):
    """Raised when a logger name has not been registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Logger {name} Not Found")
        self.name = name


class WriteError(OSError):
    """Raised when a log file cannot be written."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Write to {name} Error")
        self.name = name


_console_lock = threading.Lock()
_file_locks: dict[str, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _file_lock(filename: str) -> threading.Lock:
    with _file_locks_guard:
        return _file_locks.setdefault(filename, threading.Lock())


class Writer:
    """Appends messages to a file, serialised per file name across threads."""

    def __init__(self, filename: str | os.PathLike[str]) -> None:
        self.filename = str(filename)
        self._lock = _file_lock(self.filename)
        parent = Path(self.filename).parent
        parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.filename, "a", encoding="utf-8")

    def write(self, message: str) -> None:
        """Write a message followed by a blank line and flush it."""
        with self._lock:
            try:
                self._file.write(f"{message}\n\n")
                self._file.flush()
            except (OSError, ValueError) as exc:
                raise WriteError(self.filename) from exc

    def flush(self) -> None:
        with self._lock:
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            self._file.close()

    def __enter__(self) -> Writer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _local_time() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _log_file_name(name: str, path: str, options: LogOptions) -> str:
    cur_date = _local_time()[:10]
    filename = path or "./"
    if not filename.endswith("/"):
        filename += "/"
    if filename.startswith("~"):
        home = os.environ.get("HOME") or os.path.expanduser("~")
        filename = home + filename[1:]
    if options & LogOptions.DATE_DIR:
        filename += cur_date + "/"
    if options & LogOptions.DATE_SUFFIX:
        filename += f"{name}_{cur_date}.log.md"
    else:
        filename += f"{name}.log.md"
    return filename


class Logger:
    """A named logger writing to its own file and to the console."""

    def __init__(
        self,
        name: str,
        path: str,
        level: LogLevel = LogLevel.INFO,
        options: LogOptions = LogOptions.DEFAULT,
        *,
        stream: TextIO | None = None,
    ) -> None:
        self.name = name
        self.level = LogLevel(level)
        self._stream = stream
        self.filename = _log_file_name(name, path, LogOptions(options))
        self._writer = Writer(self.filename)

    @property
    def _out(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def log(self, level: LogLevel, fmt: str, *args: object) -> None:
        """Format and emit a message; only levels at or above the threshold reach the file."""
        level = LogLevel(level)
        info = fmt.format(*args)
        level_prefix = f"[{level.name}] "
        name_prefix = f"[{self.name}] "
        log_time = f"[{_local_time()}] "
        message = f"{level_prefix} {name_prefix} {log_time}: {info}"

        if level >= self.level:
            self._writer.write(_FILE_TEMPLATES[level].format(message))

        r, g, b = _CONSOLE_COLORS[level]
        with _console_lock:
            self._out.write(f"\x1b[38;2;{r};{g};{b}m{message}\n\x1b[0m")

    def debug(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.DEBUG, fmt, *args)

    def info(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.INFO, fmt, *args)

    def warn(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.WARN, fmt, *args)

    def error(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.ERROR, fmt, *args)

    def fatal(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.FATAL, fmt, *args)

    def print(self, fmt: str, *args: object) -> None:
        """Write formatted text to the console only, uncoloured and without a newline."""
        with _console_lock:
            self._out.write(fmt.format(*args))

    def set_level(self, level: LogLevel) -> None:
        self.level = LogLevel(level)

    def flush(self) -> None:
        self._writer.flush()


_loggers: dict[str, Logger] = {}
_pool_lock = threading.Lock()


def get_logger(name: str) -> Logger:
    """Return a registered logger or raise :class:`LoggerNotFoundError`."""
    try:
        return _loggers[name]
    except KeyError:
        raise LoggerNotFoundError(name) from None


def register_logger(
    name: str,
    path: str,
    level: LogLevel = LogLevel.INFO,
    options: LogOptions = LogOptions.DEFAULT,
) -> Logger:
    """Create a logger under ``name`` unless one exists; return the registered logger."""
    with _pool_lock:
        if name not in _loggers:
            _loggers[name] = Logger(name, path, level, options)
        return _loggers[name]