"""Levelled logging to standard error and an optional append-only log file."""

from __future__ import annotations

import enum
import sys
import traceback
from datetime import datetime, timedelta
from typing import TextIO


class Level(enum.IntEnum):
    """Logging levels; a message is written when its level is at most the current one."""

    PANIC = 0
    ERROR = 1
    VERBOSE = 2
    DEBUG = 3
    MAX = 4
    UNKNOWN = 5

    def __str__(self) -> str:
        if self <= Level.DEBUG:
            return self.name.lower()
        return "unknown"


_stderr_enabled: bool = True
_log_file: TextIO | None = None
_level: Level = Level.DEBUG


def _timestamp() -> str:
    now = datetime.now().astimezone()
    text = now.isoformat(timespec="seconds")
    if now.utcoffset() == timedelta(0):
        return text[:-6] + "Z"
    return text


def _format(fmt: str, args: tuple) -> str:
    return fmt % args if args else fmt


def log(level: Level, fmt: str, *args) -> None:
    """Write a message at ``level`` if the current level lets it through."""
    if level > _level:
        return
    line = "%s [%s] %s\n" % (_timestamp(), str(level), _format(fmt, args))
    if _stderr_enabled:
        sys.stderr.write(line)
        sys.stderr.flush()
    if _log_file is not None:
        _log_file.write(line)
        _log_file.flush()


def debug(fmt: str, *args) -> None:
    """Log at debug level."""
    log(Level.DEBUG, fmt, *args)


def verbose(fmt: str, *args) -> None:
    """Log at verbose level."""
    log(Level.VERBOSE, fmt, *args)


def error(fmt: str, *args) -> str:
    """Log at error level and return the formatted message."""
    log(Level.ERROR, fmt, *args)
    return _format(fmt, args)


def panic(fmt: str, *args) -> None:
    """Log at panic level, followed by the current stack."""
    log(Level.PANIC, fmt, *args)
    log(Level.PANIC, "========= Stack trace output ========")
    log(Level.PANIC, "%s", "".join(traceback.format_stack()).rstrip())
    log(Level.PANIC, "========= Stack trace output end ========")


def get_logging_level() -> Level:
    """Return the current logging level."""
    return _level


def _parse_level(level_name: str) -> Level:
    try:
        level = Level[level_name.upper()]
    except KeyError:
        level = Level.UNKNOWN
    if level >= Level.MAX:
        sys.stderr.write(
            "Whereabouts logging: cannot set logging level to %s\n" % level_name
        )
        return Level.UNKNOWN
    return level


def set_log_level(level_name: str) -> None:
    """Set the logging level by name, case-insensitively; unknown names are ignored."""
    global _level
    level = _parse_level(level_name)
    if level < Level.MAX:
        _level = level


def set_log_stderr(enable: bool) -> None:
    """Turn logging to standard error on or off."""
    global _stderr_enabled
    _stderr_enabled = bool(enable)


def set_log_file(filename: str) -> None:
    """Append log output to ``filename``; an empty name leaves things unchanged."""
    global _log_file
    if not filename:
        return
    if _log_file is not None:
        _log_file.close()
        _log_file = None
    try:
        _log_file = open(filename, "a", encoding="utf-8")
    except OSError:
        _log_file = None
        sys.stderr.write("Whereabouts logging: cannot open %s" % filename)


def log_file_open() -> bool:
    """Report whether output currently goes to a log file."""
    return _log_file is not None


def log_stderr_enabled() -> bool:
    """Report whether output currently goes to standard error."""
    return _stderr_enabled