"""Logging for agentmirror.

Every component logs through a child of the ``agentmirror`` logger:
``transport``, ``connection``, ``state``, ``cli``, and ``server`` for lines
the coordination server writes to its stderr. Records carry the component
name so interleaved transport and server output stays readable::

    14:02:11 info [connection] Connection status: connected
    14:02:11 info [server] too-many-cooks listening on stdio

Output goes to ``logging.file`` (or $AGENTMIRROR_LOG) when set, else to
stderr, but only when stderr is a terminal: piped stderr belongs to whoever
launched us.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentmirror.config.schema import LoggingConfig

# Wire traffic, one record per frame
TRACE = 5
# Table commits and other per-event detail
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

ROOT_NAME = "agentmirror"
LOG_ENV_VAR = "AGENTMIRROR_LOG"

logger = logging.getLogger(ROOT_NAME)

# -v count -> level; counts past the end clamp to the last entry
_VERBOSITY_LADDER = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_installed: list[logging.Handler] = []


class ComponentFormatter(logging.Formatter):
    """``HH:MM:SS level [component] message`` with lowercase level names.

    The component is the logger name below ``agentmirror``; records from the
    package logger itself show ``[agentmirror]``.
    """

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(level)s [%(component)s] %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        # Extra attributes; levelname stays as-is for other handlers
        record.level = record.levelname.lower()
        prefix = ROOT_NAME + "."
        record.component = (
            record.name[len(prefix):] if record.name.startswith(prefix) else record.name
        )
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Effective level: ``verbose`` beats ``level``; INFO when neither is set."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        index = min(max(config.verbose, 0), len(_VERBOSITY_LADDER) - 1)
        return _VERBOSITY_LADDER[index]
    if config.level:
        level = logging.getLevelName(config.level.upper())
        return level if isinstance(level, int) else logging.INFO
    return logging.INFO


def _log_path(config: LoggingConfig | None) -> str | None:
    path = (config.file if config else None) or os.environ.get(LOG_ENV_VAR)
    return os.path.expanduser(path) if path else None


def _build_handlers(config: LoggingConfig | None, force_stderr: bool) -> list[logging.Handler]:
    to_console = force_stderr or sys.stderr.isatty()
    path = _log_path(config)

    if path:
        try:
            return [logging.FileHandler(path, mode="a", encoding="utf-8")]
        except OSError as e:
            if not to_console:
                return []
            print(f"[agentmirror] Cannot write log file {path}: {e}", file=sys.stderr)

    return [logging.StreamHandler(sys.stderr)] if to_console else []


def setup_logging(config: LoggingConfig | None = None, *, force_stderr: bool = False) -> None:
    """Install handlers on the ``agentmirror`` logger.

    Only the first call has an effect; reset_logging() re-arms it.

    Args:
        config: Level, verbosity (0 error .. 4 trace) and log file.
        force_stderr: Log to stderr even when it is not a terminal.
    """
    if _installed:
        return

    level = resolve_level(config)
    logger.setLevel(level)

    formatter = ComponentFormatter()
    for handler in _build_handlers(config, force_stderr):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        _installed.append(handler)

    # Nothing to install still counts as configured
    if not _installed:
        _installed.append(logging.NullHandler())
        logger.addHandler(_installed[-1])


def reset_logging() -> None:
    """Remove everything setup_logging() installed."""
    while _installed:
        handler = _installed.pop()
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def get_logger(name: str | None = None) -> logging.Logger:
    """The package logger, or its child ``name`` (e.g. "transport")."""
    return logger.getChild(name) if name else logger
