"""
utils/logger.py — Project-wide logging configuration
=====================================================
Provides a single `get_logger(name)` factory so every pipeline stage,
the measurement controller and the API share one colour-coded console
format.  The default level comes from `config.LOG_LEVEL` (overridable
with the `PPG_LOG_LEVEL` environment variable).
"""

import logging
import sys

from config import LOG_LEVEL

# Colour codes (ANSI-256, works on most terminals)
_COLOURS = {
    logging.DEBUG:    "\033[36m",   # cyan
    logging.INFO:     "\033[32m",   # green
    logging.WARNING:  "\033[33m",   # yellow
    logging.ERROR:    "\033[31m",   # red
    logging.CRITICAL: "\033[35m",   # magenta
}
_RESET = "\033[0m"


class _ColourFormatter(logging.Formatter):
    """Wrap the level tag in ANSI colour when writing to a terminal."""

    def __init__(self, *args, use_colour: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colour = use_colour

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so other handlers see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if self._use_colour:
            colour = _COLOURS.get(record.levelno, _RESET)
            record.levelname = f"{colour}{record.levelname:<8}{_RESET}"
        else:
            record.levelname = f"{record.levelname:<8}"
        return super().format(record)


_BASE_FMT = "%(asctime)s  %(levelname)s  %(name)-24s  %(message)s"
_DATE_FMT = "%H:%M:%S"

# Module-level registry to avoid adding duplicate handlers
_loggers: dict[str, logging.Logger] = {}


def get_logger(name: str, level: int = LOG_LEVEL) -> logging.Logger:
    """
    Return (or create) a named logger.

    Parameters
    ----------
    name  : str   Component name shown in log lines, e.g. "ppg.peaks".
    level : int   Minimum severity (default `config.LOG_LEVEL`).
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False          # Avoid duplicate messages from root

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        _ColourFormatter(
            fmt=_BASE_FMT,
            datefmt=_DATE_FMT,
            use_colour=sys.stdout.isatty(),
        )
    )
    logger.addHandler(handler)

    _loggers[name] = logger
    return logger


def set_level(level: int) -> None:
    """Change the level of every logger handed out so far (used by the CLI)."""
    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
