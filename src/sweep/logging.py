"""Logging setup for sweep.

stdout carries the report, so every log record goes to stderr and, when
asked for, to a log file as well. Verbosity maps ``-v`` counts to levels,
with a TRACE level below DEBUG that also lets asyncssh's own logs through.

Loggers returned by get_logger append ``key=value`` fields to messages:

    logger = get_logger(__name__, task="exec")
    logger.info("Run complete", hosts=3)
    # INFO sweep.executor: Run complete (task=exec, hosts=3)
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, MutableMapping

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
DETAILED_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"

LEVEL_NAMES = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Index is the number of -v flags
_VERBOSITY_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG, TRACE)

# Keyword arguments understood by Logger.log itself
_LOGGER_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def get_level_from_verbosity(verbosity: int) -> int:
    """Map a ``-v`` count to a level: WARNING, INFO, DEBUG, then TRACE."""
    return _VERBOSITY_LEVELS[max(0, min(verbosity, len(_VERBOSITY_LEVELS) - 1))]


def get_level_from_name(level_name: str) -> int:
    """Map a level name such as ``debug`` or ``TRACE`` to its number.

    Raises:
        ValueError: If the name is not a known level
    """
    try:
        return LEVEL_NAMES[level_name.lower()]
    except KeyError:
        valid = ", ".join(LEVEL_NAMES)
        raise ValueError(f"Invalid log level: {level_name}. Valid levels: {valid}") from None


def configure_logging(
    level: int = logging.WARNING,
    format_string: str | None = None,
    debug: bool = False,
    log_file: str | Path | None = None,
    file_level: int | None = None,
) -> None:
    """Install the stderr handler (and an optional file handler) on the root logger.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Level of the stderr handler
        format_string: Format of stderr records (default depends on level)
        debug: Use the detailed format on stderr whatever the level
        log_file: File receiving records in the detailed format
        file_level: Level of the file handler (default: level)
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if format_string is None:
        format_string = DETAILED_FORMAT if debug or level <= logging.DEBUG else CONSOLE_FORMAT

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(format_string))
    root.addHandler(console)

    lowest = level
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setLevel(file_level if file_level is not None else level)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
        root.addHandler(file_handler)
        lowest = min(lowest, file_handler.level)

    root.setLevel(lowest)

    # asyncssh logs each channel open/close at INFO
    logging.getLogger("asyncssh").setLevel(level if level <= TRACE else logging.WARNING)


def _fields(context: dict[str, Any]) -> str:
    return ", ".join(f"{key}={value}" for key, value in context.items())


@contextmanager
def log_scope(
    logger: logging.Logger,
    message: str,
    level: int = logging.INFO,
    **context: Any,
) -> Iterator[None]:
    """Log when a block starts and when it ends, even if it raises.

    Example:
        >>> with log_scope(logger, "Prepare phase", hosts=3):
        ...     prepare_all()
        INFO sweep.executor: Prepare phase started (hosts=3)
        INFO sweep.executor: Prepare phase finished (hosts=3)
    """
    suffix = f" ({_fields(context)})" if context else ""
    logger.log(level, f"{message} started{suffix}")
    try:
        yield
    finally:
        logger.log(level, f"{message} finished{suffix}")


@contextmanager
def log_duration(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    threshold: float | None = None,
    **context: Any,
) -> Iterator[None]:
    """Log how long a block took.

    Nothing is logged when the block is faster than ``threshold`` seconds.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if threshold is None or elapsed >= threshold:
            suffix = f" ({_fields(context)})" if context else ""
            logger.log(level, f"{operation} took {elapsed:.3f}s{suffix}")


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter appending key=value fields to every message.

    Fields come from the adapter's context and from extra keyword arguments
    of each call, the latter taking precedence.
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        super().__init__(logger, dict(context))

    @property
    def context(self) -> dict[str, Any]:
        return self.extra  # type: ignore[return-value]

    def add_context(self, **context: Any) -> None:
        self.context.update(context)

    def remove_context(self, *keys: str) -> None:
        for key in keys:
            self.context.pop(key, None)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        fields = dict(self.context)
        for key in [key for key in kwargs if key not in _LOGGER_KWARGS]:
            fields[key] = kwargs.pop(key)
        if fields:
            msg = f"{msg} ({_fields(fields)})"
        return msg, kwargs

    def trace(self, msg: str, **kwargs: Any) -> None:
        self.log(TRACE, msg, **kwargs)


def get_logger(name: str, **context: Any) -> ContextLogger:
    """Get a ContextLogger for ``name`` with optional fixed fields."""
    return ContextLogger(logging.getLogger(name), **context)
