"""
Logging for the SPCC plan import pipeline.

Console output goes through Rich on stderr so progress bars on stdout stay
readable. An optional file handler writes one JSON object per line. Records
are stamped with the active batch context (batch id, tenant) which lives in
a context variable, so concurrent extraction tasks inherit the batch they
were started under.
"""

import contextvars
import functools
import inspect
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from spcc_import.config import get_settings

# Attributes every LogRecord carries; anything else came in through `extra`
# or the batch context.
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Context keys that lead the JSON payload when present
_LEADING_KEYS = ("batch_id", "tenant_id", "stage")

_batch_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar("spcc_import_log_context", default={})

_QUIET_LOGGERS = ("fitz", "pymupdf")


class StructuredFormatter(logging.Formatter):
    """One JSON document per record, batch context first."""

    def format(self, record: logging.LogRecord) -> str:
        extras = {key: value for key, value in vars(record).items() if key not in _RECORD_FIELDS}

        payload: Dict[str, Any] = {key: extras.pop(key) for key in _LEADING_KEYS if key in extras}
        payload.update(
            ts=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            logger=record.name,
            msg=record.getMessage(),
            where=f"{record.module}.{record.funcName}:{record.lineno}",
        )
        payload.update(extras)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class BatchContextFilter(logging.Filter):
    """Copies the current batch context onto each record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _batch_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True

    @property
    def context(self) -> Dict[str, Any]:
        return dict(_batch_context.get())


context_filter = BatchContextFilter()


class LogContext:
    """Binds key/value pairs to every record logged inside the ``with`` block.

    Nesting layers the new values over the outer ones; leaving the block
    restores exactly what was bound before.
    """

    def __init__(self, **values: Any) -> None:
        self.values = values
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "LogContext":
        self._token = _batch_context.set({**_batch_context.get(), **self.values})
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._token is not None:
            _batch_context.reset(self._token)
            self._token = None


def _console_handler(level: str, show_locals: bool) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=show_locals,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(level)
    handler.addFilter(context_filter)
    return handler


def _file_handler(path: Path, level: str, structured: bool) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-8s [%(name)s] %(message)s"))
    handler.setLevel(level)
    handler.addFilter(context_filter)
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_file_path: Optional[Path] = None,
    use_structured_logging: bool = True,
) -> None:
    """
    (Re)configure the root logger.

    Args:
        log_level: Level name; falls back to ``SPCC_IMPORT_LOG_LEVEL``
        log_file_path: Where to write the log file, if anywhere
        use_structured_logging: JSON lines in the file instead of plain text
    """
    settings = get_settings()
    level = (log_level or settings.log_level).upper()
    file_path = log_file_path or settings.get_log_file_path()

    handlers = [_console_handler(level, settings.dev_mode)]
    if file_path:
        handlers.append(_file_handler(Path(file_path), level, use_structured_logging))

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(level)
    for handler in handlers:
        root.addHandler(handler)

    # PyMuPDF reports every recoverable syntax error at INFO
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging ready",
        extra={"log_level": level, "log_file": str(file_path) if file_path else None},
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _report(logger: logging.Logger, name: str, started: float, error: Optional[BaseException] = None) -> None:
    elapsed = round(time.perf_counter() - started, 4)
    if error is None:
        logger.info(f"{name} finished in {elapsed:.2f}s", extra={"operation": name, "duration_seconds": elapsed})
    else:
        logger.error(
            f"{name} failed after {elapsed:.2f}s",
            extra={"operation": name, "duration_seconds": elapsed, "error": str(error)},
        )


def log_performance(func: Callable) -> Callable:
    """Log how long ``func`` took, and whether it raised.

    Works on both plain functions and coroutine functions.
    """
    logger = get_logger(func.__module__)
    name = func.__qualname__

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def timed_async(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                _report(logger, name, started, exc)
                raise
            _report(logger, name, started)
            return result

        return timed_async

    @functools.wraps(func)
    def timed(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            _report(logger, name, started, exc)
            raise
        _report(logger, name, started)
        return result

    return timed


if not logging.getLogger().handlers:
    setup_logging()
