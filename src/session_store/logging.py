"""JSON-lines logging for the session store on top of the standard ``logging`` API.

Modules call :func:`get_logger` and log through a plain :class:`logging.Logger`
with context in ``extra``. Nothing is installed on import: records propagate
to whatever handlers the application configured. Services that want this
package to emit JSON lines itself call :func:`configure_logging` at startup.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Protocol, TextIO

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

ROOT_LOGGER_NAME = "session_store"

# Attributes present on every logging.LogRecord; anything else came from ``extra``.
_STANDARD_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
}


class LogSink(Protocol):
    """Destination for formatted log lines (stdout, file, log shipper...)."""

    def write(self, message: str) -> None:  # pragma: no cover
        ...


class PrintSink:
    """Writes each line to a text stream (stdout unless given)."""

    _stream: TextIO

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def write(self, message: str) -> None:
        print(message, file=self._stream, flush=True)


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra`` fields become top-level keys."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": record.created,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class SinkHandler(logging.Handler):
    """Handler that forwards formatted records to a :class:`LogSink`."""

    _sink: LogSink

    def __init__(self, sink: LogSink) -> None:
        super().__init__()
        self._sink = sink

    @override
    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._sink.write(self.format(record))
        except Exception:  # noqa: BLE001
            self.handleError(record)


def configure_logging(
    level: int = logging.INFO,
    sink: LogSink | None = None,
    propagate: bool = False,
) -> None:
    """Opt in to JSON-lines output for ``session_store.*`` loggers.

    Replaces a handler installed by an earlier call, so calling it again
    switches sinks instead of duplicating output. ``propagate`` controls
    whether records also reach the application's root handlers.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    _remove_sink_handlers(logger)
    handler = SinkHandler(sink if sink is not None else PrintSink())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = propagate


def reset_logging() -> None:
    """Undo :func:`configure_logging`: drop the sink and propagate again."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    _remove_sink_handlers(logger)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def get_logger(name: str) -> logging.Logger:
    """Return a standard logger; never touches handler configuration::

    logger = get_logger(__name__)
    logger.debug("Session write refused", extra={"key": key})
    """
    return logging.getLogger(name)


def _remove_sink_handlers(logger: logging.Logger) -> None:
    for existing in [h for h in logger.handlers if isinstance(h, SinkHandler)]:
        logger.removeHandler(existing)
