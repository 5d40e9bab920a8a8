"""Concurrency-safe Redis session store.

Atomic set/touch with tombstones, plus batched SCAN operations.
"""

from session_store.adapter import TOMBSTONE, SessionStoreAdapter
from session_store.compare import deep_equal
from session_store.config import SessionStoreConfig
from session_store.exceptions import (
    ConfigurationError,
    MalformedRecordError,
    SessionStoreError,
    TransportError,
)
from session_store.logging import (
    LogSink,
    PrintSink,
    configure_logging,
    get_logger,
    reset_logging,
)
from session_store.models import Cookie, SessionComparison, SessionRecord
from session_store.serializer import JsonSerializer, Serializer

__all__ = [
    "TOMBSTONE",
    "SessionStoreAdapter",
    "SessionStoreConfig",
    "SessionRecord",
    "SessionComparison",
    "Cookie",
    "Serializer",
    "JsonSerializer",
    "deep_equal",
    "SessionStoreError",
    "ConfigurationError",
    "MalformedRecordError",
    "TransportError",
    "LogSink",
    "PrintSink",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
