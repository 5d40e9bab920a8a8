"""Exception hierarchy for the session store.

Transport failures are not wrapped: anything the Redis client raises reaches
the caller as-is. :data:`TransportError` names that family for callers that
want to catch it.
"""

from __future__ import annotations

from redis.exceptions import RedisError

TransportError = RedisError


class SessionStoreError(Exception):
    """Base exception for all session store errors."""


class ConfigurationError(SessionStoreError):
    """Invalid or missing configuration (e.g. no Redis client)."""


class MalformedRecordError(SessionStoreError):
    """A stored value could not be decoded into a session record."""
