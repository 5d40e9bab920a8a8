"""Redis session store adapter.

Writes go through Lua scripts so that "is this session tombstoned?" and the
write itself happen in one atomic step on the server; no lock is held in
process. Destroying a session leaves a short-lived tombstone that makes any
in-flight write for the same id fail instead of resurrecting the session.

Bulk operations (:meth:`SessionStoreAdapter.clear`, ``length``, ``all``) walk
the namespace with SCAN and are only atomic per batch.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, Literal, TypeVar, overload

from session_store.clock import Clock, utc_now
from session_store.compare import deep_equal
from session_store.config import SessionStoreConfig
from session_store.exceptions import ConfigurationError, MalformedRecordError
from session_store.logging import get_logger
from session_store.metrics import (
    bulk_duration_seconds,
    decode_errors_total,
    destroys_total,
    touches_total,
    writes_total,
)
from session_store.models import SessionComparison, SessionRecord
from session_store.scanner import KeyScanner
from session_store.scripts import AtomicScripts
from session_store.serializer import Serializer, default_serializer

TOMBSTONE = "TOMBSTONE"

_logger = get_logger(__name__)

T = TypeVar("T")


class SessionStoreAdapter:
    """Async, concurrency-safe access to sessions stored under ``prefix`` in Redis.

    The client must be a ``redis.asyncio.Redis`` created with
    ``decode_responses=True``. Redis errors propagate unchanged; "could not
    act because the session is absent or tombstoned" is reported as ``None``
    or ``False``.

    A client passed in stays owned by the caller and is never closed here;
    only a client built by :meth:`from_config` is closed by :meth:`close`.
    """

    def __init__(
        self,
        client: Any,
        *,
        prefix: str = "sessions:",
        scan_count: int = 100,
        ttl_seconds: int | None = 86400,
        concurrency_grace_seconds: int = 300,
        serializer: Serializer | None = None,
        clock: Clock | None = None,
        max_concurrent_batches: int | None = None,
        owns_client: bool = False,
    ) -> None:
        if client is None:
            raise ConfigurationError("A Redis client is required")
        pool = getattr(client, "connection_pool", None)
        connection_kwargs = getattr(pool, "connection_kwargs", None)
        if isinstance(connection_kwargs, dict) and not connection_kwargs.get(
            "decode_responses", False
        ):
            raise ConfigurationError(
                "The Redis client must be created with decode_responses=True"
            )
        if scan_count < 1:
            raise ConfigurationError(f"scan_count must be >= 1, got {scan_count}")
        if ttl_seconds is not None and ttl_seconds < 0:
            raise ConfigurationError(
                f"ttl_seconds must be >= 0 or None, got {ttl_seconds}"
            )
        if concurrency_grace_seconds < 1:
            raise ConfigurationError(
                "concurrency_grace_seconds must be >= 1, "
                f"got {concurrency_grace_seconds}"
            )
        if max_concurrent_batches is not None and max_concurrent_batches < 1:
            raise ConfigurationError(
                "max_concurrent_batches must be >= 1 or None, "
                f"got {max_concurrent_batches}"
            )

        self.client = client
        self._owns_client = owns_client
        self.prefix = prefix
        self.scan_count = scan_count
        self.ttl_seconds = ttl_seconds
        self.concurrency_grace_seconds = concurrency_grace_seconds
        self.serializer: Serializer = (
            serializer if serializer is not None else default_serializer
        )
        self._clock: Clock = clock if clock is not None else utc_now
        self._scripts = AtomicScripts(client, TOMBSTONE)
        self._scanner = KeyScanner(client, prefix, scan_count)
        self._batch_semaphore = (
            asyncio.Semaphore(max_concurrent_batches)
            if max_concurrent_batches is not None
            else None
        )

    @classmethod
    def from_config(
        cls,
        config: SessionStoreConfig,
        client: Any = None,
        *,
        serializer: Serializer | None = None,
        clock: Clock | None = None,
    ) -> SessionStoreAdapter:
        """Build an adapter from settings.

        Without ``client`` a new one is connected to ``config.redis_url`` and
        the adapter owns it, so :meth:`close` releases it.
        """
        owns_client = client is None
        if client is None:
            from redis.asyncio import Redis

            client = Redis.from_url(config.redis_url, decode_responses=True)
        return cls(
            client,
            prefix=config.prefix,
            scan_count=config.scan_count,
            ttl_seconds=config.ttl_seconds,
            concurrency_grace_seconds=config.concurrency_grace_seconds,
            serializer=serializer,
            clock=clock,
            max_concurrent_batches=config.max_concurrent_batches,
            owns_client=owns_client,
        )

    async def close(self) -> None:
        """Close the Redis client if this adapter created it; no-op otherwise."""
        if self._owns_client:
            await self.client.aclose()

    # ------------------------------------------------------------------
    # Keys and TTLs
    # ------------------------------------------------------------------

    def key(self, session_id: str) -> str:
        """Redis key for a session id."""
        return f"{self.prefix}{session_id}"

    def check_ttl_milliseconds(self, record: SessionRecord) -> int:
        """Milliseconds until ``record`` should expire.

        Uses the cookie deadline when present, otherwise ``ttl_seconds``. With
        the fallback disabled a session without a deadline gets ``0``, which
        callers treat as already expired.
        """
        expires = record.expires
        if expires is not None:
            return (expires - self._clock()) // timedelta(milliseconds=1)
        return (self.ttl_seconds or 0) * 1000

    # ------------------------------------------------------------------
    # Single-session operations
    # ------------------------------------------------------------------

    async def get(self, session_id: str) -> SessionRecord | None:
        """Return the stored session, or None if it is absent or tombstoned."""
        key = self.key(session_id)
        raw = await self.client.get(key)
        if not raw or raw == TOMBSTONE:
            return None
        return self._decode(key, raw)

    async def set(self, session_id: str, record: SessionRecord) -> SessionRecord | None:
        """Create or overwrite a session.

        Returns the stored copy (with ``last_modified`` stamped now), or None
        when the session is already expired (it is destroyed instead) or the
        key is tombstoned. The two cases are not distinguished.
        """
        ttl_milliseconds = self.check_ttl_milliseconds(record)
        if ttl_milliseconds <= 0:
            await self.destroy(session_id)
            writes_total.labels(result="expired").inc()
            return None

        stamped = record.model_copy(update={"last_modified": self._clock()})
        key = self.key(session_id)
        value = self.serializer.stringify(stamped)
        if value == TOMBSTONE:
            raise MalformedRecordError(
                "Serializer produced the reserved tombstone value"
            )

        if not await self._scripts.set(key, value, ttl_milliseconds):
            writes_total.labels(result="refused").inc()
            _logger.debug("Session write refused by tombstone", extra={"key": key})
            return None
        writes_total.labels(result="stored").inc()
        return stamped

    async def touch(
        self, session_id: str, ttl: float | SessionRecord
    ) -> datetime | None:
        """Renew a session's expiry.

        ``ttl`` is either a duration in seconds or a session whose deadline
        (or the fallback TTL) decides the new expiry. A non-positive result
        destroys the session. Returns the new expiry time, or None if the
        session expired, is absent or is tombstoned.
        """
        if isinstance(ttl, SessionRecord):
            ttl_milliseconds = self.check_ttl_milliseconds(ttl)
        else:
            ttl_milliseconds = int(ttl * 1000)

        if ttl_milliseconds <= 0:
            await self.destroy(session_id)
            touches_total.labels(result="expired").inc()
            return None

        key = self.key(session_id)
        if not await self._scripts.touch(key, ttl_milliseconds):
            touches_total.labels(result="refused").inc()
            _logger.debug("Session touch refused", extra={"key": key})
            return None
        touches_total.labels(result="renewed").inc()
        return self._clock() + timedelta(milliseconds=ttl_milliseconds)

    async def destroy(self, session_id: str, use_tombstone: bool = True) -> bool:
        """Destroy a session.

        With ``use_tombstone`` the value is replaced by a tombstone that lives
        for ``concurrency_grace_seconds`` and blocks concurrent writes; this
        always succeeds. Otherwise the key is deleted and the result says
        whether it existed.
        """
        key = self.key(session_id)
        if use_tombstone:
            result = await self.client.set(
                key, TOMBSTONE, ex=self.concurrency_grace_seconds
            )
            destroys_total.labels(mode="tombstone").inc()
            _logger.debug("Session tombstoned", extra={"key": key})
            return bool(result)

        deleted = await self.client.delete(key)
        destroys_total.labels(mode="delete").inc()
        _logger.debug("Session deleted", extra={"key": key, "existed": deleted == 1})
        return deleted == 1

    async def compare(
        self, session_id: str, candidate: SessionRecord
    ) -> SessionComparison:
        """Compare ``candidate`` with what is stored now.

        ``concurrent`` is set when another writer stamped the session after the
        candidate was read; ``consistent`` when the application fields match
        regardless of stamps and cookie. Both are False if nothing is stored.
        """
        existing = await self.get(session_id)
        if existing is None:
            return SessionComparison(existing=None, concurrent=False, consistent=False)
        return SessionComparison(
            existing=existing,
            concurrent=candidate.last_modified != existing.last_modified,
            consistent=deep_equal(
                candidate.application_fields(), existing.application_fields()
            ),
        )

    # ------------------------------------------------------------------
    # Bulk operations (non-atomic across batches)
    # ------------------------------------------------------------------

    @overload
    def generate_keys(self, batch: Literal[True] = ...) -> AsyncIterator[list[str]]: ...

    @overload
    def generate_keys(self, batch: Literal[False]) -> AsyncIterator[str]: ...

    def generate_keys(
        self, batch: bool = True
    ) -> AsyncIterator[list[str]] | AsyncIterator[str]:
        """Iterate over the namespace's keys, per SCAN batch or one key at a time."""
        if batch:
            return self._scanner.batches()
        return self._scanner.keys()

    async def clear(self, use_tombstones: bool = True) -> int:
        """Destroy every session; returns how many keys were tombstoned or deleted."""
        start = time.monotonic()

        async def tombstone_batch(keys: list[str]) -> int:
            async with self.client.pipeline(transaction=True) as pipe:
                for key in keys:
                    pipe.set(key, TOMBSTONE, ex=self.concurrency_grace_seconds)
                results = await pipe.execute()
            return sum(1 for result in results if result is not None)

        async def delete_batch(keys: list[str]) -> int:
            return int(await self.client.delete(*keys))

        counts = await self._map_batches(
            tombstone_batch if use_tombstones else delete_batch
        )
        total = sum(counts)
        bulk_duration_seconds.labels(operation="clear").observe(
            time.monotonic() - start
        )
        _logger.info(
            "Sessions cleared",
            extra={"prefix": self.prefix, "count": total, "tombstones": use_tombstones},
        )
        return total

    async def length(self, estimate: bool = False) -> int:
        """Count sessions.

        ``estimate`` only counts keys, so tombstones are included. Otherwise
        values are fetched per batch and tombstones excluded.
        """
        start = time.monotonic()
        if estimate:
            n = 0
            async for _key in self.generate_keys(False):
                n += 1
        else:

            async def count_batch(keys: list[str]) -> int:
                values = await self.client.mget(keys)
                return sum(1 for value in values if value and value != TOMBSTONE)

            n = sum(await self._map_batches(count_batch))
        bulk_duration_seconds.labels(operation="length").observe(
            time.monotonic() - start
        )
        return n

    async def all(self) -> dict[str, SessionRecord]:
        """Every live session keyed by id.

        A value that fails to decode aborts the call.
        """
        start = time.monotonic()

        async def decode_batch(keys: list[str]) -> dict[str, SessionRecord]:
            values = await self.client.mget(keys)
            sessions: dict[str, SessionRecord] = {}
            for key, value in zip(keys, values, strict=True):
                if not value or value == TOMBSTONE:
                    continue
                sessions[key[len(self.prefix) :]] = self._decode(key, value)
            return sessions

        merged: dict[str, SessionRecord] = {}
        for sessions in await self._map_batches(decode_batch):
            merged.update(sessions)
        bulk_duration_seconds.labels(operation="all").observe(time.monotonic() - start)
        return merged

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _decode(self, key: str, raw: str) -> SessionRecord:
        try:
            return self.serializer.parse(raw)
        except MalformedRecordError:
            decode_errors_total.inc()
            _logger.warning("Stored session could not be decoded", extra={"key": key})
            raise

    async def _bounded(
        self, fn: Callable[[list[str]], Awaitable[T]], keys: list[str]
    ) -> T:
        if self._batch_semaphore is None:
            return await fn(keys)
        async with self._batch_semaphore:
            return await fn(keys)

    async def _map_batches(self, fn: Callable[[list[str]], Awaitable[T]]) -> list[T]:
        """Run ``fn`` on each SCAN batch as soon as it arrives and gather the results.

        The first failure propagates; batches still in flight are cancelled.
        """
        tasks: list[asyncio.Task[T]] = []
        try:
            async for keys in self.generate_keys():
                tasks.append(asyncio.create_task(self._bounded(fn, keys)))
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
