"""Cursor-based SCAN over every key in a namespace."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator
from typing import Any

from session_store.metrics import scan_batches_total

# Characters with a special meaning in Redis MATCH patterns.
_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def match_pattern(prefix: str) -> str:
    """SCAN MATCH pattern for every key starting with ``prefix`` literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"


class KeyScanner:
    """Enumerates keys under ``prefix`` in batches of roughly ``scan_count``.

    Each iteration starts a fresh SCAN from cursor 0 and ends when Redis hands
    back cursor 0. Keys may repeat if they change mid-scan; empty batches are
    never yielded.
    """

    def __init__(self, client: Any, prefix: str, scan_count: int = 100) -> None:
        self._client = client
        self._prefix = prefix
        self._match = match_pattern(prefix)
        self._scan_count = scan_count

    async def batches(self) -> AsyncIterator[list[str]]:
        cursor = 0
        while True:
            cursor, keys = await self._client.scan(
                cursor,
                match=self._match,
                count=self._scan_count,
                _type="string",
            )
            # MATCH is escaped, but never hand out a key outside the namespace
            keys = [key for key in keys if key.startswith(self._prefix)]
            if keys:
                scan_batches_total.inc()
                yield keys
            if int(cursor) == 0:
                return

    async def keys(self) -> AsyncIterator[str]:
        async for batch in self.batches():
            for key in batch:
                yield key
