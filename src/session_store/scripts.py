"""Server-side Lua scripts that make check-then-write a single atomic step.

Both scripts take the session key as KEYS[1] and the tombstone sentinel as
their last argument, so the sentinel is defined in one place (Python).
A nil reply means the script refused to act.
"""

from __future__ import annotations

from typing import Any

from redis.exceptions import NoScriptError

# KEYS[1] = session key; ARGV = value, ttl_ms, tombstone.
# Refuse if the key holds a tombstone, else SET with a millisecond expiry.
SET_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if value == ARGV[3] then
  return nil
end
return redis.call('SET', KEYS[1], ARGV[1], 'PX', ARGV[2])
"""

# KEYS[1] = session key; ARGV = ttl_ms, tombstone.
# Refuse if the key is absent or holds a tombstone, else renew its expiry.
TOUCH_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if value == false or value == ARGV[2] then
  return nil
end
return redis.call('PEXPIRE', KEYS[1], ARGV[1])
"""


class AtomicScripts:
    """Loads the scripts into Redis once and runs them with EVALSHA."""

    def __init__(self, client: Any, tombstone: str) -> None:
        self._client = client
        self._tombstone = tombstone
        self._shas: dict[str, str] = {}

    async def _ensure_script(self, name: str, source: str) -> str:
        sha = self._shas.get(name)
        if sha is None:
            sha = await self._client.script_load(source)
            self._shas[name] = sha
        return sha

    async def _run(self, name: str, source: str, key: str, *args: str) -> Any:
        sha = await self._ensure_script(name, source)
        try:
            return await self._client.evalsha(sha, 1, key, *args)
        except NoScriptError:
            # Script cache was flushed (SCRIPT FLUSH, restart, failover): reload once.
            self._shas.pop(name, None)
            sha = await self._ensure_script(name, source)
            return await self._client.evalsha(sha, 1, key, *args)

    async def set(self, key: str, value: str, ttl_milliseconds: int) -> bool:
        """Write ``value`` with a PX expiry unless the key is tombstoned."""
        result = await self._run(
            "set", SET_SCRIPT, key, value, str(ttl_milliseconds), self._tombstone
        )
        return result is not None

    async def touch(self, key: str, ttl_milliseconds: int) -> bool:
        """Renew the key's expiry unless it is absent or tombstoned."""
        result = await self._run(
            "touch", TOUCH_SCRIPT, key, str(ttl_milliseconds), self._tombstone
        )
        return result is not None
