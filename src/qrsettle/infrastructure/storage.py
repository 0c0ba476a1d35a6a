"""Storage abstractions and Redis implementation for repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional

import redis.asyncio as redis
from redis.exceptions import NoScriptError, RedisError

from ..domain.errors import PersistenceError
from .database import DatabaseClient


class KeyValueStore(ABC):
    """Abstract key-value store with minimal operations used by repositories."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        pass

    @abstractmethod
    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        pass

    @abstractmethod
    async def zrangebyscore(
        self, key: str, min_score: float, max_score: float, *, limit: int
    ) -> list[str]:
        pass

    @abstractmethod
    async def register_script(self, name: str, script: str) -> str:
        """Load a Lua script and remember it under `name`."""
        pass

    @abstractmethod
    async def run_script(self, name: str, keys: List[str], args: List[str]) -> Any:
        """Execute a registered script atomically."""
        pass


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed implementation of KeyValueStore.

    Redis failures surface as PersistenceError so callers never mistake a
    lost write for a stored one.
    """

    def __init__(self, db_client: DatabaseClient):
        self._db_client = db_client
        self._script_shas: dict[str, str] = {}
        self._script_sources: dict[str, str] = {}

    @asynccontextmanager
    async def _connection(self) -> AsyncGenerator[redis.Redis, None]:
        try:
            async with self._db_client.get_connection() as conn:
                yield conn
        except NoScriptError:
            raise
        except RedisError as e:
            raise PersistenceError(f"Storage operation failed: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        async with self._connection() as conn:
            return await conn.get(key)

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        if not keys:
            return []
        async with self._connection() as conn:
            return await conn.mget(keys)

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        async with self._connection() as conn:
            return await conn.zrevrange(key, start, end)

    async def zrangebyscore(
        self, key: str, min_score: float, max_score: float, *, limit: int
    ) -> list[str]:
        async with self._connection() as conn:
            return await conn.zrangebyscore(
                key, min_score, max_score, start=0, num=limit
            )

    async def register_script(self, name: str, script: str) -> str:
        async with self._connection() as conn:
            sha = await conn.script_load(script)
        self._script_shas[name] = sha
        self._script_sources[name] = script
        return sha

    async def run_script(self, name: str, keys: List[str], args: List[str]) -> Any:
        if name not in self._script_sources:
            raise ValueError(f"Script '{name}' not registered")
        sha = self._script_shas[name]
        try:
            async with self._connection() as conn:
                return await conn.evalsha(sha, len(keys), *keys, *args)
        except NoScriptError:
            # Script cache was flushed (e.g. Redis restart); reload and retry once.
            sha = await self.register_script(name, self._script_sources[name])
            async with self._connection() as conn:
                return await conn.evalsha(sha, len(keys), *keys, *args)
