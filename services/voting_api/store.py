"""Key-value store adapters backing the topics and votes maps."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Dict, Iterable, Optional, Tuple, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Write = Tuple[str, str, str]

# KEYS[1] hash; ARGV: field, has-expected flag, expected value, new value.
# HGET of an absent field yields false, which never equals a string.
COMPARE_AND_SET_FIELD = """
local current = redis.call("HGET", KEYS[1], ARGV[1])
if ARGV[2] == "0" then
    if current then
        return 0
    end
elseif current ~= ARGV[3] then
    return 0
end
redis.call("HSET", KEYS[1], ARGV[1], ARGV[4])
return 1
"""


class StoreAdapter(ABC):
    """
    Field-level access to named hash maps in a key-value store.

    Every call may suspend on I/O and is bounded by ``timeout`` seconds.
    Store errors and timeouts surface as StoreUnavailable; nothing is retried
    here.
    """

    #: True when set_many applies its writes all-or-nothing.
    atomic_batches = False

    def __init__(self, timeout: float = 2.0):
        self.timeout = timeout

    async def connect(self) -> None:
        """Acquire connections. No-op for stores without any."""

    async def close(self) -> None:
        """Release connections acquired by connect()."""

    @abstractmethod
    async def get(self, map_name: str, key: str) -> Optional[str]:
        """Return the field value, or None when absent."""

    @abstractmethod
    async def set(self, map_name: str, key: str, value: str) -> None:
        """Write a field value."""

    @abstractmethod
    async def compare_and_set(
        self, map_name: str, key: str, expected: Optional[str], value: str
    ) -> bool:
        """
        Write ``value`` only if the field still holds ``expected``.

        Args:
            expected: Value previously read, None meaning the field was absent

        Returns:
            True if written, False if another writer changed the field first
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Check the store answers."""

    async def set_many(self, writes: Iterable[Write]) -> None:
        """
        Apply several (map, key, value) writes in order.

        Not atomic: a failure part way leaves the earlier writes in place.
        Adapters whose store offers transactions override this and set
        ``atomic_batches``; MemoryStore(atomic_batches=False) keeps it.
        """
        for map_name, key, value in writes:
            await self.set(map_name, key, value)

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Run one store call under the timeout, mapping failures."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Store {operation} timed out after {self.timeout}s")
            raise StoreUnavailable(f"store {operation} timed out", operation=operation)
        except RedisError as e:
            logger.error(f"Store {operation} failed: {e}")
            raise StoreUnavailable(f"store {operation} failed: {e}", operation=operation) from e


class RedisStore(StoreAdapter):
    """Redis hashes as maps: one hash per map, one field per topic."""

    atomic_batches = True

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        timeout: float = 2.0,
        max_connections: int = 50,
        client: Optional[redis.Redis] = None,
    ):
        super().__init__(timeout=timeout)
        self.url = url
        self.max_connections = max_connections
        self.client: Optional[redis.Redis] = client
        self._cas_script = None
        self._cas_client: Optional[redis.Redis] = None

    @classmethod
    def from_settings(cls, settings) -> 'RedisStore':
        """Build an unconnected store from application settings."""
        return cls(
            url=settings.redis_url,
            timeout=settings.STORE_TIMEOUT_SECONDS,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )

    async def connect(self) -> None:
        """Create the connection pool and verify the server answers."""
        if self.client is None:
            self.client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self.max_connections,
                socket_connect_timeout=self.timeout,
                socket_timeout=self.timeout,
                health_check_interval=30,
            )
        await self._call("ping", self.client.ping())
        logger.info("Redis connection established")

    async def close(self) -> None:
        if self.client is None:
            return
        try:
            await self.client.aclose()
            logger.info("Redis connection pool closed")
        except RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            self.client = None

    def _require_client(self) -> redis.Redis:
        if self.client is None:
            raise StoreUnavailable("store is not connected")
        return self.client

    async def get(self, map_name: str, key: str) -> Optional[str]:
        client = self._require_client()
        return await self._call("get", client.hget(map_name, key))

    async def set(self, map_name: str, key: str, value: str) -> None:
        client = self._require_client()
        await self._call("set", client.hset(map_name, key, value))

    async def set_many(self, writes: Iterable[Write]) -> None:
        """Apply all writes inside one MULTI/EXEC transaction."""
        client = self._require_client()

        async def _transaction():
            async with client.pipeline(transaction=True) as pipe:
                for map_name, key, value in writes:
                    pipe.hset(map_name, key, value)
                await pipe.execute()

        await self._call("set_many", _transaction())

    async def compare_and_set(
        self, map_name: str, key: str, expected: Optional[str], value: str
    ) -> bool:
        """Compare and write one field server-side in a single Lua call."""
        client = self._require_client()
        if self._cas_script is None or self._cas_client is not client:
            self._cas_script = client.register_script(COMPARE_AND_SET_FIELD)
            self._cas_client = client
        if expected is None:
            args = [key, "0", "", value]
        else:
            args = [key, "1", expected, value]
        written = await self._call(
            "compare_and_set", self._cas_script(keys=[map_name], args=args)
        )
        return bool(written)

    async def ping(self) -> bool:
        client = self._require_client()
        return bool(await self._call("ping", client.ping()))


class MemoryStore(StoreAdapter):
    """
    In-process dict store for tests and local runs.

    Each method reads and writes without suspending in between, so every
    single call is atomic on one event loop. With ``atomic_batches=False``
    set_many falls back to the sequential base behaviour, one ``set`` per
    write, as a store without transactions would.
    """

    def __init__(self, timeout: float = 2.0, atomic_batches: bool = True):
        super().__init__(timeout=timeout)
        self.atomic_batches = atomic_batches
        self.maps: Dict[str, Dict[str, str]] = {}

    async def get(self, map_name: str, key: str) -> Optional[str]:
        return self.maps.get(map_name, {}).get(key)

    async def set(self, map_name: str, key: str, value: str) -> None:
        self.maps.setdefault(map_name, {})[key] = value

    async def set_many(self, writes: Iterable[Write]) -> None:
        if not self.atomic_batches:
            await super().set_many(writes)
            return
        for map_name, key, value in writes:
            self.maps.setdefault(map_name, {})[key] = value

    async def compare_and_set(
        self, map_name: str, key: str, expected: Optional[str], value: str
    ) -> bool:
        if self.maps.get(map_name, {}).get(key) != expected:
            return False
        self.maps.setdefault(map_name, {})[key] = value
        return True

    async def ping(self) -> bool:
        return True
