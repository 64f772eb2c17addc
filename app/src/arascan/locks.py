import asyncio
from abc import ABC, abstractmethod
from typing import Self


class Lock(ABC):
    """
    An abstract base class for block ingestion locks.

    The idea of a lock is to mark a 'key' (a block number) as locked while a
    block is being ingested and unlocked once ingestion completes. Locks are
    advisory: they do not guard the record store, they only serialize
    cooperating ingesters running in the same process.

    Args:
        key: The key to lock.
    """

    def __init__(self, key: str) -> None:
        self._key = key
        self._acquired = False

    async def __aenter__(self) -> Self:
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @abstractmethod
    async def _acquire(self, timeout: float | None) -> None:
        pass

    @abstractmethod
    def _release(self) -> None:
        pass

    async def acquire(self, timeout: float | None = 10.0) -> None:
        """
        Acquire the lock.
        Args:
            timeout: Timeout in seconds. Defaults to 10 seconds, None waits forever.

        Raises:
            TimeoutError: If timeout is exceeded.
            RuntimeError: If a lock is already acquired.

        """
        if self._acquired:
            raise RuntimeError("Lock already acquired.")
        await self._acquire(timeout)
        self._acquired = True

    def release(self) -> None:
        """
        Release the lock.
        """

        if not self._acquired:
            return
        self._release()
        self._acquired = False


class BlockLockRegistry:
    """
    Hands out per-key asyncio locks. Entries are dropped once nobody holds or
    waits for them, so the registry only grows with the number of blocks in flight.
    """

    def __init__(self, timeout: float | None = 60.0) -> None:
        self.timeout = timeout
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def __call__(self, key: str) -> "KeyedLock":
        return KeyedLock(key, self)

    def _checkout(self, key: str) -> asyncio.Lock:
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        return lock

    def _checkin(self, key: str) -> None:
        lock, users = self._locks[key]
        if users <= 1:
            del self._locks[key]
        else:
            self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)


class KeyedLock(Lock):
    """Lock on one key of a `BlockLockRegistry`."""

    def __init__(self, key: str, registry: BlockLockRegistry) -> None:
        super().__init__(key)
        self._registry = registry
        self._lock: asyncio.Lock | None = None

    async def __aenter__(self) -> Self:
        await self.acquire(self._registry.timeout)
        return self

    async def _acquire(self, timeout: float | None) -> None:
        lock = self._registry._checkout(self._key)
        try:
            await asyncio.wait_for(lock.acquire(), timeout)
        except TimeoutError:
            self._registry._checkin(self._key)
            raise TimeoutError(f"Could not acquire lock for '{self._key}' within {timeout}s") from None
        except BaseException:
            self._registry._checkin(self._key)
            raise
        self._lock = lock

    def _release(self) -> None:
        if self._lock is None:
            raise RuntimeError("Lock not acquired.")  # this should never happen, but in case we'll see the error

        self._lock.release()
        self._lock = None
        self._registry._checkin(self._key)
