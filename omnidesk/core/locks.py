"""Per-key asyncio locks."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass


class LockTimeoutError(TimeoutError):
    """A keyed lock could not be taken in time."""

    def __init__(self, name: str, key: str, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout}s waiting for {name} lock {key!r}")
        self.name = name
        self.key = key
        self.timeout = timeout


@dataclass
class _Entry:
    lock: asyncio.Lock
    waiters: int = 0


class KeyedLock:
    """A family of asyncio locks addressed by key.

    Holders of different keys never block each other. Entries are dropped as
    soon as nobody holds or waits on them, so the map stays bounded by the
    number of keys currently in use.
    """

    def __init__(self, name: str = "keyed", timeout: float | None = None) -> None:
        self.name = name
        self.timeout = timeout
        self._entries: dict[str, _Entry] = {}

    def locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def acquire(self, key: str, timeout: float | None = None) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: If the lock could not be taken within ``timeout``
                (falls back to the instance default; ``None`` waits forever).
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry(lock=asyncio.Lock())
        entry.waiters += 1

        wait_for = timeout if timeout is not None else self.timeout
        try:
            if wait_for is None:
                await entry.lock.acquire()
            else:
                await asyncio.wait_for(entry.lock.acquire(), timeout=wait_for)
        except TimeoutError as e:
            self._release_entry(key, entry)
            raise LockTimeoutError(self.name, key, wait_for) from e
        except BaseException:
            self._release_entry(key, entry)
            raise

        try:
            yield
        finally:
            entry.lock.release()
            self._release_entry(key, entry)

    def _release_entry(self, key: str, entry: _Entry) -> None:
        entry.waiters -= 1
        if entry.waiters == 0 and self._entries.get(key) is entry:
            del self._entries[key]
