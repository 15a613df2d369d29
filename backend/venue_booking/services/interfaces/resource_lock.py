"""
Resource lock strategy interface.
Allows swapping between in-process and distributed locking for the
confirm critical section.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Iterable


class ResourceLockStrategy(ABC):
    """
    Interface for holding exclusive locks on a set of resource keys.

    Implementations:
    - LocalResourceLock: asyncio locks, single process
    - RedisResourceLock: Redis locks shared by every worker
    """

    @abstractmethod
    def hold(self, keys: Iterable[str]) -> AbstractAsyncContextManager[None]:
        """
        Hold every key for the duration of the `async with` block.

        Keys are acquired in sorted order so two holders with overlapping key
        sets cannot deadlock. Raises ResourceBusy if the locks cannot be
        acquired in time.
        """

    async def close(self) -> None:
        """Release any connections held by the strategy."""
