import asyncio
import logging
from typing import Optional

from uitest_agent.cache.backends import CacheBackend
from uitest_agent.data import Instruction


class DecisionCache:
    """Memoized oracle decisions keyed by step fingerprint.

    One instance is created at startup, shared by reference between all
    orchestrators, and closed at shutdown. The first lookup or write starts
    the cache if ``start`` was never awaited, so persisted entries are always
    loaded before anything is written back. Backend failures never reach the
    caller: a failed ``get`` is a miss, a failed ``put``/``invalidate`` is
    logged and skipped.
    """

    def __init__(self, backend: CacheBackend):
        self.backend = backend
        self._started = False
        self._start_lock = asyncio.Lock()

    async def start(self) -> "DecisionCache":
        async with self._start_lock:
            if not self._started:
                await self.backend.load()
                self._started = True
        return self

    async def _ensure_started(self) -> bool:
        if self._started:
            return True
        try:
            await self.start()
        except Exception as e:
            logging.error(f"Could not start step cache ({self.backend.name}): {e}")
            return False
        return True

    async def close(self) -> None:
        if self._started:
            try:
                await self.backend.close()
            finally:
                self._started = False

    async def __aenter__(self):
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def get(self, key: Optional[str]) -> Optional[Instruction]:
        if key is None:
            return None
        if not await self._ensure_started():
            return None
        try:
            instruction = await self.backend.get(key)
        except Exception as e:
            logging.error(f"Step cache lookup failed ({self.backend.name}), treating as miss: {e}")
            return None
        if instruction is None:
            logging.debug(f"Cache MISS for key {key[:12]}")
        else:
            logging.debug(f"Cache HIT for key {key[:12]}")
        return instruction

    async def put(self, key: Optional[str], instruction: Instruction) -> None:
        if key is None:
            return
        if not await self._ensure_started():
            return
        try:
            await self.backend.put(key, instruction)
        except Exception as e:
            logging.error(f"Failed to store step cache entry ({self.backend.name}): {e}")

    async def invalidate(self, key: Optional[str]) -> None:
        if key is None:
            return
        if not await self._ensure_started():
            return
        try:
            await self.backend.invalidate(key)
            logging.info(f"Invalidated cached instruction {key[:12]}")
        except Exception as e:
            logging.error(f"Failed to invalidate step cache entry ({self.backend.name}): {e}")
