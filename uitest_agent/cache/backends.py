import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

import redis.asyncio as aioredis

from uitest_agent.data import Instruction


class CacheBackend(ABC):
    """Storage strategy behind the decision cache.

    Implementations keep themselves consistent under concurrent calls; the
    orchestrators sharing a backend take no external lock.
    """

    name = "unknown"

    async def load(self) -> None:
        """Prepare the backend (read persisted state, open connections)."""

    async def close(self) -> None:
        """Flush and release resources."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Instruction]:
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, instruction: Instruction) -> None:
        raise NotImplementedError

    @abstractmethod
    async def invalidate(self, key: str) -> None:
        raise NotImplementedError


class InMemoryCacheBackend(CacheBackend):
    name = "memory"

    def __init__(self):
        self._entries: Dict[str, Instruction] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Instruction]:
        async with self._lock:
            return self._entries.get(key)

    async def put(self, key: str, instruction: Instruction) -> None:
        async with self._lock:
            self._entries[key] = instruction

    async def invalidate(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class FileCacheBackend(InMemoryCacheBackend):
    """In-process map mirrored to a single JSON document.

    The document is read wholesale on :meth:`load` and rewritten wholesale
    after every mutation and on :meth:`close`.
    """

    name = "file"

    def __init__(self, path: Union[str, Path] = "./cache/step_cache.json"):
        super().__init__()
        self.path = Path(path)

    async def load(self) -> None:
        async with self._lock:
            self._entries = await asyncio.to_thread(self._read)
        logging.info(f"Loaded {len(self._entries)} items from step cache {self.path}")

    async def put(self, key: str, instruction: Instruction) -> None:
        async with self._lock:
            self._entries[key] = instruction
            await self._flush_locked()

    async def invalidate(self, key: str) -> None:
        async with self._lock:
            if self._entries.pop(key, None) is not None:
                await self._flush_locked()

    async def close(self) -> None:
        async with self._lock:
            await self._flush_locked()

    async def _flush_locked(self) -> None:
        snapshot = {key: instruction.model_dump(mode="json") for key, instruction in self._entries.items()}
        try:
            await asyncio.to_thread(self._write, snapshot)
            logging.debug(f"Saved step cache to {self.path}")
        except OSError as e:
            logging.error(f"Failed to save step cache: {e}")

    def _read(self) -> Dict[str, Instruction]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"Failed to load step cache {self.path}: {e}")
            return {}
        if not isinstance(raw, dict):
            logging.warning(f"Step cache {self.path} is not a mapping, starting empty")
            return {}

        entries = {}
        for key, value in raw.items():
            try:
                entries[key] = Instruction.model_validate(value)
            except ValueError as e:
                logging.warning(f"Skipping unreadable cache entry {key}: {e}")
        return entries

    def _write(self, snapshot: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write next to the target and swap in, so readers never see a partial file.
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".step_cache", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class RedisCacheBackend(CacheBackend):
    """Networked backend; one Redis string per fingerprint."""

    name = "redis"

    def __init__(self, url: str = "redis://localhost:6379/0", key_prefix: str = "agent:step:", client=None):
        self.url = url
        self.key_prefix = key_prefix
        self._client = client

    async def load(self) -> None:
        if self._client is None:
            self._client = aioredis.from_url(self.url, decode_responses=True)
        await self._client.ping()
        logging.info(f"Connected to Redis step cache at {self.url}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, key: str) -> Optional[Instruction]:
        raw = await self._require_client().get(self.key_prefix + key)
        if raw is None:
            return None
        return Instruction.model_validate_json(raw)

    async def put(self, key: str, instruction: Instruction) -> None:
        await self._require_client().set(self.key_prefix + key, instruction.model_dump_json())

    async def invalidate(self, key: str) -> None:
        await self._require_client().delete(self.key_prefix + key)

    def _require_client(self):
        if self._client is None:
            raise RuntimeError("Redis cache backend not loaded")
        return self._client
