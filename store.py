"""
SKU-keyed product store.

Two implementations of one contract:
  - MemoryProductStore: explicit dict of SKU -> entry; transient entries expire
  - FileProductStore: memory store whose saved entries are mirrored to a single
    JSON array on disk, rewritten wholesale on every change

Records are copied on the way in and out, so callers never share containers
with the store. Read-modify-write sequences for one SKU run under that SKU's
lock; the snapshot swap (and file flush) runs under one store-scoped lock.
"""

import asyncio
import inspect
import logging
import os
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import orjson

import config
from errors import NotFound, StoreWriteFailure
from models import Product

logger = logging.getLogger(__name__)


class Retention(str, Enum):
    TRANSIENT = "transient"  # crawled, may be evicted
    SAVED = "saved"  # explicitly persisted, never evicted


@dataclass
class _Entry:
    product: Product
    retention: Retention
    expires_at: float | None = None


class ProductStore(ABC):
    @abstractmethod
    async def get(self, sku: str) -> Product:
        """Return a copy of the record, or raise NotFound."""

    @abstractmethod
    async def set(self, sku: str, product: Product, retention: Retention = Retention.TRANSIENT) -> Product:
        """Write a record (all-or-nothing) and return the stored copy."""

    @abstractmethod
    async def update(
        self,
        sku: str,
        mutate: Callable[[Product | None], Product | Awaitable[Product]],
        retention: Retention | None = None,
    ) -> Product:
        """Read, transform and write one record atomically with respect to other writers of sku.

        mutate may be a coroutine function; the key stays locked while it runs.
        """

    @abstractmethod
    async def list_by_prefix(self, prefix: str = "") -> list[Product]:
        """All live records whose SKU starts with prefix, in insertion order."""

    @abstractmethod
    async def remove(self, sku: str) -> None:
        """Delete a record, or raise NotFound."""

    @abstractmethod
    async def evict_expired(self, now: float | None = None) -> int:
        """Drop expired transient records; return how many were dropped."""


class MemoryProductStore(ProductStore):
    def __init__(
        self,
        transient_ttl: float = config.TRANSIENT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transient_ttl = transient_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_users: dict[str, int] = {}
        self._commit_lock = asyncio.Lock()

    # ----- contract -----

    async def get(self, sku: str) -> Product:
        entry = self._live_entry(sku)
        if entry is None:
            raise NotFound(sku)
        return entry.product.copy_product()

    async def set(self, sku: str, product: Product, retention: Retention = Retention.TRANSIENT) -> Product:
        async with self._key_lock(sku):
            return await self._write(sku, product, retention)

    async def update(
        self,
        sku: str,
        mutate: Callable[[Product | None], Product | Awaitable[Product]],
        retention: Retention | None = None,
    ) -> Product:
        async with self._key_lock(sku):
            entry = self._live_entry(sku)
            current = entry.product.copy_product() if entry else None
            updated = mutate(current)
            if inspect.isawaitable(updated):
                updated = await updated
            if retention is None:
                retention = entry.retention if entry else Retention.TRANSIENT
            return await self._write(sku, updated, retention)

    async def list_by_prefix(self, prefix: str = "") -> list[Product]:
        now = self._clock()
        return [
            e.product.copy_product()
            for sku, e in self._entries.items()
            if sku.startswith(prefix) and not _expired(e, now)
        ]

    async def remove(self, sku: str) -> None:
        async with self._key_lock(sku):
            if self._live_entry(sku) is None:
                raise NotFound(sku)
            async with self._commit_lock:
                entries = dict(self._entries)
                removed = entries.pop(sku)
                if removed.retention is Retention.SAVED:
                    await self._persist(entries)
                self._entries = entries
        logger.info(f"Removed {sku}")

    async def evict_expired(self, now: float | None = None) -> int:
        now = self._clock() if now is None else now
        async with self._commit_lock:
            expired = [sku for sku, e in self._entries.items() if _expired(e, now)]
            if expired:
                self._entries = {sku: e for sku, e in self._entries.items() if sku not in expired}
        for sku in expired:
            if sku not in self._key_users:
                self._key_locks.pop(sku, None)
        if expired:
            logger.info(f"Evicted {len(expired)} expired transient record(s)")
        return len(expired)

    # ----- internals -----

    @asynccontextmanager
    async def _key_lock(self, sku: str) -> AsyncIterator[None]:
        """Hold sku's lock. The lock is forgotten once no caller uses it and the record is gone."""
        lock = self._key_locks.setdefault(sku, asyncio.Lock())
        self._key_users[sku] = self._key_users.get(sku, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_users[sku] -= 1
            if not self._key_users[sku]:
                del self._key_users[sku]
                if sku not in self._entries:
                    self._key_locks.pop(sku, None)

    def _live_entry(self, sku: str) -> _Entry | None:
        entry = self._entries.get(sku)
        if entry is None or _expired(entry, self._clock()):
            return None
        return entry

    async def _write(self, sku: str, product: Product, retention: Retention) -> Product:
        if product.sku != sku:
            raise ValueError(f"Record SKU {product.sku!r} does not match key {sku!r}")

        existing = self._live_entry(sku)
        if retention is Retention.TRANSIENT and existing and existing.retention is Retention.SAVED:
            logger.debug(f"Keeping saved record {sku}; transient write ignored")
            return existing.product.copy_product()

        stored = product.copy_product()
        stored.is_saved = retention is Retention.SAVED
        expires_at = None if retention is Retention.SAVED else self._clock() + self.transient_ttl
        entry = _Entry(product=stored, retention=retention, expires_at=expires_at)

        async with self._commit_lock:
            entries = dict(self._entries)
            entries[sku] = entry
            if retention is Retention.SAVED:
                await self._persist(entries)
            self._entries = entries
        return stored.copy_product()

    async def _persist(self, entries: dict[str, _Entry]) -> None:
        """Hook for durable backends; raises StoreWriteFailure on error."""


class FileProductStore(MemoryProductStore):
    """Memory store whose saved records live in one JSON array file."""

    def __init__(
        self,
        path: Path | str = config.PRODUCTS_FILE,
        transient_ttl: float = config.TRANSIENT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(transient_ttl=transient_ttl, clock=clock)
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        raw = self.path.read_bytes()
        records: list[dict] = orjson.loads(raw) if raw.strip() else []
        for record in records:
            product = Product.model_validate(record)
            product.is_saved = True
            self._entries[product.sku] = _Entry(product=product, retention=Retention.SAVED)
        logger.info(f"Loaded {len(self._entries)} saved product(s) from {self.path}")

    async def _persist(self, entries: dict[str, _Entry]) -> None:
        saved = [
            e.product.model_dump(mode="json", by_alias=True)
            for e in entries.values()
            if e.retention is Retention.SAVED
        ]
        data = orjson.dumps(saved, option=orjson.OPT_INDENT_2)
        try:
            await asyncio.to_thread(self._write_file, data)
        except OSError as e:
            logger.error(f"Failed to write {self.path}: {e}")
            raise StoreWriteFailure(f"Could not write {self.path}: {e}") from e

    def _write_file(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, self.path)


def _expired(entry: _Entry, now: float) -> bool:
    return entry.expires_at is not None and entry.expires_at <= now


def create_store() -> ProductStore:
    """Store selected by STORE_BACKEND."""
    if config.STORE_BACKEND == "file":
        return FileProductStore(config.PRODUCTS_FILE)
    return MemoryProductStore()
