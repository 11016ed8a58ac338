"""TTL-bounded extraction cache keyed by (account number, bank name).

The whole cache lives in one JSON blob in a ``KeyValueStore``. Expiry is
lazy: every load drops expired entries and writes the pruned blob back.
The blob is bounded: past ``max_entries`` the least recently accessed fifth
is evicted. Store failures degrade to cache misses.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError

from .contracts import ExtractedBankData
from .errors import CacheIOError
from .stores import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STORE_KEY = "scanned_bank_data_cache"
DEFAULT_TTL = timedelta(days=30)
DEFAULT_SIMILARITY_THRESHOLD = 0.85
DEFAULT_MIN_CONFIDENCE = 80
DEFAULT_MAX_ENTRIES = 500
EVICTION_FRACTION = 0.2
TOP_BANKS_IN_STATS = 5

_WHITESPACE_RE = re.compile(r"\s+")


def _normalize(value: str) -> str:
    return _WHITESPACE_RE.sub("", value or "").lower()


def cache_key(account_number: str, bank_name: str) -> str:
    return f"{_normalize(account_number)}_{_normalize(bank_name)}"


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """``(max_len - distance) / max_len``; two empty strings are identical."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - levenshtein_distance(a, b)) / max_len


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: ExtractedBankData
    created_at: datetime
    expires_at: datetime
    access_count: int = 1
    last_accessed: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def recency(self) -> datetime:
        return self.last_accessed or self.created_at

    def touched(self, now: datetime) -> CacheEntry:
        return replace(self, access_count=self.access_count + 1, last_accessed=now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data.model_dump(mode="json"),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "access_count": self.access_count,
            "last_accessed": self.recency.isoformat(),
        }

    @classmethod
    def from_dict(cls, key: str, raw: dict[str, Any]) -> CacheEntry:
        created_at = datetime.fromisoformat(raw["created_at"])
        last_accessed = raw.get("last_accessed")
        return cls(
            key=key,
            data=ExtractedBankData.model_validate(raw["data"]),
            created_at=created_at,
            expires_at=datetime.fromisoformat(raw["expires_at"]),
            access_count=int(raw.get("access_count", 1)),
            last_accessed=datetime.fromisoformat(last_accessed) if last_accessed else created_at,
        )


class ExtractionCache:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl: timedelta = DEFAULT_TTL,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        min_confidence: int = DEFAULT_MIN_CONFIDENCE,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        store_key: str = DEFAULT_STORE_KEY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._store = store
        self._ttl = ttl
        self._similarity_threshold = similarity_threshold
        self._min_confidence = min_confidence
        self._max_entries = max_entries
        self._store_key = store_key
        self._clock = clock or _utcnow
        # Serializes load-modify-save so concurrent writers end last-writer-wins.
        self._lock = asyncio.Lock()
        self._requests = 0
        self._hits = 0

    def can_cache(self, data: ExtractedBankData, *, confirmed: bool = False) -> bool:
        """Both keys present, and confident enough unless a user confirmed it."""
        if not (data.account_number and data.bank_name):
            return False
        return confirmed or data.confidence >= self._min_confidence

    async def get(self, account_number: str, bank_name: str) -> ExtractedBankData | None:
        if not account_number or not bank_name:
            return None
        key = cache_key(account_number, bank_name)
        async with self._lock:
            self._requests += 1
            entries = await self._load_or_empty()
            data = self._lookup(entries, key)
            if data is None:
                return None
            self._hits += 1
            entries[key] = entries[key].touched(self._clock())
            try:
                await self._save(entries)
            except CacheIOError as exc:
                logger.warning("Cache access stats not saved: %s", exc)
        return data

    async def put(self, data: ExtractedBankData, *, confirmed: bool = False) -> None:
        """Store *data*; unconfirmed results below ``min_confidence`` are skipped."""
        if not self.can_cache(data, confirmed=confirmed):
            logger.debug(
                "Skipping cache write (confidence=%d, bank=%r, account set=%s)",
                data.confidence,
                data.bank_name,
                bool(data.account_number),
            )
            return

        key = cache_key(data.account_number, data.bank_name)
        now = self._clock()
        async with self._lock:
            try:
                entries = await self._load()
                entries[key] = CacheEntry(
                    key=key,
                    data=data,
                    created_at=now,
                    expires_at=now + self._ttl,
                    last_accessed=now,
                )
                self._evict(entries)
                await self._save(entries)
            except CacheIOError as exc:
                logger.warning("Cache write skipped: %s", exc)
                return
        logger.debug("Cached extraction under %s", key)

    async def find_similar(self, data: ExtractedBankData) -> ExtractedBankData | None:
        """Exact key first, then the first entry with a near-identical account number."""
        async with self._lock:
            entries = await self._load_or_empty()

        if data.account_number and data.bank_name:
            exact = self._lookup(entries, cache_key(data.account_number, data.bank_name))
            if exact is not None:
                return exact

        query = _normalize(data.account_number)
        if not query:
            return None

        now = self._clock()
        for entry in entries.values():
            if entry.is_expired(now) or not entry.data.account_number:
                continue
            similarity = string_similarity(query, _normalize(entry.data.account_number))
            if similarity >= self._similarity_threshold:
                logger.info("Similar cache entry found (%.0f%% similarity)", similarity * 100)
                return entry.data
        return None

    async def invalidate(self, account_number: str, bank_name: str) -> bool:
        key = cache_key(account_number, bank_name)
        async with self._lock:
            try:
                entries = await self._load()
                if key not in entries:
                    return False
                del entries[key]
                await self._save(entries)
            except CacheIOError as exc:
                logger.warning("Cache invalidation skipped: %s", exc)
                return False
        return True

    async def clear(self) -> None:
        async with self._lock:
            try:
                await self._store.delete(self._store_key)
            except CacheIOError as exc:
                logger.warning("Cache clear failed: %s", exc)

    async def stats(self) -> dict[str, Any]:
        """Entry counts and ages, plus the hit rate (percent) of this process's lookups."""
        async with self._lock:
            entries = await self._load_or_empty()
            hit_rate = self._hits / self._requests * 100 if self._requests else 0.0
        if not entries:
            return {
                "total_entries": 0,
                "hit_rate": hit_rate,
                "average_confidence": 0.0,
                "most_accessed_banks": [],
                "oldest_entry": None,
                "newest_entry": None,
            }

        bank_access: Counter[str] = Counter()
        for entry in entries.values():
            bank_access[entry.data.bank_name] += entry.access_count
        created = [e.created_at for e in entries.values()]
        return {
            "total_entries": len(entries),
            "hit_rate": hit_rate,
            "average_confidence": sum(e.data.confidence for e in entries.values()) / len(entries),
            "most_accessed_banks": [name for name, _ in bank_access.most_common(TOP_BANKS_IN_STATS)],
            "oldest_entry": min(created),
            "newest_entry": max(created),
        }

    # ------------------------------------------------------------------

    def _lookup(self, entries: dict[str, CacheEntry], key: str) -> ExtractedBankData | None:
        entry = entries.get(key)
        if entry is None:
            return None
        # Re-check: the clock may have moved between load and use.
        if entry.is_expired(self._clock()):
            return None
        return entry.data

    def _evict(self, entries: dict[str, CacheEntry]) -> None:
        excess = len(entries) - self._max_entries
        if excess <= 0:
            return
        count = max(excess, math.floor(len(entries) * EVICTION_FRACTION))
        oldest = sorted(entries.values(), key=lambda e: e.recency)[:count]
        for entry in oldest:
            del entries[entry.key]
        logger.info("Evicted %d least recently used cache entries (%d left)", count, len(entries))

    async def _load_or_empty(self) -> dict[str, CacheEntry]:
        try:
            return await self._load()
        except CacheIOError as exc:
            logger.warning("Cache read failed, treating as miss: %s", exc)
            return {}

    async def _load(self) -> dict[str, CacheEntry]:
        raw = await self._call_store(self._store.get(self._store_key))
        if not raw:
            return {}

        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cache blob under %s", self._store_key)
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        now = self._clock()
        entries: dict[str, CacheEntry] = {}
        dropped = 0
        for key, item in payload.items():
            try:
                entry = CacheEntry.from_dict(key, item)
            except (KeyError, TypeError, ValueError, ValidationError):
                dropped += 1
                continue
            if entry.is_expired(now):
                dropped += 1
                continue
            entries[key] = entry

        if dropped or len(entries) != len(payload):
            logger.info("Pruned %d expired or unreadable cache entries", dropped)
            try:
                await self._save(entries)
            except CacheIOError as exc:
                logger.warning("Pruned cache not written back: %s", exc)
        return entries

    async def _save(self, entries: dict[str, CacheEntry]) -> None:
        blob = json.dumps({key: entry.to_dict() for key, entry in entries.items()})
        await self._call_store(self._store.set(self._store_key, blob))

    @staticmethod
    async def _call_store(awaitable):
        try:
            return await awaitable
        except CacheIOError:
            raise
        except (OSError, RuntimeError) as exc:
            raise CacheIOError(f"key-value store unavailable: {exc}") from exc
