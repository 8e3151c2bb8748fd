from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Optional

from spirit_report import config
from spirit_report.models import AnalysisResult, CacheEntry, Location, Subject

logger = logging.getLogger("spirit_report")

SUBJECT_FIELDS = ("name", "email", "date_of_birth", "time_of_birth", "place_of_birth")
LOCATION_FIELDS = tuple(Location.model_fields)


def _canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def subject_fingerprint(subject: Subject) -> str:
    """SHA-256 of the subject's full structural value, nested location included."""
    return hashlib.sha256(_canonical_json(subject.model_dump(mode="json")).encode("utf-8")).hexdigest()


def fingerprint_equals(a: Optional[Subject], b: Optional[Subject]) -> bool:
    if a is None or b is None:
        return False
    for field in SUBJECT_FIELDS:
        if getattr(a, field) != getattr(b, field):
            return False
    loc_a, loc_b = a.location, b.location
    return all(getattr(loc_a, field) == getattr(loc_b, field) for field in LOCATION_FIELDS)


def lookup(current_subject: Optional[Subject], cached_entry: Optional[CacheEntry]) -> Optional[AnalysisResult]:
    if cached_entry is None:
        return None
    if fingerprint_equals(current_subject, cached_entry.subject):
        return cached_entry.result
    return None


class SingleSlotStore:
    """One-slot store: the most recent write replaces whatever was there."""

    def __init__(self):
        self._slot: Optional[tuple[str, Any]] = None
        self._lock = threading.RLock()

    def get(self, key: str):
        with self._lock:
            if self._slot is None or self._slot[0] != key:
                return None
            return self._slot[1]

    def set(self, key: str, value, ttl: int = None):
        with self._lock:
            self._slot = (key, value)

    def delete(self, key: str) -> None:
        with self._lock:
            if self._slot is not None and self._slot[0] == key:
                self._slot = None

    def clear(self):
        with self._lock:
            self._slot = None

    def __len__(self) -> int:
        with self._lock:
            return 0 if self._slot is None else 1


class CacheManager:
    """LRU store of `CacheEntry` values keyed by subject fingerprint.

    Backs `AnalysisCache` in `keyed` mode, so several people's analyses stay
    warm at once. Entries past `max_items` (default `CACHE_MAX_ITEMS`) are
    evicted least recently used first; a positive `ttl` on `set` expires
    an entry.
    """

    def __init__(self, max_items: int | None = None):
        self._max_items = max(1, max_items if max_items is not None else config.CACHE_MAX_ITEMS)
        self._store: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()
        self._lock = threading.RLock()

    def _now(self) -> float:
        return time.time()

    def _prune_expired_unlocked(self) -> None:
        now = self._now()
        expired_keys = [
            key
            for key, (_value, expires_at) in self._store.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired_keys:
            self._store.pop(key, None)

    def _enforce_max_items_unlocked(self) -> None:
        while len(self._store) > self._max_items:
            self._store.popitem(last=False)

    def get(self, key: str):
        with self._lock:
            self._prune_expired_unlocked()
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= self._now():
                self._store.pop(key, None)
                return None
            self._store.move_to_end(key)
            return value

    def set(self, key: str, value, ttl: int = None):
        expires_at: float | None = None
        if ttl is not None:
            try:
                ttl_int = int(ttl)
            except (TypeError, ValueError):
                ttl_int = 0
            if ttl_int > 0:
                expires_at = self._now() + float(ttl_int)
        with self._lock:
            self._prune_expired_unlocked()
            self._store[key] = (value, expires_at)
            self._store.move_to_end(key)
            self._enforce_max_items_unlocked()

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self):
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            self._prune_expired_unlocked()
            return len(self._store)


class AnalysisCache:
    """Fingerprint-keyed analysis cache over a pluggable store."""

    def __init__(self, store=None, ttl: int | None = None):
        self._store = store if store is not None else CacheManager()
        self._ttl = ttl

    def lookup(self, subject: Subject) -> Optional[AnalysisResult]:
        key = subject_fingerprint(subject)
        entry = self._store.get(key)
        if not isinstance(entry, CacheEntry):
            return None
        result = lookup(subject, entry)
        if result is None:
            # Hash collision or foreign write under our key.
            logger.warning("Cache entry rejected on structural mismatch fingerprint=%s", key[:12])
        return result

    def store(self, subject: Subject, result: AnalysisResult) -> None:
        key = subject_fingerprint(subject)
        self._store.set(key, CacheEntry(subject=subject, result=result), ttl=self._ttl)

    def forget(self, subject: Subject) -> None:
        self._store.delete(subject_fingerprint(subject))

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def __bool__(self) -> bool:
        # An empty cache is still a configured cache.
        return True
