from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from ..directory.models import Group

logger = logging.getLogger(__name__)

# Loader contract: (directory answered, group or None).
Loader = Callable[[], Tuple[bool, Optional[Group]]]


class _LRU:
    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self._store: "OrderedDict[str, Any]" = OrderedDict()

    def get(self, key: str) -> Any:
        if key not in self._store:
            return None
        self._store.move_to_end(key)
        return self._store[key]

    def put(self, key: str, value: Any) -> None:
        self._store[key] = value
        self._store.move_to_end(key)
        while len(self._store) > self.max_size:
            self._store.popitem(last=False)

    def pop(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store


class GroupCache:
    """Positive/negative group cache of one provider.

    Keys are ``{provider}k{group key}`` and ``{provider}n{site}_{name}``.
    A positive write clears the negative markers of both keys.
    """

    def __init__(
        self,
        provider_key: str,
        max_entries: int = 5000,
        reserved_names: Iterable[str] = ("administrators", "guest", "users"),
    ) -> None:
        self.provider_key = provider_key
        self.reserved_names = [n for n in reserved_names if n]
        self._groups = _LRU(max_entries)
        self._absent = _LRU(max_entries)
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._stats = {"hits": 0, "negative_hits": 0, "misses": 0, "reserved": 0}

    def key_for(self, group_key: str) -> str:
        return f"{self.provider_key}k{group_key}"

    def name_key_for(self, site_id: int, name: str) -> str:
        return f"{self.provider_key}n{site_id}_{name}"

    def is_reserved(self, identifier: str) -> bool:
        """Well-known names ('administrators:0', ...) that never exist in the directory."""
        return any(f"{n}:" in identifier for n in self.reserved_names)

    def get(self, cache_key: str) -> Optional[Group]:
        with self._lock:
            return self._groups.get(cache_key)

    def is_absent(self, cache_key: str) -> bool:
        with self._lock:
            return cache_key in self._absent

    def populate(self, group: Group) -> None:
        k = self.key_for(group.key)
        n = self.name_key_for(group.site_id, group.name)
        with self._lock:
            self._groups.put(k, group)
            self._groups.put(n, group)
            self._absent.pop(k)
            self._absent.pop(n)

    def mark_absent(self, cache_key: str) -> None:
        with self._lock:
            if cache_key in self._groups:
                # A concurrent populate won; keep the positive entry.
                return
            self._absent.put(cache_key, True)

    def invalidate(self, group: Group) -> None:
        with self._lock:
            self._groups.pop(self.key_for(group.key))
            self._groups.pop(self.name_key_for(group.site_id, group.name))

    def clear(self) -> None:
        with self._lock:
            self._groups.clear()
            self._absent.clear()
            self._key_locks.clear()

    def _key_lock(self, cache_key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(cache_key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[cache_key] = lock
            return lock

    def lookup(self, cache_key: str, loader: Loader, identifier: str = "") -> Optional[Group]:
        """Return the cached group, or run ``loader`` once and record its answer."""
        group = self.get(cache_key)
        if group is not None:
            self._count("hits")
            return group
        if self.is_absent(cache_key):
            self._count("negative_hits")
            return None

        key_lock = self._key_lock(cache_key)
        try:
            with key_lock:
                return self._load(cache_key, loader, identifier)
        finally:
            with self._lock:
                if self._key_locks.get(cache_key) is key_lock and not key_lock.locked():
                    del self._key_locks[cache_key]

    def _load(self, cache_key: str, loader: Loader, identifier: str) -> Optional[Group]:
        # Another thread may have populated while we waited.
        group = self.get(cache_key)
        if group is not None:
            self._count("hits")
            return group
        if self.is_absent(cache_key):
            self._count("negative_hits")
            return None

        if self.is_reserved(identifier or cache_key):
            self._count("reserved")
            self.mark_absent(cache_key)
            return None

        self._count("misses")
        answered, group = loader()
        if not answered:
            logger.debug("Directory did not answer for %s, nothing cached", cache_key)
            return None
        if group is None:
            self.mark_absent(cache_key)
            return None
        self.populate(group)
        with self._lock:
            # The loader may key the group differently (site, prefix) than requested.
            self._groups.put(cache_key, group)
            self._absent.pop(cache_key)
        return group

    def _count(self, name: str) -> None:
        with self._lock:
            self._stats[name] += 1

    def stats(self) -> Dict[str, int]:
        with self._lock:
            out = dict(self._stats)
            out["groups"] = len(self._groups)
            out["absent"] = len(self._absent)
            return out
