"""Run-scoped caches for strong-name resolution.

Two maps keyed by (package name, short version):

- positive: the resolved :class:`StrongNameIdentity`;
- negative: pairs whose resolution failed and must not be retried this run.

Names are matched case-insensitively, as NuGet package ids are. Writes are
insert-if-absent so the first successful writer wins, and a pair that resolved
is never later recorded as unresolvable. The negative set only grows.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .models import PackageKey, StrongNameIdentity


def make_key(name: str, version: str) -> PackageKey:
    """Normalize a (name, version) pair for cache lookups."""
    return name.strip().lower(), version.strip()


class ResolvedArtifactCache:
    """Positive and negative resolution caches with per-key locking."""

    def __init__(self) -> None:
        self._resolved: Dict[PackageKey, StrongNameIdentity] = {}
        self._unresolvable: Set[PackageKey] = set()
        self._discovered: Dict[PackageKey, List[Tuple[str, str]]] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[PackageKey, threading.Lock] = {}

    def get(self, name: str, version: str) -> Optional[StrongNameIdentity]:
        with self._lock:
            return self._resolved.get(make_key(name, version))

    def is_unresolvable(self, name: str, version: str) -> bool:
        with self._lock:
            return make_key(name, version) in self._unresolvable

    def is_known(self, name: str, version: str) -> bool:
        """True when the pair already landed in either cache."""
        key = make_key(name, version)
        with self._lock:
            return key in self._resolved or key in self._unresolvable

    def store(self, name: str, version: str, identity: StrongNameIdentity) -> StrongNameIdentity:
        """Record a resolved identity unless one is already present.

        Returns:
            The identity that ends up cached (the first writer's)
        """
        key = make_key(name, version)
        with self._lock:
            return self._resolved.setdefault(key, identity)

    def mark_unresolvable(self, name: str, version: str) -> bool:
        """Record a failed pair. Returns False if the pair had already resolved."""
        key = make_key(name, version)
        with self._lock:
            if key in self._resolved:
                return False
            self._unresolvable.add(key)
            return True

    def remember_discovered(self, name: str, version: str, pairs: List[Tuple[str, str]]) -> None:
        key = make_key(name, version)
        with self._lock:
            self._discovered.setdefault(key, list(pairs))

    def discovered(self, name: str, version: str) -> List[Tuple[str, str]]:
        """Pairs the registry reported for an earlier query of (name, version)."""
        with self._lock:
            return list(self._discovered.get(make_key(name, version), []))

    def lock_for(self, name: str, version: str) -> threading.Lock:
        """Mutex serializing external work for one pair."""
        key = make_key(name, version)
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def unresolvable_pairs(self) -> Iterator[PackageKey]:
        with self._lock:
            return iter(sorted(self._unresolvable))

    def __len__(self) -> int:
        with self._lock:
            return len(self._resolved)
