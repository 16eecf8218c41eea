"""
Memoization caches shared by the pipeline's worker threads.

Every cache is a mapping from a stable key (server name, SID, NetBIOS name,
FQDN, raw identity reference, ...) to one canonical value:

- Reads of a present key are plain dict reads and take no lock.
- A miss takes a per-key lock, re-checks, and runs the compute function,
  so concurrent callers asking for the same missing key wait for the first
  computation instead of repeating it.
- Writes never replace an existing value (first write wins).

Caches live for one pipeline run: a fresh CacheSet is created at the start
of the run and passed explicitly into every stage.

Usage:
    caches = CacheSet()
    server = caches.servers.get_or_compute("FS01", directory.discover_server)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .types import DirectoryEntry, DirectoryServer, DomainInfo, LocalAccount, ResolvedIdentity

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING: Any = object()


@dataclass
class CacheStats:
    """Counters for one cache."""

    size: int = 0
    hits: int = 0
    misses: int = 0
    computations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "hits": self.hits,
            "misses": self.misses,
            "computations": self.computations,
            "hit_rate": f"{self.hit_rate:.1f}%",
        }


class MemoCache(Generic[K, V]):
    """
    Thread-safe memoization store with at-most-once computation per key.

    ``None`` is a legitimate cached value (e.g. "principal not found").
    A compute function that raises stores nothing; the next caller for the
    same key computes again.
    """

    def __init__(self, name: str, key_func: Callable[[K], K] | None = None):
        self.name = name
        self._key_func = key_func
        self._values: dict[K, V] = {}
        self._key_locks: dict[K, threading.Lock] = {}
        self._guard = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._computations = 0

    def _normalize(self, key: K) -> K:
        return self._key_func(key) if self._key_func else key

    def get_or_compute(self, key: K, compute: Callable[[K], V]) -> V:
        """Return the cached value for *key*, computing it on first use.

        *compute* receives the key as passed by the caller (before
        normalization) and runs at most once per normalized key.
        """
        norm = self._normalize(key)

        value = self._values.get(norm, _MISSING)
        if value is not _MISSING:
            with self._guard:
                self._hits += 1
            return value

        # Per-key lock so one slow key doesn't serialize all the others
        with self._guard:
            lock = self._key_locks.setdefault(norm, threading.Lock())

        with lock:
            # Double-check after acquiring lock
            value = self._values.get(norm, _MISSING)
            if value is not _MISSING:
                with self._guard:
                    self._hits += 1
                return value

            with self._guard:
                self._misses += 1
            value = compute(key)
            with self._guard:
                self._computations += 1
                value = self._values.setdefault(norm, value)

        with self._guard:
            if self._key_locks.get(norm) is lock:
                self._key_locks.pop(norm, None)
        return value

    def put_if_absent(self, key: K, value: V) -> V:
        """Store *value* unless the key is already present; return the canonical value."""
        norm = self._normalize(key)
        with self._guard:
            return self._values.setdefault(norm, value)

    def get(self, key: K, default: V | None = None) -> V | None:
        """Return the cached value without computing anything."""
        value = self._values.get(self._normalize(key), _MISSING)
        return default if value is _MISSING else value

    def __contains__(self, key: object) -> bool:
        return self._normalize(key) in self._values  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._values)

    def items(self) -> Iterator[tuple[K, V]]:
        """Snapshot of the cached key/value pairs."""
        with self._guard:
            snapshot = list(self._values.items())
        return iter(snapshot)

    @property
    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._values),
            hits=self._hits,
            misses=self._misses,
            computations=self._computations,
        )

    def __repr__(self) -> str:
        return f"MemoCache(name={self.name!r}, size={len(self._values)})"


def _upper(key: str) -> str:
    return key.upper()


class CacheSet:
    """
    The caches shared by every stage of one pipeline run.

    Attributes:
        directory_entries: qualified principal name -> DirectoryEntry (or None)
        identities: raw ACE identity reference -> ResolvedIdentity
        servers: server name -> DirectoryServer
        local_accounts_by_sid: SID -> LocalAccount
        local_accounts_by_caption: ``DOMAIN\\name`` caption -> LocalAccount
        domains_by_sid: domain SID -> DomainInfo
        domains_by_netbios: NetBIOS name -> DomainInfo
        domains_by_fqdn: DNS name -> DomainInfo

    Name-keyed caches are case-insensitive; SID-keyed caches are normalized
    to upper case as well since ``s-1-5-...`` is a valid spelling.
    """

    def __init__(self) -> None:
        self.directory_entries: MemoCache[str, DirectoryEntry | None] = MemoCache(
            "directory_entries", _upper
        )
        self.identities: MemoCache[str, ResolvedIdentity] = MemoCache("identities", _upper)
        self.servers: MemoCache[str, DirectoryServer] = MemoCache("servers", _upper)
        self.local_accounts_by_sid: MemoCache[str, LocalAccount] = MemoCache(
            "local_accounts_by_sid", _upper
        )
        self.local_accounts_by_caption: MemoCache[str, LocalAccount] = MemoCache(
            "local_accounts_by_caption", _upper
        )
        self.domains_by_sid: MemoCache[str, DomainInfo] = MemoCache("domains_by_sid", _upper)
        self.domains_by_netbios: MemoCache[str, DomainInfo] = MemoCache(
            "domains_by_netbios", _upper
        )
        self.domains_by_fqdn: MemoCache[str, DomainInfo] = MemoCache("domains_by_fqdn", _upper)

    def all(self) -> list[MemoCache[Any, Any]]:
        return [
            self.directory_entries,
            self.identities,
            self.servers,
            self.local_accounts_by_sid,
            self.local_accounts_by_caption,
            self.domains_by_sid,
            self.domains_by_netbios,
            self.domains_by_fqdn,
        ]

    def remember_domain(self, domain: DomainInfo) -> DomainInfo:
        """Write a domain into all three domain caches (first write wins)."""
        canonical = self.domains_by_netbios.put_if_absent(domain.netbios, domain)
        self.domains_by_fqdn.put_if_absent(domain.fqdn, domain)
        if domain.sid:
            self.domains_by_sid.put_if_absent(domain.sid, domain)
        return canonical

    def remember_local_account(self, account: LocalAccount) -> None:
        """Write a local account into both local-account caches."""
        self.local_accounts_by_sid.put_if_absent(account.sid, account)
        self.local_accounts_by_caption.put_if_absent(account.caption, account)

    def find_domain(self, name: str) -> DomainInfo | None:
        """Look a domain up by NetBIOS name or FQDN without computing anything."""
        return self.domains_by_netbios.get(name) or self.domains_by_fqdn.get(name)

    def stats(self) -> dict[str, dict[str, Any]]:
        """Per-cache statistics, keyed by cache name."""
        return {cache.name: cache.stats.to_dict() for cache in self.all()}
