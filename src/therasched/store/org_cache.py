# src/therasched/store/org_cache.py
from __future__ import annotations

import threading
import time
from collections.abc import Callable

from therasched.schemas.models import Organization


class OrganizationCache:
    """
    @brief
    TTL cache for organization lookups.

    @details
    Constructed once per process and passed by reference to whoever needs
    it. Entries expire `ttl_seconds` after insertion; `invalidate` drops one
    entry or all of them. The clock is injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 1024,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Organization]] = {}

    def get(self, organization_id: str) -> Organization | None:
        with self._lock:
            entry = self._entries.get(organization_id)
            if entry is None:
                return None
            expires_at, org = entry
            if self._clock() >= expires_at:
                del self._entries[organization_id]
                return None
            return org

    def put(self, organization: Organization) -> None:
        with self._lock:
            # (1) Evict the entry closest to expiry when full
            if organization.id not in self._entries and len(self._entries) >= self.max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
            self._entries[organization.id] = (self._clock() + self.ttl_seconds, organization)

    def get_or_load(
        self, organization_id: str, loader: Callable[[str], Organization]
    ) -> Organization:
        cached = self.get(organization_id)
        if cached is not None:
            return cached
        org = loader(organization_id)
        self.put(org)
        return org

    def invalidate(self, organization_id: str | None = None) -> None:
        with self._lock:
            if organization_id is None:
                self._entries.clear()
            else:
                self._entries.pop(organization_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["OrganizationCache"]
