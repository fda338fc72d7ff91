"""
Short-lived cache for issue listings and pagination helpers
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

import structlog

from src.models.responses import Pagination

logger = structlog.get_logger()

T = TypeVar("T")

ALL_REPOSITORIES = "all"

CacheKey = Tuple[str, str, Tuple[str, ...], str]


def cache_key(repo_full_name: Optional[str], state: str, labels: Iterable[str] = (),
              since: Optional[datetime] = None) -> CacheKey:
    """
    Key an issue listing by repository (or "all") and its filters.

    Every filter combination is its own entry; a narrower listing is never
    served out of a wider one.
    """
    return (
        repo_full_name or ALL_REPOSITORIES,
        state,
        tuple(sorted(set(labels))),
        since.isoformat() if since else "",
    )


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A complete listing, stored and replaced as a whole"""

    items: Tuple[T, ...]
    fetched_at: float


class QueryCache(Generic[T]):
    """
    TTL cache keyed by (repository-or-"all", state filter).

    Entries are immutable and swapped in with a single dict assignment, so
    concurrent readers see either the previous or the new listing, never a
    partially written one.

    Every invalidation bumps ``generation``. A caller that read the
    generation before a slow fetch passes it back to ``put``, and the write
    is dropped if an invalidation happened in between.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry[T]] = {}
        self.generation = 0

    def get(self, key: CacheKey) -> Optional[CacheEntry[T]]:
        """Return the entry for key unless it is missing or expired"""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.fetched_at >= self.ttl_seconds:
            # Only drop it if nobody replaced it meanwhile
            if self._entries.get(key) is entry:
                del self._entries[key]
            logger.debug("Cache entry expired", key=key)
            return None

        return entry

    def put(self, key: CacheKey, items: Sequence[T], generation: Optional[int] = None) -> CacheEntry[T]:
        """
        Store a fully fetched listing.

        The entry is always returned so the caller can serve it, but it is
        only stored when ``generation`` is omitted or still current.
        """
        entry = CacheEntry(items=tuple(items), fetched_at=self._clock())
        if generation is not None and generation != self.generation:
            logger.info("Discarding listing fetched before invalidation", key=key)
            return entry

        self._entries[key] = entry
        return entry

    def invalidate(self, key: CacheKey) -> None:
        self.generation += 1
        self._entries.pop(key, None)

    def invalidate_repository(self, repo_full_name: str) -> None:
        """Drop every entry for a repository plus the cross-repository ones"""
        self.generation += 1
        for key in list(self._entries):
            if key[0] in (repo_full_name, ALL_REPOSITORIES):
                self._entries.pop(key, None)

    def clear(self) -> None:
        self.generation += 1
        count = len(self._entries)
        self._entries = {}
        if count:
            logger.info("Issue cache invalidated", entries=count)

    def __len__(self) -> int:
        return len(self._entries)


def paginate(items: Sequence[T], page: int, per_page: int) -> Tuple[List[T], Pagination]:
    """Slice [start, start + per_page) out of a full listing"""
    if page < 1 or per_page < 1:
        raise ValueError("page and per_page must be positive")

    total = len(items)
    start = (page - 1) * per_page
    end = start + per_page

    return list(items[start:end]), Pagination(
        page=page,
        per_page=per_page,
        total_pages=math.ceil(total / per_page),
        has_more=end < total,
    )
