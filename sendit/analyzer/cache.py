"""
TTL cache of framework analyses keyed by repository.
"""

import logging
import time
from typing import Callable, Dict, Optional

from ..models import FrameworkAnalysis

logger = logging.getLogger(__name__)


class AnalysisCache:
    """In-memory cache; the last successful write for a key wins."""

    def __init__(self, ttl: float = 24 * 60 * 60, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, FrameworkAnalysis] = {}

    def get(self, key: str) -> Optional[FrameworkAnalysis]:
        """Return a fresh entry, dropping it first if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            logger.debug(f"Cache entry for {key} expired")
            self._entries.pop(key, None)
            return None
        return entry

    def put(self, entry: FrameworkAnalysis) -> None:
        self._entries[entry.key] = entry

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
