from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from time import monotonic

DEFAULT_LEVEL_CACHE_TTL_SECONDS = 30.0

CacheKey = tuple[str, str, str]


@dataclass(frozen=True, slots=True)
class LevelCacheEntry:
    level_id: int
    level_number: int
    is_passed: bool
    cached_at: float


def normalize_login(login: str | None) -> str:
    return (login or "").strip().lower()


def make_cache_key(domain: str, game_id: str | int, login: str | None) -> CacheKey:
    return (domain.strip().lower(), str(game_id), normalize_login(login))


class LevelCache:
    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_LEVEL_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[CacheKey, LevelCacheEntry] = {}

    def get(self, domain: str, game_id: str | int, login: str | None) -> LevelCacheEntry | None:
        key = make_cache_key(domain, game_id, login)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.cached_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return entry

    def put(
        self,
        domain: str,
        game_id: str | int,
        login: str | None,
        *,
        level_id: int,
        level_number: int,
        is_passed: bool = False,
    ) -> LevelCacheEntry:
        entry = LevelCacheEntry(
            level_id=level_id,
            level_number=level_number,
            is_passed=is_passed,
            cached_at=self._clock(),
        )
        self._entries[make_cache_key(domain, game_id, login)] = entry
        return entry

    def invalidate(self, domain: str, game_id: str | int, login: str | None = None) -> int:
        """Drop one player's entry, or every entry of the game when ``login`` is None."""
        if login is not None:
            return 1 if self._entries.pop(make_cache_key(domain, game_id, login), None) else 0

        domain_key = domain.strip().lower()
        game_key = str(game_id)
        stale = [key for key in self._entries if key[0] == domain_key and key[1] == game_key]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
