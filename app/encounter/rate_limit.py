from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from time import monotonic

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_MIN_INTERVAL_SECONDS = 1.2

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class _DomainSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0


class RateLimiter:
    """Per-domain request spacing shared by every player of the process.

    ``wait`` returns when the caller may start its request. Callers of the same
    domain are served in arrival order and each start is at least
    ``min_interval_seconds`` after the previous start. The serialization slot
    of a domain is dropped once nobody waits on it; the last start time is kept.
    """

    def __init__(
        self,
        *,
        min_interval_seconds: float = DEFAULT_MIN_INTERVAL_SECONDS,
        clock: Clock = monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.min_interval_seconds = max(0.0, float(min_interval_seconds))
        self._clock = clock
        self._sleep = sleep
        self._slots: dict[str, _DomainSlot] = {}
        self._last_started_at: dict[str, float] = {}

    def is_idle(self, domain: str) -> bool:
        return domain not in self._slots

    def last_started_at(self, domain: str) -> float | None:
        return self._last_started_at.get(domain)

    def reset(self) -> None:
        self._slots.clear()
        self._last_started_at.clear()

    async def wait(self, domain: str) -> None:
        slot = self._slots.get(domain)
        if slot is None:
            slot = _DomainSlot()
            self._slots[domain] = slot
        slot.waiters += 1
        try:
            async with slot.lock:
                last_started_at = self._last_started_at.get(domain)
                if last_started_at is not None:
                    delay = last_started_at + self.min_interval_seconds - self._clock()
                    if delay > 0:
                        logger.debug("encounter_rate_limit_wait", domain=domain, delay_seconds=delay)
                        await self._sleep(delay)
                self._last_started_at[domain] = self._clock()
        finally:
            slot.waiters -= 1
            if slot.waiters == 0 and self._slots.get(domain) is slot:
                del self._slots[domain]
