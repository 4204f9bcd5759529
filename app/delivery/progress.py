from __future__ import annotations

from collections.abc import Callable
from time import monotonic

from app.delivery.ports import Messenger

PROGRESS_UPDATE_EVERY = 4
PROGRESS_UPDATE_MIN_INTERVAL_SECONDS = 5.0


class ThrottledProgress:
    """Edits a single progress message, at most every N updates or T seconds.

    ``push`` remembers the latest text and only reaches the transport when
    forced, when ``every`` updates piled up, or when ``min_interval`` passed
    since the last edit. ``flush`` writes out a remembered text.
    """

    def __init__(
        self,
        messenger: Messenger,
        *,
        platform: str,
        user_id: str,
        message_id: int | None,
        clock: Callable[[], float] = monotonic,
        every: int = PROGRESS_UPDATE_EVERY,
        min_interval_seconds: float = PROGRESS_UPDATE_MIN_INTERVAL_SECONDS,
    ) -> None:
        self._messenger = messenger
        self._platform = platform
        self._user_id = user_id
        self.message_id = message_id
        self._clock = clock
        self._every = every
        self._min_interval = min_interval_seconds
        self._updates_since_send = 0
        self._last_sent_at = clock()
        self._pending_text: str | None = None
        self.sent_count = 0

    async def push(self, text: str, *, force: bool = False) -> None:
        self._pending_text = text
        self._updates_since_send += 1

        now = self._clock()
        due = (
            force
            or now - self._last_sent_at >= self._min_interval
            or self._updates_since_send >= self._every
        )
        if not due:
            return

        message_id = await self._messenger.send_or_update_message(
            self._platform,
            self._user_id,
            text,
            self.message_id,
        )
        if message_id is not None:
            self.message_id = message_id
        self.sent_count += 1
        self._last_sent_at = self._clock()
        self._updates_since_send = 0
        self._pending_text = None

    async def flush(self) -> None:
        if self._pending_text is not None:
            await self.push(self._pending_text, force=True)
