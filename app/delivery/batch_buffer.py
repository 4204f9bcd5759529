from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from time import monotonic
from typing import Any

import structlog

from app.delivery.burst_detector import MESSAGE_INTERVAL_MAX_SECONDS, accumulation_slice
from app.delivery.state import DrainPhase, PendingEntry, PlayerState
from app.delivery.timers import Scheduler, schedule_later

logger = structlog.get_logger(__name__)

DeliverAnswer = Callable[[PlayerState, str, "int | None"], Awaitable[Any]]


class BatchBuffer:
    """Per-player drain loop in front of single-answer delivery.

    Each answer first waits in ``pending_burst_entries``. The drain loop
    flushes pending answers into the accumulation buffer once a burst is
    seen (or accumulation is already on), delivers an answer once it has
    waited ``hold_seconds`` without a burst forming, and otherwise sleeps
    until the oldest answer is due.

    The loop is single-flight per player. A trigger that arrives while it
    runs moves the phase to ``DRAINING_REQUEUED`` and the running loop makes
    one more pass instead of a second loop starting.
    """

    def __init__(
        self,
        *,
        deliver: DeliverAnswer,
        clock: Callable[[], float] = monotonic,
        schedule: Scheduler = schedule_later,
        hold_seconds: float = MESSAGE_INTERVAL_MAX_SECONDS,
    ) -> None:
        self._deliver = deliver
        self._clock = clock
        self._schedule = schedule
        self._hold_seconds = hold_seconds

    async def submit(self, player: PlayerState, answer: str, progress_message_id: int | None = None) -> Any:
        """Queue ``answer`` and wait until the drain loop has dealt with it."""
        entry = PendingEntry(
            answer=answer,
            received_at=self._clock(),
            progress_message_id=progress_message_id,
            outcome=asyncio.get_running_loop().create_future(),
        )
        player.pending_burst_entries.append(entry)
        await self.drain(player)
        return await entry.outcome

    async def drain(self, player: PlayerState) -> None:
        if player.burst_drain_phase is not DrainPhase.IDLE:
            player.burst_drain_phase = DrainPhase.DRAINING_REQUEUED
            return

        try:
            while True:
                player.burst_drain_phase = DrainPhase.DRAINING
                await self._drain_pass(player)
                if player.burst_drain_phase is not DrainPhase.DRAINING_REQUEUED:
                    break
                logger.debug("burst_drain_requeued", platform=player.platform, user_id=player.user_id)
        finally:
            player.burst_drain_phase = DrainPhase.IDLE

    async def _drain_pass(self, player: PlayerState) -> None:
        pending = player.pending_burst_entries
        while pending:
            if player.accumulation_active:
                await self._flush_pending(player)
                continue

            burst = accumulation_slice([entry.received_at for entry in pending])
            if burst is not None:
                player.accumulation_active = True
                if player.accumulation_anchor_level is None:
                    player.accumulation_anchor_level = player.last_known_level
                logger.info(
                    "burst_detected",
                    platform=player.platform,
                    user_id=player.user_id,
                    burst_size=len(burst),
                    span_seconds=round(burst[-1] - burst[0], 3),
                    anchor_level=(
                        player.accumulation_anchor_level.level_number
                        if player.accumulation_anchor_level is not None
                        else None
                    ),
                )
                await self._flush_pending(player)
                continue

            elapsed = self._clock() - pending[0].received_at
            if elapsed >= self._hold_seconds:
                await self._process(player, pending.pop(0))
                continue

            self._schedule_wake(player, self._hold_seconds - elapsed)
            break

        if not pending:
            self._cancel_wake(player)

    async def _flush_pending(self, player: PlayerState) -> None:
        self._cancel_wake(player)
        while player.pending_burst_entries:
            await self._process(player, player.pending_burst_entries.pop(0))

    async def _process(self, player: PlayerState, entry: PendingEntry) -> None:
        try:
            result = await self._deliver(player, entry.answer, entry.progress_message_id)
        except Exception as exc:
            logger.exception("burst_entry_delivery_failed", platform=player.platform, user_id=player.user_id)
            if not entry.outcome.done():
                entry.outcome.set_exception(exc)
            return
        if not entry.outcome.done():
            entry.outcome.set_result(result)

    def _schedule_wake(self, player: PlayerState, delay: float) -> None:
        self._cancel_wake(player)

        async def wake() -> None:
            player.burst_wake_timer = None
            await self.drain(player)

        player.burst_wake_timer = self._schedule(max(0.0, delay), wake)

    def _cancel_wake(self, player: PlayerState) -> None:
        if player.burst_wake_timer is not None:
            player.burst_wake_timer.cancel()
            player.burst_wake_timer = None

    def reset_burst_state(self, player: PlayerState) -> None:
        """Drop unclassified answers; their submitters get ``None``."""
        self._cancel_wake(player)
        for entry in player.pending_burst_entries:
            if not entry.outcome.done():
                entry.outcome.set_result(None)
        player.pending_burst_entries.clear()
