from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from app.bot.texts.en import TEXTS_EN
from app.delivery.choices import (
    accumulation_choices,
    answer_conflict_choices,
    level_label,
    more_suffix,
    queue_conflict_choices,
)
from app.delivery.ports import ChoiceRows, Messenger, PlayerStore
from app.delivery.sender import AnswerSender
from app.delivery.state import AccumulatedAnswer, AnswerConflict, BacklogItem, PlayerState, utc_now
from app.delivery.timers import Scheduler, schedule_later
from app.encounter.errors import EncounterError, LevelChangedError, NetworkError, RateLimitedError
from app.encounter.types import SubmitResult

logger = structlog.get_logger(__name__)

ACCUMULATION_IDLE_SECONDS = 5.0
BACKLOG_REPLAY_DELAY_SECONDS = 1.2
ACCUMULATION_PREVIEW_SIZE = 10

ReplayBacklog = Callable[[PlayerState], Awaitable[Any]]


def build_success_message(answer: str, result: SubmitResult) -> str:
    text = TEXTS_EN["msg.answer.sent"].format(
        answer=answer,
        level_number=result.level_number,
        verdict=result.message,
    )
    level = result.level
    if level is not None and level.name:
        text += TEXTS_EN["msg.answer.level_name"].format(name=level.name)
        if level.sectors_text is not None:
            text += TEXTS_EN["msg.answer.sectors"].format(sectors=level.sectors_text)
    return text


def format_blocking_notice(player: PlayerState) -> tuple[str, ChoiceRows | None] | None:
    if player.queue_conflict is not None:
        conflict = player.queue_conflict
        text = TEXTS_EN["msg.blocked.queue"].format(
            queue_size=conflict.queue_size,
            old_level=level_label(conflict.old_level_number),
            new_level=conflict.new_level_number,
        )
        return text, queue_conflict_choices(conflict.new_level_number)
    if player.single_answer_conflict is not None:
        decision = player.single_answer_conflict
        text = TEXTS_EN["msg.blocked.answer"].format(
            answer=decision.answer,
            old_level=level_label(decision.old_level),
            new_level=level_label(decision.new_level),
        )
        return text, answer_conflict_choices(decision.new_level)
    return None


class AnswerDelivery:
    """Single-answer path: conflicts, accumulation, send, and failure handling."""

    def __init__(
        self,
        *,
        store: PlayerStore,
        messenger: Messenger,
        sender: AnswerSender,
        replay_backlog: ReplayBacklog | None = None,
        schedule: Scheduler = schedule_later,
        accumulation_idle_seconds: float = ACCUMULATION_IDLE_SECONDS,
        replay_delay_seconds: float = BACKLOG_REPLAY_DELAY_SECONDS,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._sender = sender
        self._replay_backlog = replay_backlog
        self._schedule = schedule
        self._accumulation_idle_seconds = accumulation_idle_seconds
        self._replay_delay_seconds = replay_delay_seconds

    async def _report(
        self,
        player: PlayerState,
        text: str,
        progress_message_id: int | None,
        choices: ChoiceRows | None = None,
    ) -> None:
        if progress_message_id is not None:
            await self._messenger.send_or_update_message(
                player.platform,
                player.user_id,
                text,
                progress_message_id,
                choices,
            )
            return
        await self._messenger.send_message(player.platform, player.user_id, text, choices)

    async def deliver_answer(
        self,
        player: PlayerState,
        answer: str,
        progress_message_id: int | None = None,
    ) -> SubmitResult | None:
        notice = format_blocking_notice(player)
        if notice is not None:
            text, choices = notice
            await self._report(player, text, progress_message_id, choices)
            return None

        if player.accumulation_active:
            await self._append_to_accumulation(player, answer, progress_message_id)
            return None

        try:
            result = await self._sender.send(player, answer, expected_level=player.last_known_level)
        except LevelChangedError as error:
            await self._ask_about_level_change(player, answer, error, progress_message_id)
            return None
        except RateLimitedError as error:
            await self._report_rate_limit(player, error, progress_message_id)
            return None
        except NetworkError as error:
            if not error.retryable:
                await self._report(
                    player,
                    TEXTS_EN["msg.answer.error"].format(error=error.message),
                    progress_message_id,
                )
                return None
            await self._move_to_backlog(player, answer, error, progress_message_id)
            return None
        except EncounterError as error:
            logger.info(
                "answer_delivery_rejected",
                platform=player.platform,
                user_id=player.user_id,
                error_code=error.code,
            )
            await self._report(
                player,
                TEXTS_EN["msg.answer.error"].format(error=error.message),
                progress_message_id,
            )
            return None

        await self._report(player, build_success_message(answer, result), progress_message_id)
        self._schedule_backlog_replay(player)
        return result

    async def _ask_about_level_change(
        self,
        player: PlayerState,
        answer: str,
        error: LevelChangedError,
        progress_message_id: int | None,
    ) -> None:
        logger.info(
            "answer_level_changed",
            platform=player.platform,
            user_id=player.user_id,
            old_level=error.old_level,
            new_level=error.new_level,
        )
        if player.queue_conflict is not None:
            # The queue hit the same level change meanwhile; the answer joins that decision.
            player.enqueue_backlog(
                BacklogItem(answer=answer, enqueued_at=utc_now(), level_number=error.old_level)
            )
            await self._store.save_player_state(player)
            conflict = player.queue_conflict
            text = TEXTS_EN["msg.blocked.queue"].format(
                queue_size=len(player.answer_backlog),
                old_level=level_label(conflict.old_level_number),
                new_level=conflict.new_level_number,
            )
            await self._report(player, text, progress_message_id, queue_conflict_choices(conflict.new_level_number))
            return
        player.set_single_answer_conflict(
            AnswerConflict(answer=answer, old_level=error.old_level, new_level=error.new_level)
        )
        await self._store.save_player_state(player)
        text = TEXTS_EN["msg.answer.level_changed"].format(
            answer=answer,
            old_level=level_label(error.old_level),
            new_level=level_label(error.new_level),
        )
        await self._report(player, text, progress_message_id, answer_conflict_choices(error.new_level))

    async def _report_rate_limit(
        self,
        player: PlayerState,
        error: RateLimitedError,
        progress_message_id: int | None,
    ) -> None:
        logger.warning(
            "answer_rate_limited",
            platform=player.platform,
            user_id=player.user_id,
            retry_after_seconds=error.retry_after_seconds,
        )
        if error.retry_after_seconds is not None:
            text = TEXTS_EN["msg.answer.rate_limited"].format(seconds=int(round(error.retry_after_seconds)))
        else:
            text = TEXTS_EN["msg.answer.rate_limited.no_hint"]
        await self._report(player, text, progress_message_id)

    async def _move_to_backlog(
        self,
        player: PlayerState,
        answer: str,
        error: NetworkError,
        progress_message_id: int | None,
    ) -> None:
        logger.warning(
            "answer_moved_to_backlog",
            platform=player.platform,
            user_id=player.user_id,
            error_code=error.code,
        )
        if player.queue_conflict is not None:
            conflict = player.queue_conflict
            dropped = len(player.answer_backlog)
            player.answer_backlog = []
            player.queue_conflict = None
            logger.info(
                "backlog_auto_cleared",
                platform=player.platform,
                user_id=player.user_id,
                dropped=dropped,
            )
            await self._messenger.send_message(
                player.platform,
                player.user_id,
                TEXTS_EN["msg.queue.auto_cleared"].format(
                    count=dropped,
                    old_level=level_label(conflict.old_level_number),
                ),
            )

        level = player.last_known_level
        player.enqueue_backlog(
            BacklogItem(
                answer=answer,
                enqueued_at=utc_now(),
                level_id=level.level_id if level is not None else None,
                level_number=level.level_number if level is not None else None,
            )
        )
        await self._store.save_player_state(player)

        level_hint = ""
        if level is not None:
            level_hint = TEXTS_EN["msg.answer.queued.level_hint"].format(level_number=level.level_number)
        await self._report(
            player,
            TEXTS_EN["msg.answer.queued"].format(answer=answer, level_hint=level_hint),
            progress_message_id,
        )

    def _schedule_backlog_replay(self, player: PlayerState) -> None:
        if self._replay_backlog is None or not player.answer_backlog or player.queue_processing_active:
            return

        replay = self._replay_backlog

        async def run() -> None:
            await replay(player)

        self._schedule(self._replay_delay_seconds, run)

    async def _append_to_accumulation(
        self,
        player: PlayerState,
        answer: str,
        progress_message_id: int | None,
    ) -> None:
        level = player.last_known_level
        player.accumulation_buffer.append(
            AccumulatedAnswer(
                answer=answer,
                captured_at=utc_now(),
                level_id=level.level_id if level is not None else None,
                level_number=level.level_number if level is not None else None,
            )
        )
        count = len(player.accumulation_buffer)
        logger.info("accumulation_answer_added", platform=player.platform, user_id=player.user_id, count=count)

        self.restart_accumulation_timer(player)
        await self._store.save_player_state(player)
        await self._report(
            player,
            TEXTS_EN["msg.accumulation.added"].format(answer=answer, count=count),
            progress_message_id,
        )

    def restart_accumulation_timer(self, player: PlayerState) -> None:
        player.cancel_accumulation_timer()

        async def on_idle() -> None:
            player.accumulation_idle_timer = None
            await self.present_accumulation(player)

        player.accumulation_idle_timer = self._schedule(self._accumulation_idle_seconds, on_idle)

    async def present_accumulation(self, player: PlayerState) -> None:
        """Ask the player what to do with the collected answers."""
        if not player.accumulation_active or player.batch_sending_active:
            return
        if not player.accumulation_buffer:
            player.leave_accumulation()
            await self._store.save_player_state(player)
            return

        buffer = player.accumulation_buffer
        codes = "\n".join(
            f'{index}. "{item.answer}"' for index, item in enumerate(buffer[:ACCUMULATION_PREVIEW_SIZE], start=1)
        )
        anchor = player.accumulation_anchor_level
        text = TEXTS_EN["msg.accumulation.ready"].format(
            count=len(buffer),
            codes=codes,
            more=more_suffix(len(buffer), ACCUMULATION_PREVIEW_SIZE),
            level=level_label(anchor.level_number if anchor is not None else None),
        )
        logger.info("accumulation_presented", platform=player.platform, user_id=player.user_id, count=len(buffer))
        await self._messenger.send_message(player.platform, player.user_id, text, accumulation_choices())
