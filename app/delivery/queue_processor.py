from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from time import monotonic

import structlog

from app.bot.texts.en import TEXTS_EN
from app.delivery.choices import level_label, more_suffix, queue_conflict_choices
from app.delivery.ports import Messenger, PlayerStore
from app.delivery.progress import PROGRESS_UPDATE_EVERY, PROGRESS_UPDATE_MIN_INTERVAL_SECONDS, ThrottledProgress
from app.delivery.sender import AnswerSender
from app.delivery.state import BacklogItem, PlayerState, QueueConflict
from app.encounter.errors import AuthRequiredError, EncounterError, is_stale_state_error

logger = structlog.get_logger(__name__)

MAX_FAILED_ATTEMPTS = 3
AUTH_RETRY_LIMIT = 2
INITIAL_DELAY_SECONDS = 3.0
ITEM_DELAY_SECONDS = 1.2
AUTH_COOLDOWN_SECONDS = 2.0
CONFLICT_PREVIEW_SIZE = 5

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class QueueRunSummary:
    total: int
    delivered: int
    skipped: int
    remaining: int

    @property
    def fully_delivered(self) -> bool:
        return self.remaining == 0


def format_final_report(summary: QueueRunSummary, backlog: list[BacklogItem]) -> str:
    if summary.remaining == 0:
        skipped = ""
        if summary.skipped > 0:
            skipped = TEXTS_EN["msg.queue.done.skipped"].format(count=summary.skipped)
        return TEXTS_EN["msg.queue.done"].format(
            delivered=summary.delivered,
            skipped=skipped,
            total=summary.total,
        )

    removed = ""
    if summary.skipped > 0:
        removed = TEXTS_EN["msg.queue.partial.removed"].format(count=summary.skipped)
    attention = ""
    failing = [item for item in backlog if item.failed_attempts]
    if failing:
        items = ", ".join(
            TEXTS_EN["msg.queue.partial.item"].format(answer=item.answer, attempts=item.failed_attempts)
            for item in failing
        )
        attention = TEXTS_EN["msg.queue.partial.attention"].format(items=items)
    return TEXTS_EN["msg.queue.partial"].format(
        delivered=summary.delivered,
        total=summary.total,
        removed=removed,
        remaining=summary.remaining,
        attention=attention,
    )


class QueueProcessor:
    """Replays the durable answer backlog of one player.

    Before anything is dequeued the live level is compared with the level the
    head item was typed for; a mismatch becomes a ``queue_conflict`` that the
    player has to resolve. Items are then sent one by one with fixed pacing.
    Stale-state errors drop the item, auth errors clear the session and retry
    the same item after a cooldown, and any other error counts against the
    item until it reaches ``max_failed_attempts``.
    """

    def __init__(
        self,
        *,
        store: PlayerStore,
        messenger: Messenger,
        sender: AnswerSender,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], float] = monotonic,
        initial_delay_seconds: float = INITIAL_DELAY_SECONDS,
        item_delay_seconds: float = ITEM_DELAY_SECONDS,
        auth_cooldown_seconds: float = AUTH_COOLDOWN_SECONDS,
        max_failed_attempts: int = MAX_FAILED_ATTEMPTS,
        auth_retry_limit: int = AUTH_RETRY_LIMIT,
        progress_every: int = PROGRESS_UPDATE_EVERY,
        progress_min_interval_seconds: float = PROGRESS_UPDATE_MIN_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._sender = sender
        self._sleep = sleep
        self._clock = clock
        self._initial_delay = initial_delay_seconds
        self._item_delay = item_delay_seconds
        self._auth_cooldown = auth_cooldown_seconds
        self._max_failed_attempts = max_failed_attempts
        self._auth_retry_limit = auth_retry_limit
        self._progress_every = progress_every
        self._progress_min_interval = progress_min_interval_seconds

    async def process(self, player: PlayerState) -> QueueRunSummary | None:
        if not player.answer_backlog or player.queue_processing_active:
            return None
        if player.has_blocking_conflict:
            logger.info("queue_waiting_for_decision", platform=player.platform, user_id=player.user_id)
            return None

        player.queue_processing_active = True
        try:
            if await self._stop_on_level_conflict(player):
                return None
            return await self._process_items(player)
        finally:
            player.queue_processing_active = False
            await self._store.save_player_state(player)

    async def _stop_on_level_conflict(self, player: PlayerState) -> bool:
        head = player.answer_backlog[0]
        if head.level_id is None:
            return False

        try:
            live = await self._sender.fetch_level(player)
        except EncounterError as error:
            logger.warning(
                "queue_level_check_failed",
                platform=player.platform,
                user_id=player.user_id,
                error_code=error.code,
            )
            return False

        if player.single_answer_conflict is not None:
            # raised by an interactive answer while the level was being read
            logger.info("queue_deferred_to_answer_conflict", platform=player.platform, user_id=player.user_id)
            return True

        if live.level_id == head.level_id:
            return False

        backlog = player.answer_backlog
        logger.info(
            "queue_level_conflict",
            platform=player.platform,
            user_id=player.user_id,
            queued_level_id=head.level_id,
            live_level_id=live.level_id,
            queue_size=len(backlog),
        )
        player.set_queue_conflict(
            QueueConflict(
                old_level_number=head.level_number,
                new_level_number=live.number,
                queue_size=len(backlog),
            )
        )
        await self._store.save_player_state(player)

        levels = ""
        if head.level_number is not None:
            levels = TEXTS_EN["msg.queue.level_changed.levels"].format(
                old_level=head.level_number,
                new_level=live.number,
            )
        answers = "\n".join(f'• "{item.answer}"' for item in backlog[:CONFLICT_PREVIEW_SIZE])
        text = TEXTS_EN["msg.queue.level_changed"].format(
            levels=levels,
            count=len(backlog),
            answers=answers,
            more=more_suffix(len(backlog), CONFLICT_PREVIEW_SIZE),
        )
        await self._messenger.send_message(
            player.platform,
            player.user_id,
            text,
            queue_conflict_choices(live.number),
        )
        return True

    def _progress_text(self, processed: int, total: int, detail: str) -> str:
        return TEXTS_EN["msg.queue.progress"].format(processed=processed, total=total, detail=detail)

    async def _process_items(self, player: PlayerState) -> QueueRunSummary:
        backlog = player.answer_backlog
        total = len(backlog)
        delivered = 0
        skipped = 0
        processed = 0
        auth_retries: dict[int, int] = {}

        message_id = await self._messenger.send_message(
            player.platform,
            player.user_id,
            TEXTS_EN["msg.queue.preparing"].format(count=total),
        )
        await self._sleep(self._initial_delay)
        message_id = (
            await self._messenger.send_or_update_message(
                player.platform,
                player.user_id,
                TEXTS_EN["msg.queue.processing"].format(count=total),
                message_id,
            )
            or message_id
        )
        progress = ThrottledProgress(
            self._messenger,
            platform=player.platform,
            user_id=player.user_id,
            message_id=message_id,
            clock=self._clock,
            every=self._progress_every,
            min_interval_seconds=self._progress_min_interval,
        )

        index = 0
        while index < len(player.answer_backlog):
            item = player.answer_backlog[index]
            processed += 1
            if processed == 1:
                await progress.push(
                    self._progress_text(
                        processed,
                        total,
                        TEXTS_EN["msg.queue.progress.sending"].format(answer=item.answer),
                    ),
                    force=True,
                )

            try:
                await self._sender.send(player, item.answer, expected_level=player.last_known_level)
            except EncounterError as error:
                if is_stale_state_error(error):
                    logger.info(
                        "queue_item_skipped_stale",
                        platform=player.platform,
                        user_id=player.user_id,
                        error_code=error.code,
                    )
                    player.remove_backlog_item(item)
                    skipped += 1
                    await self._store.save_player_state(player)
                    await progress.push(
                        self._progress_text(processed, total, TEXTS_EN["msg.queue.progress.skipped"]),
                        force=True,
                    )
                elif self._should_retry_auth(error, item, auth_retries):
                    auth_retries[id(item)] = auth_retries.get(id(item), 0) + 1
                    await self._cool_down_after_auth_error(player, item, progress, processed, total)
                    processed -= 1
                    continue
                else:
                    dropped = await self._record_failure(player, item, error, progress, processed, total)
                    if dropped:
                        skipped += 1
                    else:
                        index += 1
            else:
                player.remove_backlog_item(item)
                delivered += 1
                await self._store.save_player_state(player)
                await progress.push(self._progress_text(processed, total, TEXTS_EN["msg.queue.progress.sent"]))

            if index < len(player.answer_backlog):
                await self._sleep(self._item_delay)

        await progress.flush()
        summary = QueueRunSummary(
            total=total,
            delivered=delivered,
            skipped=skipped,
            remaining=len(player.answer_backlog),
        )
        logger.info(
            "queue_processed",
            platform=player.platform,
            user_id=player.user_id,
            total=summary.total,
            delivered=summary.delivered,
            skipped=summary.skipped,
            remaining=summary.remaining,
        )
        await self._messenger.send_or_update_message(
            player.platform,
            player.user_id,
            format_final_report(summary, player.answer_backlog),
            progress.message_id,
        )
        return summary

    def _should_retry_auth(self, error: EncounterError, item: BacklogItem, auth_retries: dict[int, int]) -> bool:
        if not isinstance(error, AuthRequiredError) or error.re_auth_failed:
            return False
        return auth_retries.get(id(item), 0) < self._auth_retry_limit

    async def _cool_down_after_auth_error(
        self,
        player: PlayerState,
        item: BacklogItem,
        progress: ThrottledProgress,
        processed: int,
        total: int,
    ) -> None:
        logger.info("queue_item_auth_retry", platform=player.platform, user_id=player.user_id)
        await progress.push(
            self._progress_text(
                processed,
                total,
                TEXTS_EN["msg.queue.progress.reauth"].format(answer=item.answer),
            ),
            force=True,
        )
        player.auth_credentials = None
        await self._store.save_player_state(player)
        await self._sleep(self._auth_cooldown)
        await progress.push(
            self._progress_text(
                processed,
                total,
                TEXTS_EN["msg.queue.progress.retry"].format(answer=item.answer),
            ),
            force=True,
        )

    async def _record_failure(
        self,
        player: PlayerState,
        item: BacklogItem,
        error: EncounterError,
        progress: ThrottledProgress,
        processed: int,
        total: int,
    ) -> bool:
        item.failed_attempts += 1
        item.last_error = error.message

        if item.failed_attempts >= self._max_failed_attempts:
            logger.info(
                "queue_item_dropped",
                platform=player.platform,
                user_id=player.user_id,
                failed_attempts=item.failed_attempts,
                error_code=error.code,
            )
            player.remove_backlog_item(item)
            await self._store.save_player_state(player)
            await progress.push(
                self._progress_text(
                    processed,
                    total,
                    TEXTS_EN["msg.queue.progress.dropped"].format(
                        answer=item.answer,
                        error=error.message,
                        limit=self._max_failed_attempts,
                    ),
                ),
                force=True,
            )
            return True

        logger.info(
            "queue_item_failed",
            platform=player.platform,
            user_id=player.user_id,
            failed_attempts=item.failed_attempts,
            error_code=error.code,
        )
        await self._store.save_player_state(player)
        await progress.push(
            self._progress_text(
                processed,
                total,
                TEXTS_EN["msg.queue.progress.kept"].format(
                    answer=item.answer,
                    error=error.message,
                    attempt=item.failed_attempts,
                    limit=self._max_failed_attempts,
                ),
            ),
            force=True,
        )
        return False


def describe_backlog(player: PlayerState) -> str:
    if not player.answer_backlog:
        return TEXTS_EN["msg.queue.status.empty"]
    items = "\n".join(
        TEXTS_EN["msg.queue.status.item"].format(
            index=index,
            answer=item.answer,
            level=level_label(item.level_number),
            attempts=item.failed_attempts,
        )
        for index, item in enumerate(player.answer_backlog, start=1)
    )
    return TEXTS_EN["msg.queue.status"].format(count=len(player.answer_backlog), items=items)
