from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from app.bot.texts.en import TEXTS_EN
from app.delivery.batch_buffer import BatchBuffer
from app.delivery.batch_sender import BatchSender
from app.delivery.choices import (
    ACTION_ANSWER_CANCEL,
    ACTION_ANSWER_SEND,
    ACTION_BATCH_CANCEL_ALL,
    ACTION_BATCH_LIST,
    ACTION_BATCH_SEND_ALL,
    ACTION_BATCH_SEND_FORCE,
    ACTION_QUEUE_CLEAR,
    ACTION_QUEUE_SEND,
    level_label,
    more_suffix,
)
from app.delivery.ports import Messenger, PlayerStore
from app.delivery.queue_processor import QueueProcessor
from app.delivery.sender import AnswerSender
from app.delivery.state import PlayerState
from app.encounter.errors import EncounterError

logger = structlog.get_logger(__name__)

CLEARED_PREVIEW_SIZE = 5

# (text, show_alert); both transports map it onto their callback acknowledgement.
Acknowledge = Callable[[str | None, bool], Awaitable[None]]


async def no_ack(text: str | None, show_alert: bool) -> None:
    return None


class PlayerDecisions:
    """Resolves the inline choices offered on conflicts and accumulation."""

    def __init__(
        self,
        *,
        store: PlayerStore,
        messenger: Messenger,
        sender: AnswerSender,
        queue: QueueProcessor,
        batch_sender: BatchSender,
        batch_buffer: BatchBuffer,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._sender = sender
        self._queue = queue
        self._batch_sender = batch_sender
        self._batch_buffer = batch_buffer
        self._handlers: dict[str, Callable[[PlayerState, Acknowledge], Awaitable[None]]] = {
            ACTION_ANSWER_SEND: self._send_conflicted_answer,
            ACTION_ANSWER_CANCEL: self._cancel_conflicted_answer,
            ACTION_QUEUE_SEND: self._send_queue_to_current_level,
            ACTION_QUEUE_CLEAR: self._clear_queue,
            ACTION_BATCH_SEND_ALL: self._send_batch,
            ACTION_BATCH_SEND_FORCE: self._force_batch,
            ACTION_BATCH_CANCEL_ALL: self._cancel_batch,
            ACTION_BATCH_LIST: self._list_batch,
        }

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(self._handlers)

    async def handle(self, player: PlayerState, action: str, ack: Acknowledge = no_ack) -> bool:
        handler = self._handlers.get(action)
        if handler is None:
            logger.warning("decision_unknown_action", platform=player.platform, user_id=player.user_id, action=action)
            return False
        logger.info("decision_received", platform=player.platform, user_id=player.user_id, action=action)
        await handler(player, ack)
        return True

    async def _refresh_level(self, player: PlayerState) -> None:
        try:
            await self._sender.fetch_level(player)
        except EncounterError as error:
            logger.warning(
                "decision_level_refresh_failed",
                platform=player.platform,
                user_id=player.user_id,
                error_code=error.code,
            )

    async def _send_conflicted_answer(self, player: PlayerState, ack: Acknowledge) -> None:
        decision = player.single_answer_conflict
        if decision is None:
            await ack(TEXTS_EN["msg.decision.none"], True)
            return

        player.single_answer_conflict = None
        await self._store.save_player_state(player)
        await ack(TEXTS_EN["msg.decision.answer.sending"].format(level=level_label(decision.new_level)), False)

        try:
            result = await self._sender.send(player, decision.answer, expected_level=None)
        except EncounterError as error:
            logger.warning(
                "decision_answer_send_failed",
                platform=player.platform,
                user_id=player.user_id,
                error_code=error.code,
            )
            await self._messenger.send_message(
                player.platform,
                player.user_id,
                TEXTS_EN["msg.decision.answer.failed"].format(error=error.message),
            )
            return

        await self._messenger.send_message(
            player.platform,
            player.user_id,
            TEXTS_EN["msg.decision.answer.sent"].format(
                answer=decision.answer,
                level=result.level_number,
                verdict=result.message,
            ),
        )

    async def _cancel_conflicted_answer(self, player: PlayerState, ack: Acknowledge) -> None:
        decision = player.single_answer_conflict
        if decision is None:
            await ack(TEXTS_EN["msg.decision.none"], True)
            return

        player.single_answer_conflict = None
        await self._refresh_level(player)
        await self._store.save_player_state(player)
        await ack(TEXTS_EN["msg.decision.answer.cancelled.ack"], False)
        await self._messenger.send_message(
            player.platform,
            player.user_id,
            TEXTS_EN["msg.decision.answer.cancelled"].format(
                answer=decision.answer,
                old_level=level_label(decision.old_level),
                new_level=level_label(decision.new_level),
            ),
        )

    async def _send_queue_to_current_level(self, player: PlayerState, ack: Acknowledge) -> None:
        decision = player.queue_conflict
        if decision is None:
            await ack(TEXTS_EN["msg.decision.none"], True)
            return

        player.queue_conflict = None
        level = player.last_known_level
        for item in player.answer_backlog:
            item.level_id = level.level_id if level is not None else None
            item.level_number = level.level_number if level is not None else None
        await self._store.save_player_state(player)

        count = len(player.answer_backlog)
        await ack(
            TEXTS_EN["msg.decision.queue.sending"].format(count=count, level=decision.new_level_number),
            False,
        )
        await self._messenger.send_message(
            player.platform,
            player.user_id,
            TEXTS_EN["msg.decision.queue.started"].format(count=count),
        )
        await self._queue.process(player)

    async def _clear_queue(self, player: PlayerState, ack: Acknowledge) -> None:
        decision = player.queue_conflict
        if decision is None:
            await ack(TEXTS_EN["msg.decision.none"], True)
            return

        backlog = player.answer_backlog
        answers = ", ".join(f'"{item.answer}"' for item in backlog[:CLEARED_PREVIEW_SIZE])
        more = more_suffix(len(backlog), CLEARED_PREVIEW_SIZE, inline=True)
        count = len(backlog)
        logger.info("decision_queue_cleared", platform=player.platform, user_id=player.user_id, count=count)

        player.answer_backlog = []
        player.queue_conflict = None
        await self._store.save_player_state(player)
        await ack(TEXTS_EN["msg.decision.queue.cleared.ack"], False)
        await self._messenger.send_message(
            player.platform,
            player.user_id,
            TEXTS_EN["msg.decision.queue.cleared"].format(
                old_level=level_label(decision.old_level_number),
                new_level=decision.new_level_number,
                count=count,
                answers=answers,
                more=more,
            ),
        )

    async def _send_batch(self, player: PlayerState, ack: Acknowledge) -> None:
        if not player.accumulation_buffer:
            await ack(TEXTS_EN["msg.batch.empty"], True)
            return
        if player.batch_sending_active:
            await ack(TEXTS_EN["msg.decision.batch.busy"], True)
            return
        await ack(TEXTS_EN["msg.decision.batch.sending"].format(count=len(player.accumulation_buffer)), False)
        await self._batch_sender.send_accumulated(player)

    async def _force_batch(self, player: PlayerState, ack: Acknowledge) -> None:
        if not player.accumulation_buffer:
            await ack(TEXTS_EN["msg.batch.empty"], True)
            return
        if player.batch_sending_active:
            await ack(TEXTS_EN["msg.decision.batch.busy"], True)
            return
        await ack(TEXTS_EN["msg.decision.batch.forcing"], False)
        player.accumulation_anchor_level = None
        await self._store.save_player_state(player)
        await self._batch_sender.send_accumulated(player)

    async def _cancel_batch(self, player: PlayerState, ack: Acknowledge) -> None:
        count = len(player.accumulation_buffer)
        if count == 0:
            await ack(TEXTS_EN["msg.batch.empty"], True)
            return

        await self._refresh_level(player)
        player.leave_accumulation()
        self._batch_buffer.reset_burst_state(player)
        await self._store.save_player_state(player)
        logger.info("decision_batch_cancelled", platform=player.platform, user_id=player.user_id, count=count)

        await ack(TEXTS_EN["msg.decision.batch.cancelled.ack"], False)
        await self._messenger.send_message(
            player.platform,
            player.user_id,
            TEXTS_EN["msg.batch.cancelled"].format(count=count),
        )

    async def _list_batch(self, player: PlayerState, ack: Acknowledge) -> None:
        buffer = player.accumulation_buffer
        if not buffer:
            await ack(TEXTS_EN["msg.batch.empty"], True)
            return

        codes = "\n".join(
            TEXTS_EN["msg.batch.list.line"].format(
                index=index,
                answer=item.answer,
                level=level_label(item.level_number),
            )
            for index, item in enumerate(buffer, start=1)
        )
        await ack(None, False)
        await self._messenger.send_message(
            player.platform,
            player.user_id,
            TEXTS_EN["msg.batch.list"].format(count=len(buffer), codes=codes),
        )
