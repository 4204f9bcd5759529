from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

from app.bot.texts.en import TEXTS_EN
from app.delivery.choices import batch_redirect_choices, level_label, more_suffix
from app.delivery.ports import Messenger, PlayerStore
from app.delivery.sender import AnswerSender
from app.delivery.state import AccumulatedAnswer, LevelMark, PlayerState
from app.encounter.errors import EncounterError, LevelChangedError
from app.encounter.types import LevelInfo

logger = structlog.get_logger(__name__)

BATCH_ITEM_DELAY_SECONDS = 1.2
REDIRECT_PREVIEW_SIZE = 5

Sleeper = Callable[[float], Awaitable[None]]
RestartIdleTimer = Callable[[PlayerState], None]


@dataclass(frozen=True, slots=True)
class SentCode:
    answer: str
    status: str
    level_number: int | None
    sectors: str | None


@dataclass(slots=True)
class BatchRunSummary:
    total: int
    sent: int = 0
    stopped: bool = False
    aborted: bool = False
    codes: list[SentCode] = field(default_factory=list)


def _sectors_label(sectors: str | None) -> str:
    return sectors if sectors is not None else TEXTS_EN["msg.unknown_sectors"]


def format_batch_report(summary: BatchRunSummary) -> str:
    text = TEXTS_EN["msg.batch.done"].format(sent=summary.sent, total=summary.total)
    if not summary.codes:
        return text

    lines = [
        TEXTS_EN["msg.batch.report.line"].format(
            index=index,
            answer=code.answer,
            status=code.status,
            level=level_label(code.level_number),
        )
        for index, code in enumerate(summary.codes, start=1)
    ]
    text += TEXTS_EN["msg.batch.report.header"] + "\n\n".join(lines)

    last = summary.codes[-1]
    text += TEXTS_EN["msg.batch.report.level"].format(level=level_label(last.level_number))
    if last.sectors is not None:
        text += TEXTS_EN["msg.batch.report.sectors"].format(sectors=last.sectors)
    return text


class BatchSender:
    """Sends the accumulation buffer of a player after an explicit decision.

    The anchor level is checked against a fresh read first; while sending,
    every result is compared with the level the batch targets. A level change
    stops the batch, removes the answers that were delivered and asks the
    player what to do with the rest.

    One batch runs per player at a time. Answers typed while it runs stay in
    the buffer for the next decision.
    """

    def __init__(
        self,
        *,
        store: PlayerStore,
        messenger: Messenger,
        sender: AnswerSender,
        sleep: Sleeper = asyncio.sleep,
        item_delay_seconds: float = BATCH_ITEM_DELAY_SECONDS,
        restart_idle_timer: RestartIdleTimer | None = None,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._sender = sender
        self._sleep = sleep
        self._item_delay = item_delay_seconds
        self._restart_idle_timer = restart_idle_timer

    async def send_accumulated(self, player: PlayerState) -> BatchRunSummary | None:
        if player.batch_sending_active:
            logger.info("batch_send_already_running", platform=player.platform, user_id=player.user_id)
            return None
        if not player.accumulation_buffer:
            logger.info("batch_empty", platform=player.platform, user_id=player.user_id)
            await self._messenger.send_message(player.platform, player.user_id, TEXTS_EN["msg.batch.empty"])
            return None

        player.batch_sending_active = True
        try:
            return await self._send_guarded(player)
        finally:
            player.batch_sending_active = False

    async def _send_guarded(self, player: PlayerState) -> BatchRunSummary | None:
        anchor = player.accumulation_anchor_level
        total = len(player.accumulation_buffer)
        logger.info(
            "batch_send_started",
            platform=player.platform,
            user_id=player.user_id,
            total=total,
            anchor_level=anchor.level_number if anchor is not None else None,
        )

        try:
            current = await self._sender.fetch_level(player)
            if anchor is not None and current.level_id != anchor.level_id:
                await self._ask_about_anchor_change(player, anchor, current)
                return BatchRunSummary(total=total, aborted=True)
            return await self._send_items(player, current)
        except EncounterError as error:
            logger.warning(
                "batch_send_failed",
                platform=player.platform,
                user_id=player.user_id,
                error_code=error.code,
            )
            await self._messenger.send_message(
                player.platform,
                player.user_id,
                TEXTS_EN["msg.batch.failed"].format(error=error.message),
            )
            return None

    async def _ask_about_anchor_change(self, player: PlayerState, anchor: LevelMark, current: LevelInfo) -> None:
        logger.info(
            "batch_anchor_level_changed",
            platform=player.platform,
            user_id=player.user_id,
            anchor_level=anchor.level_number,
            current_level=current.number,
        )
        buffer = player.accumulation_buffer
        codes = "\n".join(
            f'{index}. "{item.answer}"' for index, item in enumerate(buffer[:REDIRECT_PREVIEW_SIZE], start=1)
        )
        text = TEXTS_EN["msg.batch.level_changed"].format(
            old_level=anchor.level_number,
            new_level=current.number,
            count=len(buffer),
            codes=codes,
            more=more_suffix(len(buffer), REDIRECT_PREVIEW_SIZE),
        )
        await self._messenger.send_message(
            player.platform,
            player.user_id,
            text,
            batch_redirect_choices(current.number),
        )

    def _progress_text(
        self,
        *,
        progress: int,
        total: int,
        answer: str,
        status: str,
        level_number: int | None,
        sectors: str | None,
    ) -> str:
        return TEXTS_EN["msg.batch.progress"].format(
            progress=progress,
            total=total,
            answer=answer,
            status=status,
            level_number=level_label(level_number),
            sectors=_sectors_label(sectors),
        )

    async def _send_items(self, player: PlayerState, current: LevelInfo) -> BatchRunSummary:
        target = LevelMark(level_id=current.level_id, level_number=current.number)
        items = list(player.accumulation_buffer)
        summary = BatchRunSummary(total=len(items))
        delivered: list[AccumulatedAnswer] = []
        level_number: int | None = current.number
        sectors = current.sectors_text

        message_id = await self._messenger.send_message(
            player.platform,
            player.user_id,
            self._progress_text(
                progress=0,
                total=summary.total,
                answer=items[0].answer,
                status=TEXTS_EN["msg.batch.status.preparing"],
                level_number=level_number,
                sectors=sectors,
            ),
        )

        for index, item in enumerate(items, start=1):
            message_id = (
                await self._messenger.send_or_update_message(
                    player.platform,
                    player.user_id,
                    self._progress_text(
                        progress=index,
                        total=summary.total,
                        answer=item.answer,
                        status=TEXTS_EN["msg.batch.status.sending"],
                        level_number=level_number,
                        sectors=sectors,
                    ),
                    message_id,
                )
                or message_id
            )

            try:
                result = await self._sender.send(player, item.answer, expected_level=target)
            except LevelChangedError as error:
                logger.info(
                    "batch_level_changed_before_send",
                    platform=player.platform,
                    user_id=player.user_id,
                    sent=summary.sent,
                    new_level=error.new_level,
                )
                await self._stop(player, summary, delivered, error.new_level)
                return summary
            except EncounterError as error:
                logger.warning(
                    "batch_item_failed",
                    platform=player.platform,
                    user_id=player.user_id,
                    error_code=error.code,
                )
                status = TEXTS_EN["msg.batch.status.error"].format(error=error.message)
                summary.codes.append(SentCode(item.answer, status, None, sectors))
            else:
                summary.sent += 1
                delivered.append(item)
                if result.level is not None:
                    level_number = result.level.number
                    sectors = result.level.sectors_text
                summary.codes.append(SentCode(item.answer, result.message, level_number, sectors))

                if result.level is not None and result.level.level_id != target.level_id:
                    logger.info(
                        "batch_level_changed_mid_send",
                        platform=player.platform,
                        user_id=player.user_id,
                        sent=summary.sent,
                        old_level=target.level_number,
                        new_level=result.level.number,
                    )
                    await self._stop(player, summary, delivered, result.level.number)
                    return summary

            await self._messenger.send_or_update_message(
                player.platform,
                player.user_id,
                self._progress_text(
                    progress=index,
                    total=summary.total,
                    answer=item.answer,
                    status=summary.codes[-1].status,
                    level_number=level_number,
                    sectors=sectors,
                ),
                message_id,
            )

            if index < len(items):
                await self._sleep(self._item_delay)

        player.accumulation_buffer = [
            item for item in player.accumulation_buffer if not any(item is sent for sent in items)
        ]
        late = len(player.accumulation_buffer)
        if late:
            player.accumulation_anchor_level = target
            if self._restart_idle_timer is not None:
                self._restart_idle_timer(player)
        else:
            player.leave_accumulation()
        await self._store.save_player_state(player)
        logger.info(
            "batch_send_finished",
            platform=player.platform,
            user_id=player.user_id,
            sent=summary.sent,
            total=summary.total,
            kept_late=late,
        )
        await self._messenger.send_or_update_message(
            player.platform,
            player.user_id,
            format_batch_report(summary),
            message_id,
        )
        return summary

    async def _stop(
        self,
        player: PlayerState,
        summary: BatchRunSummary,
        delivered: list[AccumulatedAnswer],
        new_level: int | None,
    ) -> None:
        summary.stopped = True
        player.accumulation_buffer = [
            item for item in player.accumulation_buffer if not any(item is sent for sent in delivered)
        ]
        await self._store.save_player_state(player)

        remaining = player.accumulation_buffer
        codes = ", ".join(f'"{item.answer}"' for item in remaining[:REDIRECT_PREVIEW_SIZE])
        text = TEXTS_EN["msg.batch.stopped"].format(
            sent=summary.sent,
            total=summary.total,
            remaining=len(remaining),
            codes=codes,
            more=more_suffix(len(remaining), REDIRECT_PREVIEW_SIZE, inline=True),
        )
        await self._messenger.send_message(
            player.platform,
            player.user_id,
            text,
            batch_redirect_choices(new_level),
        )
