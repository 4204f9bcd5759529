from __future__ import annotations

from typing import Any

import structlog

from app.bot.texts.en import TEXTS_EN
from app.core.config import Settings
from app.delivery.answer_delivery import AnswerDelivery
from app.delivery.auth_coordinator import AuthCoordinator
from app.delivery.batch_buffer import BatchBuffer
from app.delivery.batch_sender import BatchSender
from app.delivery.decisions import Acknowledge, PlayerDecisions, no_ack
from app.delivery.ports import Messenger, PlayerStore
from app.delivery.queue_processor import QueueProcessor, QueueRunSummary, describe_backlog
from app.delivery.sender import AnswerSender
from app.delivery.state import PlayerState
from app.encounter.client import EncounterClientFactory

logger = structlog.get_logger(__name__)


class AnswerRelay:
    """Entry point used by transports: answers in, decisions in, status out."""

    def __init__(
        self,
        *,
        store: PlayerStore,
        messenger: Messenger,
        clients: EncounterClientFactory,
        auth: AuthCoordinator | None = None,
        sender: AnswerSender | None = None,
        queue: QueueProcessor | None = None,
        delivery: AnswerDelivery | None = None,
        batch_buffer: BatchBuffer | None = None,
        batch_sender: BatchSender | None = None,
    ) -> None:
        self.store = store
        self.messenger = messenger
        self.clients = clients
        self.auth = auth or AuthCoordinator(store=store, clients=clients)
        self.sender = sender or AnswerSender(store=store, clients=clients, auth=self.auth)
        self.queue = queue or QueueProcessor(store=store, messenger=messenger, sender=self.sender)
        self.delivery = delivery or AnswerDelivery(
            store=store,
            messenger=messenger,
            sender=self.sender,
            replay_backlog=self.queue.process,
        )
        self.batch_buffer = batch_buffer or BatchBuffer(deliver=self.delivery.deliver_answer)
        self.batch_sender = batch_sender or BatchSender(
            store=store,
            messenger=messenger,
            sender=self.sender,
            restart_idle_timer=self.delivery.restart_accumulation_timer,
        )
        self.decisions = PlayerDecisions(
            store=store,
            messenger=messenger,
            sender=self.sender,
            queue=self.queue,
            batch_sender=self.batch_sender,
            batch_buffer=self.batch_buffer,
        )

    @classmethod
    def from_settings(cls, settings: Settings, *, store: PlayerStore, messenger: Messenger) -> AnswerRelay:
        return cls(store=store, messenger=messenger, clients=EncounterClientFactory.from_settings(settings))

    async def close(self) -> None:
        await self.clients.aclose()

    async def handle_answer(
        self,
        platform: str,
        user_id: str,
        answer: str,
        progress_message_id: int | None = None,
    ) -> Any:
        answer = answer.strip()
        if not answer:
            return None

        player = await self.store.get_player_state(platform, user_id)
        if not player.is_configured:
            await self.messenger.send_or_update_message(
                platform,
                user_id,
                TEXTS_EN["msg.player.not_configured"],
                progress_message_id,
            )
            return None

        return await self.batch_buffer.submit(player, answer, progress_message_id)

    async def handle_decision(
        self,
        platform: str,
        user_id: str,
        action: str,
        ack: Acknowledge = no_ack,
    ) -> bool:
        player = await self.store.get_player_state(platform, user_id)
        return await self.decisions.handle(player, action, ack)

    async def configure_player(
        self,
        platform: str,
        user_id: str,
        *,
        domain: str,
        game_id: str,
        login: str,
        password: str,
    ) -> PlayerState:
        player = await self.store.get_player_state(platform, user_id)
        self.batch_buffer.reset_burst_state(player)
        player.reset_session()
        player.domain = domain
        player.game_id = game_id
        player.login = login
        player.password = password
        await self.store.save_player_state(player)
        logger.info("player_configured", platform=platform, user_id=user_id, domain=domain, game_id=game_id)
        return player

    async def queue_status(self, platform: str, user_id: str) -> str:
        player = await self.store.get_player_state(platform, user_id)
        return describe_backlog(player)

    async def process_backlog(self, platform: str, user_id: str) -> QueueRunSummary | None:
        player = await self.store.get_player_state(platform, user_id)
        return await self.queue.process(player)
