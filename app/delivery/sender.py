from __future__ import annotations

import structlog

from app.delivery.auth_coordinator import AuthCoordinator
from app.delivery.ports import PlayerStore
from app.delivery.state import LevelMark, PlayerState
from app.encounter.client import Credentials, EncounterClient, EncounterClientFactory
from app.encounter.types import LevelInfo, SubmitResult

logger = structlog.get_logger(__name__)


class AnswerSender:
    """Talks to the game server on behalf of a stored player.

    Keeps ``auth_credentials`` and ``last_known_level`` of the player in step
    with what the server returned and persists them after every call.
    """

    def __init__(
        self,
        *,
        store: PlayerStore,
        clients: EncounterClientFactory,
        auth: AuthCoordinator,
    ) -> None:
        self._store = store
        self._clients = clients
        self._auth = auth

    def client_for(self, player: PlayerState) -> EncounterClient:
        async def reauthenticate(stale: Credentials | None) -> Credentials:
            return await self._auth.reauthenticate(player, stale)

        return self._clients.create(player.domain or "", reauthenticate=reauthenticate)

    def _apply_credentials(self, player: PlayerState, new_credentials: Credentials | None) -> None:
        if new_credentials:
            logger.info("player_credentials_refreshed", platform=player.platform, user_id=player.user_id)
            player.auth_credentials = dict(new_credentials)

    async def send(
        self,
        player: PlayerState,
        answer: str,
        *,
        expected_level: LevelMark | None,
    ) -> SubmitResult:
        credentials = await self._auth.ensure_authenticated(player)
        client = self.client_for(player)
        result = await client.submit_answer(
            player.game_id or "",
            answer,
            credentials,
            player.login,
            player.password,
            expected_level.level_id if expected_level is not None else None,
            expected_level_number=expected_level.level_number if expected_level is not None else None,
        )

        self._apply_credentials(player, result.new_credentials)
        if result.level is not None:
            player.remember_level(result.level.level_id, result.level.number)
        await self._store.save_player_state(player)
        return result

    async def fetch_level(self, player: PlayerState) -> LevelInfo:
        credentials = await self._auth.ensure_authenticated(player)
        client = self.client_for(player)
        state = await client.fetch_level_state(
            player.game_id or "",
            credentials,
            player.login,
            player.password,
        )

        self._apply_credentials(player, state.new_credentials)
        player.remember_level(state.level.level_id, state.level.number)
        await self._store.save_player_state(player)
        return state.level
