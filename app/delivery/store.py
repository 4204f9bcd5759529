from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.repo.player_states_repo import PlayerStatesRepo, row_to_record
from app.delivery.state import PlayerState, utc_now

logger = structlog.get_logger(__name__)


class SqlPlayerStore:
    """``PlayerStore`` backed by the ``player_states`` table.

    Loaded players are kept in an identity map, so every component in the
    process works on the same object and the transient fields (guards, timers,
    pending burst entries) survive between calls. Only ``to_record`` is
    written.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._players: dict[tuple[str, str], PlayerState] = {}

    async def get_player_state(self, platform: str, user_id: str) -> PlayerState:
        key = (platform, str(user_id))
        cached = self._players.get(key)
        if cached is not None:
            return cached

        async with self._session_factory.begin() as session:
            row = await PlayerStatesRepo.get(session, platform=key[0], user_id=key[1])
            record = row_to_record(row) if row is not None else None

        if record is None:
            player = PlayerState(platform=key[0], user_id=key[1])
        else:
            player = PlayerState.from_record(key[0], key[1], record)
        return self._players.setdefault(key, player)

    async def save_player_state(self, player: PlayerState) -> None:
        self._players.setdefault(player.key, player)
        async with self._session_factory.begin() as session:
            await PlayerStatesRepo.upsert(
                session,
                platform=player.platform,
                user_id=player.user_id,
                record=player.to_record(),
                now_utc=utc_now(),
            )
        logger.debug("player_state_saved", platform=player.platform, user_id=player.user_id)
