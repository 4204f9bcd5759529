from __future__ import annotations

from typing import Protocol

from app.delivery.state import PlayerState

# Inline choice rows as (button text, action) pairs; transports render them.
ChoiceRows = list[list[tuple[str, str]]]


class PlayerStore(Protocol):
    async def get_player_state(self, platform: str, user_id: str) -> PlayerState: ...

    async def save_player_state(self, player: PlayerState) -> None: ...


class Messenger(Protocol):
    async def send_message(
        self,
        platform: str,
        user_id: str,
        text: str,
        choices: ChoiceRows | None = None,
    ) -> int | None: ...

    async def send_or_update_message(
        self,
        platform: str,
        user_id: str,
        text: str,
        message_id: int | None = None,
        choices: ChoiceRows | None = None,
    ) -> int | None: ...


class InMemoryPlayerStore:
    def __init__(self) -> None:
        self._players: dict[tuple[str, str], PlayerState] = {}
        self.save_calls = 0

    async def get_player_state(self, platform: str, user_id: str) -> PlayerState:
        key = (platform, str(user_id))
        player = self._players.get(key)
        if player is None:
            player = PlayerState(platform=platform, user_id=str(user_id))
            self._players[key] = player
        return player

    async def save_player_state(self, player: PlayerState) -> None:
        self._players[player.key] = player
        self.save_calls += 1
