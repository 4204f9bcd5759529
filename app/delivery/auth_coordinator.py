from __future__ import annotations

import asyncio

import structlog

from app.delivery.ports import PlayerStore
from app.delivery.state import PlayerState
from app.encounter.client import Credentials, EncounterClientFactory
from app.encounter.errors import AUTH_ORIGIN_OWN, AUTH_ORIGIN_SHARED, AuthRequiredError

logger = structlog.get_logger(__name__)


class AuthCoordinator:
    """Single-flight sign-in per player.

    Concurrent callers for the same player share one ``authenticate`` request
    and observe the same credentials or the same failure. A failure is raised
    with ``origin="own"`` to the caller that started the sign-in and with
    ``origin="shared"`` to callers that only waited for it; both are marked
    ``re_auth_failed`` so nobody retries on top of it.

    Transport errors of the sign-in request (``NetworkError``,
    ``RateLimitedError``) reach every caller unchanged. They describe the
    connection, not the account, and the delivery path needs their type to
    move the answer to the backlog or report the retry hint.
    """

    def __init__(self, *, store: PlayerStore, clients: EncounterClientFactory) -> None:
        self._store = store
        self._clients = clients
        self._inflight: dict[tuple[str, str], asyncio.Task[Credentials]] = {}

    def is_in_flight(self, player: PlayerState) -> bool:
        return player.key in self._inflight

    async def ensure_authenticated(self, player: PlayerState) -> Credentials:
        if player.auth_credentials and player.key not in self._inflight:
            return player.auth_credentials
        return await self._join_or_start(player)

    async def reauthenticate(self, player: PlayerState, stale: Credentials | None = None) -> Credentials:
        """Replace ``stale`` credentials, unless someone already did it."""
        if player.key not in self._inflight and player.auth_credentials and player.auth_credentials != stale:
            return player.auth_credentials
        return await self._join_or_start(player)

    async def _join_or_start(self, player: PlayerState) -> Credentials:
        task = self._inflight.get(player.key)
        if task is not None:
            logger.info("auth_waiting_for_inflight", platform=player.platform, user_id=player.user_id)
            try:
                return await asyncio.shield(task)
            except AuthRequiredError as error:
                raise AuthRequiredError(
                    error.message,
                    re_auth_failed=True,
                    auth_code=error.auth_code,
                    origin=AUTH_ORIGIN_SHARED,
                    context=error.context,
                ) from error

        task = asyncio.ensure_future(self._authenticate(player))
        self._inflight[player.key] = task
        player.authentication_in_flight = True
        task.add_done_callback(lambda _: self._release(player, task))
        return await asyncio.shield(task)

    def _release(self, player: PlayerState, task: asyncio.Task[Credentials]) -> None:
        if self._inflight.get(player.key) is task:
            del self._inflight[player.key]
        player.authentication_in_flight = False

    async def _authenticate(self, player: PlayerState) -> Credentials:
        if not player.domain or not player.login or not player.password:
            raise AuthRequiredError(
                "Game account is not configured",
                re_auth_failed=True,
                auth_code="NOT_CONFIGURED",
                origin=AUTH_ORIGIN_OWN,
            )

        logger.info("auth_started", platform=player.platform, user_id=player.user_id, domain=player.domain)
        client = self._clients.create(player.domain)
        result = await client.authenticate(player.login, player.password)
        if not result.success or not result.credentials:
            logger.warning(
                "auth_failed",
                platform=player.platform,
                user_id=player.user_id,
                auth_code=result.code,
            )
            raise AuthRequiredError(
                result.message,
                re_auth_failed=True,
                auth_code=result.code,
                origin=AUTH_ORIGIN_OWN,
            )

        player.auth_credentials = dict(result.credentials)
        await self._store.save_player_state(player)
        logger.info("auth_succeeded", platform=player.platform, user_id=player.user_id)
        return player.auth_credentials
