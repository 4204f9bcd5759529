from __future__ import annotations

from typing import Any

DEFAULT_ERROR_CODE = "ENCOUNTER_ERROR"

AUTH_ORIGIN_OWN = "own"
AUTH_ORIGIN_SHARED = "shared"


class EncounterError(Exception):
    """Base for every failure surfaced by the game-server stack.

    ``code`` is the stable machine-readable kind; callers branch on the
    exception type and ``code`` only. ``context`` carries free-form
    observability fields (game id, expected level, operation name).
    """

    default_message = "Encounter request failed"
    default_code = DEFAULT_ERROR_CODE
    default_retryable = False

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        retryable: bool | None = None,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.retryable = self.default_retryable if retryable is None else retryable
        self.status = status
        self.context: dict[str, Any] = dict(context or {})


class AuthRequiredError(EncounterError):
    default_message = "Re-authentication required"
    default_code = "AUTH_REQUIRED"

    def __init__(
        self,
        message: str | None = None,
        *,
        re_auth_failed: bool = False,
        auth_code: str | None = None,
        origin: str | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)
        self.needs_auth = True
        self.re_auth_failed = re_auth_failed
        self.auth_code = auth_code
        self.origin = origin


class NetworkError(EncounterError):
    default_message = "Encounter network error"
    default_code = "NETWORK"
    default_retryable = True


class RateLimitedError(EncounterError):
    default_message = "Encounter rate limit exceeded"
    default_code = "RATE_LIMIT"
    default_retryable = True

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after_seconds: float | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs["retryable"] = True
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds


class LevelChangedError(EncounterError):
    default_message = "Game level changed"
    default_code = "LEVEL_CHANGED"

    def __init__(
        self,
        message: str | None = None,
        *,
        old_level: int | None = None,
        new_level: int | None = None,
        answer: str | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)
        self.old_level = old_level
        self.new_level = new_level
        self.answer = answer


class GameProtocolError(EncounterError):
    default_message = "Encounter rejected the request"
    default_code = "GAME_PROTOCOL"

    def __init__(
        self,
        message: str | None = None,
        *,
        event: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.event = event


STALE_STATE_CODES = frozenset({"INVALID_RESPONSE", "UNKNOWN_EVENT", "LEVEL_CHANGED_EVENT"})


def is_stale_state_error(error: BaseException) -> bool:
    if isinstance(error, LevelChangedError):
        return True
    return isinstance(error, GameProtocolError) and error.code in STALE_STATE_CODES
