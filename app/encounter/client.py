from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from http.cookiejar import CookieJar, DefaultCookiePolicy
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import httpx
import structlog

from app.core.config import DEFAULT_USER_AGENT, Settings
from app.encounter.constants import (
    AUTH_COOKIE_NAMES,
    AUTH_INVALID_RESPONSE,
    AUTH_IP_BLOCKED,
    AUTH_RESULTS,
    AUTH_SUCCESS,
    AUTH_UNKNOWN,
    EVENT_NOT_AUTHORIZED,
    EVENT_OK,
    GAME_EVENTS,
    LEVEL_CHANGED_EVENTS,
)
from app.encounter.errors import (
    AUTH_ORIGIN_OWN,
    AuthRequiredError,
    EncounterError,
    GameProtocolError,
    LevelChangedError,
    NetworkError,
    RateLimitedError,
)
from app.encounter.level_cache import LevelCache
from app.encounter.rate_limit import RateLimiter
from app.encounter.types import AuthResult, GameState, LevelInfo, SubmitResult
from app.encounter.urls import normalize_domain

logger = structlog.get_logger(__name__)

Credentials = dict[str, str]
Reauthenticator = Callable[[Credentials | None], Awaitable[Credentials]]

MAX_AUTH_RETRIES = 1
HTML_MARKERS = ("<html", "<!doctype")


def looks_like_html(text: str) -> bool:
    head = text.lstrip()[:512].lower()
    return any(marker in head for marker in HTML_MARKERS)


def format_block_time(seconds: int) -> str:
    minutes, rest = divmod(max(0, int(seconds)), 60)
    if minutes > 0:
        return f"{minutes}m {rest}s"
    return f"{rest}s"


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (moment - current).total_seconds())


def extract_auth_cookies(response: httpx.Response) -> Credentials:
    cookies: Credentials = {}
    for header in response.headers.get_list("set-cookie"):
        name_value = header.split(";", 1)[0]
        name, separator, value = name_value.partition("=")
        name = name.strip()
        if separator and name in AUTH_COOKIE_NAMES:
            cookies[name] = unquote(value.strip())
    return cookies


def cookie_header(credentials: Credentials) -> str:
    return "; ".join(f"{name}={value}" for name, value in credentials.items())


def normalize_transport_error(error: Exception, *, operation: str) -> EncounterError:
    """Map an ``httpx`` failure onto the encounter error taxonomy."""
    if isinstance(error, EncounterError):
        return error
    context = {"operation": operation}
    if isinstance(error, httpx.TimeoutException):
        return NetworkError(
            "Encounter server did not respond in time",
            code="ETIMEDOUT",
            retryable=True,
            context=context,
        )
    if isinstance(error, httpx.ConnectError):
        return NetworkError("Cannot connect to Encounter server", code="ECONNREFUSED", context=context)
    if isinstance(error, httpx.TransportError):
        return NetworkError(f"Connection to Encounter failed: {error}", code="ECONNRESET", context=context)
    return NetworkError(f"Unexpected transport failure: {error}", code="NETWORK", context=context)


def error_for_status(response: httpx.Response, *, operation: str) -> EncounterError | None:
    status = response.status_code
    if 200 <= status < 300:
        return None
    context = {"operation": operation}
    if status == 429:
        return RateLimitedError(
            retry_after_seconds=parse_retry_after(response.headers.get("Retry-After")),
            status=status,
            context=context,
        )
    if status == 401:
        return AuthRequiredError("Encounter session is not authorized", status=status, context=context)
    if status >= 500:
        return NetworkError(
            f"Encounter server error (HTTP {status})",
            code=f"HTTP_{status}",
            retryable=True,
            status=status,
            context=context,
        )
    return NetworkError(
        f"Encounter request rejected (HTTP {status})",
        code=f"HTTP_{status}",
        retryable=False,
        status=status,
        context=context,
    )


def check_level_accepts_answers(level: LevelInfo) -> None:
    if level.is_passed:
        raise GameProtocolError(f"Level {level.number} is already passed", code="LEVEL_PASSED")
    if level.dismissed:
        raise GameProtocolError(f"Level {level.number} was dismissed by the organizers", code="LEVEL_DISMISSED")
    if level.has_answer_block_rule and level.block_duration_seconds > 0:
        raise GameProtocolError(
            f"Answers are blocked on level {level.number}. "
            f"Time left: {format_block_time(level.block_duration_seconds)}",
            code="ANSWER_BLOCKED",
            retryable=True,
        )


class EncounterClient:
    """Client for one Encounter domain.

    Every request goes through the shared per-domain :class:`RateLimiter`.
    Successful level reads populate the shared :class:`LevelCache`.
    ``reauthenticate`` is called with the stale credentials when the server
    reports an expired session; without it the client signs in by itself.
    """

    def __init__(
        self,
        domain: str,
        *,
        http_client: httpx.AsyncClient,
        rate_limiter: RateLimiter,
        level_cache: LevelCache,
        reauthenticate: Reauthenticator | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        error_html_dir: str | Path | None = None,
    ) -> None:
        self.base_url = normalize_domain(domain)
        self.domain = self.base_url.split("://", 1)[1]
        self._http = http_client
        self._rate_limiter = rate_limiter
        self._level_cache = level_cache
        self._reauthenticate = reauthenticate
        self._user_agent = user_agent
        self._error_html_dir = Path(error_html_dir) if error_html_dir else None

    def _play_url(self, game_id: str | int) -> str:
        return f"{self.base_url}/GameEngines/Encounter/Play/{game_id}"

    def _headers(self, credentials: Credentials | None = None) -> dict[str, str]:
        headers = {
            "User-Agent": self._user_agent,
            "Accept": "application/json, text/html, */*",
        }
        if credentials:
            headers["Cookie"] = cookie_header(credentials)
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        credentials: Credentials | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        await self._rate_limiter.wait(self.domain)
        try:
            return await self._http.request(
                method,
                url,
                params={"json": "1"},
                data=data,
                headers=self._headers(credentials),
            )
        except httpx.HTTPError as exc:
            raise normalize_transport_error(exc, operation=operation) from exc

    def save_error_html(self, html: str, label: str) -> Path | None:
        if self._error_html_dir is None:
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        safe_label = "".join(char if char.isalnum() or char in "-_" else "-" for char in label)
        path = self._error_html_dir / f"{stamp}-{self.domain}-{safe_label}.html"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(html, encoding="utf-8")
        except OSError:
            logger.warning("encounter_error_html_save_failed", domain=self.domain, label=label, exc_info=True)
            return None
        logger.info("encounter_error_html_saved", domain=self.domain, label=label, path=str(path))
        return path

    async def authenticate(self, login: str, password: str) -> AuthResult:
        response = await self._send(
            "POST",
            f"{self.base_url}/login/signin",
            operation="authenticate",
            data={"Login": login, "Password": password, "ddlNetwork": "1"},
        )
        text = response.text
        if looks_like_html(text):
            if response.is_success:
                self.save_error_html(text, "auth-ip-blocked")
                logger.warning("encounter_auth_ip_blocked", domain=self.domain)
                return AuthResult(
                    success=False,
                    code=AUTH_IP_BLOCKED,
                    message="Encounter answered with an HTML page. The server IP is probably blocked.",
                )
            self.save_error_html(text, f"auth-http-{response.status_code}")
            return AuthResult(
                success=False,
                code=AUTH_INVALID_RESPONSE,
                message=f"Encounter returned an unexpected page (HTTP {response.status_code})",
            )

        status_error = error_for_status(response, operation="authenticate")
        if status_error is not None:
            if status_error.retryable:
                raise status_error
            return AuthResult(success=False, code=status_error.code, message=status_error.message)

        try:
            payload = response.json()
        except ValueError:
            return AuthResult(
                success=False,
                code=AUTH_INVALID_RESPONSE,
                message="Encounter returned an unreadable sign-in response",
            )
        if not isinstance(payload, dict):
            return AuthResult(
                success=False,
                code=AUTH_INVALID_RESPONSE,
                message="Encounter returned an unreadable sign-in response",
            )

        error_code = payload.get("Error")
        if error_code == 0:
            credentials = extract_auth_cookies(response)
            if not credentials:
                return AuthResult(
                    success=False,
                    code=AUTH_INVALID_RESPONSE,
                    message="Encounter did not return session cookies",
                )
            logger.info("encounter_auth_succeeded", domain=self.domain)
            return AuthResult(success=True, code=AUTH_SUCCESS, message="Signed in", credentials=credentials)

        code, message = AUTH_RESULTS.get(
            error_code if isinstance(error_code, int) else -1,
            (AUTH_UNKNOWN, f"Sign-in failed (code {error_code})"),
        )
        captcha_url = payload.get("CaptchaUrl") or None
        if error_code == 1 and captcha_url:
            message = f"{message}\n\nCaptcha link:\n{captcha_url}"
        logger.info("encounter_auth_rejected", domain=self.domain, auth_code=code, server_code=error_code)
        return AuthResult(success=False, code=code, message=message, captcha_url=captcha_url)

    def _decode_payload(self, response: httpx.Response, *, operation: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise GameProtocolError(
                "Encounter returned malformed data",
                code="INVALID_RESPONSE",
                context={"operation": operation},
            ) from exc
        if not isinstance(payload, dict):
            raise GameProtocolError(
                "Encounter returned malformed data",
                code="INVALID_RESPONSE",
                context={"operation": operation},
            )
        return payload

    async def _read_state(self, game_id: str | int, credentials: Credentials | None) -> GameState:
        if not credentials:
            raise AuthRequiredError("No session credentials, sign in required")

        response = await self._send(
            "GET",
            self._play_url(game_id),
            operation="fetch_level_state",
            credentials=credentials,
        )
        status_error = error_for_status(response, operation="fetch_level_state")
        if status_error is not None:
            raise status_error
        if looks_like_html(response.text):
            raise AuthRequiredError("Encounter session expired", status=response.status_code)

        payload = self._decode_payload(response, operation="fetch_level_state")
        event = payload.get("Event")
        if event is None:
            raise GameProtocolError("Encounter response has no event field", code="INVALID_RESPONSE")
        if event == EVENT_NOT_AUTHORIZED:
            raise AuthRequiredError("Encounter reports the player is not authorized")
        if event != EVENT_OK:
            code, message = GAME_EVENTS.get(event, ("GAME_EVENT", f"Unknown game condition (event {event})"))
            raise GameProtocolError(message, code=code, event=event)

        level_payload = payload.get("Level")
        if not isinstance(level_payload, dict):
            raise GameProtocolError("Encounter response has no level data", code="INVALID_RESPONSE")
        try:
            level = LevelInfo.from_payload(level_payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise GameProtocolError("Encounter level data is malformed", code="INVALID_RESPONSE") from exc
        return GameState(event=event, level=level, payload=payload)

    async def _renew_credentials(
        self,
        stale: Credentials | None,
        login: str | None,
        password: str | None,
    ) -> Credentials:
        if self._reauthenticate is not None:
            return await self._reauthenticate(stale)
        result = await self.authenticate(login or "", password or "")
        if not result.success or not result.credentials:
            raise AuthRequiredError(
                result.message,
                re_auth_failed=True,
                auth_code=result.code,
                origin=AUTH_ORIGIN_OWN,
            )
        return result.credentials

    def _can_reauthenticate(self, error: EncounterError, attempt: int, login: str | None, password: str | None) -> bool:
        return (
            isinstance(error, AuthRequiredError)
            and not error.re_auth_failed
            and attempt < MAX_AUTH_RETRIES
            and bool(login)
            and bool(password)
        )

    async def fetch_level_state(
        self,
        game_id: str | int,
        credentials: Credentials | None,
        login: str | None = None,
        password: str | None = None,
    ) -> GameState:
        current = credentials
        renewed: Credentials | None = None
        attempt = 0
        while True:
            try:
                state = await self._read_state(game_id, current)
            except EncounterError as error:
                if self._can_reauthenticate(error, attempt, login, password):
                    logger.info("encounter_state_reauth", domain=self.domain, game_id=str(game_id))
                    current = renewed = await self._renew_credentials(current, login, password)
                    attempt += 1
                    continue
                error.context.setdefault("game_id", str(game_id))
                raise

            self._level_cache.put(
                self.domain,
                game_id,
                login,
                level_id=state.level.level_id,
                level_number=state.level.number,
                is_passed=state.level.is_passed,
            )
            if renewed is not None:
                return GameState(event=state.event, level=state.level, payload=state.payload, new_credentials=renewed)
            return state

    async def submit_answer(
        self,
        game_id: str | int,
        answer: str,
        credentials: Credentials | None,
        login: str | None = None,
        password: str | None = None,
        expected_level_id: int | None = None,
        *,
        expected_level_number: int | None = None,
    ) -> SubmitResult:
        current = credentials
        renewed: Credentials | None = None
        attempt = 0
        while True:
            try:
                result = await self._submit_once(
                    game_id,
                    answer,
                    current,
                    login=login,
                    expected_level_id=expected_level_id,
                    expected_level_number=expected_level_number,
                )
            except EncounterError as error:
                if self._can_reauthenticate(error, attempt, login, password):
                    logger.info("answer_submit_reauth", domain=self.domain, game_id=str(game_id))
                    current = renewed = await self._renew_credentials(current, login, password)
                    attempt += 1
                    continue
                self._level_cache.invalidate(self.domain, game_id)
                error.context.setdefault("game_id", str(game_id))
                error.context.setdefault("expected_level_id", expected_level_id)
                logger.info(
                    "answer_submit_failed",
                    domain=self.domain,
                    game_id=str(game_id),
                    error_code=error.code,
                    retryable=error.retryable,
                )
                raise

            if renewed is not None:
                result.new_credentials = renewed
            return result

    async def _submit_once(
        self,
        game_id: str | int,
        answer: str,
        credentials: Credentials | None,
        *,
        login: str | None,
        expected_level_id: int | None,
        expected_level_number: int | None,
    ) -> SubmitResult:
        if not credentials:
            raise AuthRequiredError("No session credentials, sign in required")

        cached = self._level_cache.get(self.domain, game_id, login)
        if cached is not None:
            resolved_id, resolved_number = cached.level_id, cached.level_number
            if cached.is_passed:
                raise GameProtocolError(f"Level {resolved_number} is already passed", code="LEVEL_PASSED")
        else:
            first = await self._read_state(game_id, credentials)
            self._cache_level(game_id, login, first.level)
            check_level_accepts_answers(first.level)
            resolved_id, resolved_number = first.level.level_id, first.level.number

        if expected_level_id is None:
            expected_level_id = resolved_id
            expected_level_number = resolved_number
        elif expected_level_number is None and expected_level_id == resolved_id:
            expected_level_number = resolved_number

        # Second read right before posting; the level may have moved since the first one.
        fresh = await self._read_state(game_id, credentials)
        self._cache_level(game_id, login, fresh.level)
        level = fresh.level
        if level.level_id != expected_level_id:
            logger.info(
                "answer_submit_level_changed",
                domain=self.domain,
                game_id=str(game_id),
                expected_level_id=expected_level_id,
                actual_level_id=level.level_id,
            )
            raise LevelChangedError(
                f"Level changed from {expected_level_number} to {level.number}",
                old_level=expected_level_number,
                new_level=level.number,
                answer=answer,
                context={"expected_level_id": expected_level_id, "actual_level_id": level.level_id},
            )
        check_level_accepts_answers(level)

        response = await self._send(
            "POST",
            self._play_url(game_id),
            operation="submit_answer",
            credentials=credentials,
            data={
                "LevelId": str(level.level_id),
                "LevelNumber": str(level.number),
                "LevelAction.Answer": answer,
            },
        )
        status_error = error_for_status(response, operation="submit_answer")
        if status_error is not None:
            raise status_error
        if looks_like_html(response.text):
            raise AuthRequiredError("Encounter session expired", status=response.status_code)

        payload = self._decode_payload(response, operation="submit_answer")
        event = payload.get("Event")
        if event == EVENT_NOT_AUTHORIZED:
            raise AuthRequiredError("Encounter reports the player is not authorized")
        if event in LEVEL_CHANGED_EVENTS:
            self._level_cache.invalidate(self.domain, game_id)
        elif event is not None and event != EVENT_OK:
            raise GameProtocolError(f"Answer was rejected (event {event})", code="SUBMIT_REJECTED", event=event)

        return self._interpret_verdict(game_id, answer, level, payload)

    def _cache_level(self, game_id: str | int, login: str | None, level: LevelInfo) -> None:
        self._level_cache.put(
            self.domain,
            game_id,
            login,
            level_id=level.level_id,
            level_number=level.number,
            is_passed=level.is_passed,
        )

    def _interpret_verdict(
        self,
        game_id: str | int,
        answer: str,
        level: LevelInfo,
        payload: dict[str, Any],
    ) -> SubmitResult:
        engine_action = payload.get("EngineAction") or {}
        level_action = engine_action.get("LevelAction") if isinstance(engine_action, dict) else None

        result_level: LevelInfo | None = None
        level_payload = payload.get("Level")
        if isinstance(level_payload, dict):
            try:
                result_level = LevelInfo.from_payload(level_payload)
            except (KeyError, TypeError, ValueError):
                result_level = None

        correct: bool | None = None
        level_passed = False
        if not isinstance(level_action, dict):
            message = "Answer was not processed: the server returned no verdict"
        else:
            verdict = level_action.get("IsCorrectAnswer")
            if verdict is None:
                message = "Answer was not processed, check it and try again"
            else:
                correct = bool(verdict)
                message = "Correct answer!" if correct else "Wrong answer"
            if result_level is not None and result_level.is_passed:
                level_passed = True
                message += " Level passed!"
                self._level_cache.invalidate(self.domain, game_id)

        logger.info(
            "answer_submitted",
            domain=self.domain,
            game_id=str(game_id),
            level_number=level.number,
            correct=correct,
            level_passed=level_passed,
        )
        return SubmitResult(
            success=True,
            message=message,
            level_number=level.number,
            correct=correct,
            level_passed=level_passed,
            level=result_level or level,
            payload=payload,
        )


class EncounterClientFactory:
    """Owns the process-wide pieces shared by every client: HTTP pool, limiter and level cache."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        rate_limiter: RateLimiter | None = None,
        level_cache: LevelCache | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        error_html_dir: str | Path | None = None,
    ) -> None:
        self.http_client = http_client
        self.rate_limiter = rate_limiter or RateLimiter()
        self.level_cache = level_cache or LevelCache()
        self.user_agent = user_agent
        self.error_html_dir = error_html_dir

    @classmethod
    def from_settings(cls, settings: Settings) -> EncounterClientFactory:
        # Session cookies travel in an explicit Cookie header per player; the shared jar stays empty.
        http_client = httpx.AsyncClient(
            timeout=settings.encounter_request_timeout_seconds,
            follow_redirects=True,
            cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        )
        return cls(
            http_client=http_client,
            rate_limiter=RateLimiter(min_interval_seconds=settings.encounter_min_request_interval_ms / 1000),
            level_cache=LevelCache(ttl_seconds=settings.encounter_level_cache_ttl_seconds),
            user_agent=settings.encounter_user_agent,
            error_html_dir=settings.encounter_error_html_dir,
        )

    def create(self, domain: str, *, reauthenticate: Reauthenticator | None = None) -> EncounterClient:
        return EncounterClient(
            domain,
            http_client=self.http_client,
            rate_limiter=self.rate_limiter,
            level_cache=self.level_cache,
            reauthenticate=reauthenticate,
            user_agent=self.user_agent,
            error_html_dir=self.error_html_dir,
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()
