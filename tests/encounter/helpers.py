from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import httpx

from app.encounter.client import EncounterClient
from app.encounter.level_cache import LevelCache
from app.encounter.rate_limit import RateLimiter


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def level_payload(level_id: int = 10, number: int = 3, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "LevelId": level_id,
        "Number": number,
        "Name": f"Level {number}",
        "IsPassed": False,
        "Dismissed": False,
        "HasAnswerBlockRule": False,
        "BlockDuration": 0,
        "PassedSectorsCount": 1,
        "RequiredSectorsCount": 4,
    }
    payload.update(overrides)
    return payload


def state_response(level_id: int = 10, number: int = 3, **overrides: Any) -> httpx.Response:
    return httpx.Response(200, json={"Event": 0, "Level": level_payload(level_id, number, **overrides)})


def verdict_response(
    correct: bool | None = True,
    *,
    level_id: int = 10,
    number: int = 3,
    event: int = 0,
    **level_overrides: Any,
) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "Event": event,
            "EngineAction": {"LevelAction": {"Answer": "x", "IsCorrectAnswer": correct}},
            "Level": level_payload(level_id, number, **level_overrides),
        },
    )


def html_response(status: int = 200) -> httpx.Response:
    return httpx.Response(status, text="<!DOCTYPE html><html><body>login</body></html>")


class ScriptedServer:
    """MockTransport handler that replays queued responses and records requests."""

    def __init__(self, *responses: httpx.Response | Exception | Callable[[httpx.Request], httpx.Response]) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    @property
    def posts(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.method == "POST"]


def build_client(
    server: ScriptedServer,
    *,
    clock: FakeClock | None = None,
    level_cache: LevelCache | None = None,
    reauthenticate=None,
    error_html_dir=None,
) -> EncounterClient:
    clock = clock or FakeClock()
    return EncounterClient(
        "tech.en.cx",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(server)),
        rate_limiter=RateLimiter(min_interval_seconds=0, clock=clock, sleep=clock.sleep),
        level_cache=level_cache or LevelCache(clock=clock),
        reauthenticate=reauthenticate,
        error_html_dir=error_html_dir,
    )
