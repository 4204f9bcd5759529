from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.delivery.ports import ChoiceRows
from app.delivery.state import LevelMark, PlayerState
from app.encounter.types import LevelInfo, SubmitResult


def make_level(level_id: int = 10, number: int = 3, **overrides: Any) -> LevelInfo:
    values: dict[str, Any] = {
        "level_id": level_id,
        "number": number,
        "name": f"Level {number}",
        "passed_sectors": 1,
        "required_sectors": 4,
    }
    values.update(overrides)
    return LevelInfo(**values)


def make_result(level: LevelInfo | None = None, *, message: str = "Correct answer!") -> SubmitResult:
    level = level or make_level()
    return SubmitResult(success=True, message=message, level_number=level.number, correct=True, level=level)


def configured_player(**overrides: Any) -> PlayerState:
    values: dict[str, Any] = {
        "platform": "telegram",
        "user_id": "42",
        "login": "player",
        "password": "secret",
        "domain": "https://tech.en.cx",
        "game_id": "80646",
        "auth_credentials": {"GUID": "abc"},
        "last_known_level": LevelMark(level_id=10, level_number=3),
    }
    values.update(overrides)
    return PlayerState(**values)


@dataclass(slots=True)
class SentMessage:
    kind: str
    text: str
    message_id: int | None
    choices: ChoiceRows | None


class RecordingMessenger:
    def __init__(self) -> None:
        self.messages: list[SentMessage] = []
        self._next_id = 100

    async def send_message(
        self,
        platform: str,
        user_id: str,
        text: str,
        choices: ChoiceRows | None = None,
    ) -> int | None:
        self._next_id += 1
        self.messages.append(SentMessage("send", text, self._next_id, choices))
        return self._next_id

    async def send_or_update_message(
        self,
        platform: str,
        user_id: str,
        text: str,
        message_id: int | None = None,
        choices: ChoiceRows | None = None,
    ) -> int | None:
        if message_id is None:
            return await self.send_message(platform, user_id, text, choices)
        self.messages.append(SentMessage("update", text, message_id, choices))
        return message_id

    @property
    def texts(self) -> list[str]:
        return [message.text for message in self.messages]

    @property
    def last(self) -> SentMessage:
        return self.messages[-1]


Outcome = SubmitResult | Exception | Callable[[PlayerState, str], SubmitResult] | None


class FakeSender:
    """Stands in for ``AnswerSender``; replays scripted outcomes per send."""

    def __init__(self, level: LevelInfo | None = None, outcomes: list[Outcome] | None = None) -> None:
        self.level = level or make_level()
        self.outcomes = list(outcomes or [])
        self.fetch_error: Exception | None = None
        self.sent: list[tuple[str, LevelMark | None]] = []
        self.fetch_calls = 0

    async def fetch_level(self, player: PlayerState) -> LevelInfo:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        player.remember_level(self.level.level_id, self.level.number)
        return self.level

    async def send(self, player: PlayerState, answer: str, *, expected_level: LevelMark | None) -> SubmitResult:
        self.sent.append((answer, expected_level))
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if outcome is not None and not isinstance(outcome, (Exception, SubmitResult)):
            outcome = outcome(player, answer)
        if isinstance(outcome, Exception):
            raise outcome
        result = outcome or make_result(self.level)
        if result.level is not None:
            player.remember_level(result.level.level_id, result.level.number)
        return result

    @property
    def answers(self) -> list[str]:
        return [answer for answer, _ in self.sent]


class RecordingSleeper:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ManualTimer:
    def __init__(self, delay: float, job: Callable[[], Awaitable[Any]]) -> None:
        self.delay = delay
        self.job = job
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Collects scheduled jobs; tests fire them explicitly."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, job: Callable[[], Awaitable[Any]]) -> ManualTimer:
        timer = ManualTimer(delay, job)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    async def run_all(self) -> None:
        for timer in self.active:
            timer.fired = True
            await timer.job()
