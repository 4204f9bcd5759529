from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any


@dataclass(slots=True)
class DummyAnswerCall:
    text: str | None
    kwargs: dict[str, Any]


class DummyBot:
    def __init__(self) -> None:
        self.sent_messages: list[dict[str, Any]] = []
        self.edited_messages: list[dict[str, Any]] = []
        self.edit_error: Exception | None = None
        self._next_message_id = 500

    async def send_message(self, **kwargs: Any) -> SimpleNamespace:
        self.sent_messages.append(kwargs)
        self._next_message_id += 1
        return SimpleNamespace(message_id=self._next_message_id)

    async def edit_message_text(self, **kwargs: Any) -> bool:
        if self.edit_error is not None:
            raise self.edit_error
        self.edited_messages.append(kwargs)
        return True


class DummyMessage:
    def __init__(self, *, text: str | None = None, user_id: int | None = 42) -> None:
        self.text = text
        self.from_user = SimpleNamespace(id=user_id) if user_id is not None else None
        self.answers: list[DummyAnswerCall] = []
        self._next_message_id = 900

    async def answer(self, text: str | None = None, **kwargs: Any) -> SimpleNamespace:
        self.answers.append(DummyAnswerCall(text=text, kwargs=kwargs))
        self._next_message_id += 1
        return SimpleNamespace(message_id=self._next_message_id)


class DummyCallback:
    def __init__(self, *, data: str | None, user_id: int = 42) -> None:
        self.data = data
        self.from_user = SimpleNamespace(id=user_id)
        self.answer_calls: list[dict[str, Any]] = []

    async def answer(self, text: str | None = None, show_alert: bool = False) -> None:
        self.answer_calls.append({"text": text, "show_alert": show_alert})


class RecordingRelay:
    """Captures what the handlers pass to ``AnswerRelay``."""

    def __init__(self) -> None:
        self.answers: list[tuple[str, str, str, int | None]] = []
        self.decisions: list[tuple[str, str, str]] = []
        self.configured: list[dict[str, Any]] = []
        self.status_text = "📭 The offline queue is empty."
        self.decision_ack: tuple[str | None, bool] | None = None

    async def handle_answer(self, platform: str, user_id: str, answer: str, progress_message_id=None) -> None:
        self.answers.append((platform, user_id, answer, progress_message_id))

    async def handle_decision(self, platform: str, user_id: str, action: str, ack) -> bool:
        self.decisions.append((platform, user_id, action))
        if self.decision_ack is not None:
            await ack(*self.decision_ack)
        return True

    async def configure_player(self, platform: str, user_id: str, **fields: Any) -> None:
        self.configured.append({"platform": platform, "user_id": user_id, **fields})

    async def queue_status(self, platform: str, user_id: str) -> str:
        return self.status_text
