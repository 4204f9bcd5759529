from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return utc_now()


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class DrainPhase(str, Enum):
    IDLE = "IDLE"
    DRAINING = "DRAINING"
    DRAINING_REQUEUED = "DRAINING_REQUEUED"


@dataclass(frozen=True, slots=True)
class LevelMark:
    level_id: int
    level_number: int
    observed_at: datetime = field(default_factory=utc_now)

    def to_record(self) -> dict[str, Any]:
        return {
            "level_id": self.level_id,
            "level_number": self.level_number,
            "observed_at": self.observed_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any] | None) -> LevelMark | None:
        if not record:
            return None
        level_id = _optional_int(record.get("level_id"))
        level_number = _optional_int(record.get("level_number"))
        if level_id is None or level_number is None:
            return None
        return cls(
            level_id=level_id,
            level_number=level_number,
            observed_at=_parse_datetime(record.get("observed_at")),
        )


@dataclass(slots=True)
class BacklogItem:
    answer: str
    enqueued_at: datetime
    level_id: int | None = None
    level_number: int | None = None
    failed_attempts: int = 0
    last_error: str | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "enqueued_at": self.enqueued_at.isoformat(),
            "level_id": self.level_id,
            "level_number": self.level_number,
            "failed_attempts": self.failed_attempts,
            "last_error": self.last_error,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> BacklogItem:
        return cls(
            answer=str(record["answer"]),
            enqueued_at=_parse_datetime(record.get("enqueued_at")),
            level_id=_optional_int(record.get("level_id")),
            level_number=_optional_int(record.get("level_number")),
            failed_attempts=_optional_int(record.get("failed_attempts")) or 0,
            last_error=record.get("last_error"),
        )


@dataclass(slots=True)
class AccumulatedAnswer:
    answer: str
    captured_at: datetime
    level_id: int | None = None
    level_number: int | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "captured_at": self.captured_at.isoformat(),
            "level_id": self.level_id,
            "level_number": self.level_number,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> AccumulatedAnswer:
        return cls(
            answer=str(record["answer"]),
            captured_at=_parse_datetime(record.get("captured_at")),
            level_id=_optional_int(record.get("level_id")),
            level_number=_optional_int(record.get("level_number")),
        )


@dataclass(frozen=True, slots=True)
class QueueConflict:
    old_level_number: int | None
    new_level_number: int
    queue_size: int

    def to_record(self) -> dict[str, Any]:
        return {
            "old_level_number": self.old_level_number,
            "new_level_number": self.new_level_number,
            "queue_size": self.queue_size,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any] | None) -> QueueConflict | None:
        if not record:
            return None
        return cls(
            old_level_number=_optional_int(record.get("old_level_number")),
            new_level_number=int(record["new_level_number"]),
            queue_size=int(record.get("queue_size") or 0),
        )


@dataclass(frozen=True, slots=True)
class AnswerConflict:
    answer: str
    old_level: int | None
    new_level: int | None

    def to_record(self) -> dict[str, Any]:
        return {"answer": self.answer, "old_level": self.old_level, "new_level": self.new_level}

    @classmethod
    def from_record(cls, record: dict[str, Any] | None) -> AnswerConflict | None:
        if not record:
            return None
        return cls(
            answer=str(record["answer"]),
            old_level=_optional_int(record.get("old_level")),
            new_level=_optional_int(record.get("new_level")),
        )


@dataclass(slots=True)
class PendingEntry:
    """An inbound answer waiting for burst classification."""

    answer: str
    received_at: float
    progress_message_id: int | None
    outcome: asyncio.Future[Any]


@dataclass(slots=True)
class PlayerState:
    """Delivery state of one (platform, user) pair.

    Only the durable part round-trips through ``to_record``. Guard flags,
    timers and pending burst entries live in process memory and start fresh
    after a restart.
    """

    platform: str
    user_id: str
    login: str | None = None
    password: str | None = None
    domain: str | None = None
    game_id: str | None = None
    auth_credentials: dict[str, str] | None = None
    last_known_level: LevelMark | None = None
    answer_backlog: list[BacklogItem] = field(default_factory=list)
    accumulation_buffer: list[AccumulatedAnswer] = field(default_factory=list)
    accumulation_anchor_level: LevelMark | None = None
    accumulation_active: bool = False
    queue_conflict: QueueConflict | None = None
    single_answer_conflict: AnswerConflict | None = None

    pending_burst_entries: list[PendingEntry] = field(default_factory=list)
    burst_drain_phase: DrainPhase = DrainPhase.IDLE
    queue_processing_active: bool = False
    batch_sending_active: bool = False
    authentication_in_flight: bool = False
    burst_wake_timer: TimerHandle | None = None
    accumulation_idle_timer: TimerHandle | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.platform, self.user_id)

    @property
    def is_configured(self) -> bool:
        return bool(self.domain and self.game_id and self.login and self.password)

    @property
    def has_blocking_conflict(self) -> bool:
        return self.queue_conflict is not None or self.single_answer_conflict is not None

    def set_queue_conflict(self, conflict: QueueConflict) -> None:
        if self.single_answer_conflict is not None:
            raise ValueError("single answer conflict is already pending")
        self.queue_conflict = conflict

    def set_single_answer_conflict(self, conflict: AnswerConflict) -> None:
        if self.queue_conflict is not None:
            raise ValueError("queue conflict is already pending")
        self.single_answer_conflict = conflict

    def remember_level(self, level_id: int, level_number: int, *, observed_at: datetime | None = None) -> LevelMark:
        self.last_known_level = LevelMark(
            level_id=level_id,
            level_number=level_number,
            observed_at=observed_at or utc_now(),
        )
        return self.last_known_level

    def enqueue_backlog(self, item: BacklogItem) -> None:
        self.answer_backlog.append(item)

    def remove_backlog_item(self, item: BacklogItem) -> bool:
        for index, candidate in enumerate(self.answer_backlog):
            if candidate is item:
                del self.answer_backlog[index]
                return True
        return False

    def cancel_accumulation_timer(self) -> None:
        if self.accumulation_idle_timer is not None:
            self.accumulation_idle_timer.cancel()
            self.accumulation_idle_timer = None

    def leave_accumulation(self) -> None:
        self.cancel_accumulation_timer()
        self.accumulation_buffer = []
        self.accumulation_active = False
        self.accumulation_anchor_level = None

    def reset_session(self) -> None:
        """Forget everything tied to the previous game or account."""
        self.auth_credentials = None
        self.last_known_level = None
        self.answer_backlog = []
        self.leave_accumulation()
        self.queue_conflict = None
        self.single_answer_conflict = None

    def to_record(self) -> dict[str, Any]:
        return {
            "login": self.login,
            "password": self.password,
            "domain": self.domain,
            "game_id": self.game_id,
            "auth_credentials": dict(self.auth_credentials) if self.auth_credentials else None,
            "last_known_level": self.last_known_level.to_record() if self.last_known_level else None,
            "answer_backlog": [item.to_record() for item in self.answer_backlog],
            "accumulation_buffer": [item.to_record() for item in self.accumulation_buffer],
            "accumulation_anchor_level": (
                self.accumulation_anchor_level.to_record() if self.accumulation_anchor_level else None
            ),
            "accumulation_active": self.accumulation_active,
            "queue_conflict": self.queue_conflict.to_record() if self.queue_conflict else None,
            "single_answer_conflict": (
                self.single_answer_conflict.to_record() if self.single_answer_conflict else None
            ),
        }

    @classmethod
    def from_record(cls, platform: str, user_id: str, record: dict[str, Any]) -> PlayerState:
        return cls(
            platform=platform,
            user_id=user_id,
            login=record.get("login"),
            password=record.get("password"),
            domain=record.get("domain"),
            game_id=record.get("game_id"),
            auth_credentials=dict(record["auth_credentials"]) if record.get("auth_credentials") else None,
            last_known_level=LevelMark.from_record(record.get("last_known_level")),
            answer_backlog=[BacklogItem.from_record(item) for item in record.get("answer_backlog") or []],
            accumulation_buffer=[
                AccumulatedAnswer.from_record(item) for item in record.get("accumulation_buffer") or []
            ],
            accumulation_anchor_level=LevelMark.from_record(record.get("accumulation_anchor_level")),
            accumulation_active=bool(record.get("accumulation_active")),
            queue_conflict=QueueConflict.from_record(record.get("queue_conflict")),
            single_answer_conflict=AnswerConflict.from_record(record.get("single_answer_conflict")),
        )
