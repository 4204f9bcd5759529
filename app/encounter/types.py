from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True, slots=True)
class LevelInfo:
    level_id: int
    number: int
    name: str | None = None
    is_passed: bool = False
    dismissed: bool = False
    has_answer_block_rule: bool = False
    block_duration_seconds: int = 0
    passed_sectors: int | None = None
    required_sectors: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> LevelInfo:
        return cls(
            level_id=int(payload["LevelId"]),
            number=int(payload["Number"]),
            name=payload.get("Name") or None,
            is_passed=bool(payload.get("IsPassed")),
            dismissed=bool(payload.get("Dismissed")),
            has_answer_block_rule=bool(payload.get("HasAnswerBlockRule")),
            block_duration_seconds=_optional_int(payload.get("BlockDuration")) or 0,
            passed_sectors=_optional_int(payload.get("PassedSectorsCount")),
            required_sectors=_optional_int(payload.get("RequiredSectorsCount")),
        )

    @property
    def sectors_text(self) -> str | None:
        if self.passed_sectors is None or self.required_sectors is None:
            return None
        return f"{self.passed_sectors}/{self.required_sectors}"


@dataclass(frozen=True, slots=True)
class GameState:
    event: int
    level: LevelInfo
    payload: dict[str, Any]
    new_credentials: dict[str, str] | None = None


@dataclass(slots=True)
class SubmitResult:
    success: bool
    message: str
    level_number: int
    correct: bool | None = None
    level_passed: bool = False
    level: LevelInfo | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    new_credentials: dict[str, str] | None = None


@dataclass(frozen=True, slots=True)
class AuthResult:
    success: bool
    code: str
    message: str
    credentials: dict[str, str] | None = None
    captcha_url: str | None = None
