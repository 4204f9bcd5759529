from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.player_states import PlayerStateRow

STATE_COLUMNS = (
    "login",
    "password",
    "domain",
    "game_id",
    "auth_credentials",
    "last_known_level",
    "answer_backlog",
    "accumulation_buffer",
    "accumulation_anchor_level",
    "accumulation_active",
    "queue_conflict",
    "single_answer_conflict",
)


def row_to_record(row: PlayerStateRow) -> dict[str, Any]:
    return {column: getattr(row, column) for column in STATE_COLUMNS}


class PlayerStatesRepo:
    @staticmethod
    async def get(session: AsyncSession, *, platform: str, user_id: str) -> PlayerStateRow | None:
        return await session.get(PlayerStateRow, (platform, user_id))

    @staticmethod
    async def upsert(
        session: AsyncSession,
        *,
        platform: str,
        user_id: str,
        record: dict[str, Any],
        now_utc: datetime,
    ) -> None:
        values = {column: record.get(column) for column in STATE_COLUMNS}
        values["answer_backlog"] = values["answer_backlog"] or []
        values["accumulation_buffer"] = values["accumulation_buffer"] or []
        values["accumulation_active"] = bool(values["accumulation_active"])

        stmt = insert(PlayerStateRow).values(
            platform=platform,
            user_id=user_id,
            created_at=now_utc,
            updated_at=now_utc,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PlayerStateRow.platform, PlayerStateRow.user_id],
            set_={
                **{column: getattr(stmt.excluded, column) for column in STATE_COLUMNS},
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await session.execute(stmt)
