from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class PlayerStateRow(Base):
    __tablename__ = "player_states"
    __table_args__ = (Index("idx_player_states_updated_at", "updated_at"),)

    platform: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    login: Mapped[str | None] = mapped_column(String(128), nullable=True)
    password: Mapped[str | None] = mapped_column(String(256), nullable=True)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    game_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    auth_credentials: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    last_known_level: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    answer_backlog: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    accumulation_buffer: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    accumulation_anchor_level: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    accumulation_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    queue_conflict: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    single_answer_conflict: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
