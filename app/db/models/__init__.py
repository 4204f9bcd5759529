from app.db.models.player_states import PlayerStateRow

__all__ = [
    "PlayerStateRow",
]
