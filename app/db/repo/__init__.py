from app.db.repo.player_states_repo import PlayerStatesRepo
