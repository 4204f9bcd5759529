from __future__ import annotations

AUTH_COOKIE_NAMES = frozenset({"GUID", "stoken", "atoken"})

EVENT_OK = 0
EVENT_NOT_AUTHORIZED = 4
EVENT_LEVEL_CHANGED = 16

# Submit responses carrying one of these events still contain a usable verdict,
# but the cached level is no longer trustworthy.
LEVEL_CHANGED_EVENTS = frozenset({16, 18, 19, 20, 21, 22})

# event -> (code, player-facing message)
GAME_EVENTS: dict[int, tuple[str, str]] = {
    1: ("UNKNOWN_EVENT", "Unknown game error"),
    2: ("GAME_NOT_FOUND", "Game with this id does not exist"),
    3: ("WRONG_GAME_TYPE", "Requested game is not an Encounter game"),
    4: ("NOT_AUTHORIZED", "Player is not authorized, sign in again"),
    5: ("GAME_NOT_STARTED", "Game has not started yet"),
    6: ("GAME_ENDED", "Game is over"),
    7: ("NO_PLAYER_APPLICATION", "Player has not applied for the game"),
    8: ("NO_TEAM_APPLICATION", "Team has not applied for the game"),
    9: ("PLAYER_NOT_ACCEPTED", "Player is not accepted into the game yet"),
    10: ("NO_TEAM", "Player has no team"),
    11: ("PLAYER_INACTIVE", "Player is not active in the team"),
    12: ("NO_LEVELS", "Game has no levels"),
    13: ("TEAM_OVER_CAPACITY", "Team exceeds the allowed number of players"),
    14: ("PLAYER_BANNED", "Player is banned"),
    15: ("TEAM_BANNED", "Team is banned"),
    16: ("LEVEL_CHANGED_EVENT", "Level has changed"),
    17: ("GAME_FINISHED", "Game is finished"),
}

AUTH_SUCCESS = "SUCCESS"
AUTH_IP_BLOCKED = "IP_BLOCKED"
AUTH_INVALID_RESPONSE = "INVALID_RESPONSE"
AUTH_UNKNOWN = "UNKNOWN"
AUTH_NETWORK = "NETWORK"

# server "Error" field -> (code, message)
AUTH_RESULTS: dict[int, tuple[str, str]] = {
    1: ("CAPTCHA_REQUIRED", "Captcha required. Sign in through the browser and try again."),
    2: ("BAD_CREDENTIALS", "Wrong login or password"),
    3: ("ACCOUNT_BLOCKED", "Account is blocked or cannot sign in from this domain"),
    4: ("IP_NOT_ALLOWED", "IP address is not in the allow-list"),
    5: ("SERVER_ERROR", "Encounter server error"),
    7: ("ACCOUNT_BLOCKED", "Account is blocked by an administrator"),
    8: ("NOT_ACTIVATED", "Account is not activated"),
    9: ("BRUTE_FORCE_SUSPECTED", "Sign-in attempts look like brute force"),
    10: ("EMAIL_NOT_CONFIRMED", "E-mail is not confirmed"),
}
