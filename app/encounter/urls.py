from __future__ import annotations

import re
from urllib.parse import parse_qs, urlsplit

_PLAY_PATH_RE = re.compile(r"/gameengines/encounter/play/(\d+)/?$", re.IGNORECASE)

GAME_URL_EXAMPLES = (
    "https://<domain>/GameDetails.aspx?gid=<id>",
    "https://<domain>/gameengines/encounter/play/<id>/",
)


def normalize_domain(domain: str) -> str:
    """Return ``scheme://host`` for a bare host or a full origin."""
    value = domain.strip().rstrip("/")
    if not value:
        raise ValueError("domain is empty")
    if "://" not in value:
        value = f"https://{value}"
    parts = urlsplit(value)
    if not parts.hostname:
        raise ValueError(f"invalid domain: {domain!r}")
    return f"{parts.scheme}://{parts.hostname}"


def domain_host(domain: str) -> str:
    return urlsplit(normalize_domain(domain)).hostname or ""


def parse_game_url(url: str) -> tuple[str, str]:
    """Extract ``(domain, game_id)`` from a game details or play page link.

    ``domain`` keeps the scheme, e.g. ``https://tech.en.cx``.
    """
    parts = urlsplit((url or "").strip())
    if parts.scheme not in {"http", "https"} or not parts.hostname:
        raise ValueError("invalid game link format")
    domain = f"{parts.scheme}://{parts.hostname}"

    if parts.path.lower().endswith("/gamedetails.aspx"):
        game_ids = parse_qs(parts.query).get("gid") or []
        if game_ids and game_ids[0].isdigit():
            return domain, game_ids[0]

    match = _PLAY_PATH_RE.search(parts.path)
    if match:
        return domain, match.group(1)

    raise ValueError("unsupported game link, expected one of: " + ", ".join(GAME_URL_EXAMPLES))
