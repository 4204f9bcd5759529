from __future__ import annotations

import pytest

from app.encounter.urls import domain_host, normalize_domain, parse_game_url


def test_parse_game_details_link() -> None:
    assert parse_game_url("https://tech.en.cx/GameDetails.aspx?gid=80646") == ("https://tech.en.cx", "80646")


def test_parse_play_link() -> None:
    assert parse_game_url("http://quest.en.cx/gameengines/encounter/play/12345/") == (
        "http://quest.en.cx",
        "12345",
    )


def test_parse_play_link_without_trailing_slash_and_mixed_case() -> None:
    assert parse_game_url("https://tech.en.cx/GameEngines/Encounter/Play/777") == ("https://tech.en.cx", "777")


@pytest.mark.parametrize(
    "url",
    [
        "",
        "tech.en.cx/GameDetails.aspx?gid=1",
        "ftp://tech.en.cx/GameDetails.aspx?gid=1",
        "https://tech.en.cx/GameDetails.aspx",
        "https://tech.en.cx/GameDetails.aspx?gid=abc",
        "https://tech.en.cx/Teams/TeamDetails.aspx?tid=5",
    ],
)
def test_parse_rejects_unsupported_links(url: str) -> None:
    with pytest.raises(ValueError):
        parse_game_url(url)


def test_normalize_domain_adds_scheme_and_strips_path() -> None:
    assert normalize_domain("tech.en.cx") == "https://tech.en.cx"
    assert normalize_domain("http://Tech.en.cx/") == "http://tech.en.cx"
    assert domain_host("https://tech.en.cx") == "tech.en.cx"


def test_normalize_domain_rejects_empty_value() -> None:
    with pytest.raises(ValueError):
        normalize_domain("  ")
