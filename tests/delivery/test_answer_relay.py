from __future__ import annotations

import pytest

from app.delivery.ports import InMemoryPlayerStore
from app.delivery.service_facade import AnswerRelay
from app.delivery.state import BacklogItem, QueueConflict, utc_now
from tests.delivery.helpers import FakeSender, RecordingMessenger


class FakeClients:
    def __init__(self) -> None:
        self.closed = False

    def create(self, domain: str, *, reauthenticate=None):
        raise AssertionError("network access is not expected")

    async def aclose(self) -> None:
        self.closed = True


class RecordingBatchBuffer:
    def __init__(self) -> None:
        self.submitted: list[tuple[str, int | None]] = []
        self.resets = 0

    async def submit(self, player, answer: str, progress_message_id: int | None = None) -> str:
        self.submitted.append((answer, progress_message_id))
        return "submitted"

    def reset_burst_state(self, player) -> None:
        self.resets += 1


def _relay():
    store = InMemoryPlayerStore()
    messenger = RecordingMessenger()
    clients = FakeClients()
    batch_buffer = RecordingBatchBuffer()
    relay = AnswerRelay(
        store=store,
        messenger=messenger,
        clients=clients,
        sender=FakeSender(),
        batch_buffer=batch_buffer,
    )
    return relay, store, messenger, clients, batch_buffer


@pytest.mark.asyncio
async def test_answer_from_unconfigured_player_is_refused() -> None:
    relay, _, messenger, _, batch_buffer = _relay()

    assert await relay.handle_answer("telegram", "42", "alpha", 9) is None

    assert batch_buffer.submitted == []
    assert messenger.last.message_id == 9
    assert messenger.last.text.startswith("Connect a game first")


@pytest.mark.asyncio
async def test_answer_is_trimmed_and_buffered() -> None:
    relay, store, _, _, batch_buffer = _relay()
    player = await store.get_player_state("telegram", "42")
    player.domain, player.game_id, player.login, player.password = "https://tech.en.cx", "1", "p", "s"

    assert await relay.handle_answer("telegram", "42", "  alpha  ", 9) == "submitted"
    assert await relay.handle_answer("telegram", "42", "   ") is None

    assert batch_buffer.submitted == [("alpha", 9)]


@pytest.mark.asyncio
async def test_configure_player_starts_a_fresh_session() -> None:
    relay, store, _, _, batch_buffer = _relay()
    player = await store.get_player_state("telegram", "42")
    player.answer_backlog = [BacklogItem(answer="old", enqueued_at=utc_now())]
    player.queue_conflict = QueueConflict(old_level_number=1, new_level_number=2, queue_size=1)
    player.auth_credentials = {"GUID": "old"}

    configured = await relay.configure_player(
        "telegram",
        "42",
        domain="https://tech.en.cx",
        game_id="80646",
        login="player",
        password="secret",
    )

    assert configured is player
    assert player.is_configured is True
    assert player.answer_backlog == []
    assert player.queue_conflict is None
    assert player.auth_credentials is None
    assert batch_buffer.resets == 1
    assert store.save_calls == 1


@pytest.mark.asyncio
async def test_decisions_and_status_are_routed_to_the_player() -> None:
    relay, store, messenger, _, _ = _relay()
    player = await store.get_player_state("telegram", "42")
    player.answer_backlog = [BacklogItem(answer="a", enqueued_at=utc_now(), level_number=3)]

    assert await relay.handle_decision("telegram", "42", "unknown") is False
    assert (await relay.queue_status("telegram", "42")).startswith("📬 Offline queue: 1 answers")
    assert messenger.messages == []


@pytest.mark.asyncio
async def test_close_releases_http_pool() -> None:
    relay, _, _, clients, _ = _relay()

    await relay.close()

    assert clients.closed is True
