from __future__ import annotations

import pytest

from app.delivery.answer_delivery import AnswerDelivery, build_success_message
from app.delivery.choices import accumulation_choices, answer_conflict_choices, queue_conflict_choices
from app.delivery.ports import InMemoryPlayerStore
from app.delivery.state import AnswerConflict, BacklogItem, LevelMark, QueueConflict, utc_now
from app.encounter.errors import GameProtocolError, LevelChangedError, NetworkError, RateLimitedError
from tests.delivery.helpers import (
    FakeSender,
    ManualScheduler,
    RecordingMessenger,
    configured_player,
    make_level,
    make_result,
)


class ReplayRecorder:
    def __init__(self) -> None:
        self.players = []

    async def __call__(self, player) -> None:
        self.players.append(player)


def _delivery(sender: FakeSender, **kwargs):
    store = InMemoryPlayerStore()
    messenger = RecordingMessenger()
    scheduler = ManualScheduler()
    replay = ReplayRecorder()
    delivery = AnswerDelivery(
        store=store,
        messenger=messenger,
        sender=sender,
        replay_backlog=replay,
        schedule=scheduler,
        **kwargs,
    )
    return delivery, store, messenger, scheduler, replay


@pytest.mark.asyncio
async def test_successful_answer_updates_progress_message() -> None:
    sender = FakeSender(level=make_level(10, 3, passed_sectors=2))
    delivery, _, messenger, scheduler, _ = _delivery(sender)
    player = configured_player()
    expected = player.last_known_level

    result = await delivery.deliver_answer(player, "alpha", 55)

    assert result is not None and result.correct is True
    assert sender.sent == [("alpha", expected)]
    assert messenger.last.kind == "update"
    assert messenger.last.message_id == 55
    assert 'Answer "alpha" sent to level 3' in messenger.last.text
    assert "Level: Level 3" in messenger.last.text
    assert "Sectors: 2/4" in messenger.last.text
    assert scheduler.timers == []


@pytest.mark.asyncio
async def test_success_schedules_backlog_replay() -> None:
    delivery, _, _, scheduler, replay = _delivery(FakeSender(), replay_delay_seconds=1.2)
    player = configured_player()
    player.enqueue_backlog(BacklogItem(answer="queued", enqueued_at=utc_now(), level_id=10, level_number=3))

    await delivery.deliver_answer(player, "alpha")
    assert [timer.delay for timer in scheduler.active] == [1.2]

    await scheduler.run_all()
    assert replay.players == [player]


@pytest.mark.asyncio
async def test_level_change_asks_the_player() -> None:
    sender = FakeSender(outcomes=[LevelChangedError(old_level=3, new_level=4, answer="alpha")])
    delivery, store, messenger, _, _ = _delivery(sender)
    player = configured_player()

    assert await delivery.deliver_answer(player, "alpha", 55) is None

    assert player.single_answer_conflict == AnswerConflict(answer="alpha", old_level=3, new_level=4)
    assert messenger.last.choices == answer_conflict_choices(4)
    assert "Level changed (3 → 4)" in messenger.last.text
    assert store.save_calls == 1


@pytest.mark.asyncio
async def test_level_change_joins_a_queue_decision_raised_meanwhile() -> None:
    def change_level(player, answer):
        player.queue_conflict = QueueConflict(old_level_number=3, new_level_number=4, queue_size=1)
        player.enqueue_backlog(BacklogItem(answer="older", enqueued_at=utc_now(), level_number=3))
        raise LevelChangedError(old_level=3, new_level=4, answer=answer)

    delivery, _, messenger, _, _ = _delivery(FakeSender(outcomes=[change_level]))
    player = configured_player()

    await delivery.deliver_answer(player, "alpha")

    assert player.single_answer_conflict is None
    assert [item.answer for item in player.answer_backlog] == ["older", "alpha"]
    assert messenger.last.choices == queue_conflict_choices(4)
    assert "There are 2 answers" in messenger.last.text


@pytest.mark.asyncio
async def test_connection_failure_moves_answer_to_backlog() -> None:
    sender = FakeSender(outcomes=[NetworkError("timeout", code="ETIMEDOUT")])
    delivery, store, messenger, _, _ = _delivery(sender)
    player = configured_player()

    await delivery.deliver_answer(player, "alpha", 55)

    [item] = player.answer_backlog
    assert (item.answer, item.level_id, item.level_number) == ("alpha", 10, 3)
    assert "added to the queue (level 3)" in messenger.last.text
    assert messenger.last.message_id == 55
    assert store.save_calls == 1


@pytest.mark.asyncio
async def test_rejected_request_is_reported_without_queueing() -> None:
    rejected = NetworkError("Encounter request rejected (HTTP 404)", code="HTTP_404", retryable=False)
    sender = FakeSender(outcomes=[rejected])
    delivery, _, messenger, _, _ = _delivery(sender)
    player = configured_player()

    await delivery.deliver_answer(player, "alpha")

    assert player.answer_backlog == []
    assert messenger.last.text == "❌ Error: Encounter request rejected (HTTP 404)"


@pytest.mark.asyncio
async def test_game_errors_are_reported() -> None:
    sender = FakeSender(outcomes=[GameProtocolError("Game is over", code="GAME_ENDED")])
    delivery, _, messenger, _, _ = _delivery(sender)

    await delivery.deliver_answer(configured_player(), "alpha")

    assert messenger.last.text == "❌ Error: Game is over"


@pytest.mark.asyncio
async def test_rate_limit_mentions_retry_after() -> None:
    sender = FakeSender(outcomes=[RateLimitedError(retry_after_seconds=7)])
    delivery, _, messenger, _, _ = _delivery(sender)
    player = configured_player()

    await delivery.deliver_answer(player, "alpha")

    assert "Try again in 7 s" in messenger.last.text
    assert player.answer_backlog == []


@pytest.mark.asyncio
async def test_pending_decision_blocks_new_answers() -> None:
    sender = FakeSender()
    delivery, _, messenger, _, _ = _delivery(sender)
    player = configured_player(queue_conflict=QueueConflict(old_level_number=2, new_level_number=3, queue_size=4))

    assert await delivery.deliver_answer(player, "alpha", 55) is None

    assert sender.sent == []
    assert messenger.last.choices == queue_conflict_choices(3)
    assert "There are 4 answers for level 2" in messenger.last.text


@pytest.mark.asyncio
async def test_accumulation_collects_and_presents_after_idle() -> None:
    sender = FakeSender()
    delivery, _, messenger, scheduler, _ = _delivery(sender, accumulation_idle_seconds=5.0)
    player = configured_player(
        accumulation_active=True,
        accumulation_anchor_level=LevelMark(level_id=10, level_number=3),
    )

    await delivery.deliver_answer(player, "a")
    first_timer = scheduler.timers[0]
    await delivery.deliver_answer(player, "b")

    assert sender.sent == []
    assert [item.answer for item in player.accumulation_buffer] == ["a", "b"]
    assert first_timer.cancelled is True
    assert [timer.delay for timer in scheduler.active] == [5.0]
    assert 'Code "b" added to the buffer (2)' in messenger.last.text

    await scheduler.run_all()

    assert messenger.last.choices == accumulation_choices()
    assert "2 codes collected" in messenger.last.text
    assert "Level when collecting started: 3" in messenger.last.text
    assert player.accumulation_idle_timer is None


@pytest.mark.asyncio
async def test_empty_accumulation_is_left_quietly() -> None:
    delivery, _, messenger, _, _ = _delivery(FakeSender())
    player = configured_player(accumulation_active=True)

    await delivery.present_accumulation(player)

    assert player.accumulation_active is False
    assert messenger.messages == []

@pytest.mark.asyncio
async def test_idle_prompt_waits_while_a_batch_is_being_sent() -> None:
    delivery, _, messenger, _, _ = _delivery(FakeSender())
    player = configured_player(
        accumulation_active=True,
        accumulation_buffer=[],
        batch_sending_active=True,
    )

    await delivery.deliver_answer(player, "late")
    await delivery.present_accumulation(player)

    assert [item.answer for item in player.accumulation_buffer] == ["late"]
    assert player.accumulation_active is True
    assert all(message.choices is None for message in messenger.messages)



@pytest.mark.asyncio
async def test_new_outage_clears_an_undecided_queue() -> None:
    def outage_after_conflict(player, answer):
        player.enqueue_backlog(BacklogItem(answer="old", enqueued_at=utc_now(), level_number=2))
        player.queue_conflict = QueueConflict(old_level_number=2, new_level_number=3, queue_size=1)
        raise NetworkError("timeout", code="ETIMEDOUT")

    delivery, _, messenger, _, _ = _delivery(FakeSender(outcomes=[outage_after_conflict]))
    player = configured_player()

    await delivery.deliver_answer(player, "alpha")

    assert player.queue_conflict is None
    assert [item.answer for item in player.answer_backlog] == ["alpha"]
    assert any("cleared automatically" in text for text in messenger.texts)


def test_success_message_without_level_name_has_no_details() -> None:
    text = build_success_message("alpha", make_result(make_level(name=None)))

    assert text == "📤 Answer \"alpha\" sent to level 3\nCorrect answer!"
